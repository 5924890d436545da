"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers per named counter.  Issue
    document codes use one counter per calendar day
    (``inventory_issue:YYYYMMDD``), so numbering restarts daily and stays
    unique under concurrent creation.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by StockMovementService when it numbers an issue document.

Invariants enforced:
    - The locked counter row is the sole source of truth for the next
      value.  Counting existing documents and adding one is never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits; a rolled-back movement returns its number.

Failure modes:
    - IntegrityError: Concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from pharmacy_kernel.db.base import Base
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking keeps allocation serialized per name.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        seq = SequenceService(session).next_value(
            SequenceService.daily_name(SequenceService.INVENTORY_ISSUE, day)
        )
    """

    INVENTORY_ISSUE = "inventory_issue"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def daily_name(prefix: str, day) -> str:
        """Counter name scoped to one calendar day."""
        return f"{prefix}:{day.strftime('%Y%m%d')}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the sequence row (or creates it if not exists)
        2. Increments the counter
        3. Returns the new value (always > 0)
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # Savepoint so a lost creation race doesn't roll back the caller's work
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if unused."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
