"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Services use ``session.flush()``,
    never ``session.commit()``.

Invariants enforced:
    Transaction boundaries belong to the caller (StockMovementService,
    InventoryScanner, or a test harness), so a multi-step movement stays
    one atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from pharmacy_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Query-only (read) methods belong in ``pharmacy_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
