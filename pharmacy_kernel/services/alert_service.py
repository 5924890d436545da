"""
AlertService -- alert lifecycle writes.

Responsibility:
    Create-or-update (dedup) of scanner-detected conditions, and the
    lifecycle transitions: acknowledge, resolve (manual), auto-resolve
    (scanner), and administrative delete.

Architecture position:
    Kernel > Services.  Flush-only; InventoryScanner and callers of the
    manual actions own commit/rollback.

Invariants enforced:
    - At most one ACTIVE alert per (alert_type, product_id, inventory_lot_id).
      create_or_update looks the key up first and refreshes the existing
      row in place.  The insert runs in a savepoint; when a concurrent
      writer wins the unique index, the winner is refreshed instead.
    - ACTIVE -> ACKNOWLEDGED only from ACTIVE.
    - -> RESOLVED from ACTIVE or ACKNOWLEDGED; RESOLVED is terminal.

Failure modes:
    - AlertNotFoundError for an unknown alert id.
    - AlertStateError when the transition is not allowed.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import AlertCondition, AlertInfo
from pharmacy_kernel.domain.types import SYSTEM_ACTOR_ID, AlertStatus, AlertType
from pharmacy_kernel.exceptions import AlertNotFoundError, AlertStateError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.alert import Alert
from pharmacy_kernel.services.base import BaseService

logger = get_logger("services.alert")

AUTO_RESOLVED_MARKER = "[auto-resolved]"


def _append_note(existing: str | None, note: str) -> str:
    if existing:
        return f"{existing}\n{note}"
    return note


class AlertService(BaseService[Alert]):
    """Alert lifecycle writes.  Never commits."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Dedup
    # ------------------------------------------------------------------

    def find_active(
        self,
        alert_type,
        product_id: UUID,
        inventory_lot_id: UUID | None,
    ) -> Alert | None:
        """Existing ACTIVE alert for the dedup key, if any."""
        stmt = select(Alert).where(
            Alert.alert_type == alert_type,
            Alert.product_id == product_id,
            Alert.status == AlertStatus.ACTIVE,
        )
        if inventory_lot_id is None:
            stmt = stmt.where(Alert.inventory_lot_id.is_(None))
        else:
            stmt = stmt.where(Alert.inventory_lot_id == inventory_lot_id)
        return self.session.execute(
            stmt.order_by(Alert.created_at).limit(1)
        ).scalar_one_or_none()

    def create_or_update(
        self,
        condition: AlertCondition,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> tuple[Alert, bool]:
        """
        Record a detected condition.

        Returns (alert, created).  When an ACTIVE alert with the same dedup
        key exists, its snapshot fields are refreshed and created is False.
        """
        alert = self.find_active(
            condition.alert_type, condition.product_id, condition.inventory_lot_id
        )
        if alert is not None:
            return self._refresh(alert, condition, actor_id), False

        alert = Alert(
            alert_type=condition.alert_type,
            severity=condition.severity,
            status=AlertStatus.ACTIVE,
            product_id=condition.product_id,
            product_sku=condition.product_sku,
            product_name=condition.product_name,
            warehouse_id=condition.warehouse_id,
            inventory_lot_id=condition.inventory_lot_id,
            lot_number=condition.lot_number,
            current_stock=condition.current_stock,
            minimum_stock=condition.minimum_stock,
            expiry_date=condition.expiry_date,
            days_until_expiry=condition.days_until_expiry,
            message=condition.message,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(alert)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            existing = self.find_active(
                condition.alert_type, condition.product_id, condition.inventory_lot_id
            )
            if existing is None:
                raise
            logger.info(
                "alert_insert_lost_race",
                extra={
                    "alert_id": str(existing.id),
                    "alert_type": condition.alert_type.value,
                },
            )
            return self._refresh(existing, condition, actor_id), False
        savepoint.commit()

        logger.info(
            "alert_created",
            extra={
                "alert_id": str(alert.id),
                "alert_type": condition.alert_type.value,
                "severity": condition.severity.value,
                "product_id": str(condition.product_id),
                "inventory_lot_id": (
                    str(condition.inventory_lot_id)
                    if condition.inventory_lot_id else None
                ),
            },
        )
        return alert, True

    def _refresh(self, alert: Alert, condition: AlertCondition, actor_id: UUID) -> Alert:
        alert.severity = condition.severity
        alert.message = condition.message
        alert.product_sku = condition.product_sku
        alert.product_name = condition.product_name
        alert.warehouse_id = condition.warehouse_id
        alert.current_stock = condition.current_stock
        alert.minimum_stock = condition.minimum_stock
        alert.lot_number = condition.lot_number
        alert.expiry_date = condition.expiry_date
        alert.days_until_expiry = condition.days_until_expiry
        alert.updated_by_id = actor_id
        self.session.flush()
        logger.debug(
            "alert_refreshed",
            extra={
                "alert_id": str(alert.id),
                "alert_type": condition.alert_type.value,
                "severity": condition.severity.value,
            },
        )
        return alert

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _get(self, alert_id: UUID) -> Alert:
        alert = self.session.get(Alert, alert_id)
        if alert is None:
            raise AlertNotFoundError(str(alert_id))
        return alert

    def acknowledge(
        self,
        alert_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AlertInfo:
        """ACTIVE -> ACKNOWLEDGED."""
        alert = self._get(alert_id)
        if alert.status != AlertStatus.ACTIVE:
            raise AlertStateError(str(alert_id), AlertStatus(alert.status).value, "acknowledge")

        alert.status = AlertStatus.ACKNOWLEDGED
        alert.acknowledged_by_id = actor_id
        alert.acknowledged_at = self._clock.now()
        alert.updated_by_id = actor_id
        if notes:
            alert.notes = _append_note(alert.notes, notes)
        self.session.flush()

        logger.info(
            "alert_acknowledged",
            extra={"alert_id": str(alert_id), "actor_id": str(actor_id)},
        )
        return AlertInfo.from_model(alert)

    def resolve(
        self,
        alert_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AlertInfo:
        """ACTIVE or ACKNOWLEDGED -> RESOLVED."""
        alert = self._get(alert_id)
        if alert.status == AlertStatus.RESOLVED:
            raise AlertStateError(str(alert_id), AlertStatus(alert.status).value, "resolve")

        self._mark_resolved(alert, actor_id, notes)
        logger.info(
            "alert_resolved",
            extra={"alert_id": str(alert_id), "actor_id": str(actor_id)},
        )
        return AlertInfo.from_model(alert)

    def auto_resolve(self, alert: Alert, reason: str) -> None:
        """Resolve an ACTIVE alert whose condition has cleared."""
        if alert.status != AlertStatus.ACTIVE:
            raise AlertStateError(str(alert.id), AlertStatus(alert.status).value, "auto-resolve")

        self._mark_resolved(alert, SYSTEM_ACTOR_ID, f"{AUTO_RESOLVED_MARKER} {reason}")
        logger.info(
            "alert_auto_resolved",
            extra={
                "alert_id": str(alert.id),
                "alert_type": AlertType(alert.alert_type).value,
                "reason": reason,
            },
        )

    def _mark_resolved(self, alert: Alert, actor_id: UUID, notes: str | None) -> None:
        alert.status = AlertStatus.RESOLVED
        alert.resolved_by_id = actor_id
        alert.resolved_at = self._clock.now()
        alert.updated_by_id = actor_id
        if notes:
            alert.notes = _append_note(alert.notes, notes)
        self.session.flush()

    def delete(self, alert_id: UUID, actor_id: UUID) -> None:
        """Administrative removal of an alert record."""
        alert = self._get(alert_id)
        self.session.delete(alert)
        self.session.flush()
        logger.info(
            "alert_deleted",
            extra={"alert_id": str(alert_id), "actor_id": str(actor_id)},
        )
