"""
Module: pharmacy_kernel.selectors.alert_selector
Responsibility: Read access to alerts -- filtered and paginated listing,
    dashboard summary, statistics by severity and type, and lookup by id.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import func, or_, select

from pharmacy_kernel.domain.dtos import AlertInfo, AlertStatistics, AlertSummary, Page
from pharmacy_kernel.domain.types import AlertSeverity, AlertStatus, AlertType
from pharmacy_kernel.exceptions import ValidationError
from pharmacy_kernel.models.alert import Alert
from pharmacy_kernel.selectors.base import BaseSelector

SORTABLE_FIELDS = {
    "created_at": Alert.created_at,
    "updated_at": Alert.updated_at,
    "severity": Alert.severity,
    "alert_type": Alert.alert_type,
    "expiry_date": Alert.expiry_date,
    "days_until_expiry": Alert.days_until_expiry,
    "current_stock": Alert.current_stock,
}

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class AlertSelector(BaseSelector[Alert]):
    """Read-only alert queries."""

    def get(self, alert_id: UUID) -> AlertInfo | None:
        alert = self.session.get(Alert, alert_id)
        return AlertInfo.from_model(alert) if alert is not None else None

    def list_alerts(
        self,
        *,
        alert_type: AlertType | None = None,
        severity: AlertSeverity | None = None,
        status: AlertStatus | None = AlertStatus.ACTIVE,
        product_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page:
        """
        Alerts matching every given filter.

        status defaults to ACTIVE; pass None for all statuses.  search
        matches the product name or SKU snapshot, case-insensitively.
        """
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                [{"field": "sort_by", "message": f"cannot sort by {sort_by!r}"}]
            )
        if sort_order not in ("asc", "desc"):
            raise ValidationError(
                [{"field": "sort_order", "message": "must be 'asc' or 'desc'"}]
            )
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = []
        if alert_type is not None:
            conditions.append(Alert.alert_type == alert_type)
        if severity is not None:
            conditions.append(Alert.severity == severity)
        if status is not None:
            conditions.append(Alert.status == status)
        if product_id is not None:
            conditions.append(Alert.product_id == product_id)
        if warehouse_id is not None:
            conditions.append(Alert.warehouse_id == warehouse_id)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(Alert.product_name).like(pattern),
                    func.lower(Alert.product_sku).like(pattern),
                )
            )

        total = self.session.execute(
            select(func.count(Alert.id)).where(*conditions)
        ).scalar_one()

        column = SORTABLE_FIELDS[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()
        alerts = self.session.execute(
            select(Alert)
            .where(*conditions)
            .order_by(ordering, Alert.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return Page(
            items=tuple(AlertInfo.from_model(a) for a in alerts),
            page=page,
            limit=limit,
            total=total,
        )

    def _active_counts(self, column) -> dict[str, int]:
        rows = self.session.execute(
            select(column, func.count(Alert.id))
            .where(Alert.status == AlertStatus.ACTIVE)
            .group_by(column)
        ).all()
        return {str(key): count for key, count in rows}

    def summary(self) -> AlertSummary:
        """Active alert counts: total, expiry-related, and stock-related."""
        by_type = self._active_counts(Alert.alert_type)
        return AlertSummary(
            total_alerts=sum(by_type.values()),
            expiring_soon=(
                by_type.get(AlertType.EXPIRING_SOON.value, 0)
                + by_type.get(AlertType.EXPIRED.value, 0)
            ),
            low_stock=(
                by_type.get(AlertType.LOW_STOCK.value, 0)
                + by_type.get(AlertType.OUT_OF_STOCK.value, 0)
            ),
        )

    def statistics(self) -> AlertStatistics:
        """Active alert counts keyed by every severity and every type."""
        by_severity = self._active_counts(Alert.severity)
        by_type = self._active_counts(Alert.alert_type)
        return AlertStatistics(
            by_severity={s.value: by_severity.get(s.value, 0) for s in AlertSeverity},
            by_type={t.value: by_type.get(t.value, 0) for t in AlertType},
            total_active=sum(by_type.values()),
        )
