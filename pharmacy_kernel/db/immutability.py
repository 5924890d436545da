"""
ORM-Level Append-Only Enforcement for the Stock Ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

Historical stock-at-date and period totals are derived purely by summing
ledger details.  That only works if a ledger row, once written, never
changes.  This module intercepts UPDATE/DELETE attempts through the ORM
before any SQL is sent:

    session.flush()
         |
         v
    [before_insert]  --> _check_transaction_routing()  --> InvalidRoutingError
    [before_update]  --> _check_*_immutability()       --> ImmutabilityViolationError
    [before_delete]  --> _check_*_delete()             --> ImmutabilityViolationError

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule                               | Why
--------------------|------------------------------------|------------------------------
StockTransaction    | No UPDATE, no DELETE               | Ledger header is history
TransactionDetail   | No UPDATE, no DELETE               | Ledger lines are history
InventoryLot        | No DELETE (quantity may change)    | Zero lots remain as history
StockTransaction    | Routing valid on INSERT            | Type-conditioned routing

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id changes are allowed; they are audit metadata.
2. SQLAlchemy fires before_update for any dirty instance, including one
   whose only change is a relationship collection.  The checks look at
   column attribute history so that appending a detail to an already
   persisted header is not mistaken for an edit.
3. Lot decrements are Core-level conditional UPDATEs and bypass mapper
   events; the CHECK (quantity >= 0) constraint covers them.

Usage:
    from pharmacy_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup
"""

from sqlalchemy import event, inspect

from pharmacy_kernel.domain.routing import validate_routing
from pharmacy_kernel.exceptions import ImmutabilityViolationError
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _changed_columns(target) -> list[str]:
    """Column attributes with pending changes, excluding audit metadata."""
    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_transaction_routing(mapper, connection, target):
    validate_routing(
        target.transaction_type,
        source_warehouse_id=target.source_warehouse_id,
        destination_warehouse_id=target.destination_warehouse_id,
        supplier_id=target.supplier_id,
        department_id=target.department_id,
    )


def _check_transaction_immutability(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "StockTransaction",
            target,
            "UPDATE",
            f"Ledger transactions are append-only (attempted: {', '.join(changed)})",
        )


def _check_transaction_delete(mapper, connection, target):
    _block("StockTransaction", target, "DELETE", "Ledger transactions cannot be deleted")


def _check_detail_immutability(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "TransactionDetail",
            target,
            "UPDATE",
            f"Ledger details are append-only (attempted: {', '.join(changed)})",
        )


def _check_detail_delete(mapper, connection, target):
    _block("TransactionDetail", target, "DELETE", "Ledger details cannot be deleted")


def _check_lot_delete(mapper, connection, target):
    _block(
        "InventoryLot",
        target,
        "DELETE",
        "Inventory lots are kept as history and cannot be deleted",
    )


def _listeners():
    from pharmacy_kernel.models.inventory_lot import InventoryLot
    from pharmacy_kernel.models.stock_transaction import (
        StockTransaction,
        TransactionDetail,
    )

    return [
        (StockTransaction, "before_insert", _check_transaction_routing),
        (StockTransaction, "before_update", _check_transaction_immutability),
        (StockTransaction, "before_delete", _check_transaction_delete),
        (TransactionDetail, "before_update", _check_detail_immutability),
        (TransactionDetail, "before_delete", _check_detail_delete),
        (InventoryLot, "before_delete", _check_lot_delete),
    ]


def register_immutability_listeners():
    """
    Register all append-only enforcement event listeners.

    Call once during application initialization, after models are importable.
    Registering twice is a no-op.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the enforcement listeners.

    WARNING: Only use this in tests that need to bypass the guards.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
