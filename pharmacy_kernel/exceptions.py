"""
Typed Exception Hierarchy for the Pharmacy Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements touch three persisted views at once (lot quantities, the
ledger, and the product stock counter).  When one is rejected the caller
must know exactly why, without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)
  4. Every exception has a KIND so a transport layer can map it to a
     status without an isinstance ladder

Example:
    try:
        processor.issue(request, actor_id)
    except InsufficientStockError as e:
        return {"error": e.code, "shortages": e.shortages}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PharmacyKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidRoutingError
    |
    +-- ReferenceNotFoundError
    |   +-- LotNotFoundError
    |   +-- AlertNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- PersistenceError
    |
    +-- ImmutabilityViolationError
    |
    +-- AlertStateError
    |
    +-- SchedulerError
        +-- TaskNotRegisteredError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind               | Code                     | When Raised
-------------------|--------------------------|-------------------------------------
validation         | VALIDATION_ERROR         | Missing fields, bad quantity/price
                   | INVALID_ROUTING          | Transaction routing fields invalid
not_found          | REFERENCE_NOT_FOUND      | Unknown product/warehouse/supplier
                   | LOT_NOT_FOUND            | Manual allocation names unknown lot
                   | ALERT_NOT_FOUND          | Alert id doesn't exist
insufficient_stock | INSUFFICIENT_STOCK       | One or more lines short (aggregated)
conflict           | CONCURRENCY_CONFLICT     | Lots drawn down by a racing movement
                   | ALERT_STATE_INVALID      | Lifecycle action not allowed
internal           | PERSISTENCE_ERROR        | Storage failure during mutation
                   | IMMUTABILITY_VIOLATION   | Ledger row update/delete attempted
                   | TASK_NOT_REGISTERED      | Unknown scheduled task type

===============================================================================
"""

from typing import Any


class PharmacyKernelError(Exception):
    """
    Base exception for all pharmacy kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification and a `kind` naming the failure family.
    """

    code: str = "PHARMACY_KERNEL_ERROR"
    kind: str = "internal"


# Validation


class ValidationError(PharmacyKernelError):
    """
    Request failed shape validation before any mutation.

    field_errors is a list of {"field": ..., "message": ...} dicts, one per
    offending field, so the caller can correct the whole request at once.
    """

    code: str = "VALIDATION_ERROR"
    kind: str = "validation"

    def __init__(self, field_errors: list[dict[str, Any]], message: str | None = None):
        self.field_errors = field_errors
        super().__init__(
            message
            or f"Validation failed: {len(field_errors)} error(s): "
            + "; ".join(f"{e['field']}: {e['message']}" for e in field_errors)
        )


class InvalidRoutingError(ValidationError):
    """Transaction routing fields do not satisfy its type's constraint."""

    code: str = "INVALID_ROUTING"

    def __init__(self, transaction_type: str, reason: str):
        self.transaction_type = transaction_type
        self.reason = reason
        super().__init__(
            [{"field": "routing", "message": reason}],
            message=f"Invalid routing for {transaction_type} transaction: {reason}",
        )


# Reference lookups


class ReferenceNotFoundError(PharmacyKernelError):
    """A referenced entity does not exist."""

    code: str = "REFERENCE_NOT_FOUND"
    kind: str = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class LotNotFoundError(ReferenceNotFoundError):
    """Inventory lot does not exist (or belongs to another product/warehouse)."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__("InventoryLot", lot_id)


class AlertNotFoundError(ReferenceNotFoundError):
    """Alert with given ID was not found."""

    code: str = "ALERT_NOT_FOUND"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__("Alert", alert_id)


# Stock


class InsufficientStockError(PharmacyKernelError):
    """
    One or more line items cannot be covered by available lot stock.

    shortages holds every short line, not only the first:
        {"product_id", "product_name", "requested", "available",
         "shortage", "message"}
    """

    code: str = "INSUFFICIENT_STOCK"
    kind: str = "insufficient_stock"

    def __init__(self, shortages: list[dict[str, Any]]):
        self.shortages = shortages
        super().__init__(
            "Insufficient stock: "
            + "; ".join(s["message"] for s in shortages)
        )


# Concurrency


class ConcurrencyError(PharmacyKernelError):
    """Base exception for concurrent modification errors."""

    code: str = "CONCURRENCY_ERROR"
    kind: str = "conflict"


class ConcurrencyConflictError(ConcurrencyError):
    """
    Conditional lot decrements kept failing because racing movements drew
    the same lots down, even after re-planning from fresh lot state.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, product_id: str, lot_ids: list[str], attempts: int):
        self.product_id = product_id
        self.lot_ids = lot_ids
        self.attempts = attempts
        super().__init__(
            f"Allocation for product {product_id} conflicted with a concurrent "
            f"movement after {attempts} attempt(s)"
        )


# Storage


class PersistenceError(PharmacyKernelError):
    """Unexpected storage failure during the atomic mutation phase."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")


class ImmutabilityViolationError(PharmacyKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Alerts


class AlertStateError(PharmacyKernelError):
    """Lifecycle action is not allowed from the alert's current status."""

    code: str = "ALERT_STATE_INVALID"
    kind: str = "conflict"

    def __init__(self, alert_id: str, current_status: str, action: str):
        self.alert_id = alert_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} alert {alert_id} in status {current_status}"
        )


# Scheduling


class SchedulerError(PharmacyKernelError):
    """Base exception for scheduled-task errors."""

    code: str = "SCHEDULER_ERROR"


class TaskNotRegisteredError(SchedulerError):
    """No task is registered under the requested task type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No task registered for type: {task_type}")
