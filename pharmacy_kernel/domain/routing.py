"""
Transaction routing rules.

Each transaction type constrains which routing fields it may carry:

    INBOUND     destination + supplier required, no source
    OUTBOUND    source + department required, no destination
    TRANSFER    source and destination required and distinct
    ADJUSTMENT  unconstrained

validate_routing() is pure and is called twice: by the movement service
before building a transaction, and by the ORM before_insert guard so that
no code path can persist an invalid transaction.
"""

from uuid import UUID

from pharmacy_kernel.domain.types import TransactionType
from pharmacy_kernel.exceptions import InvalidRoutingError


def validate_routing(
    transaction_type: TransactionType | str,
    *,
    source_warehouse_id: UUID | None = None,
    destination_warehouse_id: UUID | None = None,
    supplier_id: UUID | None = None,
    department_id: UUID | None = None,
) -> None:
    """Raise InvalidRoutingError if the routing fields don't fit the type."""
    tx_type = TransactionType(transaction_type)

    if tx_type == TransactionType.INBOUND:
        if destination_warehouse_id is None:
            raise InvalidRoutingError(tx_type.value, "destination warehouse is required")
        if supplier_id is None:
            raise InvalidRoutingError(tx_type.value, "supplier is required")
        if source_warehouse_id is not None:
            raise InvalidRoutingError(tx_type.value, "source warehouse must not be set")

    elif tx_type == TransactionType.OUTBOUND:
        if source_warehouse_id is None:
            raise InvalidRoutingError(tx_type.value, "source warehouse is required")
        if department_id is None:
            raise InvalidRoutingError(tx_type.value, "department is required")
        if destination_warehouse_id is not None:
            raise InvalidRoutingError(tx_type.value, "destination warehouse must not be set")

    elif tx_type == TransactionType.TRANSFER:
        if source_warehouse_id is None or destination_warehouse_id is None:
            raise InvalidRoutingError(
                tx_type.value, "source and destination warehouses are required"
            )
        if source_warehouse_id == destination_warehouse_id:
            raise InvalidRoutingError(
                tx_type.value, "source and destination warehouses must differ"
            )
