"""
Enumerations shared by the inventory models, engines, and services.

All enums are ``str, Enum`` so that they persist as plain strings and
serialize to JSON without custom encoders.
"""

from enum import Enum
from uuid import UUID


class TransactionType(str, Enum):
    """Kind of stock movement recorded in the ledger."""

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"


class TransactionStatus(str, Enum):
    """Ledger status; fixed at creation for the movements in this core."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AlertType(str, Enum):
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertStatus(str, Enum):
    """
    Alert lifecycle.  ACTIVE is the only non-terminal state:
    ACTIVE -> ACKNOWLEDGED (manual), ACTIVE -> RESOLVED (manual or automatic).
    """

    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


STOCK_ALERT_TYPES = frozenset({AlertType.LOW_STOCK, AlertType.OUT_OF_STOCK})
EXPIRY_ALERT_TYPES = frozenset({AlertType.EXPIRING_SOON, AlertType.EXPIRED})

# Attribution for rows written by the scheduled scanner rather than a user.
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")
