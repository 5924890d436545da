"""
Module: pharmacy_engines
Responsibility:
    Pure calculation engines for the inventory core: FEFO lot allocation
    and alert severity banding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pharmacy_kernel.domain (and sibling engine modules).
    MUST NOT import pharmacy_services or pharmacy_batch.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in by the calling service.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from pharmacy_engines.allocation import FefoAllocator
    from pharmacy_engines.severity import SeverityBands, classify_stock, classify_expiry
"""

from pharmacy_engines.allocation import FefoAllocator, FefoPlan
from pharmacy_engines.severity import (
    ExpiryClassification,
    SeverityBands,
    classify_expiry,
    classify_stock,
)

__all__ = [
    "ExpiryClassification",
    "FefoAllocator",
    "FefoPlan",
    "SeverityBands",
    "classify_expiry",
    "classify_stock",
]
