"""
Module: pharmacy_engines.allocation
Responsibility:
    First-Expired-First-Out lot allocation.  Given the stocked lots of one
    product in one warehouse and a required quantity, decide how much to
    draw from each lot.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Candidates are ordered by LotCandidate.fefo_key: lots with an expiry
      before lots without one, soonest expiry first, then creation order,
      then lot id.
    - A running cumulative-quantity scan fully drains each lot before
      moving to the next; lots whose pick would be zero are omitted.
    - Best-effort: when stock is short every lot is returned with its full
      quantity.  The engine never signals insufficiency itself; FefoPlan
      exposes the shortfall for the caller to act on.

Usage:
    plan = FefoAllocator().suggest(candidates=lots, required_qty=120)
    if not plan.is_complete:
        ...  # caller rejects the movement
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pharmacy_engines.tracer import traced_engine
from pharmacy_kernel.domain.dtos import LotCandidate, LotPick
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class FefoPlan:
    """Ordered picks plus how much of the requirement they cover."""

    picks: tuple[LotPick, ...]
    required_qty: int

    @property
    def allocated_qty(self) -> int:
        return sum(p.pick_qty for p in self.picks)

    @property
    def shortfall(self) -> int:
        return max(self.required_qty - self.allocated_qty, 0)

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0


class FefoAllocator:
    """
    FEFO suggester.

    Contract:
        Pure function of its inputs.  Lots with quantity <= 0 are ignored
        even if passed in.
    """

    @traced_engine(
        "fefo_allocation", "1.0",
        fingerprint_fields=("candidates", "required_qty"),
        summarize=lambda plan: {
            "required_qty": plan.required_qty,
            "allocated_qty": plan.allocated_qty,
            "lot_count": len(plan.picks),
        },
    )
    def suggest(
        self,
        *,
        candidates: Sequence[LotCandidate],
        required_qty: int,
    ) -> FefoPlan:
        if required_qty <= 0:
            raise ValueError(f"required_qty must be positive, got {required_qty}")

        ordered = sorted(
            (c for c in candidates if c.quantity > 0),
            key=lambda c: c.fefo_key,
        )

        picks: list[LotPick] = []
        cumulative = 0
        for lot in ordered:
            cumulative += lot.quantity
            # Requirement still open before this lot, capped at the lot's quantity
            pick = min(lot.quantity, max(required_qty - (cumulative - lot.quantity), 0))
            if pick > 0:
                picks.append(LotPick(lot_id=lot.lot_id, pick_qty=pick))

        plan = FefoPlan(picks=tuple(picks), required_qty=required_qty)
        if not plan.is_complete:
            logger.info(
                "fefo_allocation_short",
                extra={
                    "required_qty": required_qty,
                    "allocated_qty": plan.allocated_qty,
                    "candidate_count": len(ordered),
                },
            )
        return plan
