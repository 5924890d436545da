"""
Tests for the FEFO allocation engine.

Covers:
- Ordering: soonest expiry first, dated lots before undated lots
- Tie-breaks on creation time and lot id
- Greedy draining and shortfall reporting
- Property tests over arbitrary lot sets
"""

from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pharmacy_engines.allocation import FefoAllocator
from pharmacy_kernel.domain.dtos import LotCandidate

BASE = datetime(2024, 1, 1, 9, 0, 0)


def lot(quantity, expiry=None, created_offset=0, lot_id=None):
    return LotCandidate(
        lot_id=lot_id or uuid4(),
        quantity=quantity,
        expiry_date=expiry,
        created_at=BASE + timedelta(seconds=created_offset),
    )


class TestFefoOrdering:
    """Tests for the draw order."""

    def setup_method(self):
        self.allocator = FefoAllocator()

    def test_request_within_first_lot_uses_only_that_lot(self):
        early = lot(50, date(2024, 3, 1))
        mid = lot(40, date(2024, 4, 1))
        late = lot(40, date(2024, 5, 1))

        plan = self.allocator.suggest(candidates=[late, early, mid], required_qty=30)

        assert [(p.lot_id, p.pick_qty) for p in plan.picks] == [(early.lot_id, 30)]

    def test_larger_request_drains_lots_in_expiry_order(self):
        early = lot(50, date(2024, 3, 1))
        mid = lot(40, date(2024, 4, 1))
        late = lot(40, date(2024, 5, 1))

        plan = self.allocator.suggest(candidates=[mid, late, early], required_qty=120)

        assert [(p.lot_id, p.pick_qty) for p in plan.picks] == [
            (early.lot_id, 50),
            (mid.lot_id, 40),
            (late.lot_id, 30),
        ]
        assert plan.is_complete

    def test_undated_lot_never_precedes_dated_lot(self):
        undated_old = lot(100, None, created_offset=0)
        dated_new = lot(10, date(2030, 1, 1), created_offset=999)

        plan = self.allocator.suggest(candidates=[undated_old, dated_new], required_qty=15)

        assert [(p.lot_id, p.pick_qty) for p in plan.picks] == [
            (dated_new.lot_id, 10),
            (undated_old.lot_id, 5),
        ]

    def test_same_expiry_breaks_tie_on_creation_time(self):
        second = lot(10, date(2024, 3, 1), created_offset=5)
        first = lot(10, date(2024, 3, 1), created_offset=1)

        plan = self.allocator.suggest(candidates=[second, first], required_qty=12)

        assert [p.lot_id for p in plan.picks] == [first.lot_id, second.lot_id]

    def test_same_expiry_and_creation_breaks_tie_on_lot_id(self):
        a = lot(10, date(2024, 3, 1), lot_id=UUID("00000000-0000-0000-0000-00000000000a"))
        b = lot(10, date(2024, 3, 1), lot_id=UUID("00000000-0000-0000-0000-00000000000b"))

        plan = self.allocator.suggest(candidates=[b, a], required_qty=5)

        assert plan.picks[0].lot_id == a.lot_id

    def test_empty_lots_are_ignored(self):
        empty = lot(0, date(2024, 2, 1))
        stocked = lot(10, date(2024, 3, 1))

        plan = self.allocator.suggest(candidates=[empty, stocked], required_qty=5)

        assert [p.lot_id for p in plan.picks] == [stocked.lot_id]


class TestFefoShortfall:
    """The engine is best-effort; the caller detects shortfall."""

    def setup_method(self):
        self.allocator = FefoAllocator()

    def test_insufficient_stock_returns_every_lot_in_full(self):
        lots = [lot(5, date(2024, 3, 1)), lot(7, date(2024, 4, 1))]

        plan = self.allocator.suggest(candidates=lots, required_qty=20)

        assert [p.pick_qty for p in plan.picks] == [5, 7]
        assert plan.allocated_qty == 12
        assert plan.shortfall == 8
        assert not plan.is_complete

    def test_no_candidates_is_an_empty_plan(self):
        plan = self.allocator.suggest(candidates=[], required_qty=3)

        assert plan.picks == ()
        assert plan.shortfall == 3

    @pytest.mark.parametrize("required", [0, -1])
    def test_non_positive_requirement_rejected(self, required):
        with pytest.raises(ValueError):
            self.allocator.suggest(candidates=[lot(5)], required_qty=required)


# =============================================================================
# Property tests
# =============================================================================


lot_strategy = st.builds(
    lot,
    quantity=st.integers(min_value=0, max_value=500),
    expiry=st.one_of(st.none(), st.dates(min_value=date(2024, 1, 1), max_value=date(2026, 12, 31))),
    created_offset=st.integers(min_value=0, max_value=10_000),
)


class TestFefoProperties:

    @settings(max_examples=200, deadline=None)
    @given(lots=st.lists(lot_strategy, max_size=12), required=st.integers(min_value=1, max_value=3000))
    def test_plan_never_overdraws_and_covers_what_it_can(self, lots, required):
        plan = FefoAllocator().suggest(candidates=lots, required_qty=required)
        by_id = {c.lot_id: c for c in lots}
        available = sum(c.quantity for c in lots)

        assert all(0 < p.pick_qty <= by_id[p.lot_id].quantity for p in plan.picks)
        assert plan.allocated_qty == min(required, available)
        assert len({p.lot_id for p in plan.picks}) == len(plan.picks)

    @settings(max_examples=200, deadline=None)
    @given(lots=st.lists(lot_strategy, max_size=12), required=st.integers(min_value=1, max_value=3000))
    def test_only_the_last_pick_may_be_partial(self, lots, required):
        plan = FefoAllocator().suggest(candidates=lots, required_qty=required)
        by_id = {c.lot_id: c for c in lots}

        for pick in plan.picks[:-1]:
            assert pick.pick_qty == by_id[pick.lot_id].quantity

    @settings(max_examples=200, deadline=None)
    @given(lots=st.lists(lot_strategy, max_size=12), required=st.integers(min_value=1, max_value=3000))
    def test_picks_follow_fefo_order(self, lots, required):
        plan = FefoAllocator().suggest(candidates=lots, required_qty=required)
        by_id = {c.lot_id: c for c in lots}

        keys = [by_id[p.lot_id].fefo_key for p in plan.picks]
        assert keys == sorted(keys)

        # Every stocked lot ordered before the last pick was drawn from
        if plan.picks:
            last_key = keys[-1]
            picked = {p.lot_id for p in plan.picks}
            skipped = [
                c for c in lots
                if c.quantity > 0 and c.fefo_key < last_key and c.lot_id not in picked
            ]
            assert skipped == []


class TestFefoTrace:

    def test_trace_records_plan_outcome(self, captured_logs):
        FefoAllocator().suggest(
            candidates=[lot(30, date(2024, 3, 1)), lot(50, date(2024, 4, 1))],
            required_qty=40,
        )

        [trace] = [r for r in captured_logs() if r["message"] == "engine_trace"]
        assert trace["engine_name"] == "fefo_allocation"
        assert trace["required_qty"] == 40
        assert trace["allocated_qty"] == 40
        assert trace["lot_count"] == 2
        assert len(trace["input_fingerprint"]) == 16

    def test_fingerprint_tracks_lot_state(self, captured_logs):
        lot_id = uuid4()
        allocator = FefoAllocator()
        allocator.suggest(candidates=[lot(30, date(2024, 3, 1), lot_id=lot_id)], required_qty=10)
        allocator.suggest(candidates=[lot(30, date(2024, 3, 1), lot_id=lot_id)], required_qty=10)
        allocator.suggest(candidates=[lot(20, date(2024, 3, 1), lot_id=lot_id)], required_qty=10)

        first, same, drawn_down = [
            r["input_fingerprint"] for r in captured_logs() if r["message"] == "engine_trace"
        ]
        assert first == same
        assert first != drawn_down
