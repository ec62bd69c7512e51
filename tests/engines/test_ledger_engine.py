"""
Tests for the production batch ledger engine.

Covers:
- Allocation against available volume
- Newest-first deallocation
- Shipping a fully allocated batch
- Per-contract rollups
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from saf_engines.ledger import (
    allocate,
    allocation_held_by,
    allocations_for_contract,
    deallocate,
    derive_batch_status,
    mark_shipped,
    recompute_batch,
)
from saf_engines.types import BatchStatus
from saf_kernel.exceptions import (
    AllocationNotFoundError,
    IllegalTransitionError,
    InsufficientCapacityError,
)
from tests.factories import NOW, make_batch


class TestAllocate:
    """Consuming batch volume for contracts."""

    def test_fresh_batch_is_available(self):
        batch = make_batch("5000")

        assert batch.allocated_volume == Decimal("0")
        assert batch.available_volume == Decimal("5000")
        assert batch.status == BatchStatus.AVAILABLE

    def test_partial_then_full_then_overdraw(self):
        """5000 MT batch: 3000 partial, 2000 full, one more rejected."""
        batch = make_batch("5000")
        contract_a, contract_b = uuid4(), uuid4()

        batch = allocate(batch, contract_a, "SAF-C-2025-0001", Decimal("3000"), NOW)
        assert batch.available_volume == Decimal("2000")
        assert batch.status == BatchStatus.PARTIALLY_ALLOCATED

        batch = allocate(batch, contract_b, "SAF-C-2025-0002", Decimal("2000"), NOW)
        assert batch.available_volume == Decimal("0")
        assert batch.status == BatchStatus.FULLY_ALLOCATED

        with pytest.raises(InsufficientCapacityError) as exc_info:
            allocate(batch, contract_a, "SAF-C-2025-0001", Decimal("1"), NOW)
        assert exc_info.value.requested_volume == Decimal("1")
        assert exc_info.value.available_volume == Decimal("0")

    def test_allocation_records_contract_reference(self):
        contract_id = uuid4()
        batch = allocate(make_batch(), contract_id, "SAF-C-2025-0007", Decimal("10"), NOW)

        entry = batch.allocations[-1]
        assert entry.contract_id == contract_id
        assert entry.contract_number == "SAF-C-2025-0007"
        assert entry.allocated_at == NOW

    def test_input_batch_is_unchanged(self):
        batch = make_batch("100")
        allocate(batch, uuid4(), "C", Decimal("40"), NOW)

        assert batch.allocations == ()
        assert batch.available_volume == Decimal("100")

    def test_exact_available_volume_is_allowed(self):
        batch = allocate(make_batch("100"), uuid4(), "C", Decimal("100"), NOW)

        assert batch.status == BatchStatus.FULLY_ALLOCATED

    @pytest.mark.parametrize("volume", [Decimal("0"), Decimal("-5")])
    def test_non_positive_volume_rejected(self, volume):
        with pytest.raises(ValueError):
            allocate(make_batch(), uuid4(), "C", volume, NOW)

    def test_float_volume_rejected(self):
        with pytest.raises(TypeError):
            allocate(make_batch(), uuid4(), "C", 10.0, NOW)

    def test_shipped_batch_refuses_allocation(self):
        batch = make_batch("100", shipped_at=NOW)

        with pytest.raises(IllegalTransitionError):
            allocate(batch, uuid4(), "C", Decimal("1"), NOW)


class TestDeallocate:
    """Releasing volume held by a contract."""

    def test_releases_newest_entries_first(self):
        contract_id = uuid4()
        batch = make_batch("1000")
        batch = allocate(batch, contract_id, "C", Decimal("100"), NOW)
        batch = allocate(batch, contract_id, "C", Decimal("200"), NOW + timedelta(hours=1))

        batch = deallocate(batch, contract_id, Decimal("250"))

        assert len(batch.allocations) == 1
        assert batch.allocations[0].volume == Decimal("50")
        assert batch.allocations[0].allocated_at == NOW
        assert batch.allocated_volume == Decimal("50")
        assert batch.available_volume == Decimal("950")

    def test_other_contracts_untouched(self):
        mine, theirs = uuid4(), uuid4()
        batch = make_batch("1000")
        batch = allocate(batch, theirs, "T", Decimal("300"), NOW)
        batch = allocate(batch, mine, "M", Decimal("200"), NOW + timedelta(hours=1))

        batch = deallocate(batch, mine, Decimal("200"))

        assert allocation_held_by(batch, theirs) == Decimal("300")
        assert allocation_held_by(batch, mine) == Decimal("0")
        assert batch.status == BatchStatus.PARTIALLY_ALLOCATED

    def test_full_release_returns_to_available(self):
        contract_id = uuid4()
        batch = allocate(make_batch("500"), contract_id, "C", Decimal("500"), NOW)

        batch = deallocate(batch, contract_id, Decimal("500"))

        assert batch.status == BatchStatus.AVAILABLE
        assert batch.allocations == ()

    def test_more_than_held_rejected(self):
        contract_id = uuid4()
        batch = allocate(make_batch("500"), contract_id, "C", Decimal("100"), NOW)

        with pytest.raises(AllocationNotFoundError) as exc_info:
            deallocate(batch, contract_id, Decimal("101"))
        assert exc_info.value.allocated_volume == Decimal("100")

    def test_unknown_contract_rejected(self):
        batch = allocate(make_batch("500"), uuid4(), "C", Decimal("100"), NOW)

        with pytest.raises(AllocationNotFoundError):
            deallocate(batch, uuid4(), Decimal("1"))


class TestShipping:
    """Moving a batch to delivered."""

    def test_fully_allocated_batch_ships(self):
        batch = allocate(make_batch("100"), uuid4(), "C", Decimal("100"), NOW)

        shipped = mark_shipped(batch, NOW + timedelta(days=1))

        assert shipped.status == BatchStatus.DELIVERED
        assert shipped.shipped_at == NOW + timedelta(days=1)

    def test_partially_allocated_batch_cannot_ship(self):
        batch = allocate(make_batch("100"), uuid4(), "C", Decimal("60"), NOW)

        with pytest.raises(IllegalTransitionError) as exc_info:
            mark_shipped(batch, NOW)
        assert exc_info.value.from_state == BatchStatus.PARTIALLY_ALLOCATED.value


class TestDerivedState:
    """Status derivation and recomputation."""

    @pytest.mark.parametrize(
        "allocated, expected",
        [
            ("0", BatchStatus.AVAILABLE),
            ("1", BatchStatus.PARTIALLY_ALLOCATED),
            ("100", BatchStatus.FULLY_ALLOCATED),
        ],
    )
    def test_derive_batch_status(self, allocated, expected):
        assert derive_batch_status(Decimal("100"), Decimal(allocated)) == expected

    def test_shipped_always_delivered(self):
        assert derive_batch_status(Decimal("100"), Decimal("100"), NOW) == BatchStatus.DELIVERED

    def test_recompute_repairs_stale_caches(self):
        contract_id = uuid4()
        batch = allocate(make_batch("100"), contract_id, "C", Decimal("30"), NOW)
        stale = make_batch(
            "100",
            id=batch.id,
            allocations=batch.allocations,
            allocated_volume=Decimal("0"),
            available_volume=Decimal("100"),
            status=BatchStatus.AVAILABLE,
        )

        repaired = recompute_batch(stale)

        assert repaired.allocated_volume == Decimal("30")
        assert repaired.available_volume == Decimal("70")
        assert repaired.status == BatchStatus.PARTIALLY_ALLOCATED

    def test_allocations_for_contract_sorted_by_batch_number(self):
        contract_id = uuid4()
        later = allocate(make_batch(batch_number="B-002"), contract_id, "C", Decimal("5"), NOW)
        earlier = allocate(make_batch(batch_number="B-001"), contract_id, "C", Decimal("7"), NOW)
        unrelated = allocate(make_batch(batch_number="B-000"), uuid4(), "X", Decimal("9"), NOW)

        shares = allocations_for_contract([later, earlier, unrelated], contract_id)

        assert [s.batch_number for s in shares] == ["B-001", "B-002"]
        assert [s.volume for s in shares] == [Decimal("7"), Decimal("5")]
