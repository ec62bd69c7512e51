"""
Tests for the production module service.

Covers plant registration, batch logging and the persisted allocation
ledger: allocation, release, shipping, deletion and per-contract rollups.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from saf_engines.types import BatchStatus, PlantStatus
from saf_kernel.exceptions import EntityNotFoundError
from saf_kernel.logging_config import LogContext
from tests.factories import NOW, TEST_BATCH_ID, TEST_PLANT_ID


class TestPlants:
    """Registering and listing plants."""

    def test_register_and_load(self, production_service, test_plant):
        plant = production_service.get_plant(TEST_PLANT_ID)

        assert plant.name == "Rotterdam HEFA"
        assert plant.annual_capacity == Decimal("10000")
        assert plant.ghg_reduction == Decimal("80")
        assert plant.status == PlantStatus.ACTIVE

    def test_list_filters_by_producer(self, production_service, test_plant):
        other = production_service.register_plant(
            name="Other", location="Houston, US", pathway="HEFA",
            primary_feedstock="Tallow", annual_capacity=Decimal("500"),
            ghg_reduction=Decimal("60"), producer_id="producer-2",
        )
        assert other.is_success

        assert [p.id for p in production_service.list_plants("producer-1")] == [TEST_PLANT_ID]
        assert len(production_service.list_plants()) == 2

    def test_unknown_plant_raises(self, production_service, db_engine):
        with pytest.raises(EntityNotFoundError):
            production_service.get_plant(uuid4())


class TestRecordProduction:
    """Logging batches."""

    def test_batch_inherits_plant_defaults(self, production_service, test_batch):
        batch = production_service.get_batch(TEST_BATCH_ID)

        assert batch.status == BatchStatus.AVAILABLE
        assert batch.available_volume == Decimal("5000")
        assert batch.feedstock_type == "Used cooking oil"
        assert batch.ghg_reduction == Decimal("80")

    def test_unknown_plant_is_rejected(self, production_service, db_engine):
        result = production_service.record_production(
            plant_id=uuid4(),
            batch_number="B-X",
            volume=Decimal("10"),
            production_date=NOW,
        )

        assert not result.is_success
        assert result.error_code == "ENTITY_NOT_FOUND"
        assert production_service.list_batches() == []

    def test_list_by_plant(self, production_service, test_batch, second_plant):
        production_service.record_production(
            plant_id=second_plant.id,
            batch_number="B-ATJ-1",
            volume=Decimal("100"),
            production_date=NOW,
        )

        batches = production_service.list_batches(TEST_PLANT_ID)
        assert [b.batch_number for b in batches] == ["B-2025-001"]


class TestAllocationLedger:
    """Persisted allocation against a 5,000 MT batch."""

    def test_partial_full_then_rejected(self, production_service, test_batch):
        contract_a, contract_b = uuid4(), uuid4()

        first = production_service.allocate(TEST_BATCH_ID, contract_a, "C-A", Decimal("3000"))
        assert first.is_success
        assert first.value.status == BatchStatus.PARTIALLY_ALLOCATED

        second = production_service.allocate(TEST_BATCH_ID, contract_b, "C-B", Decimal("2000"))
        assert second.is_success
        assert second.value.status == BatchStatus.FULLY_ALLOCATED

        third = production_service.allocate(TEST_BATCH_ID, contract_a, "C-A", Decimal("1"))
        assert not third.is_success
        assert third.error_code == "INSUFFICIENT_CAPACITY"

        stored = production_service.get_batch(TEST_BATCH_ID)
        assert stored.allocated_volume == Decimal("5000")
        assert stored.available_volume == Decimal("0")
        assert len(stored.allocations) == 2

    def test_allocations_persist_contract_number(self, production_service, test_batch):
        contract_id = uuid4()
        production_service.allocate(TEST_BATCH_ID, contract_id, "SAF-C-2025-0001", Decimal("10"))

        stored = production_service.get_batch(TEST_BATCH_ID)

        assert stored.allocations[0].contract_id == contract_id
        assert stored.allocations[0].contract_number == "SAF-C-2025-0001"
        assert stored.allocations[0].allocated_at == NOW

    def test_deallocate_newest_first(
        self, production_service, test_batch, deterministic_clock,
    ):
        contract_id = uuid4()
        production_service.allocate(TEST_BATCH_ID, contract_id, "C", Decimal("100"))
        deterministic_clock.advance(seconds=3600)
        production_service.allocate(TEST_BATCH_ID, contract_id, "C", Decimal("200"))

        result = production_service.deallocate(TEST_BATCH_ID, contract_id, Decimal("250"))

        assert result.is_success
        stored = production_service.get_batch(TEST_BATCH_ID)
        assert [a.volume for a in stored.allocations] == [Decimal("50")]
        assert stored.available_volume == Decimal("4950")

    def test_deallocate_more_than_held(self, production_service, test_batch):
        contract_id = uuid4()
        production_service.allocate(TEST_BATCH_ID, contract_id, "C", Decimal("100"))

        result = production_service.deallocate(TEST_BATCH_ID, contract_id, Decimal("101"))

        assert result.error_code == "ALLOCATION_NOT_FOUND"

    def test_available_volumes(self, production_service, test_batch):
        production_service.allocate(TEST_BATCH_ID, uuid4(), "C", Decimal("1200"))

        assert production_service.available_volumes([TEST_BATCH_ID]) == {
            TEST_BATCH_ID: Decimal("3800"),
        }

    def test_allocations_for_contract(self, production_service, test_batch):
        contract_id = uuid4()
        second = production_service.record_production(
            plant_id=TEST_PLANT_ID,
            batch_number="B-2025-002",
            volume=Decimal("800"),
            production_date=NOW - timedelta(days=1),
        ).value
        production_service.allocate(second.id, contract_id, "C", Decimal("300"))
        production_service.allocate(TEST_BATCH_ID, contract_id, "C", Decimal("500"))
        production_service.allocate(TEST_BATCH_ID, uuid4(), "X", Decimal("700"))

        shares = production_service.allocations_for_contract(contract_id)

        assert [(s.batch_number, s.volume) for s in shares] == [
            ("B-2025-001", Decimal("500")),
            ("B-2025-002", Decimal("300")),
        ]

    def test_completed_operation_is_logged(self, production_service, test_batch, captured_logs):
        contract_id = uuid4()
        production_service.allocate(TEST_BATCH_ID, contract_id, "C", Decimal("1"))

        records = {r["message"]: r for r in captured_logs()}
        assert "allocate_started" in records
        completed = records["allocate_completed"]
        assert completed["batch_id"] == str(TEST_BATCH_ID)
        assert completed["contract_id"] == str(contract_id)
        assert completed["entity_id"] == str(TEST_BATCH_ID)

    def test_ledger_keys_unbound_after_operation(self, production_service, test_batch):
        before = LogContext.get_all()

        production_service.allocate(TEST_BATCH_ID, uuid4(), "C", Decimal("1"))

        assert LogContext.get_all() == before


class TestShippingAndDeletion:
    """Batch end-of-life operations."""

    def test_ship_fully_allocated(self, production_service, test_batch):
        production_service.allocate(TEST_BATCH_ID, uuid4(), "C", Decimal("5000"))

        result = production_service.mark_shipped(TEST_BATCH_ID)

        assert result.is_success
        assert production_service.get_batch(TEST_BATCH_ID).status == BatchStatus.DELIVERED

    def test_cannot_ship_partial(self, production_service, test_batch):
        production_service.allocate(TEST_BATCH_ID, uuid4(), "C", Decimal("10"))

        result = production_service.mark_shipped(TEST_BATCH_ID)

        assert result.error_code == "ILLEGAL_TRANSITION"

    def test_delete_unallocated_batch(self, production_service, test_batch):
        result = production_service.delete_batch(TEST_BATCH_ID)

        assert result.is_success
        assert production_service.list_batches() == []

    def test_delete_allocated_batch_refused(self, production_service, test_batch):
        production_service.allocate(TEST_BATCH_ID, uuid4(), "C", Decimal("10"))

        result = production_service.delete_batch(TEST_BATCH_ID)

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert production_service.get_batch(TEST_BATCH_ID).allocated_volume == Decimal("10")

    def test_recompute_is_idempotent(self, production_service, test_batch):
        production_service.allocate(TEST_BATCH_ID, uuid4(), "C", Decimal("10"))

        first = production_service.recompute(TEST_BATCH_ID).value
        second = production_service.recompute(TEST_BATCH_ID).value

        assert first.available_volume == second.available_volume == Decimal("4990")
        assert first.status == second.status == BatchStatus.PARTIALLY_ALLOCATED
