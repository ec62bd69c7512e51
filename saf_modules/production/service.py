"""
Production Module Service (``saf_modules.production.service``).

Responsibility
--------------
Orchestrates the volume ledger of production batches -- plant
registration, batch logging, allocation and deallocation against
contracts, shipping and deletion -- by delegating every rule to
``saf_engines.ledger`` and persisting through the kernel ``Repository``.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``ProductionService`` is the public entry
point for batch capacity.  ``ContractService`` reuses
``apply_allocation`` inside its own transaction when deliveries are
logged.

Invariants enforced
-------------------
* Each public operation owns the transaction boundary via
  ``BaseService._execute`` (commit on success, rollback on failure).
* Batches are loaded ``for_update`` and saved under an optimistic
  ``row_version`` check; conflicts are retried.
* A batch with allocations is never deleted.

Failure modes
-------------
* Ledger rule violations  -> ``OperationResult`` with the typed error;
  session rolled back.
* Unknown batch/plant  -> ``EntityNotFoundError`` result.
* Non-positive volumes  -> ``ValueError`` propagates after rollback.

Usage::

    service = ProductionService(session, clock=clock)
    result = service.allocate(batch_id, contract_id, "SAF-C-2025-0001", Decimal("300"))
    if result.is_success:
        batch = result.value
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from saf_engines import ledger
from saf_engines.ledger import ContractBatchShare
from saf_engines.types import (
    Plant,
    PlantStatus,
    ProductionBatch,
    VolumeUnit,
)
from saf_kernel.domain.clock import Clock
from saf_kernel.domain.results import OperationResult
from saf_kernel.exceptions import IllegalTransitionError
from saf_kernel.logging_config import get_logger
from saf_kernel.services.base import BaseService
from saf_modules.production.orm import (
    BatchAllocationModel,
    PlantModel,
    ProductionBatchModel,
)

logger = get_logger("modules.production.service")


class ProductionService(BaseService):
    """Plants, production batches and the batch allocation ledger."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = 3,
    ):
        super().__init__(session, clock=clock, max_attempts=max_attempts)

    # =====================================================================
    # Plants
    # =====================================================================

    def register_plant(
        self,
        name: str,
        location: str,
        pathway: str,
        primary_feedstock: str,
        annual_capacity: Decimal,
        ghg_reduction: Decimal,
        producer_id: str | None = None,
        status: PlantStatus = PlantStatus.ACTIVE,
        plant_id: UUID | None = None,
    ) -> OperationResult[Plant]:
        plant = Plant(
            id=plant_id or uuid4(),
            name=name,
            location=location,
            pathway=pathway,
            primary_feedstock=primary_feedstock,
            annual_capacity=annual_capacity,
            ghg_reduction=ghg_reduction,
            status=status,
            producer_id=producer_id,
        )

        def work() -> Plant:
            self._repo.save(PlantModel.from_dto(plant))
            return plant

        return self._execute("register_plant", work, entity_id=plant.id)

    def get_plant(self, plant_id: UUID) -> Plant:
        return self._repo.load(PlantModel, plant_id).to_dto()

    def list_plants(self, producer_id: str | None = None) -> list[Plant]:
        filters = {"producer_id": producer_id} if producer_id is not None else {}
        return [m.to_dto() for m in self._repo.query(PlantModel, **filters)]

    # =====================================================================
    # Batches
    # =====================================================================

    def record_production(
        self,
        plant_id: UUID,
        batch_number: str,
        volume: Decimal,
        production_date: datetime,
        feedstock_type: str = "",
        ghg_reduction: Decimal | None = None,
        volume_unit: VolumeUnit = VolumeUnit.MT,
        meets_astm: bool = True,
        meets_iscc: bool = True,
        meets_corsia: bool = True,
        batch_id: UUID | None = None,
    ) -> OperationResult[ProductionBatch]:
        """Log a newly produced batch at a plant."""

        def work() -> ProductionBatch:
            plant = self._repo.load(PlantModel, plant_id)
            batch = ProductionBatch(
                id=batch_id or uuid4(),
                batch_number=batch_number,
                plant_id=plant_id,
                volume=volume,
                production_date=production_date,
                volume_unit=volume_unit,
                feedstock_type=feedstock_type or plant.primary_feedstock,
                ghg_reduction=(
                    ghg_reduction if ghg_reduction is not None else plant.ghg_reduction
                ),
                meets_astm=meets_astm,
                meets_iscc=meets_iscc,
                meets_corsia=meets_corsia,
            )
            self._repo.save(ProductionBatchModel.from_dto(batch))
            logger.info("production_recorded", extra={
                "batch_number": batch_number,
                "plant_id": str(plant_id),
                "volume": str(volume),
            })
            return batch

        return self._execute("record_production", work, entity_id=batch_id, batch_id=batch_id)

    def get_batch(self, batch_id: UUID) -> ProductionBatch:
        return self._repo.load(ProductionBatchModel, batch_id).to_dto()

    def list_batches(self, plant_id: UUID | None = None) -> list[ProductionBatch]:
        filters = {"plant_id": plant_id} if plant_id is not None else {}
        return [m.to_dto() for m in self._repo.query(ProductionBatchModel, **filters)]

    def available_volumes(self, batch_ids: Iterable[UUID]) -> dict[UUID, Decimal]:
        """Current available volume per batch, read inside the caller's transaction."""
        return {
            batch_id: self._repo.load(ProductionBatchModel, batch_id).available_volume
            for batch_id in batch_ids
        }

    # =====================================================================
    # Ledger
    # =====================================================================

    def apply_allocation(
        self,
        batch_id: UUID,
        contract_id: UUID,
        contract_number: str,
        volume: Decimal,
    ) -> ProductionBatch:
        """Allocate within the caller's transaction.  Does NOT commit."""
        model = self._repo.load(ProductionBatchModel, batch_id, for_update=True)
        updated = ledger.allocate(
            model.to_dto(), contract_id, contract_number, volume, self._clock.now(),
        )
        model.apply_dto(updated)
        self._repo.save(model)
        return updated

    def allocate(
        self,
        batch_id: UUID,
        contract_id: UUID,
        contract_number: str,
        volume: Decimal,
    ) -> OperationResult[ProductionBatch]:
        return self._execute(
            "allocate",
            lambda: self.apply_allocation(batch_id, contract_id, contract_number, volume),
            entity_id=batch_id,
            batch_id=batch_id,
            contract_id=contract_id,
        )

    def deallocate(
        self,
        batch_id: UUID,
        contract_id: UUID,
        volume: Decimal,
    ) -> OperationResult[ProductionBatch]:
        def work() -> ProductionBatch:
            model = self._repo.load(ProductionBatchModel, batch_id, for_update=True)
            updated = ledger.deallocate(model.to_dto(), contract_id, volume)
            model.apply_dto(updated)
            self._repo.save(model)
            return updated

        return self._execute(
            "deallocate", work, entity_id=batch_id, batch_id=batch_id, contract_id=contract_id,
        )

    def mark_shipped(self, batch_id: UUID) -> OperationResult[ProductionBatch]:
        def work() -> ProductionBatch:
            model = self._repo.load(ProductionBatchModel, batch_id, for_update=True)
            updated = ledger.mark_shipped(model.to_dto(), self._clock.now())
            model.apply_dto(updated)
            self._repo.save(model)
            return updated

        return self._execute("mark_shipped", work, entity_id=batch_id, batch_id=batch_id)

    def recompute(self, batch_id: UUID) -> OperationResult[ProductionBatch]:
        """Re-derive cached totals and status from the allocation list."""

        def work() -> ProductionBatch:
            model = self._repo.load(ProductionBatchModel, batch_id, for_update=True)
            updated = ledger.recompute_batch(model.to_dto())
            model.apply_dto(updated)
            self._repo.save(model)
            return updated

        return self._execute("recompute_batch", work, entity_id=batch_id, batch_id=batch_id)

    def delete_batch(self, batch_id: UUID) -> OperationResult[UUID]:
        """Delete a batch that has never been allocated."""

        def work() -> UUID:
            model = self._repo.load(ProductionBatchModel, batch_id, for_update=True)
            if model.allocations or model.shipped_at is not None:
                raise IllegalTransitionError(
                    entity_type="production_batch",
                    entity_id=str(batch_id),
                    from_state=model.status,
                    action="delete",
                    reason="batch has allocations",
                )
            self._repo.delete(model)
            return batch_id

        return self._execute("delete_batch", work, entity_id=batch_id, batch_id=batch_id)

    def allocations_for_contract(self, contract_id: UUID) -> tuple[ContractBatchShare, ...]:
        batch_ids = self._session.execute(
            select(BatchAllocationModel.batch_id)
            .where(BatchAllocationModel.contract_id == contract_id)
            .distinct()
        ).scalars().all()
        batches = [self.get_batch(batch_id) for batch_id in batch_ids]
        return ledger.allocations_for_contract(batches, contract_id)
