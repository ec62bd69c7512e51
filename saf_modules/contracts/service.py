"""
Contracts Module Service (``saf_modules.contracts.service``).

Responsibility
--------------
Materialize won bids into supply contracts and track their deliveries
through delivery, invoicing and payment, consuming batch capacity on the
volume ledger as deliveries are logged.

Architecture position
---------------------
**Modules layer** -- thin glue over ``saf_engines.deliveries``.  Batch
allocations go through ``ProductionService.apply_allocation`` inside the
same transaction as the contract update.

Invariants enforced
-------------------
* ``log_delivery`` is all-or-nothing: the batch allocations and the
  contract update commit together or not at all.
* A bid materializes at most one contract.
* Contract caches are re-derived from the delivery list on every change.

Failure modes
-------------
* ``VolumeOutOfToleranceError`` / ``InsufficientCapacityError`` /
  ``DeliveryNotFoundError`` / ``IllegalTransitionError`` results, with
  every batch untouched.
* ``OptimisticLockError`` after exhausting retries on a contended batch
  or contract.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from saf_engines import deliveries
from saf_engines.types import (
    ZERO,
    BatchDraw,
    Contract,
    ContractStatus,
    Delivery,
    DeliveryStatus,
)
from saf_kernel.domain.clock import Clock
from saf_kernel.domain.results import OperationResult
from saf_kernel.exceptions import IllegalTransitionError
from saf_kernel.logging_config import get_logger
from saf_kernel.services.base import BaseService
from saf_modules.bids.orm import BidModel
from saf_modules.contracts.config import ContractsConfig
from saf_modules.contracts.orm import ContractModel
from saf_modules.contracts.workflows import CONTRACT_WORKFLOW
from saf_modules.production.service import ProductionService
from saf_modules.rfq.orm import QuoteRequestModel

logger = get_logger("modules.contracts.service")


class ContractService(BaseService):
    """
    Supply contracts and the delivery tracker.

    Usage::

        service = ContractService(session, clock=clock)
        contract = service.materialize(won_bid_id).value
        service.log_delivery(
            contract.id,
            contract.deliveries[0].id,
            actual_date=now,
            actual_volume=Decimal("1000"),
            batch_draws=[BatchDraw(batch_id)],
        )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ContractsConfig | None = None,
    ):
        self._config = config or ContractsConfig()
        super().__init__(session, clock=clock, max_attempts=self._config.max_attempts)
        self._production = ProductionService(session, clock=self._clock)

    # =====================================================================
    # Queries
    # =====================================================================

    def get_contract(self, contract_id: UUID) -> Contract:
        return self._repo.load(ContractModel, contract_id).to_dto()

    def list_contracts(self, status: ContractStatus | None = None) -> list[Contract]:
        filters = {"status": status.value} if status is not None else {}
        return [m.to_dto() for m in self._repo.query(ContractModel, **filters)]

    def delivery_statuses(self, contract_id: UUID) -> dict[UUID, DeliveryStatus]:
        """Delivery status as of now, with ``late`` applied."""
        now = self._clock.now()
        return {
            d.id: deliveries.effective_status(d, now)
            for d in self.get_contract(contract_id).deliveries
        }

    def available_actions(self, contract_id: UUID) -> tuple[str, ...]:
        return CONTRACT_WORKFLOW.allowed_actions(self.get_contract(contract_id).status.value)

    # =====================================================================
    # Materialization
    # =====================================================================

    def _next_contract_number(self, year: int) -> str:
        stem = f"{self._config.contract_number_prefix}-{year}-"
        count = self._session.execute(
            select(func.count())
            .select_from(ContractModel)
            .where(ContractModel.contract_number.like(f"{stem}%"))
        ).scalar_one()
        return f"{stem}{count + 1:04d}"

    def materialize(
        self,
        bid_id: UUID,
        contract_number: str | None = None,
    ) -> OperationResult[Contract]:
        """Turn a won bid into a scheduled contract."""

        def work() -> Contract:
            bid_model = self._repo.load(BidModel, bid_id)
            if self._repo.query(ContractModel, bid_id=bid_id):
                raise IllegalTransitionError(
                    entity_type="bid",
                    entity_id=str(bid_id),
                    from_state=bid_model.status,
                    action="materialize",
                    reason="bid already has a contract",
                )
            request = self._repo.load(QuoteRequestModel, bid_model.rfq_id).to_dto()
            now = self._clock.now()
            contract = deliveries.materialize(
                bid_model.to_dto(),
                request,
                contract_number or self._next_contract_number(now.year),
                now,
                anchor_month=self._config.anchor_month,
                anchor_day=self._config.anchor_day,
            )
            self._repo.save(ContractModel.from_dto(contract))
            logger.info("contract_materialized", extra={
                "contract_id": str(contract.id),
                "contract_number": contract.contract_number,
                "bid_id": str(bid_id),
                "deliveries": len(contract.deliveries),
                "total_volume": str(contract.total_volume),
            })
            return contract

        return self._execute("materialize_contract", work, entity_id=bid_id, bid_id=bid_id)

    # =====================================================================
    # Deliveries
    # =====================================================================

    def log_delivery(
        self,
        contract_id: UUID,
        delivery_id: UUID,
        actual_date: datetime,
        actual_volume: Decimal,
        batch_draws: Sequence[BatchDraw] = (),
        bill_of_lading: str | None = None,
    ) -> OperationResult[Contract]:
        """Record a delivery and draw its volume from production batches.

        Draws without a volume are filled greedily in the order given.
        Any failure leaves every batch and the contract unchanged.
        """

        def work() -> Contract:
            model = self._repo.load(ContractModel, contract_id, for_update=True)
            available = self._production.available_volumes(d.batch_id for d in batch_draws)
            draws = deliveries.plan_batch_draws(batch_draws, actual_volume, available)
            updated = deliveries.log_delivery(
                model.to_dto(),
                delivery_id,
                actual_date,
                actual_volume,
                draws,
                self._clock.now(),
                bill_of_lading=bill_of_lading,
            )
            for draw in draws:
                self._production.apply_allocation(
                    draw.batch_id, contract_id, model.contract_number, draw.volume,
                )
            model.apply_dto(updated)
            self._repo.save(model)
            logger.info("delivery_logged", extra={
                "contract_id": str(contract_id),
                "delivery_id": str(delivery_id),
                "actual_volume": str(actual_volume),
                "batches": [str(d.batch_id) for d in draws],
                "delivered_volume": str(updated.delivered_volume),
            })
            return updated

        return self._execute("log_delivery", work, entity_id=contract_id, contract_id=contract_id)

    def _apply(self, operation: str, contract_id: UUID, step) -> OperationResult[Contract]:
        def work() -> Contract:
            model = self._repo.load(ContractModel, contract_id, for_update=True)
            updated = step(model.to_dto())
            model.apply_dto(updated)
            self._repo.save(model)
            return updated

        return self._execute(operation, work, entity_id=contract_id, contract_id=contract_id)

    def add_delivery(
        self,
        contract_id: UUID,
        scheduled_date: datetime,
        volume: Decimal,
        unit_price: Decimal | None = None,
        location: str = "",
        delivery_id: UUID | None = None,
    ) -> OperationResult[Contract]:
        """Extend the schedule.  Unit price defaults to the contract average."""
        now = self._clock.now()

        def step(contract: Contract) -> Contract:
            price = unit_price
            if price is None:
                price = (
                    contract.contract_value / contract.total_volume
                    if contract.total_volume > ZERO
                    else ZERO
                )
            delivery = Delivery(
                id=delivery_id or uuid4(),
                scheduled_date=scheduled_date,
                volume=volume,
                unit_price=price,
                location=location,
            )
            return deliveries.add_delivery(contract, delivery, now)

        return self._apply("add_delivery", contract_id, step)

    def record_invoice(
        self,
        contract_id: UUID,
        delivery_id: UUID,
        invoice_number: str,
        invoice_date: datetime | None = None,
        invoice_amount: Decimal | None = None,
    ) -> OperationResult[Contract]:
        now = self._clock.now()
        return self._apply(
            "record_invoice",
            contract_id,
            lambda c: deliveries.record_invoice(
                c, delivery_id, invoice_number, invoice_date or now, now, invoice_amount,
            ),
        )

    def record_payment(
        self,
        contract_id: UUID,
        delivery_id: UUID,
        paid_date: datetime | None = None,
    ) -> OperationResult[Contract]:
        now = self._clock.now()
        return self._apply(
            "record_payment",
            contract_id,
            lambda c: deliveries.record_payment(c, delivery_id, paid_date or now, now),
        )

    # =====================================================================
    # Contract lifecycle
    # =====================================================================

    def complete(self, contract_id: UUID) -> OperationResult[Contract]:
        now = self._clock.now()
        return self._apply("complete_contract", contract_id, lambda c: deliveries.complete(c, now))

    def cancel(self, contract_id: UUID) -> OperationResult[Contract]:
        """Cancel the contract.  Volume already drawn from batches stays allocated."""
        now = self._clock.now()
        return self._apply("cancel_contract", contract_id, lambda c: deliveries.cancel(c, now))

    def recompute(self, contract_id: UUID) -> OperationResult[Contract]:
        """Refresh delivered volume, on-track flag and outstanding invoices."""
        now = self._clock.now()
        return self._apply(
            "recompute_contract",
            contract_id,
            lambda c: deliveries.recompute_contract(c, now),
        )
