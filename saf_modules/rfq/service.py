"""
RFQ Module Service (``saf_modules.rfq.service``).

Responsibility
--------------
Quote request lifecycle -- creation, watch/unwatch, deadline closure,
award, administrative correction -- and the advisory fit score stored on
each request.

Architecture position
---------------------
**Modules layer** -- thin glue over ``saf_engines.fit`` and the RFQ
workflow.  ``BidService`` calls ``apply_award`` inside its own
transaction when a bid is won.

Invariants enforced
-------------------
* Every status move is checked against ``RFQ_WORKFLOW``.
* A closed request accepts only the award of an earlier bid.  Awarded
  requests change only through ``correct_status``, which always logs the
  correction with its reason.
* The fit verdict is advisory; it never blocks bidding.

Failure modes
-------------
* ``IllegalTransitionError`` result for moves outside the workflow.
* ``EntityNotFoundError`` result for an unknown request.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from saf_engines.fit import ProducerCapability, score_fit
from saf_engines.types import FitStatus, FuelType, PlantStatus, QuoteRequest, RfqStatus
from saf_kernel.domain.clock import Clock
from saf_kernel.domain.results import OperationResult
from saf_kernel.logging_config import get_logger
from saf_kernel.services.base import BaseService
from saf_modules.production.orm import PlantModel
from saf_modules.rfq.config import RfqConfig
from saf_modules.rfq.orm import QuoteRequestModel
from saf_modules.rfq.workflows import RFQ_WORKFLOW

logger = get_logger("modules.rfq.service")

_FUEL_TYPES = {f.value: f for f in FuelType}


class RfqService(BaseService):
    """Quote requests and their fit scores."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: RfqConfig | None = None,
    ):
        self._config = config or RfqConfig()
        super().__init__(session, clock=clock, max_attempts=self._config.max_attempts)

    # =====================================================================
    # Queries
    # =====================================================================

    def get_request(self, rfq_id: UUID) -> QuoteRequest:
        return self._repo.load(QuoteRequestModel, rfq_id).to_dto()

    def list_requests(self, status: RfqStatus | None = None) -> list[QuoteRequest]:
        filters = {"status": status.value} if status is not None else {}
        return [m.to_dto() for m in self._repo.query(QuoteRequestModel, **filters)]

    def producer_capability(self, producer_id: str | None = None) -> ProducerCapability:
        """Capability summed over the producer's active plants."""
        filters: dict = {"status": PlantStatus.ACTIVE.value}
        if producer_id is not None:
            filters["producer_id"] = producer_id
        plants = self._repo.query(PlantModel, **filters)
        return ProducerCapability(
            max_annual_volume=sum((p.annual_capacity for p in plants), Decimal("0")),
            best_ghg_reduction=max((p.ghg_reduction for p in plants), default=Decimal("0")),
            fuel_types=frozenset(
                _FUEL_TYPES[p.pathway] for p in plants if p.pathway in _FUEL_TYPES
            ),
        )

    # =====================================================================
    # Commands
    # =====================================================================

    def create_request(self, request: QuoteRequest) -> OperationResult[QuoteRequest]:
        def work() -> QuoteRequest:
            self._repo.save(QuoteRequestModel.from_dto(request))
            logger.info("rfq_created", extra={
                "rfq_id": str(request.id),
                "buyer_company": request.buyer_company,
                "total_volume": str(request.total_volume),
            })
            return request

        return self._execute("create_request", work, entity_id=request.id)

    def score_request(
        self,
        rfq_id: UUID,
        capability: ProducerCapability | None = None,
        producer_id: str | None = None,
    ) -> OperationResult[FitStatus]:
        """Score the request and store the verdict on ``fit_status``."""

        def work() -> FitStatus:
            model = self._repo.load(QuoteRequestModel, rfq_id, for_update=True)
            cap = capability or self.producer_capability(producer_id)
            verdict = score_fit(model.to_dto(), cap, self._config.fit_thresholds)
            model.fit_status = verdict.value
            self._repo.save(model)
            return verdict

        return self._execute("score_request", work, entity_id=rfq_id)

    def _move(self, model: QuoteRequestModel, action: str) -> None:
        transition = RFQ_WORKFLOW.require_transition(model.status, action, model.id)
        model.status = transition.to_state
        self._repo.save(model)

    def _transition(self, rfq_id: UUID, action: str) -> OperationResult[QuoteRequest]:
        def work() -> QuoteRequest:
            model = self._repo.load(QuoteRequestModel, rfq_id, for_update=True)
            self._move(model, action)
            return model.to_dto()

        return self._execute(f"rfq_{action}", work, entity_id=rfq_id)

    def watch(self, rfq_id: UUID) -> OperationResult[QuoteRequest]:
        return self._transition(rfq_id, "watch")

    def unwatch(self, rfq_id: UUID) -> OperationResult[QuoteRequest]:
        return self._transition(rfq_id, "unwatch")

    def close_expired(self) -> OperationResult[list[UUID]]:
        """Close every open or watched request whose deadline has passed."""

        def work() -> list[UUID]:
            now = self._clock.now()
            closed: list[UUID] = []
            for status in (RfqStatus.OPEN, RfqStatus.WATCHING):
                for model in self._repo.query(QuoteRequestModel, status=status.value):
                    if model.response_deadline < now:
                        self._move(model, "close")
                        closed.append(model.id)
            return closed

        return self._execute("close_expired", work)

    def apply_award(self, rfq_id: UUID) -> QuoteRequest:
        """Mark the request awarded within the caller's transaction."""
        model = self._repo.load(QuoteRequestModel, rfq_id, for_update=True)
        self._move(model, "award")
        return model.to_dto()

    def correct_status(
        self,
        rfq_id: UUID,
        status: RfqStatus,
        reason: str,
        actor_id: UUID | None = None,
    ) -> OperationResult[QuoteRequest]:
        """Administrative correction that bypasses the workflow.  Always logged."""
        if not reason:
            raise ValueError("A status correction needs a reason")

        def work() -> QuoteRequest:
            model = self._repo.load(QuoteRequestModel, rfq_id, for_update=True)
            previous = model.status
            model.status = status.value
            model.updated_by_id = actor_id
            self._repo.save(model)
            logger.warning("rfq_status_corrected", extra={
                "rfq_id": str(rfq_id),
                "from_status": previous,
                "to_status": status.value,
                "reason": reason,
                "actor_id": str(actor_id) if actor_id else None,
            })
            return model.to_dto()

        return self._execute("correct_status", work, entity_id=rfq_id)

    def available_actions(self, rfq_id: UUID) -> tuple[str, ...]:
        return RFQ_WORKFLOW.allowed_actions(self.get_request(rfq_id).status.value)
