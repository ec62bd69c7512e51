"""
Bids Module Service (``saf_modules.bids.service``).

Responsibility
--------------
Producer bids against quote requests: plan plant capacity into a bid,
gate submission behind the approval workflow, record the buyer's
decision, and revise or withdraw bids.

Architecture position
---------------------
**Modules layer** -- thin glue over ``saf_engines.planning`` and
``saf_engines.approval``.  A won decision awards the quote request
through ``RfqService.apply_award`` inside the same transaction.

Invariants enforced
-------------------
* Planned capacity is checked against each plant's declared annual
  capacity at edit time only; the volume ledger is never touched.
* Plant names and GHG reductions are snapshotted from the plant register
  when the plan is written.
* A won bid supersedes every other bid (and version) on its request.
* Superseded bids refuse every mutation.

Failure modes
-------------
* ``InsufficientCapacityError`` result on a plant/year overrun.
* ``ApprovalError`` subclasses from the approval engine.
* ``IllegalTransitionError`` result for moves out of the wrong status,
  or for bidding on a closed or awarded request.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from saf_engines import approval
from saf_engines.planning import blended_ghg_reduction, check_plant_capacity
from saf_engines.types import (
    Bid,
    BidStatus,
    PlantAllocation,
    PricingOffer,
    RfqStatus,
)
from saf_kernel.domain.approval import ApprovalDecision, ApprovalRecord
from saf_kernel.domain.clock import Clock
from saf_kernel.domain.results import OperationResult
from saf_kernel.exceptions import IllegalTransitionError
from saf_kernel.logging_config import get_logger
from saf_kernel.services.base import BaseService
from saf_modules.bids.config import BidsConfig
from saf_modules.bids.orm import BidModel
from saf_modules.bids.workflows import BID_WORKFLOW
from saf_modules.production.orm import PlantModel
from saf_modules.rfq.orm import QuoteRequestModel
from saf_modules.rfq.service import RfqService

logger = get_logger("modules.bids.service")

_BIDDABLE = (RfqStatus.OPEN.value, RfqStatus.WATCHING.value)


class BidService(BaseService):
    """
    Bid planning, approval and award.

    Usage::

        service = BidService(session, clock=clock)
        bid = service.create_bid(rfq_id, "BID-001", plan, pricing).value
        service.request_approval(bid.id)
        service.record_decision(bid.id, "sales-director", ApprovalDecision.APPROVE)
        service.submit(bid.id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BidsConfig | None = None,
    ):
        self._config = config or BidsConfig()
        super().__init__(session, clock=clock, max_attempts=self._config.max_attempts)

    # =====================================================================
    # Queries
    # =====================================================================

    def get_bid(self, bid_id: UUID) -> Bid:
        return self._repo.load(BidModel, bid_id).to_dto()

    def bids_for_request(self, rfq_id: UUID, include_superseded: bool = True) -> list[Bid]:
        bids = [m.to_dto() for m in self._repo.query(BidModel, rfq_id=rfq_id)]
        if not include_superseded:
            bids = [b for b in bids if not b.superseded]
        return sorted(bids, key=lambda b: (b.bid_number, b.version))

    def available_actions(self, bid_id: UUID) -> tuple[str, ...]:
        bid = self.get_bid(bid_id)
        if bid.superseded:
            return ()
        return BID_WORKFLOW.allowed_actions(bid.status.value)

    # =====================================================================
    # Planning
    # =====================================================================

    def _resolve_plan(
        self,
        plant_allocations: Sequence[PlantAllocation],
    ) -> tuple[tuple[PlantAllocation, ...], Decimal]:
        """Snapshot plant data onto the plan, check capacity, blend GHG."""
        resolved: list[PlantAllocation] = []
        capacities: dict[UUID, Decimal] = {}
        for pa in plant_allocations:
            plant = self._repo.load(PlantModel, pa.plant_id)
            capacities[plant.id] = plant.annual_capacity
            resolved.append(replace(
                pa,
                plant_name=plant.name,
                ghg_reduction=plant.ghg_reduction,
            ))
        check_plant_capacity(resolved, capacities)
        return tuple(resolved), blended_ghg_reduction(resolved)

    def create_bid(
        self,
        rfq_id: UUID,
        bid_number: str,
        plant_allocations: Sequence[PlantAllocation],
        pricing: PricingOffer | None = None,
        producer_id: str | None = None,
        tolerance_percent: Decimal | None = None,
        incoterms: str | None = None,
        payment_terms: str | None = None,
        bid_id: UUID | None = None,
    ) -> OperationResult[Bid]:
        """Create a draft bid against an open or watched quote request."""
        new_id = bid_id or uuid4()

        def work() -> Bid:
            rfq = self._repo.load(QuoteRequestModel, rfq_id)
            if rfq.status not in _BIDDABLE:
                raise IllegalTransitionError(
                    entity_type="rfq",
                    entity_id=str(rfq_id),
                    from_state=rfq.status,
                    action="bid",
                    reason="request is not open for bids",
                )
            plan, blended = self._resolve_plan(plant_allocations)
            bid = Bid(
                id=new_id,
                bid_number=bid_number,
                rfq_id=rfq_id,
                plant_allocations=plan,
                pricing=pricing or PricingOffer(currency=rfq.currency),
                producer_id=producer_id,
                blended_ghg_reduction=blended,
                tolerance_percent=(
                    tolerance_percent
                    if tolerance_percent is not None
                    else self._config.default_tolerance_percent
                ),
                incoterms=incoterms or rfq.incoterms or self._config.default_incoterms,
                payment_terms=(
                    payment_terms or rfq.payment_terms or self._config.default_payment_terms
                ),
                approval=ApprovalRecord(mode=self._config.approval_policy.mode),
            )
            self._repo.save(BidModel.from_dto(bid))
            logger.info("bid_created", extra={
                "bid_id": str(new_id),
                "bid_number": bid_number,
                "rfq_id": str(rfq_id),
                "total_volume": str(bid.total_volume),
                "blended_ghg_reduction": str(blended),
            })
            return bid

        return self._execute("create_bid", work, entity_id=new_id, bid_id=new_id)

    def update_allocations(
        self,
        bid_id: UUID,
        plant_allocations: Sequence[PlantAllocation],
        pricing: PricingOffer | None = None,
    ) -> OperationResult[Bid]:
        """Replace the plan of a draft bid.  Approval state is reset."""

        def work() -> Bid:
            model = self._repo.load(BidModel, bid_id, for_update=True)
            plan, blended = self._resolve_plan(plant_allocations)
            updated = approval.update_plan(model.to_dto(), plan, blended, pricing)
            model.apply_dto(updated)
            self._repo.save(model)
            return updated

        return self._execute("update_allocations", work, entity_id=bid_id, bid_id=bid_id)

    # =====================================================================
    # Approval
    # =====================================================================

    def _apply(self, operation: str, bid_id: UUID, step) -> OperationResult[Bid]:
        def work() -> Bid:
            model = self._repo.load(BidModel, bid_id, for_update=True)
            updated = step(model.to_dto())
            model.apply_dto(updated)
            self._repo.save(model)
            return updated

        return self._execute(operation, work, entity_id=bid_id, bid_id=bid_id)

    def request_approval(self, bid_id: UUID) -> OperationResult[Bid]:
        policy = self._config.approval_policy
        return self._apply(
            "request_approval", bid_id, lambda bid: approval.request_approval(bid, policy),
        )

    def record_decision(
        self,
        bid_id: UUID,
        approver_id: str,
        decision: ApprovalDecision,
        comments: str | None = None,
    ) -> OperationResult[Bid]:
        now = self._clock.now()
        return self._apply(
            "record_decision",
            bid_id,
            lambda bid: approval.record_decision(bid, approver_id, decision, now, comments),
        )

    def submit(self, bid_id: UUID) -> OperationResult[Bid]:
        rules = self._config.approval_policy.rules
        now = self._clock.now()
        return self._apply("submit_bid", bid_id, lambda bid: approval.submit(bid, rules, now))

    def withdraw(self, bid_id: UUID) -> OperationResult[Bid]:
        now = self._clock.now()
        return self._apply("withdraw_bid", bid_id, lambda bid: approval.withdraw(bid, now))

    # =====================================================================
    # Award and revision
    # =====================================================================

    def decide(self, bid_id: UUID, outcome: BidStatus) -> OperationResult[Bid]:
        """Record the buyer's decision.

        A win supersedes every other bid on the request and awards the
        request, all in one transaction.  Materializing the contract is a
        separate call on ``ContractService``.
        """

        def work() -> Bid:
            model = self._repo.load(BidModel, bid_id, for_update=True)
            updated = approval.decide(model.to_dto(), outcome, self._clock.now())
            model.apply_dto(updated)
            self._repo.save(model)

            if outcome == BidStatus.WON:
                superseded = []
                for other in self._repo.query(BidModel, rfq_id=updated.rfq_id):
                    if other.id == bid_id or other.superseded:
                        continue
                    other.apply_dto(approval.supersede(other.to_dto()))
                    self._repo.save(other)
                    superseded.append(str(other.id))
                RfqService(self._session, self._clock).apply_award(updated.rfq_id)
                logger.info("bid_won", extra={
                    "bid_id": str(bid_id),
                    "rfq_id": str(updated.rfq_id),
                    "superseded": superseded,
                })
            return updated

        return self._execute("decide_bid", work, entity_id=bid_id, bid_id=bid_id)

    def revise(self, bid_id: UUID, new_bid_id: UUID | None = None) -> OperationResult[Bid]:
        """Open the next version of a submitted bid as a new draft."""
        successor_id = new_bid_id or uuid4()

        def work() -> Bid:
            model = self._repo.load(BidModel, bid_id, for_update=True)
            old, successor = approval.revise(model.to_dto(), successor_id)
            model.apply_dto(old)
            self._repo.save(model)
            self._repo.save(BidModel.from_dto(successor))
            logger.info("bid_revised", extra={
                "successor_id": str(successor_id),
                "version": successor.version,
            })
            return successor

        return self._execute("revise_bid", work, entity_id=bid_id, bid_id=bid_id)
