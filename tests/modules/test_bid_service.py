"""
Tests for the bids module service.

Covers:
- Creating draft bids against open requests, with plant capacity checks
- The persisted approval workflow (sequential order, rejection reset)
- Submission, award with supersession, revision
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from saf_engines.types import BidStatus, RfqStatus
from saf_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalMode,
    ApprovalPolicy,
    ApprovalRule,
    ApproverProfile,
    ApproverStatus,
    RuleKind,
)
from saf_modules.bids.config import BidsConfig
from saf_modules.bids.service import BidService
from tests.factories import (
    TEST_PLANT_ID,
    TEST_RFQ_ID,
    TEST_SECOND_PLANT_ID,
    make_plan,
    make_pricing,
)

SAFE_PRICING = make_pricing(estimated_value="4000000", estimated_margin="15")
HIGH_VALUE_PRICING = make_pricing(estimated_value="6000000", estimated_margin="15")


@pytest.fixture
def create(bid_service, test_plant, test_rfq):
    """Create a draft bid on the test request and return it."""

    def _create(bid_number="BID-0001", pricing=SAFE_PRICING, plans=None):
        result = bid_service.create_bid(
            TEST_RFQ_ID,
            bid_number,
            plans or [make_plan(plant_name="")],
            pricing=pricing,
            producer_id="producer-1",
        )
        assert result.is_success, result.error
        return result.value

    return _create


@pytest.fixture
def parallel_pending(session, deterministic_clock, test_plant, test_rfq):
    """A service with a two-approver parallel policy and a bid awaiting both."""
    policy = ApprovalPolicy(
        rules=(ApprovalRule("any", RuleKind.VOLUME_ABOVE, Decimal("0"), ("ops", "cfo")),),
        directory=(
            ApproverProfile("ops-lead", "Ops Lead", "ops"),
            ApproverProfile("cfo", "CFO", "cfo"),
        ),
        mode=ApprovalMode.PARALLEL,
    )
    service = BidService(
        session, clock=deterministic_clock, config=BidsConfig(approval_policy=policy),
    )
    bid = service.create_bid(TEST_RFQ_ID, "BID-P", [make_plan()]).value
    assert service.request_approval(bid.id).is_success
    return service, bid


def _approve_all(bid_service, bid_id):
    for approver_id in ("sales-director", "cfo"):
        assert bid_service.record_decision(bid_id, approver_id, ApprovalDecision.APPROVE).is_success


class TestCreateBid:
    """Draft bids and their plan."""

    def test_draft_snapshots_plant_data(self, bid_service, create):
        bid = create()

        stored = bid_service.get_bid(bid.id)
        assert stored.status == BidStatus.DRAFT
        assert stored.version == 1
        assert stored.plant_allocations[0].plant_name == "Rotterdam HEFA"
        assert stored.plant_allocations[0].ghg_reduction == Decimal("80")
        assert stored.blended_ghg_reduction == Decimal("80")
        assert stored.total_volume == Decimal("3000")
        assert stored.incoterms == "DAP"
        assert stored.tolerance_percent == Decimal("10")

    def test_pricing_persisted(self, bid_service, create):
        bid = create(pricing=make_pricing(prices={2026: "1950.50", 2027: "2010"}))

        stored = bid_service.get_bid(bid.id)
        assert stored.pricing.price_for_year(2026) == Decimal("1950.50")
        assert stored.pricing.estimated_value == Decimal("6000000")

    def test_blended_ghg_across_plants(self, create, second_plant):
        bid = create(plans=[
            make_plan(volumes={2026: "3000"}),
            make_plan(TEST_SECOND_PLANT_ID, "Porvoo AtJ", {2026: "1000"}),
        ])

        assert bid.blended_ghg_reduction == Decimal("77.50")

    def test_plan_over_plant_capacity_rejected(self, bid_service, test_plant, test_rfq):
        result = bid_service.create_bid(
            TEST_RFQ_ID, "BID-0001", [make_plan(volumes={2026: "12000"})],
        )

        assert result.error_code == "INSUFFICIENT_CAPACITY"
        assert bid_service.bids_for_request(TEST_RFQ_ID) == []

    def test_planning_does_not_touch_batches(
        self, bid_service, production_service, create, test_batch,
    ):
        create()

        assert production_service.get_batch(test_batch.id).allocated_volume == Decimal("0")

    def test_closed_request_refuses_bids(
        self, bid_service, rfq_service, test_plant, test_rfq, deterministic_clock,
    ):
        deterministic_clock.advance(days=31)
        rfq_service.close_expired()

        result = bid_service.create_bid(TEST_RFQ_ID, "BID-0001", [make_plan()])

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert result.error.entity_type == "rfq"

    def test_update_allocations_resets_approval(self, bid_service, create):
        bid = create(pricing=HIGH_VALUE_PRICING)
        bid_service.request_approval(bid.id)
        bid_service.record_decision(bid.id, "sales-director", ApprovalDecision.REJECT)

        result = bid_service.update_allocations(
            bid.id, [make_plan(volumes={2026: "1000"})], pricing=SAFE_PRICING,
        )

        assert result.is_success
        stored = bid_service.get_bid(bid.id)
        assert stored.total_volume == Decimal("1000")
        assert stored.approval.approvers == ()
        assert bid_service.submit(bid.id).is_success


class TestApprovalWorkflow:
    """Persisted approval decisions."""

    def test_high_value_bid_goes_pending(self, bid_service, create):
        bid = create(pricing=HIGH_VALUE_PRICING)

        result = bid_service.request_approval(bid.id)

        assert result.is_success
        stored = bid_service.get_bid(bid.id)
        assert stored.status == BidStatus.PENDING_APPROVAL
        assert stored.approval.reasons == ("Contract value exceeds 5M",)
        assert [a.approver_id for a in stored.approval.approvers] == ["sales-director", "cfo"]

    def test_cfo_before_sales_director_is_out_of_order(self, bid_service, create):
        bid = create(pricing=HIGH_VALUE_PRICING)
        bid_service.request_approval(bid.id)

        result = bid_service.record_decision(bid.id, "cfo", ApprovalDecision.APPROVE)

        assert result.error_code == "OUT_OF_ORDER"
        stored = bid_service.get_bid(bid.id)
        assert all(a.status == ApproverStatus.PENDING for a in stored.approval.approvers)

    def test_full_approval_then_submit(self, bid_service, create):
        bid = create(pricing=HIGH_VALUE_PRICING)
        bid_service.request_approval(bid.id)
        _approve_all(bid_service, bid.id)

        result = bid_service.submit(bid.id)

        assert result.is_success
        assert bid_service.get_bid(bid.id).status == BidStatus.SUBMITTED

    def test_submit_before_approval_complete(self, bid_service, create):
        bid = create(pricing=HIGH_VALUE_PRICING)
        bid_service.request_approval(bid.id)
        bid_service.record_decision(bid.id, "sales-director", ApprovalDecision.APPROVE)

        result = bid_service.submit(bid.id)

        assert result.error_code == "APPROVAL_INCOMPLETE"
        assert result.error.pending_approvers == ("cfo",)

    def test_rejected_submit_logged_with_bid_id(self, bid_service, create, captured_logs):
        bid = create(pricing=HIGH_VALUE_PRICING)

        bid_service.submit(bid.id)

        rejected = [r for r in captured_logs() if r["message"] == "submit_bid_rejected"]
        assert rejected[0]["bid_id"] == str(bid.id)
        assert rejected[0]["error_code"] == "APPROVAL_INCOMPLETE"

    def test_rejection_returns_to_draft(self, bid_service, create):
        bid = create(pricing=HIGH_VALUE_PRICING)
        bid_service.request_approval(bid.id)
        bid_service.record_decision(bid.id, "sales-director", ApprovalDecision.APPROVE)

        bid_service.record_decision(
            bid.id, "cfo", ApprovalDecision.REJECT, comments="Index premium too thin",
        )

        stored = bid_service.get_bid(bid.id)
        assert stored.status == BidStatus.DRAFT
        assert stored.approval.rejection_reasons == ("Index premium too thin",)
        assert all(a.status == ApproverStatus.PENDING for a in stored.approval.approvers)

    def test_parallel_mode_from_config(self, parallel_pending):
        service, bid = parallel_pending

        assert service.record_decision(bid.id, "cfo", ApprovalDecision.APPROVE).is_success
        assert service.record_decision(bid.id, "ops-lead", ApprovalDecision.APPROVE).is_success
        assert service.submit(bid.id).is_success

    def test_parallel_partial_approval_blocks_submit(self, parallel_pending):
        service, bid = parallel_pending
        service.record_decision(bid.id, "cfo", ApprovalDecision.APPROVE)

        result = service.submit(bid.id)

        assert result.error_code == "APPROVAL_INCOMPLETE"
        assert result.error.pending_approvers == ("ops-lead",)
        assert service.get_bid(bid.id).status == BidStatus.PENDING_APPROVAL

    def test_parallel_rejection_resets_every_approver(self, parallel_pending):
        service, bid = parallel_pending
        service.record_decision(bid.id, "cfo", ApprovalDecision.APPROVE)

        result = service.record_decision(
            bid.id, "ops-lead", ApprovalDecision.REJECT, comments="Plant slot taken",
        )

        assert result.is_success
        stored = service.get_bid(bid.id)
        assert stored.status == BidStatus.DRAFT
        assert all(a.status == ApproverStatus.PENDING for a in stored.approval.approvers)
        assert stored.approval.rejection_reasons == ("Plant slot taken",)

    def test_safe_bid_submits_without_approval(self, bid_service, create):
        bid = create()

        assert bid_service.submit(bid.id).is_success

    def test_available_actions(self, bid_service, create):
        bid = create()

        assert bid_service.available_actions(bid.id) == (
            "request_approval", "submit", "withdraw",
        )


class TestAwardAndRevision:
    """Buyer decisions, supersession and new versions."""

    def test_win_supersedes_rivals_and_awards_request(
        self, bid_service, rfq_service, create,
    ):
        winner = create("BID-0001")
        rival = create("BID-0002")
        bid_service.submit(winner.id)
        bid_service.submit(rival.id)

        result = bid_service.decide(winner.id, BidStatus.WON)

        assert result.is_success
        assert bid_service.get_bid(winner.id).status == BidStatus.WON
        stored_rival = bid_service.get_bid(rival.id)
        assert stored_rival.superseded
        assert stored_rival.status == BidStatus.SUBMITTED
        assert bid_service.available_actions(rival.id) == ()
        assert rfq_service.get_request(TEST_RFQ_ID).status == RfqStatus.AWARDED

    def test_superseded_rival_cannot_win(self, bid_service, create):
        winner, rival = create("BID-0001"), create("BID-0002")
        bid_service.submit(winner.id)
        bid_service.submit(rival.id)
        bid_service.decide(winner.id, BidStatus.WON)

        result = bid_service.decide(rival.id, BidStatus.WON)

        assert result.error_code == "ILLEGAL_TRANSITION"

    def test_lost_bid_leaves_request_open(self, bid_service, rfq_service, create):
        bid = create()
        bid_service.submit(bid.id)

        assert bid_service.decide(bid.id, BidStatus.LOST).value.status == BidStatus.LOST
        assert rfq_service.get_request(TEST_RFQ_ID).status == RfqStatus.OPEN

    def test_win_rolls_back_when_award_fails(
        self, bid_service, rfq_service, create,
    ):
        bid = create()
        bid_service.submit(bid.id)
        rfq_service.correct_status(
            TEST_RFQ_ID, RfqStatus.AWARDED, reason="awarded outside the platform",
        )

        result = bid_service.decide(bid.id, BidStatus.WON)

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert result.error.entity_type == "rfq"
        assert bid_service.get_bid(bid.id).status == BidStatus.SUBMITTED

    def test_win_after_deadline_closed_request(
        self, bid_service, rfq_service, create, deterministic_clock,
    ):
        bid = create()
        bid_service.submit(bid.id)
        deterministic_clock.advance(days=31)
        assert rfq_service.close_expired().value == [TEST_RFQ_ID]

        result = bid_service.decide(bid.id, BidStatus.WON)

        assert result.is_success, result.error
        assert bid_service.get_bid(bid.id).status == BidStatus.WON
        assert rfq_service.get_request(TEST_RFQ_ID).status == RfqStatus.AWARDED

    def test_revise_creates_next_version(self, bid_service, create):
        bid = create()
        bid_service.submit(bid.id)
        new_id = uuid4()

        result = bid_service.revise(bid.id, new_bid_id=new_id)

        assert result.is_success
        successor = bid_service.get_bid(new_id)
        assert successor.version == 2
        assert successor.status == BidStatus.DRAFT
        assert successor.previous_version_id == bid.id
        assert successor.plant_allocations[0].plant_id == TEST_PLANT_ID
        assert bid_service.get_bid(bid.id).superseded

        versions = bid_service.bids_for_request(TEST_RFQ_ID)
        assert [(b.bid_number, b.version) for b in versions] == [("BID-0001", 1), ("BID-0001", 2)]
        current = bid_service.bids_for_request(TEST_RFQ_ID, include_superseded=False)
        assert [b.id for b in current] == [new_id]

    def test_withdraw(self, bid_service, create):
        bid = create()

        assert bid_service.withdraw(bid.id).value.status == BidStatus.WITHDRAWN
        assert bid_service.available_actions(bid.id) == ()
