"""
Tests for the RFQ module service.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from saf_engines.fit import FitThresholds, ProducerCapability
from saf_engines.types import FitStatus, FuelType, RfqStatus, VolumeBreakdown
from saf_modules.rfq.config import RfqConfig
from saf_modules.rfq.service import RfqService
from tests.factories import TEST_RFQ_ID, make_quote_request


class TestCreateAndLoad:
    """Persisting quote requests."""

    def test_round_trip_keeps_breakdown(self, rfq_service, test_rfq):
        loaded = rfq_service.get_request(TEST_RFQ_ID)

        assert loaded.buyer_company == "SkyAir"
        assert loaded.status == RfqStatus.OPEN
        assert loaded.fit_status == FitStatus.PENDING
        assert [(b.year, b.volume, b.location) for b in loaded.volume_breakdown] == [
            (2026, Decimal("1000"), "Amsterdam"),
            (2027, Decimal("2000"), "Frankfurt"),
        ]

    def test_list_by_status(self, rfq_service, test_rfq):
        rfq_service.create_request(make_quote_request(rfq_id=uuid4(), buyer_company="JetCo"))
        rfq_service.watch(TEST_RFQ_ID)

        watching = rfq_service.list_requests(RfqStatus.WATCHING)

        assert [r.id for r in watching] == [TEST_RFQ_ID]
        assert len(rfq_service.list_requests()) == 2


class TestScoring:
    """Fit scoring against the producer's plants."""

    def test_capability_sums_active_plants(self, rfq_service, test_plant, second_plant):
        capability = rfq_service.producer_capability("producer-1")

        assert capability.max_annual_volume == Decimal("14000")
        assert capability.best_ghg_reduction == Decimal("80")
        assert capability.fuel_types == frozenset({FuelType.HEFA, FuelType.ATJ})

    def test_score_stored_on_request(self, rfq_service, test_plant, test_rfq):
        result = rfq_service.score_request(TEST_RFQ_ID, producer_id="producer-1")

        assert result.is_success
        assert result.value == FitStatus.GOOD
        assert rfq_service.get_request(TEST_RFQ_ID).fit_status == FitStatus.GOOD

    def test_explicit_capability(self, rfq_service, test_rfq):
        capability = ProducerCapability(
            max_annual_volume=Decimal("1500"),
            best_ghg_reduction=Decimal("90"),
            fuel_types=frozenset({FuelType.HEFA}),
        )

        result = rfq_service.score_request(TEST_RFQ_ID, capability=capability)

        assert result.value == FitStatus.CANNOT

    def test_no_plants_cannot(self, rfq_service, test_rfq):
        assert rfq_service.score_request(TEST_RFQ_ID).value == FitStatus.CANNOT

    def test_custom_thresholds(self, session, deterministic_clock, test_plant, test_rfq):
        service = RfqService(
            session,
            clock=deterministic_clock,
            config=RfqConfig(fit_thresholds=FitThresholds(good_volume_ratio=Decimal("0.1"))),
        )

        assert service.score_request(TEST_RFQ_ID).value == FitStatus.POSSIBLE

    def test_scoring_does_not_block_bidding(self, rfq_service, test_plant):
        huge = make_quote_request(
            rfq_id=uuid4(),
            volume_breakdown=(VolumeBreakdown(2026, Decimal("99999"), "Oslo"),),
        )
        rfq_service.create_request(huge)

        assert rfq_service.score_request(huge.id).value == FitStatus.CANNOT
        assert rfq_service.get_request(huge.id).status == RfqStatus.OPEN


class TestLifecycle:
    """Watching, closing and awarding."""

    def test_watch_and_unwatch(self, rfq_service, test_rfq):
        assert rfq_service.watch(TEST_RFQ_ID).value.status == RfqStatus.WATCHING
        assert rfq_service.unwatch(TEST_RFQ_ID).value.status == RfqStatus.OPEN

    def test_close_expired_after_deadline(self, rfq_service, test_rfq, deterministic_clock):
        assert rfq_service.close_expired().value == []

        deterministic_clock.advance(days=31)
        result = rfq_service.close_expired()

        assert result.value == [TEST_RFQ_ID]
        assert rfq_service.get_request(TEST_RFQ_ID).status == RfqStatus.CLOSED

    def test_closed_request_refuses_watch(self, rfq_service, test_rfq, deterministic_clock):
        deterministic_clock.advance(days=31)
        rfq_service.close_expired()

        result = rfq_service.watch(TEST_RFQ_ID)

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert result.error.entity_type == "rfq"
        assert rfq_service.available_actions(TEST_RFQ_ID) == ("award",)

    def test_available_actions(self, rfq_service, test_rfq):
        assert rfq_service.available_actions(TEST_RFQ_ID) == ("watch", "close", "award")

    def test_apply_award_does_not_commit(self, rfq_service, session, test_rfq):
        rfq_service.apply_award(TEST_RFQ_ID)
        session.rollback()

        assert rfq_service.get_request(TEST_RFQ_ID).status == RfqStatus.OPEN


class TestStatusCorrection:
    """Administrative override outside the workflow."""

    def test_correction_reopens_closed_request(
        self, rfq_service, test_rfq, deterministic_clock, captured_logs,
    ):
        deterministic_clock.advance(days=31)
        rfq_service.close_expired()

        result = rfq_service.correct_status(
            TEST_RFQ_ID, RfqStatus.OPEN, reason="deadline extended by buyer",
        )

        assert result.value.status == RfqStatus.OPEN
        corrections = [r for r in captured_logs() if r["message"] == "rfq_status_corrected"]
        assert corrections[0]["from_status"] == "closed"
        assert corrections[0]["level"] == "WARNING"

    def test_reason_required(self, rfq_service, test_rfq):
        with pytest.raises(ValueError):
            rfq_service.correct_status(TEST_RFQ_ID, RfqStatus.OPEN, reason="")

    def test_deadline_past_by_a_second(self, rfq_service, test_rfq, deterministic_clock):
        deterministic_clock.advance(days=30)
        assert rfq_service.close_expired().value == []

        deterministic_clock.advance(seconds=1)
        assert rfq_service.close_expired().value == [TEST_RFQ_ID]
