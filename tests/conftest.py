"""
Pytest fixtures for the SAF commitment ledger test suite.

Provides:
- Database sessions on SQLite (default) or PostgreSQL
- A deterministic clock
- Service fixtures wired to the shared session and clock
- Seed fixtures for a plant, a quote request and a production batch

Environment Variables:
- DATABASE_URL: database URL for the suite.  Defaults to an in-memory
  SQLite database; set a postgresql:// URL to run against PostgreSQL.
"""

import json
import logging
import os
from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest

from saf_engines.types import PlantStatus
from saf_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from saf_kernel.domain.clock import DeterministicClock
from saf_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from saf_modules.bids.service import BidService
from saf_modules.compliance.service import ComplianceService
from saf_modules.contracts.service import ContractService
from saf_modules.production.service import ProductionService
from saf_modules.rfq.service import RfqService
from tests.factories import (
    NOW,
    TEST_BATCH_ID,
    TEST_PLANT_ID,
    TEST_PRODUCER_ID,
    TEST_SECOND_PLANT_ID,
    make_quote_request,
)

DEFAULT_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture saf_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, production_service):
            production_service.allocate(...)
            logs = captured_logs()
            assert any(r["message"] == "allocate_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("saf_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh schema per test."""
    engine = init_engine_from_url(get_database_url())
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine):
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(NOW)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def production_service(session, deterministic_clock):
    return ProductionService(session, clock=deterministic_clock)


@pytest.fixture
def rfq_service(session, deterministic_clock):
    return RfqService(session, clock=deterministic_clock)


@pytest.fixture
def bid_service(session, deterministic_clock):
    return BidService(session, clock=deterministic_clock)


@pytest.fixture
def contract_service(session, deterministic_clock):
    return ContractService(session, clock=deterministic_clock)


@pytest.fixture
def compliance_service(session, deterministic_clock):
    return ComplianceService(session, clock=deterministic_clock)


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def test_plant(production_service):
    """Rotterdam HEFA plant, 10,000 MT/year at 80% GHG reduction."""
    result = production_service.register_plant(
        name="Rotterdam HEFA",
        location="Rotterdam, NL",
        pathway="HEFA",
        primary_feedstock="Used cooking oil",
        annual_capacity=Decimal("10000"),
        ghg_reduction=Decimal("80"),
        producer_id=TEST_PRODUCER_ID,
        plant_id=TEST_PLANT_ID,
    )
    assert result.is_success
    return result.value


@pytest.fixture
def second_plant(production_service):
    """Smaller AtJ plant, 4,000 MT/year at 70% GHG reduction."""
    result = production_service.register_plant(
        name="Porvoo AtJ",
        location="Porvoo, FI",
        pathway="AtJ",
        primary_feedstock="Ethanol",
        annual_capacity=Decimal("4000"),
        ghg_reduction=Decimal("70"),
        producer_id=TEST_PRODUCER_ID,
        status=PlantStatus.ACTIVE,
        plant_id=TEST_SECOND_PLANT_ID,
    )
    assert result.is_success
    return result.value


@pytest.fixture
def test_rfq(rfq_service):
    result = rfq_service.create_request(make_quote_request())
    assert result.is_success
    return result.value


@pytest.fixture
def test_batch(production_service, test_plant):
    """5,000 MT batch from the test plant."""
    result = production_service.record_production(
        plant_id=TEST_PLANT_ID,
        batch_number="B-2025-001",
        volume=Decimal("5000"),
        production_date=NOW - timedelta(days=3),
        batch_id=TEST_BATCH_ID,
    )
    assert result.is_success
    return result.value
