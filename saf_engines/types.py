"""
saf_engines.types -- Commercial domain objects shared by the ledger engines.

Responsibility:
    Define immutable value objects for quote requests, bids, contracts,
    deliveries, production batches and plants, plus the status
    enumerations that must round-trip exactly through persistence.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import saf_kernel/domain types.  ORM mapping lives in
    ``saf_modules/*/orm.py``; stateful orchestration in
    ``saf_modules/*/service.py``.

Invariants enforced:
    - All volumes and money are Decimal (never float).
    - Year volumes, batch volumes and scheduled volumes are non-negative;
      production batch volume is strictly positive.
    - Derived fields (batch totals/status, contract totals) default to the
      values derived from their owned lists; the engines keep them in sync.

Failure modes:
    - ValueError from ``__post_init__`` on negative or non-positive volumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from saf_kernel.domain.approval import ApprovalRecord

ZERO = Decimal("0")


# =========================================================================
# Status enumerations
# =========================================================================


class VolumeUnit(str, Enum):
    MT = "MT"
    GAL = "gal"


class FuelType(str, Enum):
    HEFA = "HEFA"
    ATJ = "AtJ"
    PTL = "PtL"
    FT = "FT"


class PricingType(str, Enum):
    INDEXED = "indexed"
    FIXED = "fixed"
    HYBRID = "hybrid"


class RfqSource(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    MEETING = "meeting"
    RFP = "rfp"
    PLATFORM = "platform"


class RfqStatus(str, Enum):
    OPEN = "open"
    WATCHING = "watching"
    CLOSED = "closed"
    AWARDED = "awarded"


class FitStatus(str, Enum):
    GOOD = "good"
    POSSIBLE = "possible"
    CANNOT = "cannot"
    PENDING = "pending"


class BidStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    SUBMITTED = "submitted"
    WON = "won"
    LOST = "lost"
    WITHDRAWN = "withdrawn"


class ContractStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryStatus(str, Enum):
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    INVOICED = "invoiced"
    PAID = "paid"
    LATE = "late"  # derived overlay, never stored by the engines


class BatchStatus(str, Enum):
    AVAILABLE = "available"
    PARTIALLY_ALLOCATED = "partially_allocated"
    FULLY_ALLOCATED = "fully_allocated"
    DELIVERED = "delivered"


class PlantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


# =========================================================================
# Quote requests
# =========================================================================


@dataclass(frozen=True)
class VolumeBreakdown:
    """Requested volume for one year at one delivery location."""

    year: int
    volume: Decimal
    location: str

    def __post_init__(self) -> None:
        if self.volume < ZERO:
            raise ValueError(f"Breakdown volume must be non-negative (got {self.volume})")


@dataclass(frozen=True)
class QuoteRequest:
    """A buyer's request for quote (RFQ)."""

    id: UUID
    buyer_company: str
    total_volume: Decimal
    fuel_type: FuelType
    min_ghg_reduction: Decimal
    response_deadline: datetime
    volume_unit: VolumeUnit = VolumeUnit.MT
    volume_breakdown: tuple[VolumeBreakdown, ...] = ()
    feedstock: str = "Any"
    pricing_type: PricingType = PricingType.FIXED
    currency: str = "EUR"
    incoterms: str = "DAP"
    payment_terms: str = "Net 30"
    required_certs: tuple[str, ...] = ()
    status: RfqStatus = RfqStatus.OPEN
    fit_status: FitStatus = FitStatus.PENDING
    source: RfqSource = RfqSource.PLATFORM
    buyer_contact: str | None = None
    price_index: str | None = None
    premium: Decimal | None = None
    target_price: Decimal | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.total_volume < ZERO:
            raise ValueError(f"RFQ volume must be non-negative (got {self.total_volume})")
        if not ZERO <= self.min_ghg_reduction <= Decimal("100"):
            raise ValueError(
                f"min_ghg_reduction must be within 0..100 (got {self.min_ghg_reduction})"
            )

    def location_for_year(self, year: int) -> str | None:
        for line in self.volume_breakdown:
            if line.year == year:
                return line.location
        return None


# =========================================================================
# Plants and bids
# =========================================================================


@dataclass(frozen=True)
class Plant:
    """A production facility and its declared capability."""

    id: UUID
    name: str
    location: str
    pathway: str
    primary_feedstock: str
    annual_capacity: Decimal
    ghg_reduction: Decimal
    status: PlantStatus = PlantStatus.ACTIVE
    producer_id: str | None = None

    def __post_init__(self) -> None:
        if self.annual_capacity < ZERO:
            raise ValueError(
                f"annual_capacity must be non-negative (got {self.annual_capacity})"
            )


@dataclass(frozen=True)
class YearVolume:
    """Planned volume for one delivery year."""

    year: int
    volume: Decimal

    def __post_init__(self) -> None:
        if self.volume < ZERO:
            raise ValueError(f"Planned volume must be non-negative (got {self.volume})")


@dataclass(frozen=True)
class PlantAllocation:
    """Planned (not consumed) capacity from one plant, year by year.

    ``ghg_reduction`` is the plant's figure snapshotted when the allocation
    was chosen; it weights the bid's blended GHG reduction.
    """

    plant_id: UUID
    plant_name: str
    allocations: tuple[YearVolume, ...]
    ghg_reduction: Decimal = ZERO

    @property
    def total_volume(self) -> Decimal:
        return sum((a.volume for a in self.allocations), ZERO)


@dataclass(frozen=True)
class YearPrice:
    year: int
    price: Decimal


@dataclass(frozen=True)
class PricingOffer:
    """Commercial terms offered in a bid."""

    pricing_type: PricingType = PricingType.FIXED
    currency: str = "EUR"
    fixed_prices: tuple[YearPrice, ...] = ()
    price_index: str | None = None
    premium: Decimal | None = None
    estimated_value: Decimal = ZERO
    estimated_margin: Decimal = ZERO  # percent

    def price_for_year(self, year: int) -> Decimal | None:
        for p in self.fixed_prices:
            if p.year == year:
                return p.price
        return None


@dataclass(frozen=True)
class Bid:
    """One version of a producer's offer against a quote request."""

    id: UUID
    bid_number: str
    rfq_id: UUID
    plant_allocations: tuple[PlantAllocation, ...] = ()
    pricing: PricingOffer = field(default_factory=PricingOffer)
    version: int = 1
    producer_id: str | None = None
    blended_ghg_reduction: Decimal = ZERO
    tolerance_percent: Decimal = Decimal("10")
    incoterms: str = "DAP"
    payment_terms: str = "Net 30"
    approval: ApprovalRecord = field(default_factory=ApprovalRecord)
    status: BidStatus = BidStatus.DRAFT
    submitted_at: datetime | None = None
    decided_at: datetime | None = None
    superseded: bool = False
    previous_version_id: UUID | None = None

    @property
    def total_volume(self) -> Decimal:
        return sum((pa.total_volume for pa in self.plant_allocations), ZERO)


# =========================================================================
# Contracts and deliveries
# =========================================================================


@dataclass(frozen=True)
class BatchDraw:
    """Capacity drawn from one production batch to fulfil a delivery.

    ``volume=None`` asks the tracker to fill the remainder greedily.
    """

    batch_id: UUID
    volume: Decimal | None = None


@dataclass(frozen=True)
class Delivery:
    """A scheduled (and eventually fulfilled) delivery of a contract."""

    id: UUID
    scheduled_date: datetime
    volume: Decimal
    unit_price: Decimal
    location: str
    status: DeliveryStatus = DeliveryStatus.SCHEDULED
    actual_date: datetime | None = None
    actual_volume: Decimal | None = None
    batch_draws: tuple[BatchDraw, ...] = ()
    bill_of_lading: str | None = None
    invoice_number: str | None = None
    invoice_amount: Decimal | None = None
    invoice_date: datetime | None = None
    paid_date: datetime | None = None

    def __post_init__(self) -> None:
        if self.volume < ZERO:
            raise ValueError(f"Scheduled volume must be non-negative (got {self.volume})")


@dataclass(frozen=True)
class Contract:
    """A supply contract materialized from a won bid.

    ``delivered_volume``, ``on_track`` and ``outstanding_invoices`` are
    caches of values derived from ``deliveries``; see
    ``saf_engines.deliveries.recompute_contract``.
    """

    id: UUID
    contract_number: str
    buyer: str
    total_volume: Decimal
    contract_value: Decimal
    effective_date: datetime
    end_date: datetime
    deliveries: tuple[Delivery, ...] = ()
    volume_unit: VolumeUnit = VolumeUnit.MT
    currency: str = "EUR"
    pricing_type: PricingType = PricingType.FIXED
    tolerance_percent: Decimal = Decimal("10")
    incoterms: str = "DAP"
    payment_terms: str = "Net 30"
    status: ContractStatus = ContractStatus.DRAFT
    bid_id: UUID | None = None
    rfq_id: UUID | None = None
    delivered_volume: Decimal = ZERO
    on_track: bool = True
    outstanding_invoices: Decimal = ZERO


# =========================================================================
# Production batches
# =========================================================================


@dataclass(frozen=True)
class BatchAllocation:
    """Volume of a batch consumed by one contract.  References, never owns."""

    contract_id: UUID
    contract_number: str
    volume: Decimal
    allocated_at: datetime

    def __post_init__(self) -> None:
        if self.volume <= ZERO:
            raise ValueError(f"Allocation volume must be positive (got {self.volume})")


@dataclass(frozen=True)
class ProductionBatch:
    """
    A logged batch of produced fuel and its allocation ledger.

    Contract:
        ``allocated_volume``, ``available_volume`` and ``status`` are caches;
        when omitted at construction they are derived from ``allocations``.
    Guarantees:
        - ``volume`` is strictly positive.
    """

    id: UUID
    batch_number: str
    plant_id: UUID
    volume: Decimal
    production_date: datetime
    volume_unit: VolumeUnit = VolumeUnit.MT
    feedstock_type: str = ""
    ghg_reduction: Decimal = ZERO
    meets_astm: bool = True
    meets_iscc: bool = True
    meets_corsia: bool = True
    allocations: tuple[BatchAllocation, ...] = ()
    allocated_volume: Decimal | None = None
    available_volume: Decimal | None = None
    status: BatchStatus | None = None
    shipped_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.volume <= ZERO:
            raise ValueError(f"Batch volume must be positive (got {self.volume})")
        allocated = sum((a.volume for a in self.allocations), ZERO)
        if self.allocated_volume is None:
            object.__setattr__(self, "allocated_volume", allocated)
        if self.available_volume is None:
            object.__setattr__(self, "available_volume", self.volume - allocated)
        if self.status is None:
            if self.shipped_at is not None:
                status = BatchStatus.DELIVERED
            elif allocated == ZERO:
                status = BatchStatus.AVAILABLE
            elif self.volume - allocated <= ZERO:
                status = BatchStatus.FULLY_ALLOCATED
            else:
                status = BatchStatus.PARTIALLY_ALLOCATED
            object.__setattr__(self, "status", status)
