"""
SQLAlchemy ORM persistence models for the Bids module.

Responsibility
--------------
Persist producer bids: the plant allocation plan, pricing offer, terms,
and the approval record with its approvers.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``BidService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* Money, volumes and percentages use ``Decimal`` -- NEVER float.  Values
  kept inside JSON columns are serialized as strings.
* ``BidModel`` is versioned (``row_version``).  ``bid_version`` is the
  commercial revision number; a revision is a NEW row.
* Approvers keep their decision order via ``position``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saf_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# BidModel
# ---------------------------------------------------------------------------


class BidModel(TrackedBase):
    """
    One version of a producer's bid against a quote request.

    Guarantees:
        - (bid_number, bid_version) is unique.
        - ``status`` follows draft -> pending_approval -> submitted ->
          won | lost, with withdrawn reachable before a decision.
    """

    __tablename__ = "saf_bids"

    __table_args__ = (
        UniqueConstraint("bid_number", "bid_version", name="uq_bid_number_version"),
        Index("idx_bid_rfq", "rfq_id"),
        Index("idx_bid_status", "status"),
    )

    bid_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bid_version: Mapped[int] = mapped_column(nullable=False, default=1)
    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("saf_quote_requests.id"), nullable=False)
    producer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    blended_ghg_reduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tolerance_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("10"))
    incoterms: Mapped[str] = mapped_column(String(10), nullable=False, default="DAP")
    payment_terms: Mapped[str] = mapped_column(String(50), nullable=False, default="Net 30")
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    superseded: Mapped[bool] = mapped_column(nullable=False, default=False)
    previous_version_id: Mapped[UUID | None] = mapped_column(nullable=True)

    # Pricing offer
    pricing_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    price_index: Mapped[str | None] = mapped_column(String(100), nullable=True)
    premium: Mapped[Decimal | None] = mapped_column(nullable=True)
    estimated_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    estimated_margin: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    fixed_prices: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Approval record
    requires_approval: Mapped[bool] = mapped_column(nullable=False, default=False)
    approval_reasons: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    approval_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="sequential")
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reasons: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    row_version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version, "version_id_generator": False}

    plant_allocations: Mapped[list["BidPlantAllocationModel"]] = relationship(
        "BidPlantAllocationModel",
        back_populates="bid",
        cascade="all, delete-orphan",
        order_by="BidPlantAllocationModel.position",
        lazy="selectin",
    )

    approvers: Mapped[list["BidApproverModel"]] = relationship(
        "BidApproverModel",
        back_populates="bid",
        cascade="all, delete-orphan",
        order_by="BidApproverModel.position",
        lazy="selectin",
    )

    def to_dto(self):
        from saf_engines.types import Bid, BidStatus, PricingOffer, PricingType, YearPrice
        from saf_kernel.domain.approval import ApprovalMode, ApprovalRecord

        return Bid(
            id=self.id,
            bid_number=self.bid_number,
            rfq_id=self.rfq_id,
            plant_allocations=tuple(pa.to_dto() for pa in self.plant_allocations),
            pricing=PricingOffer(
                pricing_type=PricingType(self.pricing_type),
                currency=self.currency,
                fixed_prices=tuple(
                    YearPrice(year=int(p["year"]), price=Decimal(p["price"]))
                    for p in self.fixed_prices or ()
                ),
                price_index=self.price_index,
                premium=self.premium,
                estimated_value=self.estimated_value,
                estimated_margin=self.estimated_margin,
            ),
            version=self.bid_version,
            producer_id=self.producer_id,
            blended_ghg_reduction=self.blended_ghg_reduction,
            tolerance_percent=self.tolerance_percent,
            incoterms=self.incoterms,
            payment_terms=self.payment_terms,
            approval=ApprovalRecord(
                requires_approval=self.requires_approval,
                reasons=tuple(self.approval_reasons or ()),
                mode=ApprovalMode(self.approval_mode),
                approvers=tuple(a.to_dto() for a in self.approvers),
                notes=self.approval_notes,
                rejection_reasons=tuple(self.rejection_reasons or ()),
            ),
            status=BidStatus(self.status),
            submitted_at=self.submitted_at,
            decided_at=self.decided_at,
            superseded=self.superseded,
            previous_version_id=self.previous_version_id,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "BidModel":
        model = cls(
            id=dto.id,
            bid_number=dto.bid_number,
            bid_version=dto.version,
            rfq_id=dto.rfq_id,
            producer_id=dto.producer_id,
            previous_version_id=dto.previous_version_id,
            created_by_id=created_by_id,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        """Copy every mutable field of ``dto`` onto this row."""
        self.blended_ghg_reduction = dto.blended_ghg_reduction
        self.tolerance_percent = dto.tolerance_percent
        self.incoterms = dto.incoterms
        self.payment_terms = dto.payment_terms
        self.status = dto.status.value
        self.submitted_at = dto.submitted_at
        self.decided_at = dto.decided_at
        self.superseded = dto.superseded

        pricing = dto.pricing
        self.pricing_type = pricing.pricing_type.value
        self.currency = pricing.currency
        self.price_index = pricing.price_index
        self.premium = pricing.premium
        self.estimated_value = pricing.estimated_value
        self.estimated_margin = pricing.estimated_margin
        self.fixed_prices = [
            {"year": p.year, "price": str(p.price)} for p in pricing.fixed_prices
        ]

        approval = dto.approval
        self.requires_approval = approval.requires_approval
        self.approval_reasons = list(approval.reasons)
        self.approval_mode = approval.mode.value
        self.approval_notes = approval.notes
        self.rejection_reasons = list(approval.rejection_reasons)

        self.plant_allocations = [
            BidPlantAllocationModel.from_dto(pa, position=i)
            for i, pa in enumerate(dto.plant_allocations)
        ]
        self.approvers = [
            BidApproverModel.from_dto(a, position=i)
            for i, a in enumerate(approval.approvers)
        ]

    def __repr__(self) -> str:
        return f"<BidModel {self.bid_number} v{self.bid_version} [{self.status}]>"


# ---------------------------------------------------------------------------
# BidPlantAllocationModel
# ---------------------------------------------------------------------------


class BidPlantAllocationModel(TrackedBase):
    """Planned capacity from one plant, with its per-year volumes."""

    __tablename__ = "saf_bid_plant_allocations"

    bid_id: Mapped[UUID] = mapped_column(ForeignKey("saf_bids.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    plant_id: Mapped[UUID] = mapped_column(nullable=False)
    plant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    ghg_reduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # [{"year": 2026, "volume": "500"}, ...]
    year_volumes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    bid: Mapped["BidModel"] = relationship("BidModel", back_populates="plant_allocations")

    def to_dto(self):
        from saf_engines.types import PlantAllocation, YearVolume

        return PlantAllocation(
            plant_id=self.plant_id,
            plant_name=self.plant_name,
            allocations=tuple(
                YearVolume(year=int(yv["year"]), volume=Decimal(yv["volume"]))
                for yv in self.year_volumes or ()
            ),
            ghg_reduction=self.ghg_reduction,
        )

    @classmethod
    def from_dto(cls, dto, position: int = 0) -> "BidPlantAllocationModel":
        return cls(
            position=position,
            plant_id=dto.plant_id,
            plant_name=dto.plant_name,
            ghg_reduction=dto.ghg_reduction,
            year_volumes=[
                {"year": yv.year, "volume": str(yv.volume)} for yv in dto.allocations
            ],
        )


# ---------------------------------------------------------------------------
# BidApproverModel
# ---------------------------------------------------------------------------


class BidApproverModel(TrackedBase):
    """One approver attached to a bid and their decision."""

    __tablename__ = "saf_bid_approvers"

    bid_id: Mapped[UUID] = mapped_column(ForeignKey("saf_bids.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    bid: Mapped["BidModel"] = relationship("BidModel", back_populates="approvers")

    def to_dto(self):
        from saf_kernel.domain.approval import Approver, ApproverStatus

        return Approver(
            approver_id=self.approver_id,
            name=self.name,
            role=self.role,
            status=ApproverStatus(self.status),
            decided_at=self.decided_at,
            comments=self.comments,
        )

    @classmethod
    def from_dto(cls, dto, position: int = 0) -> "BidApproverModel":
        return cls(
            position=position,
            approver_id=dto.approver_id,
            name=dto.name,
            role=dto.role,
            status=dto.status.value,
            decided_at=dto.decided_at,
            comments=dto.comments,
        )
