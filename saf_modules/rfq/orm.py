"""
SQLAlchemy ORM persistence models for the RFQ module.

Responsibility
--------------
Persist buyers' quote requests and their per-year volume breakdown.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``RfqService`` and read by
``BidService`` / ``ContractService``.  Inherits from ``TrackedBase``.

Invariants enforced
-------------------
* Volumes and GHG thresholds use ``Decimal`` (Numeric(38,9)).
* ``QuoteRequestModel`` is versioned (``row_version``).
* Breakdown lines keep their authored order via ``position``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saf_kernel.db.base import TrackedBase


class QuoteRequestModel(TrackedBase):
    """A buyer's request for quote."""

    __tablename__ = "saf_quote_requests"

    __table_args__ = (
        Index("idx_rfq_status", "status"),
        Index("idx_rfq_deadline", "response_deadline"),
    )

    buyer_company: Mapped[str] = mapped_column(String(200), nullable=False)
    buyer_contact: Mapped[str | None] = mapped_column(String(200), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="platform")
    total_volume: Mapped[Decimal] = mapped_column(nullable=False)
    volume_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="MT")
    fuel_type: Mapped[str] = mapped_column(String(10), nullable=False)
    feedstock: Mapped[str] = mapped_column(String(100), nullable=False, default="Any")
    min_ghg_reduction: Mapped[Decimal] = mapped_column(nullable=False)
    pricing_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")
    price_index: Mapped[str | None] = mapped_column(String(100), nullable=True)
    premium: Mapped[Decimal | None] = mapped_column(nullable=True)
    target_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    incoterms: Mapped[str] = mapped_column(String(10), nullable=False, default="DAP")
    payment_terms: Mapped[str] = mapped_column(String(50), nullable=False, default="Net 30")
    response_deadline: Mapped[datetime] = mapped_column(nullable=False)
    required_certs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    fit_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    row_version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version, "version_id_generator": False}

    volume_breakdown: Mapped[list["RfqVolumeLineModel"]] = relationship(
        "RfqVolumeLineModel",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RfqVolumeLineModel.position",
        lazy="selectin",
    )

    def to_dto(self):
        from saf_engines.types import (
            FitStatus,
            FuelType,
            PricingType,
            QuoteRequest,
            RfqSource,
            RfqStatus,
            VolumeUnit,
        )

        return QuoteRequest(
            id=self.id,
            buyer_company=self.buyer_company,
            total_volume=self.total_volume,
            fuel_type=FuelType(self.fuel_type),
            min_ghg_reduction=self.min_ghg_reduction,
            response_deadline=self.response_deadline,
            volume_unit=VolumeUnit(self.volume_unit),
            volume_breakdown=tuple(line.to_dto() for line in self.volume_breakdown),
            feedstock=self.feedstock,
            pricing_type=PricingType(self.pricing_type),
            currency=self.currency,
            incoterms=self.incoterms,
            payment_terms=self.payment_terms,
            required_certs=tuple(self.required_certs or ()),
            status=RfqStatus(self.status),
            fit_status=FitStatus(self.fit_status),
            source=RfqSource(self.source),
            buyer_contact=self.buyer_contact,
            price_index=self.price_index,
            premium=self.premium,
            target_price=self.target_price,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "QuoteRequestModel":
        return cls(
            id=dto.id,
            buyer_company=dto.buyer_company,
            buyer_contact=dto.buyer_contact,
            source=dto.source.value,
            total_volume=dto.total_volume,
            volume_unit=dto.volume_unit.value,
            fuel_type=dto.fuel_type.value,
            feedstock=dto.feedstock,
            min_ghg_reduction=dto.min_ghg_reduction,
            pricing_type=dto.pricing_type.value,
            price_index=dto.price_index,
            premium=dto.premium,
            target_price=dto.target_price,
            currency=dto.currency,
            incoterms=dto.incoterms,
            payment_terms=dto.payment_terms,
            response_deadline=dto.response_deadline,
            required_certs=list(dto.required_certs),
            status=dto.status.value,
            fit_status=dto.fit_status.value,
            notes=dto.notes,
            volume_breakdown=[
                RfqVolumeLineModel(
                    position=i, year=line.year, volume=line.volume, location=line.location,
                )
                for i, line in enumerate(dto.volume_breakdown)
            ],
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<QuoteRequestModel {self.buyer_company} [{self.status}]>"


class RfqVolumeLineModel(TrackedBase):
    """One (year, volume, location) line of a quote request."""

    __tablename__ = "saf_rfq_volume_lines"

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("saf_quote_requests.id"), nullable=False, index=True,
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    year: Mapped[int] = mapped_column(nullable=False)
    volume: Mapped[Decimal] = mapped_column(nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    request: Mapped["QuoteRequestModel"] = relationship(
        "QuoteRequestModel",
        back_populates="volume_breakdown",
    )

    def to_dto(self):
        from saf_engines.types import VolumeBreakdown

        return VolumeBreakdown(year=self.year, volume=self.volume, location=self.location)
