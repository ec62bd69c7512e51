"""
SQLAlchemy ORM persistence models for the Contracts module.

Responsibility
--------------
Persist supply contracts materialized from won bids and their delivery
schedules.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ContractService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* ``ContractModel`` is versioned (``row_version``); logging a delivery
  is a conditional UPDATE of the contract row.
* A bid materializes at most one contract (unique ``bid_id``).
* Deliveries are synced in place by id so their identity survives every
  save; ``late`` is never stored.
* ``delivered_volume``, ``on_track`` and ``outstanding_invoices`` are
  caches re-derived by the engine on every change.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saf_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# ContractModel
# ---------------------------------------------------------------------------


class ContractModel(TrackedBase):
    """A buyer supply contract with its delivery schedule."""

    __tablename__ = "saf_contracts"

    __table_args__ = (
        Index("idx_contract_status", "status"),
        Index("idx_contract_rfq", "rfq_id"),
    )

    contract_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    buyer: Mapped[str] = mapped_column(String(200), nullable=False)
    total_volume: Mapped[Decimal] = mapped_column(nullable=False)
    contract_value: Mapped[Decimal] = mapped_column(nullable=False)
    effective_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    volume_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="MT")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    pricing_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")
    tolerance_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("10"))
    incoterms: Mapped[str] = mapped_column(String(10), nullable=False, default="DAP")
    payment_terms: Mapped[str] = mapped_column(String(50), nullable=False, default="Net 30")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    bid_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("saf_bids.id"), nullable=True, unique=True,
    )
    rfq_id: Mapped[UUID | None] = mapped_column(ForeignKey("saf_quote_requests.id"), nullable=True)
    delivered_volume: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    on_track: Mapped[bool] = mapped_column(nullable=False, default=True)
    outstanding_invoices: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    row_version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version, "version_id_generator": False}

    deliveries: Mapped[list["DeliveryModel"]] = relationship(
        "DeliveryModel",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="DeliveryModel.scheduled_date",
        lazy="selectin",
    )

    def to_dto(self):
        from saf_engines.types import Contract, ContractStatus, PricingType, VolumeUnit

        return Contract(
            id=self.id,
            contract_number=self.contract_number,
            buyer=self.buyer,
            total_volume=self.total_volume,
            contract_value=self.contract_value,
            effective_date=self.effective_date,
            end_date=self.end_date,
            deliveries=tuple(
                d.to_dto() for d in sorted(self.deliveries, key=lambda d: d.scheduled_date)
            ),
            volume_unit=VolumeUnit(self.volume_unit),
            currency=self.currency,
            pricing_type=PricingType(self.pricing_type),
            tolerance_percent=self.tolerance_percent,
            incoterms=self.incoterms,
            payment_terms=self.payment_terms,
            status=ContractStatus(self.status),
            bid_id=self.bid_id,
            rfq_id=self.rfq_id,
            delivered_volume=self.delivered_volume,
            on_track=self.on_track,
            outstanding_invoices=self.outstanding_invoices,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "ContractModel":
        model = cls(
            id=dto.id,
            contract_number=dto.contract_number,
            buyer=dto.buyer,
            total_volume=dto.total_volume,
            contract_value=dto.contract_value,
            effective_date=dto.effective_date,
            volume_unit=dto.volume_unit.value,
            currency=dto.currency,
            pricing_type=dto.pricing_type.value,
            tolerance_percent=dto.tolerance_percent,
            incoterms=dto.incoterms,
            payment_terms=dto.payment_terms,
            bid_id=dto.bid_id,
            rfq_id=dto.rfq_id,
            created_by_id=created_by_id,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        """Copy status, caches and the delivery schedule from ``dto``.

        Existing delivery rows are updated in place; new ones are added and
        rows missing from ``dto`` are removed.
        """
        self.status = dto.status.value
        self.end_date = dto.end_date
        self.delivered_volume = dto.delivered_volume
        self.on_track = dto.on_track
        self.outstanding_invoices = dto.outstanding_invoices

        existing = {d.id: d for d in self.deliveries}
        wanted = {d.id for d in dto.deliveries}
        for row in list(self.deliveries):
            if row.id not in wanted:
                self.deliveries.remove(row)
        for delivery in dto.deliveries:
            row = existing.get(delivery.id)
            if row is None:
                self.deliveries.append(DeliveryModel.from_dto(delivery))
            else:
                row.apply_dto(delivery)

    def __repr__(self) -> str:
        return f"<ContractModel {self.contract_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# DeliveryModel
# ---------------------------------------------------------------------------


class DeliveryModel(TrackedBase):
    """One scheduled delivery of a contract."""

    __tablename__ = "saf_deliveries"

    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("saf_contracts.id"), nullable=False, index=True,
    )
    scheduled_date: Mapped[datetime] = mapped_column(nullable=False)
    volume: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    actual_date: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_volume: Mapped[Decimal | None] = mapped_column(nullable=True)
    # [{"batch_id": "...", "volume": "400"}, ...]
    batch_draws: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    bill_of_lading: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    invoice_date: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_date: Mapped[datetime | None] = mapped_column(nullable=True)

    contract: Mapped["ContractModel"] = relationship("ContractModel", back_populates="deliveries")

    def to_dto(self):
        from saf_engines.types import BatchDraw, Delivery, DeliveryStatus

        return Delivery(
            id=self.id,
            scheduled_date=self.scheduled_date,
            volume=self.volume,
            unit_price=self.unit_price,
            location=self.location,
            status=DeliveryStatus(self.status),
            actual_date=self.actual_date,
            actual_volume=self.actual_volume,
            batch_draws=tuple(
                BatchDraw(batch_id=UUID(d["batch_id"]), volume=Decimal(d["volume"]))
                for d in self.batch_draws or ()
            ),
            bill_of_lading=self.bill_of_lading,
            invoice_number=self.invoice_number,
            invoice_amount=self.invoice_amount,
            invoice_date=self.invoice_date,
            paid_date=self.paid_date,
        )

    @classmethod
    def from_dto(cls, dto) -> "DeliveryModel":
        model = cls(id=dto.id)
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        self.scheduled_date = dto.scheduled_date
        self.volume = dto.volume
        self.unit_price = dto.unit_price
        self.location = dto.location
        self.status = dto.status.value
        self.actual_date = dto.actual_date
        self.actual_volume = dto.actual_volume
        self.batch_draws = [
            {"batch_id": str(d.batch_id), "volume": str(d.volume)} for d in dto.batch_draws
        ]
        self.bill_of_lading = dto.bill_of_lading
        self.invoice_number = dto.invoice_number
        self.invoice_amount = dto.invoice_amount
        self.invoice_date = dto.invoice_date
        self.paid_date = dto.paid_date
