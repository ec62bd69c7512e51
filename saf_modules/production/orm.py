"""
SQLAlchemy ORM persistence models for the Production module.

Responsibility
--------------
Persist plants, production batches and the batch allocation ledger.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProductionService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All volumes use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* ``ProductionBatchModel`` is versioned (``row_version``); every save is
  a conditional UPDATE, so concurrent allocations cannot both succeed
  against the same observed capacity.
* ``BatchAllocationModel.contract_id`` references a contract without an
  FK: the ledger records consumption but never owns the contract.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saf_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PlantModel
# ---------------------------------------------------------------------------


class PlantModel(TrackedBase):
    """A production facility with declared annual capacity."""

    __tablename__ = "saf_plants"

    __table_args__ = (
        Index("idx_plant_producer", "producer_id"),
    )

    producer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    pathway: Mapped[str] = mapped_column(String(50), nullable=False)
    primary_feedstock: Mapped[str] = mapped_column(String(100), nullable=False)
    annual_capacity: Mapped[Decimal] = mapped_column(nullable=False)
    ghg_reduction: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")

    def to_dto(self):
        from saf_engines.types import Plant, PlantStatus

        return Plant(
            id=self.id,
            name=self.name,
            location=self.location,
            pathway=self.pathway,
            primary_feedstock=self.primary_feedstock,
            annual_capacity=self.annual_capacity,
            ghg_reduction=self.ghg_reduction,
            status=PlantStatus(self.status),
            producer_id=self.producer_id,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "PlantModel":
        return cls(
            id=dto.id,
            producer_id=dto.producer_id,
            name=dto.name,
            location=dto.location,
            pathway=dto.pathway,
            primary_feedstock=dto.primary_feedstock,
            annual_capacity=dto.annual_capacity,
            ghg_reduction=dto.ghg_reduction,
            status=dto.status.value,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<PlantModel {self.name} [{self.status}]>"


# ---------------------------------------------------------------------------
# ProductionBatchModel
# ---------------------------------------------------------------------------


class ProductionBatchModel(TrackedBase):
    """
    A logged production batch and its cached allocation totals.

    Guarantees:
        - ``batch_number`` is unique.
        - ``allocated_volume`` / ``available_volume`` / ``status`` are
          written only from an engine-produced ``ProductionBatch``.
    """

    __tablename__ = "saf_production_batches"

    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_production_batch_number"),
        Index("idx_batch_plant", "plant_id"),
        Index("idx_batch_status", "status"),
    )

    batch_number: Mapped[str] = mapped_column(String(50), nullable=False)
    plant_id: Mapped[UUID] = mapped_column(ForeignKey("saf_plants.id"), nullable=False)
    volume: Mapped[Decimal] = mapped_column(nullable=False)
    volume_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="MT")
    production_date: Mapped[datetime] = mapped_column(nullable=False)
    feedstock_type: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    ghg_reduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    meets_astm: Mapped[bool] = mapped_column(nullable=False, default=True)
    meets_iscc: Mapped[bool] = mapped_column(nullable=False, default=True)
    meets_corsia: Mapped[bool] = mapped_column(nullable=False, default=True)
    allocated_volume: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    available_volume: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="available")
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)
    row_version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version, "version_id_generator": False}

    allocations: Mapped[list["BatchAllocationModel"]] = relationship(
        "BatchAllocationModel",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchAllocationModel.position",
        lazy="selectin",
    )

    def to_dto(self):
        from saf_engines.types import BatchStatus, ProductionBatch, VolumeUnit

        return ProductionBatch(
            id=self.id,
            batch_number=self.batch_number,
            plant_id=self.plant_id,
            volume=self.volume,
            production_date=self.production_date,
            volume_unit=VolumeUnit(self.volume_unit),
            feedstock_type=self.feedstock_type,
            ghg_reduction=self.ghg_reduction,
            meets_astm=self.meets_astm,
            meets_iscc=self.meets_iscc,
            meets_corsia=self.meets_corsia,
            allocations=tuple(a.to_dto() for a in self.allocations),
            allocated_volume=self.allocated_volume,
            available_volume=self.available_volume,
            status=BatchStatus(self.status),
            shipped_at=self.shipped_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "ProductionBatchModel":
        model = cls(
            id=dto.id,
            batch_number=dto.batch_number,
            plant_id=dto.plant_id,
            volume=dto.volume,
            volume_unit=dto.volume_unit.value,
            production_date=dto.production_date,
            feedstock_type=dto.feedstock_type,
            ghg_reduction=dto.ghg_reduction,
            meets_astm=dto.meets_astm,
            meets_iscc=dto.meets_iscc,
            meets_corsia=dto.meets_corsia,
            created_by_id=created_by_id,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto) -> None:
        """Copy the engine-owned ledger state of ``dto`` onto this row."""
        self.allocated_volume = dto.allocated_volume
        self.available_volume = dto.available_volume
        self.status = dto.status.value
        self.shipped_at = dto.shipped_at
        self.allocations = [
            BatchAllocationModel.from_dto(a, position=i)
            for i, a in enumerate(dto.allocations)
        ]

    def __repr__(self) -> str:
        return f"<ProductionBatchModel {self.batch_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# BatchAllocationModel
# ---------------------------------------------------------------------------


class BatchAllocationModel(TrackedBase):
    """One contract's consumption of a batch."""

    __tablename__ = "saf_batch_allocations"

    __table_args__ = (
        Index("idx_batch_allocation_batch", "batch_id"),
        Index("idx_batch_allocation_contract", "contract_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("saf_production_batches.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    contract_id: Mapped[UUID] = mapped_column(nullable=False)
    contract_number: Mapped[str] = mapped_column(String(50), nullable=False)
    volume: Mapped[Decimal] = mapped_column(nullable=False)
    allocated_at: Mapped[datetime] = mapped_column(nullable=False)

    batch: Mapped["ProductionBatchModel"] = relationship(
        "ProductionBatchModel",
        back_populates="allocations",
    )

    def to_dto(self):
        from saf_engines.types import BatchAllocation

        return BatchAllocation(
            contract_id=self.contract_id,
            contract_number=self.contract_number,
            volume=self.volume,
            allocated_at=self.allocated_at,
        )

    @classmethod
    def from_dto(cls, dto, position: int = 0) -> "BatchAllocationModel":
        return cls(
            position=position,
            contract_id=dto.contract_id,
            contract_number=dto.contract_number,
            volume=dto.volume,
            allocated_at=dto.allocated_at,
        )

    def __repr__(self) -> str:
        return f"<BatchAllocationModel {self.contract_number} {self.volume}>"
