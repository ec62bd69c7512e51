"""
SQLAlchemy ORM persistence models for the Compliance module.

Responsibility
--------------
Persist producer certificates (with their coverage scope) and compliance
documents with typed per-type metadata.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ComplianceService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* Certificate ``status`` is a cache of the classifier's verdict; it is
  refreshed, never edited by hand.
* Document metadata is stored as JSON and always read back through the
  registered variant for its document type, so unknown keys never load.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from saf_kernel.db.base import TrackedBase


class CertificateModel(TrackedBase):
    """A regulatory certificate held by a producer."""

    __tablename__ = "saf_certificates"

    __table_args__ = (
        Index("idx_certificate_producer", "producer_id"),
        Index("idx_certificate_expiry", "expiry_date"),
    )

    producer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    certificate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    issuing_body: Mapped[str] = mapped_column(String(200), nullable=False)
    certificate_number: Mapped[str] = mapped_column(String(100), nullable=False)
    issue_date: Mapped[datetime] = mapped_column(nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(nullable=False)
    scope_plant_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    scope_product_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    entire_organization: Mapped[bool] = mapped_column(nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="valid")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    row_version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version, "version_id_generator": False}

    def to_dto(self):
        from saf_engines.certificates import Certificate, CertificateScope, CertificateStatus

        return Certificate(
            id=self.id,
            producer_id=self.producer_id,
            certificate_type=self.certificate_type,
            issuing_body=self.issuing_body,
            certificate_number=self.certificate_number,
            issue_date=self.issue_date,
            expiry_date=self.expiry_date,
            scope=CertificateScope(
                plant_ids=tuple(UUID(p) for p in self.scope_plant_ids or ()),
                product_ids=tuple(UUID(p) for p in self.scope_product_ids or ()),
                entire_organization=self.entire_organization,
            ),
            name=self.name,
            status=CertificateStatus(self.status),
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "CertificateModel":
        return cls(
            id=dto.id,
            producer_id=dto.producer_id,
            name=dto.name,
            certificate_type=dto.certificate_type,
            issuing_body=dto.issuing_body,
            certificate_number=dto.certificate_number,
            issue_date=dto.issue_date,
            expiry_date=dto.expiry_date,
            scope_plant_ids=[str(p) for p in dto.scope.plant_ids],
            scope_product_ids=[str(p) for p in dto.scope.product_ids],
            entire_organization=dto.scope.entire_organization,
            status=dto.status.value,
            notes=dto.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<CertificateModel {self.certificate_number} [{self.status}]>"


class ComplianceDocumentModel(TrackedBase):
    """A compliance document; ``metadata`` column holds the typed variant."""

    __tablename__ = "saf_compliance_documents"

    __table_args__ = (
        Index("idx_document_type", "document_type"),
        Index("idx_document_status", "status"),
    )

    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    producer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    issue_date: Mapped[datetime] = mapped_column(nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    # ``metadata`` is reserved on declarative classes.
    document_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    row_version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": row_version, "version_id_generator": False}

    def to_dto(self):
        from saf_engines.certificates import (
            ComplianceDocument,
            DocumentStatus,
            DocumentType,
            parse_document_metadata,
        )

        return ComplianceDocument(
            id=self.id,
            document_type=DocumentType(self.document_type),
            title=self.title,
            issue_date=self.issue_date,
            producer_id=self.producer_id,
            expiry_date=self.expiry_date,
            status=DocumentStatus(self.status),
            metadata=parse_document_metadata(self.document_type, self.document_metadata),
            tags=tuple(self.tags or ()),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "ComplianceDocumentModel":
        from saf_engines.certificates import metadata_to_dict

        return cls(
            id=dto.id,
            document_type=dto.document_type.value,
            title=dto.title,
            producer_id=dto.producer_id,
            issue_date=dto.issue_date,
            expiry_date=dto.expiry_date,
            status=dto.status.value,
            document_metadata=metadata_to_dict(dto.metadata),
            tags=list(dto.tags),
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<ComplianceDocumentModel {self.document_type} {self.title!r} [{self.status}]>"
