"""
Compliance Module Service (``saf_modules.compliance.service``).

Responsibility
--------------
Certificates and compliance documents: registration, status refresh
against the clock, plant certification rollup, and the document renewal
and revocation lifecycle.

Architecture position
---------------------
**Modules layer** -- thin glue over ``saf_engines.certificates``.  Runs
independently of the volume ledger and the bid pipeline.

Invariants enforced
-------------------
* Cached statuses are always the classifier's verdict for the clock at
  refresh time; a refresh is idempotent.
* Document status moves other than expiry are checked against
  ``DOCUMENT_WORKFLOW``; revoked documents never change again.
* Document metadata is validated against its type's variant before it is
  stored.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from saf_engines.certificates import (
    Certificate,
    CertificateScope,
    ComplianceDocument,
    DocumentStatus,
    DocumentType,
    FacilityCertificationStatus,
    classify_certificate,
    derive_document_status,
    parse_document_metadata,
    plant_certification_status,
)
from saf_kernel.domain.clock import Clock
from saf_kernel.domain.results import OperationResult
from saf_kernel.logging_config import get_logger
from saf_kernel.services.base import BaseService
from saf_modules.compliance.config import ComplianceConfig
from saf_modules.compliance.orm import CertificateModel, ComplianceDocumentModel
from saf_modules.compliance.workflows import DOCUMENT_WORKFLOW
from saf_modules.production.orm import PlantModel

logger = get_logger("modules.compliance.service")


class ComplianceService(BaseService):
    """Certificates, plant certification and compliance documents."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ComplianceConfig | None = None,
    ):
        self._config = config or ComplianceConfig()
        super().__init__(session, clock=clock, max_attempts=self._config.max_attempts)

    # =====================================================================
    # Certificates
    # =====================================================================

    def register_certificate(
        self,
        producer_id: str,
        certificate_type: str,
        issuing_body: str,
        certificate_number: str,
        issue_date: datetime,
        expiry_date: datetime,
        scope: CertificateScope | None = None,
        name: str = "",
        notes: str | None = None,
        certificate_id: UUID | None = None,
    ) -> OperationResult[Certificate]:
        if expiry_date < issue_date:
            raise ValueError("expiry_date precedes issue_date")
        new_id = certificate_id or uuid4()

        def work() -> Certificate:
            certificate = Certificate(
                id=new_id,
                producer_id=producer_id,
                certificate_type=certificate_type,
                issuing_body=issuing_body,
                certificate_number=certificate_number,
                issue_date=issue_date,
                expiry_date=expiry_date,
                scope=scope or CertificateScope(),
                name=name,
                status=classify_certificate(
                    expiry_date, self._clock.now(), self._config.expiring_window,
                ),
                notes=notes,
            )
            self._repo.save(CertificateModel.from_dto(certificate))
            logger.info("certificate_registered", extra={
                "certificate_id": str(new_id),
                "certificate_number": certificate_number,
                "status": certificate.status.value,
            })
            return certificate

        return self._execute("register_certificate", work, entity_id=new_id)

    def get_certificate(self, certificate_id: UUID) -> Certificate:
        return self._repo.load(CertificateModel, certificate_id).to_dto()

    def list_certificates(self, producer_id: str | None = None) -> list[Certificate]:
        filters = {"producer_id": producer_id} if producer_id is not None else {}
        return [m.to_dto() for m in self._repo.query(CertificateModel, **filters)]

    def refresh_certificate_statuses(
        self,
        now: datetime | None = None,
    ) -> OperationResult[dict[UUID, str]]:
        """Re-classify every certificate; returns the ids whose status changed."""

        def work() -> dict[UUID, str]:
            at = now or self._clock.now()
            changed: dict[UUID, str] = {}
            for model in self._repo.query(CertificateModel):
                status = classify_certificate(
                    model.expiry_date, at, self._config.expiring_window,
                ).value
                if status != model.status:
                    model.status = status
                    self._repo.save(model)
                    changed[model.id] = status
            logger.info("certificate_statuses_refreshed", extra={
                "changed": len(changed),
                "as_of": at.isoformat(),
            })
            return changed

        return self._execute("refresh_certificate_statuses", work)

    def plant_status(
        self,
        plant_id: UUID,
        now: datetime | None = None,
    ) -> FacilityCertificationStatus:
        """Certification rollup over the certificates covering the plant."""
        plant = self._repo.load(PlantModel, plant_id)
        if plant.producer_id:
            certificates = [
                m.to_dto()
                for m in self._repo.query(CertificateModel, producer_id=plant.producer_id)
            ]
        else:
            # No owning producer: only certificates that name the plant count.
            certificates = [
                c
                for c in (m.to_dto() for m in self._repo.query(CertificateModel))
                if plant_id in c.scope.plant_ids
            ]
        return plant_certification_status(
            plant_id,
            certificates,
            now or self._clock.now(),
            expiring_window=self._config.expiring_window,
            expired_forces_not_certified=self._config.expired_forces_not_certified,
        )

    # =====================================================================
    # Compliance documents
    # =====================================================================

    def register_document(
        self,
        document_type: DocumentType,
        title: str,
        issue_date: datetime,
        producer_id: str | None = None,
        expiry_date: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
        tags: Sequence[str] = (),
        document_id: UUID | None = None,
    ) -> OperationResult[ComplianceDocument]:
        """Store a document.  Unknown metadata keys raise ``ValueError``."""
        document = ComplianceDocument(
            id=document_id or uuid4(),
            document_type=document_type,
            title=title,
            issue_date=issue_date,
            producer_id=producer_id,
            expiry_date=expiry_date,
            metadata=parse_document_metadata(document_type, metadata),
            tags=tuple(tags),
        )

        def work() -> ComplianceDocument:
            stored = replace(document, status=derive_document_status(document, self._clock.now()))
            self._repo.save(ComplianceDocumentModel.from_dto(stored))
            return stored

        return self._execute("register_document", work, entity_id=document.id)

    def get_document(self, document_id: UUID) -> ComplianceDocument:
        return self._repo.load(ComplianceDocumentModel, document_id).to_dto()

    def list_documents(
        self,
        document_type: DocumentType | None = None,
        status: DocumentStatus | None = None,
    ) -> list[ComplianceDocument]:
        filters: dict = {}
        if document_type is not None:
            filters["document_type"] = document_type.value
        if status is not None:
            filters["status"] = status.value
        return [m.to_dto() for m in self._repo.query(ComplianceDocumentModel, **filters)]

    def refresh_document_statuses(
        self,
        now: datetime | None = None,
    ) -> OperationResult[list[UUID]]:
        """Expire active documents past their expiry date."""

        def work() -> list[UUID]:
            at = now or self._clock.now()
            expired: list[UUID] = []
            query = self._repo.query(
                ComplianceDocumentModel, status=DocumentStatus.ACTIVE.value,
            )
            for model in query:
                if derive_document_status(model.to_dto(), at) == DocumentStatus.EXPIRED:
                    self._move(model, "expire")
                    expired.append(model.id)
            return expired

        return self._execute("refresh_document_statuses", work)

    def _move(self, model: ComplianceDocumentModel, action: str) -> None:
        transition = DOCUMENT_WORKFLOW.require_transition(model.status, action, model.id)
        model.status = transition.to_state
        self._repo.save(model)

    def _transition(
        self,
        document_id: UUID,
        action: str,
        **changes: Any,
    ) -> OperationResult[ComplianceDocument]:
        def work() -> ComplianceDocument:
            model = self._repo.load(ComplianceDocumentModel, document_id, for_update=True)
            for attr, value in changes.items():
                setattr(model, attr, value)
            self._move(model, action)
            return model.to_dto()

        return self._execute(f"document_{action}", work, entity_id=document_id)

    def request_renewal(self, document_id: UUID) -> OperationResult[ComplianceDocument]:
        return self._transition(document_id, "request_renewal")

    def renew_document(
        self,
        document_id: UUID,
        expiry_date: datetime,
        issue_date: datetime | None = None,
    ) -> OperationResult[ComplianceDocument]:
        """Close a renewal with the new validity period."""
        if issue_date is not None and expiry_date < issue_date:
            raise ValueError("expiry_date precedes issue_date")
        changes: dict[str, Any] = {"expiry_date": expiry_date}
        if issue_date is not None:
            changes["issue_date"] = issue_date
        return self._transition(document_id, "renew", **changes)

    def revoke_document(
        self,
        document_id: UUID,
        reason: str,
        actor_id: UUID | None = None,
    ) -> OperationResult[ComplianceDocument]:
        if not reason:
            raise ValueError("A revocation needs a reason")
        result = self._transition(document_id, "revoke", updated_by_id=actor_id)
        if result.is_success:
            logger.warning("document_revoked", extra={
                "document_id": str(document_id),
                "reason": reason,
                "actor_id": str(actor_id) if actor_id else None,
            })
        return result
