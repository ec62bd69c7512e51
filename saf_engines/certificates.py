"""
Module: saf_engines.certificates
Responsibility:
    Derive the validity of regulatory certificates from their expiry date,
    roll certificate validity up to a facility (plant) certification status,
    and derive the lifecycle status of compliance documents.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The current time is always passed in; this module never reads a clock.

Invariants enforced:
    - Classification is a total function of (expiry, now, window):
      expired if expiry < now; expiring if now <= expiry < now + window;
      valid otherwise.  Statuses are never trusted from storage.
    - Rollup: no certificates -> not_certified; all valid ->
      fully_certified; none expired and at least one expiring ->
      certificate_expiring; every certificate expired -> not_certified;
      any other mix -> partially_certified.  With
      ``expired_forces_not_certified`` any expired certificate yields
      not_certified.
    - Compliance document metadata is one of a closed set of typed
      variants; unknown keys are rejected.

Failure modes:
    - ValueError on a non-positive expiring window, naive datetimes, or
      unknown document metadata keys.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from saf_engines.tracer import traced_engine
from saf_kernel.logging_config import get_logger

logger = get_logger("engines.certificates")

DEFAULT_EXPIRING_WINDOW = timedelta(days=30)


class CertificateStatus(str, Enum):
    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class FacilityCertificationStatus(str, Enum):
    FULLY_CERTIFIED = "fully_certified"
    CERTIFICATE_EXPIRING = "certificate_expiring"
    PARTIALLY_CERTIFIED = "partially_certified"
    NOT_CERTIFIED = "not_certified"


@dataclass(frozen=True)
class CertificateScope:
    """What a certificate applies to: named plants, products, or everything."""

    plant_ids: tuple[UUID, ...] = ()
    product_ids: tuple[UUID, ...] = ()
    entire_organization: bool = False


@dataclass(frozen=True)
class Certificate:
    """A regulatory certificate held by a producer.

    ``status`` is a cache refreshed by the compliance service; callers that
    need the truth call ``classify_certificate`` with the current time.
    """

    id: UUID
    producer_id: str
    certificate_type: str
    issuing_body: str
    certificate_number: str
    issue_date: datetime
    expiry_date: datetime
    scope: CertificateScope = CertificateScope()
    name: str = ""
    status: CertificateStatus = CertificateStatus.VALID
    notes: str | None = None


def _require_aware(value: datetime, name: str) -> None:
    if value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware")


def classify_certificate(
    expiry_date: datetime,
    now: datetime,
    expiring_window: timedelta = DEFAULT_EXPIRING_WINDOW,
) -> CertificateStatus:
    """Classify one certificate by its expiry date."""
    _require_aware(expiry_date, "expiry_date")
    _require_aware(now, "now")
    if expiring_window <= timedelta(0):
        raise ValueError("expiring_window must be positive")

    if expiry_date < now:
        return CertificateStatus.EXPIRED
    if expiry_date < now + expiring_window:
        return CertificateStatus.EXPIRING
    return CertificateStatus.VALID


def aggregate_facility_status(
    statuses: Sequence[CertificateStatus],
    expired_forces_not_certified: bool = False,
) -> FacilityCertificationStatus:
    """Roll a facility's certificate statuses up into one status."""
    if not statuses:
        return FacilityCertificationStatus.NOT_CERTIFIED

    expired = sum(1 for s in statuses if s == CertificateStatus.EXPIRED)
    expiring = sum(1 for s in statuses if s == CertificateStatus.EXPIRING)

    if expired == 0 and expiring == 0:
        return FacilityCertificationStatus.FULLY_CERTIFIED
    if expired == 0:
        return FacilityCertificationStatus.CERTIFICATE_EXPIRING
    if expired == len(statuses) or expired_forces_not_certified:
        return FacilityCertificationStatus.NOT_CERTIFIED
    return FacilityCertificationStatus.PARTIALLY_CERTIFIED


def certificate_covers_plant(scope: CertificateScope, plant_id: UUID) -> bool:
    return scope.entire_organization or plant_id in scope.plant_ids


@traced_engine("certificates", "1.0", fingerprint_fields=("plant_id", "now"))
def plant_certification_status(
    plant_id: UUID,
    certificates: Iterable[Certificate],
    now: datetime,
    expiring_window: timedelta = DEFAULT_EXPIRING_WINDOW,
    expired_forces_not_certified: bool = False,
) -> FacilityCertificationStatus:
    """Certification rollup for one plant over the certificates covering it."""
    statuses = [
        classify_certificate(c.expiry_date, now, expiring_window)
        for c in certificates
        if certificate_covers_plant(c.scope, plant_id)
    ]
    return aggregate_facility_status(statuses, expired_forces_not_certified)


# =========================================================================
# Compliance documents
# =========================================================================


class DocumentType(str, Enum):
    SUSTAINABILITY_CERTIFICATION = "sustainability_certification"
    AUDIT_REPORT = "audit_report"
    EMISSIONS_DISCLOSURE = "emissions_disclosure"
    FEEDSTOCK_CERTIFICATION = "feedstock_certification"
    PRODUCTION_CERTIFICATE = "production_certificate"
    OTHER = "other"


class DocumentStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_RENEWAL = "pending_renewal"
    REVOKED = "revoked"


@dataclass(frozen=True)
class SustainabilityCertificationMetadata:
    scheme: str | None = None
    certification_body: str | None = None
    certificate_number: str | None = None
    audit_cycle_months: int | None = None


@dataclass(frozen=True)
class AuditReportMetadata:
    auditor: str | None = None
    audit_date: str | None = None
    findings_count: int | None = None
    opinion: str | None = None


@dataclass(frozen=True)
class EmissionsDisclosureMetadata:
    reporting_year: int | None = None
    methodology: str | None = None
    ci_score: Decimal | None = None  # gCO2e/MJ
    ghg_reduction: Decimal | None = None


@dataclass(frozen=True)
class FeedstockCertificationMetadata:
    feedstock_type: str | None = None
    origin_country: str | None = None
    supplier: str | None = None


@dataclass(frozen=True)
class ProductionCertificateMetadata:
    batch_number: str | None = None
    plant_id: str | None = None
    standard: str | None = None


@dataclass(frozen=True)
class OtherMetadata:
    description: str | None = None


_METADATA_VARIANTS: dict[str, type] = {
    DocumentType.SUSTAINABILITY_CERTIFICATION.value: SustainabilityCertificationMetadata,
    DocumentType.AUDIT_REPORT.value: AuditReportMetadata,
    DocumentType.EMISSIONS_DISCLOSURE.value: EmissionsDisclosureMetadata,
    DocumentType.FEEDSTOCK_CERTIFICATION.value: FeedstockCertificationMetadata,
    DocumentType.PRODUCTION_CERTIFICATE.value: ProductionCertificateMetadata,
    DocumentType.OTHER.value: OtherMetadata,
}

_DECIMAL_FIELDS = frozenset({"ci_score", "ghg_reduction"})


def register_metadata_variant(document_type: str, variant: type) -> None:
    """Register the metadata dataclass for a new document type."""
    if document_type in _METADATA_VARIANTS:
        raise ValueError(f"Metadata variant already registered for {document_type}")
    _METADATA_VARIANTS[document_type] = variant


def metadata_variant_for(document_type: str) -> type:
    try:
        return _METADATA_VARIANTS[str(getattr(document_type, "value", document_type))]
    except KeyError:
        raise ValueError(f"No metadata variant for document type {document_type!r}") from None


def parse_document_metadata(document_type: str, raw: Mapping[str, Any] | None) -> Any:
    """Build the typed metadata variant for ``document_type`` from a mapping.

    Raises ValueError on keys the variant does not declare.
    """
    variant = metadata_variant_for(document_type)
    raw = dict(raw or {})
    known = {f.name for f in fields(variant)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(
            f"Unknown metadata keys for {variant.__name__}: {', '.join(unknown)}"
        )
    for key in _DECIMAL_FIELDS & set(raw):
        if raw[key] is not None:
            raw[key] = Decimal(str(raw[key]))
    return variant(**raw)


def metadata_to_dict(metadata: Any) -> dict[str, Any]:
    """Inverse of ``parse_document_metadata``; drops unset fields."""
    if metadata is None:
        return {}
    result: dict[str, Any] = {}
    for f in fields(metadata):
        value = getattr(metadata, f.name)
        if value is None:
            continue
        result[f.name] = str(value) if isinstance(value, Decimal) else value
    return result


@dataclass(frozen=True)
class ComplianceDocument:
    """A compliance document with typed, per-type metadata."""

    id: UUID
    document_type: DocumentType
    title: str
    issue_date: datetime
    producer_id: str | None = None
    expiry_date: datetime | None = None
    status: DocumentStatus = DocumentStatus.ACTIVE
    metadata: Any = None
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.metadata is not None:
            expected = metadata_variant_for(self.document_type)
            if not isinstance(self.metadata, expected):
                raise TypeError(
                    f"{self.document_type} documents carry {expected.__name__} metadata, "
                    f"got {type(self.metadata).__name__}"
                )


def derive_document_status(document: ComplianceDocument, now: datetime) -> DocumentStatus:
    """Active documents past their expiry become expired; other states stand."""
    _require_aware(now, "now")
    if (
        document.status == DocumentStatus.ACTIVE
        and document.expiry_date is not None
        and now > document.expiry_date
    ):
        return DocumentStatus.EXPIRED
    return document.status
