"""
Module: saf_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for ``saf_modules``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import saf_kernel (domain types, exceptions, logging) and
    sibling engine modules.  MUST NOT import saf_modules or saf_config.

Invariants enforced:
    - Purity: engines NEVER read the clock.  ``now`` is passed in by the
      calling service.
    - Decimal-only arithmetic for volumes, prices and percentages.
    - Immutability: engines take frozen dataclasses and return new ones.

Audit relevance:
    Engine entry points are wrapped by ``@traced_engine`` (see
    ``saf_engines.tracer``), emitting SAF_ENGINE_TRACE records with an
    input fingerprint and duration.
"""

from saf_kernel.logging_config import get_logger

logger = get_logger("engines")

from saf_engines.certificates import (  # noqa: E402
    Certificate,
    CertificateScope,
    CertificateStatus,
    ComplianceDocument,
    DocumentStatus,
    DocumentType,
    FacilityCertificationStatus,
    aggregate_facility_status,
    certificate_covers_plant,
    classify_certificate,
    derive_document_status,
    plant_certification_status,
)
from saf_engines.fit import FitThresholds, ProducerCapability, score_fit  # noqa: E402
from saf_engines.ledger import (  # noqa: E402
    allocate,
    allocations_for_contract,
    deallocate,
    derive_batch_status,
    mark_shipped,
    recompute_batch,
)
from saf_engines.planning import blended_ghg_reduction, check_plant_capacity  # noqa: E402
from saf_engines.types import (  # noqa: E402
    BatchAllocation,
    BatchDraw,
    BatchStatus,
    Bid,
    BidStatus,
    Contract,
    ContractStatus,
    Delivery,
    DeliveryStatus,
    FitStatus,
    FuelType,
    Plant,
    PlantAllocation,
    PricingOffer,
    ProductionBatch,
    QuoteRequest,
    RfqStatus,
    VolumeBreakdown,
    YearPrice,
    YearVolume,
)

__all__ = [
    "BatchAllocation",
    "BatchDraw",
    "BatchStatus",
    "Bid",
    "BidStatus",
    "Certificate",
    "CertificateScope",
    "CertificateStatus",
    "ComplianceDocument",
    "Contract",
    "ContractStatus",
    "Delivery",
    "DeliveryStatus",
    "DocumentStatus",
    "DocumentType",
    "FacilityCertificationStatus",
    "FitStatus",
    "FitThresholds",
    "FuelType",
    "Plant",
    "PlantAllocation",
    "PricingOffer",
    "ProducerCapability",
    "ProductionBatch",
    "QuoteRequest",
    "RfqStatus",
    "VolumeBreakdown",
    "YearPrice",
    "YearVolume",
    "aggregate_facility_status",
    "allocate",
    "allocations_for_contract",
    "blended_ghg_reduction",
    "certificate_covers_plant",
    "check_plant_capacity",
    "classify_certificate",
    "deallocate",
    "derive_batch_status",
    "derive_document_status",
    "mark_shipped",
    "plant_certification_status",
    "recompute_batch",
    "score_fit",
]
