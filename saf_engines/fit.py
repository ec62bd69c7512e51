"""
Module: saf_engines.fit
Responsibility:
    Score how well a producer's declared capability fits a buyer's quote
    request: ``good``, ``possible`` or ``cannot``.  Advisory only; the
    verdict never blocks bidding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The verdict is the worst of three partial verdicts (fuel type,
      volume, GHG).  Each partial verdict is monotonic in its input, so
      raising the requested volume or the required GHG reduction can never
      improve the overall verdict.

Failure modes:
    - ValueError on a good_volume_ratio outside (0, 1] or negative headroom.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from saf_engines.tracer import traced_engine
from saf_engines.types import FitStatus, FuelType, QuoteRequest
from saf_kernel.logging_config import get_logger

logger = get_logger("engines.fit")

_RANK = {FitStatus.GOOD: 0, FitStatus.POSSIBLE: 1, FitStatus.CANNOT: 2}


@dataclass(frozen=True)
class FitThresholds:
    """Tunable boundaries for the fit verdict."""

    good_volume_ratio: Decimal = Decimal("0.5")
    ghg_headroom: Decimal = Decimal("5")

    def __post_init__(self) -> None:
        if not Decimal("0") < self.good_volume_ratio <= Decimal("1"):
            raise ValueError("good_volume_ratio must be within (0, 1]")
        if self.ghg_headroom < Decimal("0"):
            raise ValueError("ghg_headroom must be non-negative")


@dataclass(frozen=True)
class ProducerCapability:
    """What a producer can offer, usually summed over its active plants."""

    max_annual_volume: Decimal
    best_ghg_reduction: Decimal
    fuel_types: frozenset[FuelType]


def worst(*verdicts: FitStatus) -> FitStatus:
    return max(verdicts, key=lambda v: _RANK[v])


def volume_verdict(
    requested: Decimal,
    capacity: Decimal,
    thresholds: FitThresholds,
) -> FitStatus:
    if capacity <= 0:
        return FitStatus.GOOD if requested <= 0 else FitStatus.CANNOT
    ratio = requested / capacity
    if ratio <= thresholds.good_volume_ratio:
        return FitStatus.GOOD
    if ratio <= 1:
        return FitStatus.POSSIBLE
    return FitStatus.CANNOT


def ghg_verdict(
    required: Decimal,
    best: Decimal,
    thresholds: FitThresholds,
) -> FitStatus:
    if required <= best - thresholds.ghg_headroom:
        return FitStatus.GOOD
    if required <= best:
        return FitStatus.POSSIBLE
    return FitStatus.CANNOT


@traced_engine("fit", "1.0", fingerprint_fields=("request", "capability", "thresholds"))
def score_fit(
    request: QuoteRequest,
    capability: ProducerCapability,
    thresholds: FitThresholds | None = None,
) -> FitStatus:
    """Verdict for one quote request against one producer capability."""
    thresholds = thresholds or FitThresholds()

    if request.fuel_type not in capability.fuel_types:
        return FitStatus.CANNOT

    # Multi-year requests are judged on their busiest year.
    peak = max(
        (line.volume for line in request.volume_breakdown),
        default=request.total_volume,
    )
    return worst(
        volume_verdict(peak, capability.max_annual_volume, thresholds),
        ghg_verdict(request.min_ghg_reduction, capability.best_ghg_reduction, thresholds),
    )
