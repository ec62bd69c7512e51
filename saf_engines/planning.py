"""
Module: saf_engines.planning
Responsibility:
    Plan a bid's supply: check plant allocations against declared plant
    capacity and compute the bid's blended GHG reduction.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Per plant and year, the planned volume is at most the plant's
      declared annual capacity.  Planned capacity is not consumed; the
      volume ledger is untouched at bid time.
    - Blended GHG reduction is the volume-weighted mean of the plants'
      GHG reductions, rounded half-up to two decimals; zero for an empty
      plan.

Failure modes:
    - InsufficientCapacityError naming the plant and year that overran.
    - ValueError when an allocation references a plant with no declared
      capacity.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from saf_engines.tracer import traced_engine
from saf_engines.types import ZERO, PlantAllocation
from saf_kernel.exceptions import InsufficientCapacityError
from saf_kernel.logging_config import get_logger

logger = get_logger("engines.planning")

_GHG_QUANTUM = Decimal("0.01")


@traced_engine("planning", "1.0", fingerprint_fields=("plant_allocations", "capacities"))
def check_plant_capacity(
    plant_allocations: Sequence[PlantAllocation],
    capacities: Mapping[UUID, Decimal],
) -> None:
    """Raise if any plant/year plan exceeds the plant's declared capacity."""
    planned: dict[tuple[UUID, int], Decimal] = defaultdict(lambda: ZERO)
    names: dict[UUID, str] = {}
    for pa in plant_allocations:
        if pa.plant_id not in capacities:
            raise ValueError(f"No declared capacity for plant {pa.plant_id}")
        names[pa.plant_id] = pa.plant_name
        for yv in pa.allocations:
            planned[(pa.plant_id, yv.year)] += yv.volume

    for (plant_id, year), volume in sorted(planned.items(), key=lambda kv: (str(kv[0][0]), kv[0][1])):
        capacity = capacities[plant_id]
        if volume > capacity:
            raise InsufficientCapacityError(
                source_id=f"plant {names[plant_id]} year {year}",
                requested_volume=volume,
                available_volume=capacity,
            )


def blended_ghg_reduction(plant_allocations: Sequence[PlantAllocation]) -> Decimal:
    total = sum((pa.total_volume for pa in plant_allocations), ZERO)
    if total == ZERO:
        return ZERO
    weighted = sum(
        (pa.total_volume * pa.ghg_reduction for pa in plant_allocations),
        ZERO,
    )
    return (weighted / total).quantize(_GHG_QUANTUM, rounding=ROUND_HALF_UP)
