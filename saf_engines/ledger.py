"""
Module: saf_engines.ledger
Responsibility:
    The volume ledger of production batches.  Allocates physical batch
    capacity to consuming contracts, releases it again, and derives the
    batch totals and status from the allocation list.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Every operation returns a NEW ``ProductionBatch``; inputs are never
    mutated.  ``saf_modules.production`` persists the result under an
    optimistic version check.

Invariants enforced:
    - Conservation: allocated_volume + available_volume == volume.
    - Non-negativity: available_volume >= 0 after every allocation, and
      no allocation entry is ever zero or negative.
    - Status derivability: status is a function of (volume,
      allocated_volume, shipped_at) alone; ``recompute_batch`` over the
      list equals the incrementally maintained values.
    - Deallocation releases the newest matching entries first.

Failure modes:
    - InsufficientCapacityError when the requested volume exceeds available.
    - AllocationNotFoundError when the contract holds less than requested.
    - IllegalTransitionError when shipping a batch that is not fully
      allocated, or allocating against a shipped batch.
    - ValueError on non-positive volumes (programmer error).

Audit relevance:
    Each BatchAllocation keeps the consuming contract number and the
    allocation time, so a batch's ledger can be read without the contract.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from saf_engines.tracer import traced_engine
from saf_engines.types import (
    ZERO,
    BatchAllocation,
    BatchStatus,
    ProductionBatch,
)
from saf_kernel.exceptions import (
    AllocationNotFoundError,
    IllegalTransitionError,
    InsufficientCapacityError,
)
from saf_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


@dataclass(frozen=True)
class ContractBatchShare:
    """How much of one batch a contract currently holds."""

    batch_id: UUID
    batch_number: str
    volume: Decimal


def _require_positive(volume: Decimal) -> None:
    if not isinstance(volume, Decimal):
        raise TypeError(f"volume must be Decimal, got {type(volume).__name__}")
    if volume <= ZERO:
        raise ValueError(f"volume must be positive (got {volume})")


def derive_batch_status(
    volume: Decimal,
    allocated_volume: Decimal,
    shipped_at: datetime | None = None,
) -> BatchStatus:
    """Batch status from its totals; ``delivered`` once shipped."""
    if shipped_at is not None:
        return BatchStatus.DELIVERED
    if allocated_volume == ZERO:
        return BatchStatus.AVAILABLE
    if volume - allocated_volume <= ZERO:
        return BatchStatus.FULLY_ALLOCATED
    return BatchStatus.PARTIALLY_ALLOCATED


def recompute_batch(batch: ProductionBatch) -> ProductionBatch:
    """Re-derive allocated/available volume and status from the allocation list."""
    allocated = sum((a.volume for a in batch.allocations), ZERO)
    return replace(
        batch,
        allocated_volume=allocated,
        available_volume=batch.volume - allocated,
        status=derive_batch_status(batch.volume, allocated, batch.shipped_at),
    )


@traced_engine(
    "ledger", "1.0",
    fingerprint_fields=("batch", "contract_id", "volume"),
)
def allocate(
    batch: ProductionBatch,
    contract_id: UUID,
    contract_number: str,
    volume: Decimal,
    now: datetime,
) -> ProductionBatch:
    """Consume ``volume`` of the batch for a contract.

    Raises:
        InsufficientCapacityError: volume exceeds the available volume.
        IllegalTransitionError: the batch has already shipped.
    """
    _require_positive(volume)
    if batch.shipped_at is not None:
        raise IllegalTransitionError(
            entity_type="production_batch",
            entity_id=str(batch.id),
            from_state=BatchStatus.DELIVERED.value,
            action="allocate",
        )
    if volume > batch.available_volume:
        raise InsufficientCapacityError(
            source_id=f"batch {batch.batch_number}",
            requested_volume=volume,
            available_volume=batch.available_volume,
        )

    entry = BatchAllocation(
        contract_id=contract_id,
        contract_number=contract_number,
        volume=volume,
        allocated_at=now,
    )
    allocated = batch.allocated_volume + volume
    result = replace(
        batch,
        allocations=batch.allocations + (entry,),
        allocated_volume=allocated,
        available_volume=batch.volume - allocated,
        status=derive_batch_status(batch.volume, allocated, batch.shipped_at),
    )

    logger.debug("batch_allocated", extra={
        "batch_id": str(batch.id),
        "contract_id": str(contract_id),
        "volume": str(volume),
        "available_volume": str(result.available_volume),
    })
    return result


@traced_engine(
    "ledger", "1.0",
    fingerprint_fields=("batch", "contract_id", "volume"),
)
def deallocate(
    batch: ProductionBatch,
    contract_id: UUID,
    volume: Decimal,
) -> ProductionBatch:
    """Release ``volume`` held by a contract, newest entries first.

    Raises:
        AllocationNotFoundError: the contract holds less than ``volume``.
    """
    _require_positive(volume)
    held = sum(
        (a.volume for a in batch.allocations if a.contract_id == contract_id),
        ZERO,
    )
    if held < volume:
        raise AllocationNotFoundError(
            batch_id=str(batch.id),
            contract_id=str(contract_id),
            requested_volume=volume,
            allocated_volume=held,
        )

    # Newest first: latest allocated_at, ties broken by list position.
    order = sorted(
        (i for i, a in enumerate(batch.allocations) if a.contract_id == contract_id),
        key=lambda i: (batch.allocations[i].allocated_at, i),
        reverse=True,
    )
    remaining = volume
    reduced: dict[int, Decimal] = {}
    for i in order:
        if remaining == ZERO:
            break
        take = min(batch.allocations[i].volume, remaining)
        reduced[i] = batch.allocations[i].volume - take
        remaining -= take

    entries: list[BatchAllocation] = []
    for i, a in enumerate(batch.allocations):
        if i not in reduced:
            entries.append(a)
        elif reduced[i] > ZERO:
            entries.append(replace(a, volume=reduced[i]))

    allocated = batch.allocated_volume - volume
    return replace(
        batch,
        allocations=tuple(entries),
        allocated_volume=allocated,
        available_volume=batch.volume - allocated,
        status=derive_batch_status(batch.volume, allocated, batch.shipped_at),
    )


def mark_shipped(batch: ProductionBatch, now: datetime) -> ProductionBatch:
    """Move a fully allocated batch to ``delivered``."""
    if batch.status != BatchStatus.FULLY_ALLOCATED:
        raise IllegalTransitionError(
            entity_type="production_batch",
            entity_id=str(batch.id),
            from_state=batch.status.value,
            action="mark_shipped",
            reason="only fully allocated batches can ship",
        )
    return replace(batch, shipped_at=now, status=BatchStatus.DELIVERED)


def allocation_held_by(batch: ProductionBatch, contract_id: UUID) -> Decimal:
    return sum(
        (a.volume for a in batch.allocations if a.contract_id == contract_id),
        ZERO,
    )


def allocations_for_contract(
    batches: Iterable[ProductionBatch],
    contract_id: UUID,
) -> tuple[ContractBatchShare, ...]:
    """Per-batch volume a contract holds, in batch-number order."""
    shares = []
    for batch in batches:
        held = allocation_held_by(batch, contract_id)
        if held > ZERO:
            shares.append(ContractBatchShare(batch.id, batch.batch_number, held))
    return tuple(sorted(shares, key=lambda s: s.batch_number))
