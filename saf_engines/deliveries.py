"""
Module: saf_engines.deliveries
Responsibility:
    Contract delivery tracking: materialize a delivery schedule from a won
    bid, validate and log deliveries against tolerance, plan the batch
    draws that feed the volume ledger, move deliveries forward through
    invoicing and payment, and derive the contract's cached totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Batch capacity itself is consumed by ``saf_engines.ledger``; the
    contracts service runs both inside one transaction.

Invariants enforced:
    - delivered_volume == sum of actual volume over deliveries that are
      delivered, invoiced or paid, and never exceeds
      total_volume * (1 + tolerance / 100).
    - |actual - scheduled| <= scheduled * tolerance / 100 per delivery.
    - Delivery status only moves forward:
      scheduled -> delivered -> invoiced -> paid.  ``late`` is a derived
      overlay for scheduled deliveries whose date has passed; it is never
      stored.
    - on_track holds iff no delivery is still scheduled past its date.

Failure modes:
    - DeliveryNotFoundError for an unknown delivery id.
    - VolumeOutOfToleranceError on a per-delivery or contract overrun.
    - InsufficientCapacityError when greedy batch draws run dry.
    - IllegalTransitionError for moves out of the wrong contract or
      delivery status, and for materializing a bid that is not won.
    - ValueError on non-positive volumes or explicit draws that do not sum
      to the actual volume.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from saf_engines.tracer import traced_engine
from saf_engines.types import (
    ZERO,
    BatchDraw,
    Bid,
    BidStatus,
    Contract,
    ContractStatus,
    Delivery,
    DeliveryStatus,
    QuoteRequest,
)
from saf_kernel.exceptions import (
    DeliveryNotFoundError,
    IllegalTransitionError,
    InsufficientCapacityError,
    VolumeOutOfToleranceError,
)
from saf_kernel.logging_config import get_logger

logger = get_logger("engines.deliveries")

_HUNDRED = Decimal("100")

# scheduled -> delivered -> invoiced -> paid
_FORWARD = {
    DeliveryStatus.SCHEDULED: DeliveryStatus.DELIVERED,
    DeliveryStatus.DELIVERED: DeliveryStatus.INVOICED,
    DeliveryStatus.INVOICED: DeliveryStatus.PAID,
}

FULFILLED_STATUSES = frozenset({
    DeliveryStatus.DELIVERED,
    DeliveryStatus.INVOICED,
    DeliveryStatus.PAID,
})

OPEN_CONTRACT_STATUSES = (ContractStatus.SCHEDULED, ContractStatus.ACTIVE)


# =========================================================================
# Derived values
# =========================================================================


def effective_status(delivery: Delivery, now: datetime) -> DeliveryStatus:
    """Stored status with the ``late`` overlay applied."""
    if delivery.status == DeliveryStatus.SCHEDULED and delivery.scheduled_date < now:
        return DeliveryStatus.LATE
    return delivery.status


def delivered_volume(deliveries: Sequence[Delivery]) -> Decimal:
    return sum(
        (d.actual_volume or ZERO for d in deliveries if d.status in FULFILLED_STATUSES),
        ZERO,
    )


def outstanding_invoices(deliveries: Sequence[Delivery]) -> Decimal:
    return sum(
        (
            (d.actual_volume or ZERO) * d.unit_price
            for d in deliveries
            if d.status == DeliveryStatus.INVOICED
        ),
        ZERO,
    )


def is_on_track(deliveries: Sequence[Delivery], now: datetime) -> bool:
    return not any(effective_status(d, now) == DeliveryStatus.LATE for d in deliveries)


def recompute_contract(contract: Contract, now: datetime) -> Contract:
    """Refresh the cached totals from the delivery list.  Idempotent."""
    return replace(
        contract,
        delivered_volume=delivered_volume(contract.deliveries),
        on_track=is_on_track(contract.deliveries, now),
        outstanding_invoices=outstanding_invoices(contract.deliveries),
    )


def within_tolerance(
    scheduled: Decimal,
    actual: Decimal,
    tolerance_percent: Decimal,
) -> bool:
    return abs(actual - scheduled) <= scheduled * tolerance_percent / _HUNDRED


def max_deliverable(contract: Contract) -> Decimal:
    return contract.total_volume * (1 + contract.tolerance_percent / _HUNDRED)


# =========================================================================
# Materialization
# =========================================================================


@traced_engine("deliveries", "1.0", fingerprint_fields=("bid", "contract_number"))
def materialize(
    bid: Bid,
    request: QuoteRequest,
    contract_number: str,
    now: datetime,
    anchor_month: int = 12,
    anchor_day: int = 31,
    id_factory: Callable[[], UUID] = uuid4,
) -> Contract:
    """Build a scheduled contract from a won bid.

    One delivery per plant-allocation year with a positive volume, dated on
    the anchor day of that year, at the RFQ's location for that year.
    """
    if bid.status != BidStatus.WON:
        raise IllegalTransitionError(
            entity_type="bid",
            entity_id=str(bid.id),
            from_state=bid.status.value,
            action="materialize",
            reason="only won bids become contracts",
        )

    total = bid.total_volume
    average_price = bid.pricing.estimated_value / total if total > ZERO else ZERO

    deliveries: list[Delivery] = []
    for pa in bid.plant_allocations:
        for yv in pa.allocations:
            if yv.volume <= ZERO:
                continue
            price = bid.pricing.price_for_year(yv.year)
            deliveries.append(Delivery(
                id=id_factory(),
                scheduled_date=datetime(
                    yv.year, anchor_month, anchor_day, tzinfo=timezone.utc,
                ),
                volume=yv.volume,
                unit_price=price if price is not None else average_price,
                location=request.location_for_year(yv.year) or "",
            ))
    deliveries.sort(key=lambda d: d.scheduled_date)

    contract = Contract(
        id=id_factory(),
        contract_number=contract_number,
        buyer=request.buyer_company,
        total_volume=total,
        contract_value=bid.pricing.estimated_value,
        effective_date=now,
        end_date=deliveries[-1].scheduled_date if deliveries else now,
        deliveries=tuple(deliveries),
        volume_unit=request.volume_unit,
        currency=bid.pricing.currency,
        pricing_type=bid.pricing.pricing_type,
        tolerance_percent=bid.tolerance_percent,
        incoterms=bid.incoterms,
        payment_terms=bid.payment_terms,
        status=ContractStatus.SCHEDULED,
        bid_id=bid.id,
        rfq_id=bid.rfq_id,
    )
    return recompute_contract(contract, now)


# =========================================================================
# Logging deliveries
# =========================================================================


def find_delivery(contract: Contract, delivery_id: UUID) -> Delivery:
    for d in contract.deliveries:
        if d.id == delivery_id:
            return d
    raise DeliveryNotFoundError(str(contract.id), str(delivery_id))


def _require_contract_status(
    contract: Contract,
    allowed: tuple[ContractStatus, ...],
    action: str,
) -> None:
    if contract.status not in allowed:
        raise IllegalTransitionError(
            entity_type="contract",
            entity_id=str(contract.id),
            from_state=contract.status.value,
            action=action,
        )


def _replace_delivery(contract: Contract, delivery: Delivery) -> tuple[Delivery, ...]:
    return tuple(delivery if d.id == delivery.id else d for d in contract.deliveries)


def _advance(delivery: Delivery, target: DeliveryStatus, action: str) -> None:
    if _FORWARD.get(delivery.status) != target:
        raise IllegalTransitionError(
            entity_type="delivery",
            entity_id=str(delivery.id),
            from_state=delivery.status.value,
            action=action,
        )


def plan_batch_draws(
    draws: Sequence[BatchDraw],
    actual_volume: Decimal,
    available: Mapping[UUID, Decimal],
) -> tuple[BatchDraw, ...]:
    """Resolve draws to explicit volumes.

    Explicit volumes are kept as given; draws without a volume are filled
    greedily, in order, from each batch's available volume until the
    remainder of ``actual_volume`` is covered.  An empty list means the
    delivery is not traced to batches.
    """
    if not draws:
        return ()

    explicit = sum((d.volume for d in draws if d.volume is not None), ZERO)
    if any(d.volume is not None and d.volume <= ZERO for d in draws):
        raise ValueError("Explicit batch draw volumes must be positive")

    remaining = actual_volume - explicit
    resolved: list[BatchDraw] = []
    for draw in draws:
        if draw.volume is not None:
            resolved.append(draw)
            continue
        take = min(available.get(draw.batch_id, ZERO), max(remaining, ZERO))
        if take > ZERO:
            resolved.append(BatchDraw(batch_id=draw.batch_id, volume=take))
            remaining -= take

    if remaining > ZERO and any(d.volume is None for d in draws):
        raise InsufficientCapacityError(
            source_id="batches " + ", ".join(str(d.batch_id) for d in draws),
            requested_volume=actual_volume - explicit,
            available_volume=actual_volume - explicit - remaining,
        )
    if remaining != ZERO:
        raise ValueError(
            f"Batch draws total {actual_volume - remaining}, "
            f"expected the delivered volume {actual_volume}"
        )
    return tuple(resolved)


@traced_engine(
    "deliveries", "1.0",
    fingerprint_fields=("contract", "delivery_id", "actual_volume", "batch_draws"),
)
def log_delivery(
    contract: Contract,
    delivery_id: UUID,
    actual_date: datetime,
    actual_volume: Decimal,
    batch_draws: Sequence[BatchDraw],
    now: datetime,
    bill_of_lading: str | None = None,
) -> Contract:
    """Record a scheduled delivery as delivered.

    ``batch_draws`` must already be resolved (see ``plan_batch_draws``);
    the caller allocates them on the volume ledger in the same transaction.
    The first logged delivery activates a scheduled contract.
    """
    if actual_volume <= ZERO:
        raise ValueError(f"actual_volume must be positive (got {actual_volume})")
    _require_contract_status(contract, OPEN_CONTRACT_STATUSES, "log_delivery")

    delivery = find_delivery(contract, delivery_id)
    _advance(delivery, DeliveryStatus.DELIVERED, "log_delivery")

    if not within_tolerance(delivery.volume, actual_volume, contract.tolerance_percent):
        raise VolumeOutOfToleranceError(
            contract_id=str(contract.id),
            expected_volume=delivery.volume,
            actual_volume=actual_volume,
            tolerance_percent=contract.tolerance_percent,
        )

    projected = delivered_volume(contract.deliveries) + actual_volume
    if projected > max_deliverable(contract):
        raise VolumeOutOfToleranceError(
            contract_id=str(contract.id),
            expected_volume=contract.total_volume,
            actual_volume=projected,
            tolerance_percent=contract.tolerance_percent,
        )

    logged = replace(
        delivery,
        status=DeliveryStatus.DELIVERED,
        actual_date=actual_date,
        actual_volume=actual_volume,
        batch_draws=tuple(batch_draws),
        bill_of_lading=bill_of_lading,
    )
    updated = replace(
        contract,
        deliveries=_replace_delivery(contract, logged),
        status=ContractStatus.ACTIVE,
    )
    return recompute_contract(updated, now)


# =========================================================================
# Schedule and settlement
# =========================================================================


def add_delivery(contract: Contract, delivery: Delivery, now: datetime) -> Contract:
    """Extend the schedule with one more scheduled delivery."""
    _require_contract_status(
        contract,
        (ContractStatus.DRAFT,) + OPEN_CONTRACT_STATUSES,
        "add_delivery",
    )
    if delivery.status != DeliveryStatus.SCHEDULED:
        raise ValueError("New deliveries must be scheduled")
    if delivery.volume <= ZERO:
        raise ValueError(f"Scheduled volume must be positive (got {delivery.volume})")
    if any(d.id == delivery.id for d in contract.deliveries):
        raise ValueError(f"Delivery {delivery.id} already on contract")

    deliveries = tuple(sorted(contract.deliveries + (delivery,), key=lambda d: d.scheduled_date))
    end_date = max(contract.end_date, delivery.scheduled_date)
    return recompute_contract(
        replace(contract, deliveries=deliveries, end_date=end_date),
        now,
    )


def record_invoice(
    contract: Contract,
    delivery_id: UUID,
    invoice_number: str,
    invoice_date: datetime,
    now: datetime,
    invoice_amount: Decimal | None = None,
) -> Contract:
    """delivered -> invoiced.  Amount defaults to actual volume x unit price."""
    delivery = find_delivery(contract, delivery_id)
    _advance(delivery, DeliveryStatus.INVOICED, "record_invoice")
    amount = invoice_amount
    if amount is None:
        amount = (delivery.actual_volume or ZERO) * delivery.unit_price

    invoiced = replace(
        delivery,
        status=DeliveryStatus.INVOICED,
        invoice_number=invoice_number,
        invoice_amount=amount,
        invoice_date=invoice_date,
    )
    return recompute_contract(
        replace(contract, deliveries=_replace_delivery(contract, invoiced)),
        now,
    )


def record_payment(
    contract: Contract,
    delivery_id: UUID,
    paid_date: datetime,
    now: datetime,
) -> Contract:
    """invoiced -> paid."""
    delivery = find_delivery(contract, delivery_id)
    _advance(delivery, DeliveryStatus.PAID, "record_payment")
    paid = replace(delivery, status=DeliveryStatus.PAID, paid_date=paid_date)
    return recompute_contract(
        replace(contract, deliveries=_replace_delivery(contract, paid)),
        now,
    )


def complete(contract: Contract, now: datetime) -> Contract:
    """Close an active contract once every delivery is paid."""
    _require_contract_status(contract, (ContractStatus.ACTIVE,), "complete")
    unpaid = [d for d in contract.deliveries if d.status != DeliveryStatus.PAID]
    if unpaid:
        raise IllegalTransitionError(
            entity_type="contract",
            entity_id=str(contract.id),
            from_state=contract.status.value,
            action="complete",
            reason=f"{len(unpaid)} deliveries not paid",
        )
    return recompute_contract(replace(contract, status=ContractStatus.COMPLETED), now)


def cancel(contract: Contract, now: datetime) -> Contract:
    _require_contract_status(
        contract,
        (ContractStatus.DRAFT,) + OPEN_CONTRACT_STATUSES,
        "cancel",
    )
    return recompute_contract(replace(contract, status=ContractStatus.CANCELLED), now)
