"""
Module: saf_engines.approval
Responsibility:
    Pure bid approval logic: decide whether a bid's commercial risk needs
    approval, pick the approvers, record their decisions, and move the bid
    through draft -> pending_approval -> submitted -> won | lost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import saf_kernel/domain types and saf_engines.types.
    Every function returns a NEW ``Bid``; inputs are never mutated.

Invariants enforced:
    - Rules are evaluated in ascending ``priority``; approvers are attached
      in rule order, then directory order, de-duplicated by approver id.
    - Sequential mode: an approver may decide only once every earlier
      approver has approved.
    - A rejection halts the chain in either mode: every approver is reset
      to pending and the bid returns to draft with the comments surfaced.
    - A superseded bid refuses every mutation.

Failure modes:
    - UnknownApproverError, AlreadyDecidedError, OutOfOrderError from
      ``record_decision``.
    - ApprovalIncompleteError from ``submit`` while approval is required
      and not granted by every approver.
    - IllegalTransitionError for any move out of the wrong status.
    - ValueError if fired rules resolve to no approver in the directory.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from saf_engines.tracer import traced_engine
from saf_engines.types import Bid, BidStatus, PlantAllocation, PricingOffer
from saf_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalMode,
    ApprovalPolicy,
    ApprovalRecord,
    ApprovalRule,
    Approver,
    ApproverStatus,
    RuleKind,
)
from saf_kernel.exceptions import (
    AlreadyDecidedError,
    ApprovalIncompleteError,
    IllegalTransitionError,
    OutOfOrderError,
    UnknownApproverError,
)
from saf_kernel.logging_config import get_logger

logger = get_logger("engines.approval")


def _require_status(bid: Bid, allowed: tuple[BidStatus, ...], action: str) -> None:
    if bid.superseded:
        raise IllegalTransitionError(
            entity_type="bid",
            entity_id=str(bid.id),
            from_state=bid.status.value,
            action=action,
            reason="bid has been superseded",
        )
    if bid.status not in allowed:
        raise IllegalTransitionError(
            entity_type="bid",
            entity_id=str(bid.id),
            from_state=bid.status.value,
            action=action,
        )


# =========================================================================
# Rule evaluation
# =========================================================================


def _rule_fires(rule: ApprovalRule, bid: Bid) -> bool:
    if rule.kind == RuleKind.MARGIN_BELOW:
        return bid.pricing.estimated_margin < rule.threshold
    if rule.kind == RuleKind.VALUE_ABOVE:
        return bid.pricing.estimated_value > rule.threshold
    if rule.kind == RuleKind.VOLUME_ABOVE:
        return bid.total_volume > rule.threshold
    if rule.kind == RuleKind.GHG_BELOW:
        return bid.blended_ghg_reduction < rule.threshold
    raise ValueError(f"Unknown rule kind: {rule.kind}")


def fired_rules(bid: Bid, rules: Sequence[ApprovalRule]) -> tuple[ApprovalRule, ...]:
    """Rules whose threshold the bid crosses, in priority order."""
    return tuple(r for r in sorted(rules, key=lambda r: r.priority) if _rule_fires(r, bid))


def approval_reasons(bid: Bid, rules: Sequence[ApprovalRule]) -> tuple[str, ...]:
    return tuple(r.reason or r.rule_name for r in fired_rules(bid, rules))


def requires_approval(bid: Bid, rules: Sequence[ApprovalRule]) -> bool:
    return bool(fired_rules(bid, rules))


def determine_approvers(bid: Bid, policy: ApprovalPolicy) -> tuple[Approver, ...]:
    """Pending approvers for the rules the bid fires.

    Sequential mode keeps this order as the decision order; parallel mode
    ignores it.
    """
    approvers: list[Approver] = []
    seen: set[str] = set()
    for rule in fired_rules(bid, policy.rules):
        for role in rule.approver_roles:
            for profile in policy.directory:
                if profile.role != role or profile.approver_id in seen:
                    continue
                seen.add(profile.approver_id)
                approvers.append(Approver(
                    approver_id=profile.approver_id,
                    name=profile.name,
                    role=profile.role,
                ))
    return tuple(approvers)


# =========================================================================
# Lifecycle
# =========================================================================


@traced_engine("approval", "1.0", fingerprint_fields=("bid", "policy"))
def request_approval(bid: Bid, policy: ApprovalPolicy) -> Bid:
    """Open the approval workflow for a draft bid.

    When no rule fires the bid stays draft with ``requires_approval=False``
    and may be submitted directly.
    """
    _require_status(bid, (BidStatus.DRAFT,), "request_approval")

    reasons = approval_reasons(bid, policy.rules)
    if not reasons:
        return replace(bid, approval=ApprovalRecord(
            requires_approval=False,
            mode=policy.mode,
            notes=bid.approval.notes,
        ))

    approvers = determine_approvers(bid, policy)
    if not approvers:
        raise ValueError(
            f"Approval rules fired for bid {bid.bid_number} "
            "but no approver in the directory holds a required role"
        )

    logger.info("bid_approval_requested", extra={
        "bid_id": str(bid.id),
        "reasons": list(reasons),
        "approvers": [a.approver_id for a in approvers],
        "mode": policy.mode.value,
    })
    return replace(
        bid,
        status=BidStatus.PENDING_APPROVAL,
        approval=ApprovalRecord(
            requires_approval=True,
            reasons=reasons,
            mode=policy.mode,
            approvers=approvers,
            notes=bid.approval.notes,
            rejection_reasons=bid.approval.rejection_reasons,
        ),
    )


@traced_engine("approval", "1.0", fingerprint_fields=("bid", "approver_id", "decision"))
def record_decision(
    bid: Bid,
    approver_id: str,
    decision: ApprovalDecision,
    now: datetime,
    comments: str | None = None,
) -> Bid:
    """Apply one approver's decision.

    Approve marks the approver approved; the bid stays pending_approval and
    becomes submittable once every approver has approved.  Reject returns
    the bid to draft and resets every approver to pending.
    """
    _require_status(bid, (BidStatus.PENDING_APPROVAL,), "record_decision")

    record = bid.approval
    index = next(
        (i for i, a in enumerate(record.approvers) if a.approver_id == approver_id),
        None,
    )
    if index is None:
        raise UnknownApproverError(str(bid.id), approver_id)

    approver = record.approvers[index]
    if approver.status != ApproverStatus.PENDING:
        raise AlreadyDecidedError(str(bid.id), approver_id, approver.status.value)

    if record.mode == ApprovalMode.SEQUENTIAL:
        for earlier in record.approvers[:index]:
            if earlier.status != ApproverStatus.APPROVED:
                raise OutOfOrderError(str(bid.id), approver_id, earlier.approver_id)

    if decision == ApprovalDecision.REJECT:
        reason = comments or f"Rejected by {approver.name} ({approver.role})"
        logger.info("bid_approval_rejected", extra={
            "bid_id": str(bid.id),
            "approver_id": approver_id,
        })
        return replace(
            bid,
            status=BidStatus.DRAFT,
            approval=replace(
                record,
                approvers=tuple(
                    replace(a, status=ApproverStatus.PENDING, decided_at=None, comments=None)
                    for a in record.approvers
                ),
                rejection_reasons=(reason,),
            ),
        )

    approvers = list(record.approvers)
    approvers[index] = replace(
        approver,
        status=ApproverStatus.APPROVED,
        decided_at=now,
        comments=comments,
    )
    updated = replace(bid, approval=replace(record, approvers=tuple(approvers)))
    if updated.approval.is_fully_approved:
        logger.info("bid_approval_complete", extra={"bid_id": str(bid.id)})
    return updated


def is_submittable(bid: Bid, rules: Sequence[ApprovalRule]) -> bool:
    if bid.superseded or bid.status not in (BidStatus.DRAFT, BidStatus.PENDING_APPROVAL):
        return False
    if bid.status == BidStatus.PENDING_APPROVAL:
        return bid.approval.is_fully_approved
    return not requires_approval(bid, rules)


def submit(bid: Bid, rules: Sequence[ApprovalRule], now: datetime) -> Bid:
    """Send the bid to the buyer.

    Raises:
        ApprovalIncompleteError: approval is required and not yet granted.
    """
    _require_status(bid, (BidStatus.DRAFT, BidStatus.PENDING_APPROVAL), "submit")

    if not is_submittable(bid, rules):
        pending = tuple(a.approver_id for a in bid.approval.pending_approvers)
        if not pending:
            # Draft bid that crosses a threshold but never requested approval.
            pending = approval_reasons(bid, rules)
        raise ApprovalIncompleteError(str(bid.id), pending)

    return replace(bid, status=BidStatus.SUBMITTED, submitted_at=now)


def decide(bid: Bid, outcome: BidStatus, now: datetime) -> Bid:
    """Record the buyer's award decision on a submitted bid."""
    if outcome not in (BidStatus.WON, BidStatus.LOST):
        raise ValueError(f"Bid outcome must be won or lost, got {outcome}")
    _require_status(bid, (BidStatus.SUBMITTED,), "decide")
    return replace(bid, status=outcome, decided_at=now)


def withdraw(bid: Bid, now: datetime) -> Bid:
    _require_status(
        bid,
        (BidStatus.DRAFT, BidStatus.PENDING_APPROVAL, BidStatus.SUBMITTED),
        "withdraw",
    )
    return replace(bid, status=BidStatus.WITHDRAWN, decided_at=now)


def supersede(bid: Bid) -> Bid:
    return replace(bid, superseded=True)


def reset_approval(bid: Bid) -> Bid:
    """Drop approval state after the bid's commercial content changed."""
    return replace(bid, approval=ApprovalRecord(
        mode=bid.approval.mode,
        notes=bid.approval.notes,
        rejection_reasons=bid.approval.rejection_reasons,
    ))


def update_plan(
    bid: Bid,
    plant_allocations: Sequence[PlantAllocation],
    blended_ghg: Decimal,
    pricing: PricingOffer | None = None,
) -> Bid:
    """Replace the plan (and optionally pricing) of a draft bid."""
    _require_status(bid, (BidStatus.DRAFT,), "update_allocations")
    updated = replace(
        bid,
        plant_allocations=tuple(plant_allocations),
        blended_ghg_reduction=blended_ghg,
        pricing=pricing if pricing is not None else bid.pricing,
    )
    return reset_approval(updated)


def revise(bid: Bid, new_id: UUID, bid_number: str | None = None) -> tuple[Bid, Bid]:
    """Create the next version of a submitted bid.

    Returns ``(superseded_predecessor, new_draft)``.
    """
    _require_status(bid, (BidStatus.SUBMITTED,), "revise")
    successor = replace(
        bid,
        id=new_id,
        bid_number=bid_number or bid.bid_number,
        version=bid.version + 1,
        status=BidStatus.DRAFT,
        submitted_at=None,
        decided_at=None,
        superseded=False,
        previous_version_id=bid.id,
        approval=ApprovalRecord(mode=bid.approval.mode),
    )
    return supersede(bid), successor
