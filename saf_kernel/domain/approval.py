"""
Approval domain types (``saf_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the bid approval workflow: approval rules (the
commercial risk thresholds that make approval mandatory), the approver
directory, per-approver state, and the approval record carried by a bid.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Rule ordering is deterministic: rules are evaluated by ``priority``,
  and approvers are attached in rule order, then directory order.
* An approver appears at most once on a bid.
* Approver status transitions only ``pending -> approved | rejected``;
  a rejection resets every approver of the bid back to ``pending``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class ApprovalMode(str, Enum):
    """How approver decisions are aggregated."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class ApproverStatus(str, Enum):
    """Per-approver decision state."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, Enum):
    """Decision types that an approver can make."""

    APPROVE = "approve"
    REJECT = "reject"


class RuleKind(str, Enum):
    """Commercial risk thresholds that trigger approval."""

    MARGIN_BELOW = "margin_below"   # estimated margin % < threshold
    VALUE_ABOVE = "value_above"     # estimated contract value > threshold
    VOLUME_ABOVE = "volume_above"   # total planned volume > threshold
    GHG_BELOW = "ghg_below"         # blended GHG reduction % < threshold


# =========================================================================
# Policy and Rule Types
# =========================================================================


@dataclass(frozen=True)
class ApprovalRule:
    """A single approval trigger.

    ``priority`` determines evaluation order: lower number first.
    ``approver_roles`` name the directory roles the rule pulls in.
    """

    rule_name: str
    kind: RuleKind
    threshold: Decimal
    approver_roles: tuple[str, ...] = ()
    priority: int = 100
    reason: str = ""


@dataclass(frozen=True)
class ApproverProfile:
    """A directory entry for someone who may approve bids."""

    approver_id: str
    name: str
    role: str


@dataclass(frozen=True)
class ApprovalPolicy:
    """Rules plus the approver directory and aggregation mode."""

    rules: tuple[ApprovalRule, ...] = ()
    directory: tuple[ApproverProfile, ...] = ()
    mode: ApprovalMode = ApprovalMode.SEQUENTIAL


# =========================================================================
# Per-bid approval state
# =========================================================================


@dataclass(frozen=True)
class Approver:
    """One approver attached to a bid."""

    approver_id: str
    name: str
    role: str
    status: ApproverStatus = ApproverStatus.PENDING
    decided_at: datetime | None = None
    comments: str | None = None


@dataclass(frozen=True)
class ApprovalRecord:
    """Approval state of a bid.

    ``rejection_reasons`` holds the comments of the most recent rejection,
    surfaced to the bid author after the bid returns to draft.
    """

    requires_approval: bool = False
    reasons: tuple[str, ...] = ()
    mode: ApprovalMode = ApprovalMode.SEQUENTIAL
    approvers: tuple[Approver, ...] = ()
    notes: str | None = None
    rejection_reasons: tuple[str, ...] = ()

    @property
    def pending_approvers(self) -> tuple[Approver, ...]:
        return tuple(a for a in self.approvers if a.status == ApproverStatus.PENDING)

    @property
    def is_fully_approved(self) -> bool:
        return bool(self.approvers) and all(
            a.status == ApproverStatus.APPROVED for a in self.approvers
        )
