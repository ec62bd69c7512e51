"""
Bid Workflows.

State machine for a producer bid.  The approval engine
(``saf_engines.approval``) enforces these moves; the workflow is the
declarative view used to list the actions a bid currently allows.
"""

from saf_kernel.domain.workflow import Guard, Transition, Workflow
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.bids.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

RULES_FIRED = Guard(
    name="rules_fired",
    description="At least one approval rule fires for the bid",
)

APPROVAL_COMPLETE = Guard(
    name="approval_complete",
    description="Approval not required, or every approver has approved",
)

APPROVER_REJECTED = Guard(
    name="approver_rejected",
    description="An approver rejected the bid; approvers reset to pending",
)


# -----------------------------------------------------------------------------
# Bid lifecycle
# -----------------------------------------------------------------------------

BID_STATES = (
    "draft",
    "pending_approval",
    "submitted",
    "won",
    "lost",
    "withdrawn",
)

BID_TRANSITIONS = (
    Transition("draft", "pending_approval", action="request_approval", guard=RULES_FIRED),
    Transition("draft", "submitted", action="submit", guard=APPROVAL_COMPLETE),
    Transition("pending_approval", "submitted", action="submit", guard=APPROVAL_COMPLETE),
    Transition("pending_approval", "draft", action="reject", guard=APPROVER_REJECTED),
    Transition("submitted", "won", action="win"),
    Transition("submitted", "lost", action="lose"),
    Transition("draft", "withdrawn", action="withdraw"),
    Transition("pending_approval", "withdrawn", action="withdraw"),
    Transition("submitted", "withdrawn", action="withdraw"),
)

BID_WORKFLOW = Workflow(
    name="bid",
    description="Producer bid lifecycle with approval gate",
    initial_state="draft",
    states=BID_STATES,
    transitions=BID_TRANSITIONS,
    terminal_states=("won", "lost", "withdrawn"),
)

logger.info(
    "bid_workflow_defined",
    extra={
        "workflow": BID_WORKFLOW.name,
        "states": list(BID_STATES),
        "guards": [RULES_FIRED.name, APPROVAL_COMPLETE.name, APPROVER_REJECTED.name],
    },
)
