"""
Contract and Delivery Workflows.

Declarative state machines for supply contracts and their deliveries.
``saf_engines.deliveries`` enforces the moves; the workflows list the
actions each state allows.  ``late`` is not a delivery state here: it is
a read-time overlay on scheduled deliveries past their date.
"""

from saf_kernel.domain.workflow import Guard, Transition, Workflow
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.contracts.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_DELIVERIES_PAID = Guard(
    name="all_deliveries_paid",
    description="Every delivery on the contract is paid",
)

WITHIN_TOLERANCE = Guard(
    name="within_tolerance",
    description="Actual volume within tolerance of the scheduled volume and "
    "the contract total",
)


# -----------------------------------------------------------------------------
# Contract lifecycle
# -----------------------------------------------------------------------------

CONTRACT_STATES = (
    "draft",
    "scheduled",
    "active",
    "completed",
    "cancelled",
)

CONTRACT_TRANSITIONS = (
    Transition("draft", "scheduled", action="schedule"),
    Transition("scheduled", "active", action="log_delivery", guard=WITHIN_TOLERANCE),
    Transition("active", "active", action="log_delivery", guard=WITHIN_TOLERANCE),
    Transition("active", "completed", action="complete", guard=ALL_DELIVERIES_PAID),
    Transition("draft", "cancelled", action="cancel"),
    Transition("scheduled", "cancelled", action="cancel"),
    Transition("active", "cancelled", action="cancel"),
)

CONTRACT_WORKFLOW = Workflow(
    name="contract",
    description="Supply contract lifecycle",
    initial_state="draft",
    states=CONTRACT_STATES,
    transitions=CONTRACT_TRANSITIONS,
    terminal_states=("completed", "cancelled"),
)


# -----------------------------------------------------------------------------
# Delivery lifecycle
# -----------------------------------------------------------------------------

DELIVERY_STATES = (
    "scheduled",
    "delivered",
    "invoiced",
    "paid",
)

DELIVERY_TRANSITIONS = (
    Transition("scheduled", "delivered", action="log_delivery", guard=WITHIN_TOLERANCE),
    Transition("delivered", "invoiced", action="record_invoice"),
    Transition("invoiced", "paid", action="record_payment"),
)

DELIVERY_WORKFLOW = Workflow(
    name="delivery",
    description="Forward-only delivery settlement",
    initial_state="scheduled",
    states=DELIVERY_STATES,
    transitions=DELIVERY_TRANSITIONS,
    terminal_states=("paid",),
)

logger.info(
    "contract_workflows_defined",
    extra={
        "workflows": [CONTRACT_WORKFLOW.name, DELIVERY_WORKFLOW.name],
        "guards": [ALL_DELIVERIES_PAID.name, WITHIN_TOLERANCE.name],
    },
)
