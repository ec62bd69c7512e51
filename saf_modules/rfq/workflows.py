"""
RFQ Workflows.

State machine for a buyer's quote request.  A passed deadline closes the
request to new bids but the buyer can still award a bid submitted before
it.  Awarded requests accept no further moves; ``correct_status`` on the
service is the only way out and is logged as an administrative correction.
"""

from saf_kernel.domain.workflow import Guard, Transition, Workflow
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.rfq.workflows")


DEADLINE_PASSED = Guard(
    name="deadline_passed",
    description="The response deadline is in the past",
)

BID_WON = Guard(
    name="bid_won",
    description="A bid against this request was decided as won",
)


RFQ_STATES = ("open", "watching", "closed", "awarded")

RFQ_TRANSITIONS = (
    Transition("open", "watching", action="watch"),
    Transition("watching", "open", action="unwatch"),
    Transition("open", "closed", action="close", guard=DEADLINE_PASSED),
    Transition("watching", "closed", action="close", guard=DEADLINE_PASSED),
    Transition("open", "awarded", action="award", guard=BID_WON),
    Transition("watching", "awarded", action="award", guard=BID_WON),
    Transition("closed", "awarded", action="award", guard=BID_WON),
)

RFQ_WORKFLOW = Workflow(
    name="rfq",
    description="Quote request lifecycle",
    initial_state="open",
    states=RFQ_STATES,
    transitions=RFQ_TRANSITIONS,
    terminal_states=("awarded",),
)

logger.info(
    "rfq_workflow_defined",
    extra={
        "workflow": RFQ_WORKFLOW.name,
        "states": list(RFQ_STATES),
        "transitions": len(RFQ_TRANSITIONS),
    },
)
