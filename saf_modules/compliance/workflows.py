"""
Compliance Document Workflow.

Revoked documents are terminal.  Expiry is applied by the status refresh,
renewal goes through ``pending_renewal`` and returns the document to
``active`` with a new expiry date.
"""

from saf_kernel.domain.workflow import Guard, Transition, Workflow
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.compliance.workflows")


PAST_EXPIRY = Guard(
    name="past_expiry",
    description="The document's expiry date has passed",
)

NEW_EXPIRY_DATE = Guard(
    name="new_expiry_date",
    description="A renewed expiry date later than the issue date is supplied",
)

DOCUMENT_STATES = (
    "active",
    "expired",
    "pending_renewal",
    "revoked",
)

DOCUMENT_TRANSITIONS = (
    Transition("active", "expired", action="expire", guard=PAST_EXPIRY),
    Transition("active", "pending_renewal", action="request_renewal"),
    Transition("expired", "pending_renewal", action="request_renewal"),
    Transition("pending_renewal", "active", action="renew", guard=NEW_EXPIRY_DATE),
    Transition("active", "revoked", action="revoke"),
    Transition("expired", "revoked", action="revoke"),
    Transition("pending_renewal", "revoked", action="revoke"),
)

DOCUMENT_WORKFLOW = Workflow(
    name="compliance_document",
    description="Compliance document validity lifecycle",
    initial_state="active",
    states=DOCUMENT_STATES,
    transitions=DOCUMENT_TRANSITIONS,
    terminal_states=("revoked",),
)

logger.info(
    "compliance_workflow_defined",
    extra={
        "workflow": DOCUMENT_WORKFLOW.name,
        "states": list(DOCUMENT_STATES),
    },
)
