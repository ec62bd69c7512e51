"""
Typed Exception Hierarchy for the SAF commitment ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Volume and approval errors must be handled precisely. Callers catch by
type and read structured attributes, never parse message strings:

    result = ledger.allocate(batch_id, contract_id, Decimal("1200"))
    if not result.is_success:
        if isinstance(result.error, InsufficientCapacityError):
            api_response(
                code=result.error.code,
                available=result.error.available_volume,
            )

Every exception has:
  1. A TYPED class (catch by type, not message)
  2. A ``code`` class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SafKernelError (base)
    |
    +-- LedgerError
    |   +-- InsufficientCapacityError
    |   +-- AllocationNotFoundError
    |
    +-- DeliveryError
    |   +-- VolumeOutOfToleranceError
    |   +-- DeliveryNotFoundError
    |
    +-- ApprovalError
    |   +-- UnknownApproverError
    |   +-- AlreadyDecidedError
    |   +-- OutOfOrderError
    |   +-- ApprovalIncompleteError
    |
    +-- WorkflowError
    |   +-- IllegalTransitionError
    |
    +-- PersistenceError
        +-- EntityNotFoundError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|--------------------------------------
Ledger       | INSUFFICIENT_CAPACITY     | Allocation exceeds available volume
             | ALLOCATION_NOT_FOUND      | Deallocation target does not exist
-------------|---------------------------|--------------------------------------
Delivery     | VOLUME_OUT_OF_TOLERANCE   | Actual volume outside tolerance band
             | DELIVERY_NOT_FOUND        | Delivery id absent from its contract
-------------|---------------------------|--------------------------------------
Approval     | UNKNOWN_APPROVER          | Approver id not on the bid
             | ALREADY_DECIDED           | Approver already decided
             | OUT_OF_ORDER              | Sequential approver decided early
             | APPROVAL_INCOMPLETE       | Submit before approvals complete
-------------|---------------------------|--------------------------------------
Workflow     | ILLEGAL_TRANSITION        | Move not in the allowed edge set
-------------|---------------------------|--------------------------------------
Persistence  | PERSISTENCE_ERROR         | Storage call failed
             | ENTITY_NOT_FOUND          | load() found no row for the id
             | OPTIMISTIC_LOCK_CONFLICT  | Concurrent modification detected

All of these are recoverable by the caller. Programmer errors (non-positive
volumes, missing required references) are raised as ``ValueError`` /
``TypeError`` and are NOT part of this hierarchy.
"""

from decimal import Decimal


class SafKernelError(Exception):
    """
    Base exception for all SAF commitment ledger errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "SAF_KERNEL_ERROR"


# Ledger-related exceptions


class LedgerError(SafKernelError):
    """Base exception for production batch ledger errors."""

    code: str = "LEDGER_ERROR"


class InsufficientCapacityError(LedgerError):
    """Requested volume exceeds the available capacity."""

    code: str = "INSUFFICIENT_CAPACITY"

    def __init__(
        self,
        source_id: str,
        requested_volume: Decimal,
        available_volume: Decimal,
    ):
        self.source_id = source_id
        self.requested_volume = requested_volume
        self.available_volume = available_volume
        super().__init__(
            f"Insufficient capacity on {source_id}: "
            f"requested {requested_volume}, available {available_volume}"
        )


class AllocationNotFoundError(LedgerError):
    """No allocation of sufficient size exists for the contract on the batch."""

    code: str = "ALLOCATION_NOT_FOUND"

    def __init__(
        self,
        batch_id: str,
        contract_id: str,
        requested_volume: Decimal,
        allocated_volume: Decimal,
    ):
        self.batch_id = batch_id
        self.contract_id = contract_id
        self.requested_volume = requested_volume
        self.allocated_volume = allocated_volume
        super().__init__(
            f"No allocation of {requested_volume} for contract {contract_id} "
            f"on batch {batch_id} (allocated: {allocated_volume})"
        )


# Delivery-related exceptions


class DeliveryError(SafKernelError):
    """Base exception for contract delivery errors."""

    code: str = "DELIVERY_ERROR"


class VolumeOutOfToleranceError(DeliveryError):
    """Actual volume deviates from the expected volume beyond tolerance."""

    code: str = "VOLUME_OUT_OF_TOLERANCE"

    def __init__(
        self,
        contract_id: str,
        expected_volume: Decimal,
        actual_volume: Decimal,
        tolerance_percent: Decimal,
    ):
        self.contract_id = contract_id
        self.expected_volume = expected_volume
        self.actual_volume = actual_volume
        self.tolerance_percent = tolerance_percent
        super().__init__(
            f"Volume {actual_volume} outside {tolerance_percent}% tolerance "
            f"of {expected_volume} on contract {contract_id}"
        )


class DeliveryNotFoundError(DeliveryError):
    """Delivery id is not part of the contract's schedule."""

    code: str = "DELIVERY_NOT_FOUND"

    def __init__(self, contract_id: str, delivery_id: str):
        self.contract_id = contract_id
        self.delivery_id = delivery_id
        super().__init__(
            f"Delivery {delivery_id} not found on contract {contract_id}"
        )


# Approval-related exceptions


class ApprovalError(SafKernelError):
    """Base exception for bid approval workflow misuse."""

    code: str = "APPROVAL_ERROR"


class UnknownApproverError(ApprovalError):
    """Approver is not part of the bid's approver list."""

    code: str = "UNKNOWN_APPROVER"

    def __init__(self, bid_id: str, approver_id: str):
        self.bid_id = bid_id
        self.approver_id = approver_id
        super().__init__(f"Approver {approver_id} is not assigned to bid {bid_id}")


class AlreadyDecidedError(ApprovalError):
    """Approver already recorded a non-pending decision."""

    code: str = "ALREADY_DECIDED"

    def __init__(self, bid_id: str, approver_id: str, decision: str):
        self.bid_id = bid_id
        self.approver_id = approver_id
        self.decision = decision
        super().__init__(
            f"Approver {approver_id} already decided '{decision}' on bid {bid_id}"
        )


class OutOfOrderError(ApprovalError):
    """Sequential approval attempted before a prior approver decided."""

    code: str = "OUT_OF_ORDER"

    def __init__(self, bid_id: str, approver_id: str, waiting_on: str):
        self.bid_id = bid_id
        self.approver_id = approver_id
        self.waiting_on = waiting_on
        super().__init__(
            f"Approver {approver_id} cannot decide on bid {bid_id} "
            f"before {waiting_on}"
        )


class ApprovalIncompleteError(ApprovalError):
    """Submission attempted before approval gating was satisfied."""

    code: str = "APPROVAL_INCOMPLETE"

    def __init__(self, bid_id: str, pending_approvers: tuple[str, ...]):
        self.bid_id = bid_id
        self.pending_approvers = pending_approvers
        super().__init__(
            f"Bid {bid_id} awaiting approval from: "
            f"{', '.join(pending_approvers) or 'approver assignment'}"
        )


# Workflow-related exceptions


class WorkflowError(SafKernelError):
    """Base exception for state machine errors."""

    code: str = "WORKFLOW_ERROR"


class IllegalTransitionError(WorkflowError):
    """State-machine move is not in the allowed edge set."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_state: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_state = from_state
        self.action = action
        self.reason = reason
        message = (
            f"Cannot '{action}' {entity_type} {entity_id} from state '{from_state}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Persistence-related exceptions


class PersistenceError(SafKernelError):
    """Storage call failed; no partial state was kept."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")


class EntityNotFoundError(PersistenceError):
    """Entity with given id was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__("load", f"{entity_type} {entity_id} not found")


class OptimisticLockError(PersistenceError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            "save",
            f"{entity_type} {entity_id} was modified by another transaction",
        )
