"""
Bids Configuration Schema.

Approval policy (rules, approver directory, aggregation mode) and the
default commercial terms applied to new bids.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from saf_config.bridges import build_approval_policy
from saf_config.schema import CoreConfig
from saf_kernel.domain.approval import ApprovalPolicy
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.bids.config")


def _default_policy() -> ApprovalPolicy:
    return build_approval_policy(CoreConfig.with_defaults())


@dataclass
class BidsConfig:
    """
    Configuration schema for the bids module.

    Field defaults match the packaged configuration set:

        config = BidsConfig.from_core(get_active_config())
    """

    approval_policy: ApprovalPolicy = field(default_factory=_default_policy)
    default_tolerance_percent: Decimal = Decimal("10")
    default_incoterms: str = "DAP"
    default_payment_terms: str = "Net 30"
    max_attempts: int = 3

    @classmethod
    def from_core(cls, core: CoreConfig) -> Self:
        return cls(
            approval_policy=build_approval_policy(core),
            default_tolerance_percent=core.deliveries.default_tolerance_percent,
            max_attempts=core.retry.max_attempts,
        )
