"""
Contracts Configuration Schema.

Materialization defaults: the anchor day each yearly delivery is
scheduled on and the contract number prefix.
"""

from dataclasses import dataclass
from typing import Self

from saf_config.schema import CoreConfig
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.contracts.config")


@dataclass
class ContractsConfig:
    """
    Configuration schema for the contracts module.

    Deliveries of a year are scheduled on ``anchor_month``/``anchor_day``;
    generated numbers look like ``SAF-C-2025-0001``.
    """

    anchor_month: int = 12
    anchor_day: int = 31
    contract_number_prefix: str = "SAF-C"
    max_attempts: int = 3

    def __post_init__(self):
        if not 1 <= self.anchor_month <= 12:
            raise ValueError("anchor_month must be between 1 and 12")
        if not 1 <= self.anchor_day <= 31:
            raise ValueError("anchor_day must be between 1 and 31")

    @classmethod
    def from_core(cls, core: CoreConfig) -> Self:
        settings = core.deliveries
        return cls(
            anchor_month=settings.anchor_month,
            anchor_day=settings.anchor_day,
            contract_number_prefix=settings.contract_number_prefix,
            max_attempts=core.retry.max_attempts,
        )
