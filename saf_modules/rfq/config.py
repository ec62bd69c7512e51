"""
RFQ Configuration Schema.

Settings the RFQ service needs: fit thresholds and the retry budget.
Build from the active ``CoreConfig`` with ``RfqConfig.from_core``.
"""

from dataclasses import dataclass, field
from typing import Self

from saf_config.bridges import build_fit_thresholds
from saf_config.schema import CoreConfig
from saf_engines.fit import FitThresholds
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.rfq.config")


@dataclass
class RfqConfig:
    """
    Configuration schema for the RFQ module.

        config = RfqConfig.from_core(get_active_config())
    """

    fit_thresholds: FitThresholds = field(default_factory=FitThresholds)
    max_attempts: int = 3

    @classmethod
    def from_core(cls, core: CoreConfig) -> Self:
        return cls(
            fit_thresholds=build_fit_thresholds(core),
            max_attempts=core.retry.max_attempts,
        )
