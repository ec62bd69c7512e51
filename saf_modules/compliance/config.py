"""
Compliance Configuration Schema.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Self

from saf_config.bridges import build_expiring_window
from saf_config.schema import CoreConfig
from saf_kernel.logging_config import get_logger

logger = get_logger("modules.compliance.config")


@dataclass
class ComplianceConfig:
    """
    Certificate classification settings.

    ``expired_forces_not_certified`` switches the plant rollup to the
    strict rule: any expired covering certificate means not certified.
    """

    expiring_window: timedelta = timedelta(days=30)
    expired_forces_not_certified: bool = False
    max_attempts: int = 3

    def __post_init__(self):
        if self.expiring_window <= timedelta(0):
            raise ValueError("expiring_window must be positive")

    @classmethod
    def from_core(cls, core: CoreConfig) -> Self:
        return cls(
            expiring_window=build_expiring_window(core),
            expired_forces_not_certified=core.certificates.expired_forces_not_certified,
            max_attempts=core.retry.max_attempts,
        )
