"""
Ledger configuration schema.

Frozen dataclasses for the human-authored YAML configuration set.  The
loader parses YAML into these types; ``saf_config.bridges`` turns them
into the engine and kernel inputs services consume.

Defaults here mirror ``sets/default.yaml`` so that services constructed
without explicit configuration behave exactly like the packaged set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class CertificateSettings:
    """Certificate classification window and rollup strictness."""

    expiring_window_days: int = 30
    expired_forces_not_certified: bool = False


@dataclass(frozen=True)
class FitSettings:
    """Thresholds for the advisory fit verdict."""

    good_volume_ratio: Decimal = Decimal("0.5")
    ghg_headroom: Decimal = Decimal("5")


@dataclass(frozen=True)
class ApprovalRuleDef:
    """One commercial-risk trigger as authored in YAML."""

    name: str
    kind: str  # margin_below | value_above | volume_above | ghg_below
    threshold: Decimal
    approver_roles: tuple[str, ...] = ()
    priority: int = 100
    reason: str = ""


@dataclass(frozen=True)
class ApproverDef:
    approver_id: str
    name: str
    role: str


def _default_rules() -> tuple[ApprovalRuleDef, ...]:
    return (
        ApprovalRuleDef(
            name="low_margin",
            kind="margin_below",
            threshold=Decimal("10"),
            approver_roles=("sales_director",),
            priority=10,
            reason="Margin below 10% target",
        ),
        ApprovalRuleDef(
            name="high_value",
            kind="value_above",
            threshold=Decimal("5000000"),
            approver_roles=("sales_director", "cfo"),
            priority=20,
            reason="Contract value exceeds 5M",
        ),
    )


def _default_approvers() -> tuple[ApproverDef, ...]:
    return (
        ApproverDef(approver_id="sales-director", name="Sales Director", role="sales_director"),
        ApproverDef(approver_id="cfo", name="Chief Financial Officer", role="cfo"),
    )


@dataclass(frozen=True)
class ApprovalSettings:
    """Approval rules, the approver directory, and the aggregation mode."""

    mode: str = "sequential"
    rules: tuple[ApprovalRuleDef, ...] = field(default_factory=_default_rules)
    approvers: tuple[ApproverDef, ...] = field(default_factory=_default_approvers)


@dataclass(frozen=True)
class DeliverySettings:
    """Contract materialization defaults."""

    anchor_month: int = 12
    anchor_day: int = 31
    default_tolerance_percent: Decimal = Decimal("10")
    contract_number_prefix: str = "SAF-C"


@dataclass(frozen=True)
class RetrySettings:
    """Optimistic-conflict retry budget per service operation."""

    max_attempts: int = 3


@dataclass(frozen=True)
class CoreConfig:
    """The complete ledger configuration.

    ``checksum`` is the SHA-256 of the canonical source data, empty for
    in-code defaults.
    """

    config_id: str = "default"
    version: int = 1
    certificates: CertificateSettings = field(default_factory=CertificateSettings)
    fit: FitSettings = field(default_factory=FitSettings)
    approval: ApprovalSettings = field(default_factory=ApprovalSettings)
    deliveries: DeliverySettings = field(default_factory=DeliverySettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    checksum: str = ""

    @classmethod
    def with_defaults(cls) -> CoreConfig:
        return cls()
