"""
Config -> Engine/Kernel Bridges.

Functions that convert ``CoreConfig`` sections into the value objects the
engines and kernel consume.  They live in saf_config (the producer)
because neither the kernel nor the engines may import saf_config.

Usage:
    from saf_config.bridges import build_approval_policy, build_fit_thresholds

    config = get_active_config()
    policy = build_approval_policy(config)
"""

from __future__ import annotations

from datetime import timedelta

from saf_config.schema import CoreConfig
from saf_engines.fit import FitThresholds
from saf_kernel.domain.approval import (
    ApprovalMode,
    ApprovalPolicy,
    ApprovalRule,
    ApproverProfile,
    RuleKind,
)


def build_approval_policy(config: CoreConfig) -> ApprovalPolicy:
    settings = config.approval
    return ApprovalPolicy(
        rules=tuple(
            ApprovalRule(
                rule_name=r.name,
                kind=RuleKind(r.kind),
                threshold=r.threshold,
                approver_roles=r.approver_roles,
                priority=r.priority,
                reason=r.reason,
            )
            for r in settings.rules
        ),
        directory=tuple(
            ApproverProfile(approver_id=a.approver_id, name=a.name, role=a.role)
            for a in settings.approvers
        ),
        mode=ApprovalMode(settings.mode),
    )


def build_fit_thresholds(config: CoreConfig) -> FitThresholds:
    return FitThresholds(
        good_volume_ratio=config.fit.good_volume_ratio,
        ghg_headroom=config.fit.ghg_headroom,
    )


def build_expiring_window(config: CoreConfig) -> timedelta:
    return timedelta(days=config.certificates.expiring_window_days)
