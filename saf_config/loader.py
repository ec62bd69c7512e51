"""
Configuration Loader (``saf_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the typed
``saf_config.schema`` dataclasses, validating values the engines rely on.
Runtime callers go through ``saf_config.get_active_config()``.

Invariants enforced
-------------------
* Numeric thresholds are parsed as ``Decimal`` from their string form,
  never through float.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is a deterministic SHA-256 of canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values or unknown rule kinds  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from saf_config.schema import (
    ApprovalRuleDef,
    ApprovalSettings,
    ApproverDef,
    CertificateSettings,
    CoreConfig,
    DeliverySettings,
    FitSettings,
    RetrySettings,
)

RULE_KINDS = frozenset({"margin_below", "value_above", "volume_above", "ghg_below"})
APPROVAL_MODES = frozenset({"sequential", "parallel"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    return Decimal(str(value))


def parse_certificates(data: dict[str, Any]) -> CertificateSettings:
    settings = CertificateSettings(
        expiring_window_days=int(data.get("expiring_window_days", 30)),
        expired_forces_not_certified=bool(data.get("expired_forces_not_certified", False)),
    )
    if settings.expiring_window_days <= 0:
        raise ValueError("certificates.expiring_window_days must be positive")
    return settings


def parse_fit(data: dict[str, Any]) -> FitSettings:
    settings = FitSettings(
        good_volume_ratio=parse_decimal(data.get("good_volume_ratio", "0.5")),
        ghg_headroom=parse_decimal(data.get("ghg_headroom", "5")),
    )
    if not Decimal("0") < settings.good_volume_ratio <= Decimal("1"):
        raise ValueError("fit.good_volume_ratio must be within (0, 1]")
    if settings.ghg_headroom < 0:
        raise ValueError("fit.ghg_headroom must be non-negative")
    return settings


def parse_rule(data: dict[str, Any]) -> ApprovalRuleDef:
    kind = data["kind"]
    if kind not in RULE_KINDS:
        raise ValueError(f"Unknown approval rule kind: {kind!r}")
    return ApprovalRuleDef(
        name=data["name"],
        kind=kind,
        threshold=parse_decimal(data["threshold"]),
        approver_roles=tuple(data.get("approver_roles", ())),
        priority=int(data.get("priority", 100)),
        reason=data.get("reason", ""),
    )


def parse_approval(data: dict[str, Any]) -> ApprovalSettings:
    mode = data.get("mode", "sequential")
    if mode not in APPROVAL_MODES:
        raise ValueError(f"Unknown approval mode: {mode!r}")
    rules = tuple(parse_rule(r) for r in data.get("rules", []))
    approvers = tuple(
        ApproverDef(approver_id=a["id"], name=a["name"], role=a["role"])
        for a in data.get("approvers", [])
    )

    roles = {a.role for a in approvers}
    for rule in rules:
        missing = [r for r in rule.approver_roles if r not in roles]
        if missing:
            raise ValueError(
                f"Approval rule {rule.name!r} names roles with no approver: "
                + ", ".join(missing)
            )
    return ApprovalSettings(mode=mode, rules=rules, approvers=approvers)


def parse_deliveries(data: dict[str, Any]) -> DeliverySettings:
    settings = DeliverySettings(
        anchor_month=int(data.get("anchor_month", 12)),
        anchor_day=int(data.get("anchor_day", 31)),
        default_tolerance_percent=parse_decimal(data.get("default_tolerance_percent", "10")),
        contract_number_prefix=data.get("contract_number_prefix", "SAF-C"),
    )
    if not 1 <= settings.anchor_month <= 12 or not 1 <= settings.anchor_day <= 31:
        raise ValueError("deliveries anchor month/day out of range")
    if settings.default_tolerance_percent < 0:
        raise ValueError("deliveries.default_tolerance_percent must be non-negative")
    return settings


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    settings = RetrySettings(max_attempts=int(data.get("max_attempts", 3)))
    if not 1 <= settings.max_attempts <= 10:
        raise ValueError("retry.max_attempts must be between 1 and 10")
    return settings


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_core_config(data: dict[str, Any]) -> CoreConfig:
    """Parse a full configuration set from its YAML dict."""
    return CoreConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        certificates=parse_certificates(data.get("certificates", {})),
        fit=parse_fit(data.get("fit", {})),
        approval=parse_approval(data.get("approval", {})),
        deliveries=parse_deliveries(data.get("deliveries", {})),
        retry=parse_retry(data.get("retry", {})),
        checksum=compute_checksum(data),
    )


def load_core_config(path: Path) -> CoreConfig:
    return parse_core_config(load_yaml_file(path))
