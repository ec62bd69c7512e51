"""
saf_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the runtime way to obtain configuration through
    ``get_active_config()``.  Services receive the resulting ``CoreConfig``
    (or module configs derived from it) by constructor injection and never
    read files or environment variables themselves.

Architecture position:
    Configuration -- YAML-driven settings.  Sits above ``saf_kernel`` and
    ``saf_engines`` and below ``saf_modules``.  The kernel and engines
    MUST NEVER import from ``saf_config``; ``saf_config.bridges``
    translates settings into their inputs.

Invariants enforced:
    - Resolution order: explicit ``path`` argument, then the
      ``SAF_CONFIG_PATH`` environment variable, then the packaged
      ``sets/default.yaml``.
    - The loaded set passes loader validation before it is returned.

Failure modes:
    - ``FileNotFoundError`` -- the resolved path does not exist.
    - ``ValueError`` / ``KeyError`` -- validation failures in the set.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SAF_CONFIG_TRACE`` log entry with the config id, version, source
    path and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from saf_config.loader import load_core_config
from saf_config.schema import CoreConfig
from saf_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "SAF_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> CoreConfig:
    """Load, validate and return the active configuration set."""
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_core_config(resolved)

    _logger.info(
        "SAF_CONFIG_TRACE",
        extra={
            "trace_type": "SAF_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "approval_rule_count": len(config.approval.rules),
            "approver_count": len(config.approval.approvers),
        },
    )
    return config


__all__ = ["CoreConfig", "get_active_config"]
