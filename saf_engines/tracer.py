"""
saf_engines.tracer -- Engine invocation tracer emitting SAF_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine calls with a structured trace record: engine name and version,
    a deterministic fingerprint of selected inputs, and the duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; never touches the database or the clock
    used by business logic.

Invariants enforced:
    - Fingerprints are deterministic: values are canonicalized (dataclasses
      field by field, dict keys sorted, Decimal via ``str``) and hashed with
      SHA-256, truncated to 16 hex chars.
    - Positional and keyword arguments are bound to parameter names before
      fingerprinting, so ``f(a, b)`` and ``f(a=a, b=b)`` trace identically.

Failure modes:
    - A fingerprint field that is not a parameter of the wrapped function is
      recorded as "null".
    - The trace is emitted only when the engine returns; a raising engine
      logs ``SAF_ENGINE_REJECTED`` with the error code and re-raises.

Usage:
    from saf_engines.tracer import traced_engine

    @traced_engine("ledger", "1.0", fingerprint_fields=("batch", "volume"))
    def allocate(batch, contract_id, contract_number, volume, now):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any

from saf_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """Compute a deterministic SHA-256 fingerprint of selected arguments.

    Missing fields are recorded as "null". Returns a 16-char hex prefix.
    """
    parts: list[str] = []
    for name in fingerprint_fields:
        parts.append(f"{name}={_canonicalize(arguments.get(name))}")
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits SAF_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "ledger").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Parameter names to include in the input
            fingerprint hash.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _logger.info(
                    "SAF_ENGINE_REJECTED",
                    extra={
                        "trace_type": "SAF_ENGINE_REJECTED",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fp,
                        "function": func.__qualname__,
                        "error_code": getattr(exc, "code", type(exc).__name__),
                    },
                )
                raise
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "SAF_ENGINE_TRACE",
                extra={
                    "trace_type": "SAF_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
