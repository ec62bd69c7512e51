"""
Operation results (``saf_kernel.domain.results``).

Responsibility
--------------
The single return type of every public service operation.  Business-rule
violations never escape a service as exceptions: they are caught at the
service boundary and carried here as a typed ``SafKernelError`` instance,
so callers branch on ``error.code`` or ``isinstance`` without try/except.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from saf_kernel.exceptions import SafKernelError

T = TypeVar("T")


class OperationStatus(str, Enum):
    """Outcome of a service operation."""

    OK = "ok"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Result of a core operation: the updated entity or a typed error."""

    status: OperationStatus
    value: T | None = None
    error: SafKernelError | None = None

    @classmethod
    def ok(cls, value: T) -> OperationResult[T]:
        return cls(status=OperationStatus.OK, value=value)

    @classmethod
    def fail(cls, error: SafKernelError) -> OperationResult[T]:
        return cls(status=OperationStatus.REJECTED, error=error)

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.OK

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None
