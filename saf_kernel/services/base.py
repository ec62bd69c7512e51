"""
BaseService -- abstract base for all ledger service facades.

Responsibility:
    Provides the common constructor and the transaction/result contract for
    every module service.  Each public operation runs as one unit of work:
    load, apply a pure engine, save, commit -- or roll back and return a
    typed failure.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Concrete services
    in ``saf_modules/*/service.py`` extend this class.

Invariants enforced:
    - All-or-nothing: any failure inside ``_execute`` rolls the session back
      before the result is returned, so no partial state is ever committed.
    - Retry on conflict: ``OptimisticLockError`` re-runs the whole
      read-modify-write up to ``max_attempts`` times.
    - Business-rule violations (``SafKernelError``) become
      ``OperationResult.fail``; programmer errors propagate after rollback.

Failure modes:
    - After ``max_attempts`` conflicts, the last ``OptimisticLockError`` is
      returned as the failure.
    - Commit-time SQLAlchemy errors become ``PersistenceError`` results.
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from saf_kernel.domain.clock import Clock, SystemClock
from saf_kernel.domain.results import OperationResult
from saf_kernel.exceptions import (
    OptimisticLockError,
    PersistenceError,
    SafKernelError,
)
from saf_kernel.logging_config import LogContext, get_logger
from saf_kernel.services.repository import Repository

logger = get_logger("services.base")

T = TypeVar("T")


class BaseService(ABC):
    """
    Abstract base class for module services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and owns its transaction boundary:
        commit on success, rollback on failure.
    Non-goals:
        - Does NOT contain business rules -- those live in ``saf_engines``.
    """

    # INVARIANT: Safety limit -- prevents unbounded conflict retry loops
    MAX_ATTEMPTS_LIMIT = 10

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = 3,
    ):
        if not 1 <= max_attempts <= self.MAX_ATTEMPTS_LIMIT:
            raise ValueError(
                f"max_attempts must be between 1 and {self.MAX_ATTEMPTS_LIMIT}"
            )
        self._session = session
        self._clock = clock or SystemClock()
        self._repo = Repository(session)
        self._max_attempts = max_attempts

    @property
    def session(self) -> Session:
        return self._session

    def _execute(
        self,
        operation: str,
        work: Callable[[], T],
        entity_id: object = None,
        **log_context: object,
    ) -> OperationResult[T]:
        """Run ``work`` as one committed unit of work and wrap the outcome.

        ``log_context`` names ledger keys (``batch_id``, ``contract_id``,
        ``bid_id``) bound onto every log line the operation emits.
        """
        with LogContext.bind(entity_id=entity_id or None, **log_context):
            logger.info(f"{operation}_started")
            last_conflict: OptimisticLockError | None = None
            for attempt in range(1, self._max_attempts + 1):
                try:
                    value = work()
                    self._session.commit()
                except OptimisticLockError as exc:
                    self._session.rollback()
                    last_conflict = exc
                    logger.warning(f"{operation}_conflict_retry", extra={
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                    })
                    continue
                except SafKernelError as exc:
                    self._session.rollback()
                    logger.warning(f"{operation}_rejected", extra={
                        "error_code": exc.code,
                        "error_message": str(exc),
                    })
                    return OperationResult.fail(exc)
                except SQLAlchemyError as exc:
                    self._session.rollback()
                    logger.error(f"{operation}_persistence_failed", exc_info=True)
                    return OperationResult.fail(PersistenceError(operation, str(exc)))
                except Exception:
                    self._session.rollback()
                    logger.error(f"{operation}_failed", exc_info=True)
                    raise
                logger.info(f"{operation}_completed", extra={"attempt": attempt})
                return OperationResult.ok(value)

            logger.error(f"{operation}_conflict_exhausted", extra={
                "max_attempts": self._max_attempts,
            })
            assert last_conflict is not None
            return OperationResult.fail(last_conflict)
