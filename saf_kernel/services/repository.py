"""
Repository -- the persistence interface consumed by the ledger core.

Responsibility:
    ``load`` an entity by id, ``save`` it with an optimistic version check,
    ``query`` entities by equality filters, and ``delete`` them.  This is the
    only place where SQLAlchemy errors are translated into kernel exceptions.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Flushes within the
    caller's transaction; NEVER commits or rolls back.

Invariants enforced:
    - Conditional update: for versioned models (``version_id_col`` mapped),
      ``save`` bumps the row version so the emitted UPDATE carries
      ``WHERE row_version = :seen``.  A concurrent writer that saved first turns
      this flush into ``OptimisticLockError``.
    - Row locking: ``load(..., for_update=True)`` issues SELECT ... FOR UPDATE
      (ignored by SQLite, honoured by PostgreSQL).

Failure modes:
    - EntityNotFoundError when ``load`` finds no row.
    - OptimisticLockError on a stale versioned UPDATE.
    - PersistenceError wrapping any other SQLAlchemyError.
"""

from __future__ import annotations

from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from saf_kernel.db.base import Base
from saf_kernel.exceptions import (
    EntityNotFoundError,
    OptimisticLockError,
    PersistenceError,
)
from saf_kernel.logging_config import get_logger

logger = get_logger("services.repository")

ModelType = TypeVar("ModelType", bound=Base)


class Repository:
    """
    Load/save/query over a caller-owned SQLAlchemy session.

    Contract:
        All methods operate inside the session's current transaction.
    Guarantees:
        - ``save`` either flushes the full entity graph or raises.
    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def load(
        self,
        model: type[ModelType],
        entity_id: UUID,
        *,
        for_update: bool = False,
    ) -> ModelType:
        """Load one entity by id or raise ``EntityNotFoundError``."""
        stmt = select(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        try:
            entity = self._session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("load", str(exc)) from exc
        if entity is None:
            logger.info("entity_not_found", extra={
                "entity_type": model.__name__,
                "entity_id": str(entity_id),
            })
            raise EntityNotFoundError(model.__name__, str(entity_id))
        return entity

    def save(self, entity: ModelType) -> ModelType:
        """Persist ``entity``; versioned rows are updated conditionally."""
        state = inspect(entity)
        mapper = state.mapper
        if state.persistent and mapper.version_id_col is not None:
            key = mapper.get_property_by_column(mapper.version_id_col).key
            setattr(entity, key, (getattr(entity, key) or 0) + 1)
        try:
            self._session.add(entity)
            self._session.flush()
        except StaleDataError as exc:
            logger.warning("optimistic_lock_conflict", extra={
                "entity_type": type(entity).__name__,
                "entity_id": str(entity.id),
            })
            raise OptimisticLockError(type(entity).__name__, str(entity.id)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("save", str(exc)) from exc
        return entity

    def query(self, model: type[ModelType], **filters: Any) -> list[ModelType]:
        """List entities whose columns equal the given filter values."""
        stmt = select(model).filter_by(**filters)
        try:
            return list(self._session.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError("query", str(exc)) from exc

    def delete(self, entity: ModelType) -> None:
        """Delete ``entity``; versioned rows are deleted conditionally."""
        try:
            self._session.delete(entity)
            self._session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError(type(entity).__name__, str(entity.id)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("delete", str(exc)) from exc
