# app/services/common/unit_of_work.py
"""
Unit of Work over a request-scoped session.

Bulk room uploads write many rows under one quota decision: the outer
unit owns the commit, and each row gets a savepoint so a duplicate
or a bad floor only loses that row.
"""
from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from typing import Any, Dict, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository

from .errors import ServiceError

logger = logging.getLogger(__name__)

TRepository = TypeVar("TRepository", bound=BaseRepository)


class TransactionError(ServiceError):
    """Commit of a unit of work failed and was rolled back."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message, details={"error_type": type(original_error).__name__})
        self.original_error = original_error


class _RepositoryScope:
    """Repositories bound to one session, built once per scope."""

    session: Session

    def __init__(self) -> None:
        self._repos: Dict[Type[BaseRepository], BaseRepository] = {}

    def get_repo(self, repo_cls: Type[TRepository]) -> TRepository:
        repo = self._repos.get(repo_cls)
        if repo is None:
            repo = self._repos[repo_cls] = repo_cls(self.session)
        return repo  # type: ignore[return-value]


class UnitOfWork(_RepositoryScope, AbstractContextManager["UnitOfWork"]):
    """
    Commits on a clean exit, rolls back when the block raises.

    The session itself is owned by the caller and is never closed here.

    Usage:
        >>> with UnitOfWork(db) as uow:
        ...     for row in rows:
        ...         try:
        ...             with uow.nested() as nested:
        ...                 nested.get_repo(RoomRepository).create(...)
        ...         except EntityAlreadyExistsError:
        ...             continue
    """

    def __init__(self, session: Session) -> None:
        super().__init__()
        self.session = session
        self._done = False

    def __enter__(self) -> "UnitOfWork":
        self._done = False
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if exc_type is not None:
            if not self._done:
                self.rollback()
                logger.warning(f"Unit of work rolled back after {exc_type.__name__}")
        elif not self._done:
            self.commit()
        return False

    def commit(self) -> None:
        """
        Commit once; later exits become no-ops.

        Raises:
            TransactionError: the database refused the commit
        """
        if self._done:
            return
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            self._done = True
            logger.error(f"Unit of work commit failed: {exc}")
            raise TransactionError("Failed to commit transaction", exc) from exc
        self._done = True

    def rollback(self) -> None:
        if self._done:
            return
        self.session.rollback()
        self._done = True

    def nested(self) -> "NestedUnitOfWork":
        return NestedUnitOfWork(self.session)


class NestedUnitOfWork(_RepositoryScope, AbstractContextManager["NestedUnitOfWork"]):
    """Savepoint released on a clean exit and rolled back when the block raises."""

    def __init__(self, session: Session) -> None:
        super().__init__()
        self.session = session
        self._savepoint: Any = None

    def __enter__(self) -> "NestedUnitOfWork":
        self._savepoint = self.session.begin_nested()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if exc_type is None:
            self._savepoint.commit()
        elif self._savepoint.is_active:
            self._savepoint.rollback()
        return False
