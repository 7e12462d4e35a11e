# app/services/common/__init__.py
"""
Shared service-layer infrastructure.

- **UnitOfWork**: transaction boundary and repository factory with savepoint support
- **errors**: service-layer exception hierarchy

Example usage:
    >>> from app.services.common import UnitOfWork
    >>>
    >>> with UnitOfWork(db) as uow:
    ...     room_repo = uow.get_repo(RoomRepository)
    ...     room_repo.create(room)
"""
from __future__ import annotations

from . import errors
from .unit_of_work import NestedUnitOfWork, TransactionError, UnitOfWork

__all__ = [
    "errors",
    "UnitOfWork",
    "NestedUnitOfWork",
    "TransactionError",
]
