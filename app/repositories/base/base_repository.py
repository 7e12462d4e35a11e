"""
Base repository for the billing-core tables.

Repositories flush but never commit: the calling service owns the
transaction so a multi-step lifecycle change lands all at once.
Driver errors are translated into the data-access exceptions in
``app.core.exceptions``.
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from app.models.base import BaseModel
from app.core.logging import get_logger
from app.core.exceptions import RepositoryError, EntityAlreadyExistsError

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """Add, look up, count and delete rows of one model."""

    def __init__(self, model: Type[ModelType], db: Session):
        self.model = model
        self.db = db

    def flush(self) -> None:
        """
        Raises:
            EntityAlreadyExistsError: a pending change breaks a unique constraint
        """
        try:
            self.db.flush()
        except IntegrityError as e:
            raise EntityAlreadyExistsError(
                f"{self.model.__name__} violates a uniqueness constraint",
                {"error": str(e.orig)},
            ) from e

    def create(self, entity: ModelType) -> ModelType:
        """
        Add and flush a new row.

        Raises:
            EntityAlreadyExistsError: a unique constraint is violated
            RepositoryError: any other database failure
        """
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as e:
            raise EntityAlreadyExistsError(
                f"{self.model.__name__} already exists",
                {"error": str(e.orig)},
            ) from e
        except SQLAlchemyError as e:
            raise RepositoryError(f"Create failed: {str(e)}") from e

        logger.debug(f"Created {self.model.__name__} with id: {entity.id}")
        return entity

    def find_by_id(self, id: Any) -> Optional[ModelType]:
        try:
            return self.db.get(self.model, id)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Find by ID failed: {str(e)}") from e

    def count(self, criteria: Optional[Dict[str, Any]] = None) -> int:
        """Row count, filtered by column equality."""
        try:
            stmt = select(func.count()).select_from(self.model)
            for key, value in (criteria or {}).items():
                stmt = stmt.where(getattr(self.model, key) == value)
            return int(self.db.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Count failed: {str(e)}") from e

    def delete(self, entity: ModelType) -> None:
        try:
            self.db.delete(entity)
            self.db.flush()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Delete failed: {str(e)}") from e
