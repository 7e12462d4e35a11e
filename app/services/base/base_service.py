"""
Base class for billing-core services.

A service owns the transaction of each public call: it commits on
success, rolls back on failure and hands the caller a ServiceResult.
"""

from typing import TypeVar, Generic, Optional, Dict, Any
from abc import ABC

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import OperationalError

from app.core.logging import get_logger
from app.repositories.base.base_repository import BaseRepository
from app.services.base.service_result import (
    ServiceResult,
    ServiceError,
    ErrorCode,
    ErrorSeverity,
)


TModel = TypeVar("TModel")
TRepo = TypeVar("TRepo", bound=BaseRepository)

# First match wins while walking an exception's cause chain.
EXCEPTION_CODE_MAP = (
    (StaleDataError, ErrorCode.CONFLICT),
    (OperationalError, ErrorCode.TRANSIENT_ERROR),
    (TimeoutError, ErrorCode.TRANSIENT_ERROR),
    (ValueError, ErrorCode.VALIDATION_ERROR),
)


class BaseService(ABC, Generic[TModel, TRepo]):
    """
    Shared session, primary repository and logger, plus the
    catch-all that turns an unexpected exception into a failure result.
    """

    def __init__(self, repository: TRepo, db_session: Session):
        """
        Args:
            repository: Primary repository for the service's aggregate
            db_session: Session shared by every repository the service touches
        """
        self.repository: TRepo = repository
        self.db: Session = db_session
        self._logger = get_logger(self.__class__.__name__)

    def _handle_exception(
        self,
        exception: Exception,
        operation: str,
        entity_ref: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        """
        Log an unexpected exception and return "Failed to <operation>".

        Transient database errors are flagged ``retryable`` so schedulers
        and the webhook route can ask for a redelivery.
        """
        context = {
            "operation": operation,
            "entity_ref": str(entity_ref) if entity_ref is not None else None,
            "exception_type": type(exception).__name__,
        }
        if extra:
            context.update(extra)

        error_code = self._map_exception_to_error_code(exception)
        if error_code in (ErrorCode.CONFLICT, ErrorCode.VALIDATION_ERROR):
            severity = ErrorSeverity.WARNING
            self._logger.warning(f"Error during {operation}: {exception}", extra=context)
        else:
            severity = ErrorSeverity.CRITICAL
            self._logger.error(f"Error during {operation}: {exception}", exc_info=True, extra=context)

        return ServiceResult.failure(
            ServiceError(
                code=error_code,
                message=f"Failed to {operation}",
                details={
                    "entity_ref": context["entity_ref"],
                    "retryable": error_code == ErrorCode.TRANSIENT_ERROR,
                },
                severity=severity,
            )
        )

    def _map_exception_to_error_code(self, exception: BaseException) -> ErrorCode:
        """
        Map an exception, or anything in its ``__cause__`` chain, to an ErrorCode.

        Repositories wrap driver errors in RepositoryError, so the
        original OperationalError is usually one level down.
        """
        seen = set()
        current: Optional[BaseException] = exception
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            for exc_type, error_code in EXCEPTION_CODE_MAP:
                if isinstance(current, exc_type):
                    return error_code
            current = current.__cause__
        return ErrorCode.INTERNAL_ERROR
