"""
Data access exceptions.

Repositories raise these; services catch them at their boundary and
convert them into ServiceResult failures. A unique-constraint hit is
kept apart from other database failures because several invariants
(one open subscription per user, one trial per user, one event per
gateway payment) are enforced by unique indexes.
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes raised below the service layer"""
    DATABASE_ERROR = "DATABASE_ERROR"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"


class BaseAppException(Exception):
    """Data access failure with a code and structured details."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"


class RepositoryError(BaseAppException):
    """Raised when a database operation fails"""

    def __init__(self, message: str = "Database operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.DATABASE_ERROR, details)


class EntityAlreadyExistsError(BaseAppException):
    """Raised when an insert violates a uniqueness constraint"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.DUPLICATE_ENTRY, details)
