# app/services/common/errors.py
"""
Service-layer exceptions.

Unit-of-work helpers (opening, superseding and renewing a subscription)
raise these; the public service method that called them rolls back and
turns the exception into a ServiceResult failure.
"""
from __future__ import annotations

from typing import Any, Optional


class ServiceError(Exception):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(ServiceError):
    """A referenced plan, subscription or floor does not exist."""

    def __init__(
        self,
        resource_type: str,
        identifier: str | int,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"{resource_type} with identifier '{identifier}' not found", details)
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(ServiceError):
    """Counts or terms a plan cannot satisfy; ``field`` names the offending input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field


class InvalidStateTransition(ServiceError):
    """A subscription status change is not in the transition table."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition subscription from {current} to {target}",
            {"from_status": current, "to_status": target},
        )
        self.current = current
        self.target = target
