# app/api/deps.py
"""
Request dependencies.

Caller identity is read from headers set by the authentication
gateway in front of this service. Services are built per request on
the request's session; the connection registry and notifier are
process-wide.

Example usage in a router:
    from fastapi import Depends, APIRouter
    from app.api import deps

    router = APIRouter()

    @router.get("/current")
    def current(caller: deps.Caller = Depends(deps.get_caller)):
        ...
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.config.redis import build_fanout_client
from app.db.session import get_db
from app.repositories.room import RoomRepository
from app.repositories.subscription import (
    PaymentEventRepository,
    SubscriptionPlanRepository,
    UserSubscriptionRepository,
)
from app.schemas.common.enums import UserRole
from app.services.notification import ConnectionRegistry, SubscriptionNotifier
from app.services.room import RoomService
from app.services.subscription import (
    EntitlementService,
    PaymentReconciliationService,
    PlanCatalogService,
    SubscriptionLifecycleService,
)


@dataclass(frozen=True)
class Caller:
    user_id: str
    property_id: Optional[str] = None
    role: UserRole = UserRole.USER
    email: Optional[str] = None


# --- Identity ------------------------------------------------------------------

def get_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_property_id: Optional[str] = Header(None, alias="X-Property-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
) -> Caller:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")

    try:
        role = UserRole((x_user_role or UserRole.USER.value).lower())
    except ValueError:
        role = UserRole.USER

    return Caller(
        user_id=x_user_id,
        property_id=x_property_id or None,
        role=role,
        email=x_user_email or None,
    )


def require_property(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.property_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing X-Property-Id header")
    return caller


# --- Process-wide notification channel -----------------------------------------

@lru_cache()
def get_connection_registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@lru_cache()
def get_notifier() -> SubscriptionNotifier:
    return SubscriptionNotifier(get_connection_registry(), redis_client=build_fanout_client())


# --- Services ------------------------------------------------------------------

def get_plan_catalog_service(db: Session = Depends(get_db)) -> PlanCatalogService:
    return PlanCatalogService(SubscriptionPlanRepository(db), db)


def get_lifecycle_service(
    db: Session = Depends(get_db),
    notifier: SubscriptionNotifier = Depends(get_notifier),
) -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(UserSubscriptionRepository(db), db, notifier=notifier)


def get_entitlement_service(
    db: Session = Depends(get_db),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> EntitlementService:
    return EntitlementService(lifecycle.repository, db, lifecycle=lifecycle)


def get_room_service(
    db: Session = Depends(get_db),
    entitlement: EntitlementService = Depends(get_entitlement_service),
    notifier: SubscriptionNotifier = Depends(get_notifier),
) -> RoomService:
    return RoomService(RoomRepository(db), db, entitlement=entitlement, notifier=notifier)


def get_reconciliation_service(
    db: Session = Depends(get_db),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
    notifier: SubscriptionNotifier = Depends(get_notifier),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(
        PaymentEventRepository(db),
        db,
        lifecycle=lifecycle,
        plan_repository=lifecycle.plans,
        subscription_repository=lifecycle.repository,
        notifier=notifier,
    )


__all__ = [
    "Caller",
    "get_db",
    "get_caller",
    "require_property",
    "get_connection_registry",
    "get_notifier",
    "get_plan_catalog_service",
    "get_lifecycle_service",
    "get_entitlement_service",
    "get_room_service",
    "get_reconciliation_service",
]
