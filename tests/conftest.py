"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at a throwaway database first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["ENABLE_REDIS_FANOUT"] = "false"

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base, import_models
from app.db.seed import seed_default_plans
from app.db.session import enable_sqlite_transactions
from app.models.base.types import utc_now
from app.models.room import Floor, Room
from app.models.subscription import SubscriptionPlan
from app.repositories.room import RoomRepository
from app.repositories.subscription import (
    PaymentEventRepository,
    SubscriptionPlanRepository,
    UserSubscriptionRepository,
)
from app.schemas.common.enums import BillingCycle, PlanStatus
from app.services.notification import ConnectionRegistry, SubscriptionNotifier
from app.services.room import RoomService
from app.services.subscription import (
    EntitlementService,
    PaymentReconciliationService,
    PlanCatalogService,
    SubscriptionLifecycleService,
)
from app.services.subscription.webhook_signature import compute_signature

WEBHOOK_SECRET = "whsec_test"
PROPERTY_ID = "property-1"


class RecordingNotifier(SubscriptionNotifier):
    """Notifier that records events instead of scheduling delivery."""

    def __init__(self):
        super().__init__(ConnectionRegistry())
        self.events = []

    def dispatch(self, user_id, event_type, data=None):
        self.events.append((user_id, event_type.value, data or {}))

    def of_type(self, event_type):
        return [event for event in self.events if event[1] == event_type]


class FrozenClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now=None):
        self.now = now or utc_now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="session")
def engine():
    """In-memory SQLite shared across the test session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_transactions(engine)
    import_models()
    return engine


@pytest.fixture(scope="function")
def db(engine):
    """Database session with fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Sessions on a file-backed SQLite database in WAL mode.

    Each session gets its own connection, so tests can interleave two
    transactions the way two API workers would.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'billing.db'}",
        connect_args={"check_same_thread": False, "timeout": 1},
    )

    @event.listens_for(engine, "connect")
    def _use_wal(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    enable_sqlite_transactions(engine)
    import_models()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# --- Plans -----------------------------------------------------------------------

@pytest.fixture
def system_plans(db):
    """The seeded trial and trial-expired plans, keyed by name."""
    return seed_default_plans(db)


@pytest.fixture
def sample_plan(db):
    """Paid plan with top-ups, branches and an annual discount."""
    plan = SubscriptionPlan(
        plan_name="Standard",
        plan_description="For growing PGs",
        billing_cycle=BillingCycle.MONTHLY,
        base_price=Decimal("999.00"),
        annual_discount=Decimal("10"),
        top_up_price_per_bed=Decimal("50.00"),
        base_bed_count=10,
        max_beds_allowed=50,
        max_rooms_allowed=20,
        allow_multiple_branches=True,
        branch_count=3,
        cost_per_branch=Decimal("500.00"),
        status=PlanStatus.ACTIVE,
    )
    plan.normalize()
    db.add(plan)
    db.commit()
    return plan


@pytest.fixture
def sample_premium_plan(db):
    plan = SubscriptionPlan(
        plan_name="Premium",
        billing_cycle=BillingCycle.MONTHLY,
        base_price=Decimal("2999.00"),
        top_up_price_per_bed=Decimal("40.00"),
        base_bed_count=40,
        max_beds_allowed=200,
        allow_multiple_branches=False,
        status=PlanStatus.ACTIVE,
    )
    plan.normalize()
    db.add(plan)
    db.commit()
    return plan


@pytest.fixture
def property_id():
    return PROPERTY_ID


@pytest.fixture
def sample_floor(db):
    floor = Floor(property_id=PROPERTY_ID, floor_number=1, name="Ground")
    db.add(floor)
    db.commit()
    return floor


@pytest.fixture
def make_rooms(db):
    """Insert rooms directly, bypassing the quota gate."""

    def _make_rooms(floor, beds_per_room, count=1, start=100, is_active=True):
        for offset in range(count):
            db.add(
                Room(
                    property_id=floor.property_id,
                    floor_id=floor.id,
                    room_number=str(start + offset),
                    number_of_beds=beds_per_room,
                    is_active=is_active,
                )
            )
        db.commit()

    return _make_rooms


# --- Services --------------------------------------------------------------------

@pytest.fixture
def catalog(db):
    return PlanCatalogService(SubscriptionPlanRepository(db), db)


@pytest.fixture
def lifecycle(db, notifier, clock):
    return SubscriptionLifecycleService(
        UserSubscriptionRepository(db),
        db,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def entitlement(db, lifecycle):
    return EntitlementService(lifecycle.repository, db, lifecycle=lifecycle)


@pytest.fixture
def room_service(db, entitlement, notifier):
    return RoomService(RoomRepository(db), db, entitlement=entitlement, notifier=notifier)


@pytest.fixture
def reconciliation(db, lifecycle, notifier):
    return PaymentReconciliationService(
        PaymentEventRepository(db),
        db,
        lifecycle=lifecycle,
        plan_repository=lifecycle.plans,
        subscription_repository=lifecycle.repository,
        notifier=notifier,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def sign():
    """Signs a raw webhook body the way the gateway does."""

    def _sign(raw_body):
        return compute_signature(raw_body, WEBHOOK_SECRET)

    return _sign
