"""
Payment event repository.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.subscription.payment_event import PaymentEvent
from app.repositories.base.base_repository import BaseRepository


class PaymentEventRepository(BaseRepository[PaymentEvent]):
    """Append-only access to gateway transactions."""

    def __init__(self, db: Session):
        super().__init__(PaymentEvent, db)

    def find_by_gateway_ids(self, order_id: str, payment_id: str) -> Optional[PaymentEvent]:
        """Idempotency lookup on the (order id, payment id) pair."""
        stmt = select(PaymentEvent).where(
            PaymentEvent.gateway_order_id == order_id,
            PaymentEvent.gateway_payment_id == payment_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_subscription(self, subscription_id: str) -> List[PaymentEvent]:
        stmt = (
            select(PaymentEvent)
            .where(PaymentEvent.subscription_id == subscription_id)
            .order_by(PaymentEvent.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_user(self, user_id: str) -> List[PaymentEvent]:
        stmt = (
            select(PaymentEvent)
            .where(PaymentEvent.user_id == user_id)
            .order_by(PaymentEvent.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())
