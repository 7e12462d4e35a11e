"""
Real-time subscription event notifier.

Events are best-effort: a user without a live connection simply misses
the event and picks up the new state through
``GET /subscriptions/current``. Delivery never blocks or fails the
operation that produced the event.

With Redis fan-out enabled every event is also published wrapped in a
relay envelope tagged with this instance's id; ``SubscriptionEventRelay``
on the other instances unwraps it and delivers to their local sockets.
"""

from enum import Enum
from typing import Any, Dict, Optional, Set
import asyncio
import json
import logging
import uuid

from redis import Redis
from redis.exceptions import RedisError

from app.config.redis import event_channel
from app.models.base.types import utc_now
from app.services.notification.connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class SubscriptionEventType(str, Enum):
    SUBSCRIPTION_UPDATED = "SUBSCRIPTION_UPDATED"
    TRIAL_EXPIRING = "TRIAL_EXPIRING"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    USAGE_LIMIT_WARNING = "USAGE_LIMIT_WARNING"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"


def build_message(event_type: SubscriptionEventType, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "type": SubscriptionEventType(event_type).value,
        "data": data or {},
        "timestamp": utc_now().isoformat(),
    }


def build_envelope(origin: str, user_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
    """Cross-instance wrapper around one client message."""
    return {"origin": origin, "userId": user_id, "message": message}


class SubscriptionNotifier:
    """
    Publishes typed subscription events to a user's live connections.

    Services call ``dispatch`` from synchronous code after their commit;
    the coroutine is scheduled on the application loop captured at
    startup (``bind_loop``) and the caller returns immediately.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        redis_client: Optional[Redis] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        instance_id: Optional[str] = None,
    ):
        self.registry = registry
        self.instance_id = instance_id or uuid.uuid4().hex
        self._redis = redis_client
        self._loop = loop
        self._pending: Set[asyncio.Task] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    # ------------------------------------------------------------------ #
    # Delivery
    # ------------------------------------------------------------------ #

    async def publish(
        self,
        user_id: str,
        event_type: SubscriptionEventType,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Send one event to every connection the user has on this instance
        and hand it to Redis for the other instances.

        Returns:
            Number of local connections the event reached
        """
        message = build_message(event_type, data)
        delivered = await self.deliver(user_id, message)

        if self._redis is not None:
            self._fan_out(user_id, message)
        return delivered

    async def deliver(self, user_id: str, message: Dict[str, Any]) -> int:
        """
        Send an already-built message to the user's local connections.

        Connections that fail to receive are deregistered.
        """
        delivered = 0

        for connection in self.registry.connections_for(user_id):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(
                    f"Dropping connection for user {user_id} after failed send of {message['type']}: {e}"
                )
                self.registry.deregister(user_id, connection)
                continue
            self.registry.touch(connection)
            delivered += 1

        if delivered == 0:
            logger.debug(f"No live connection for user {user_id}; {message['type']} dropped locally")
        return delivered

    def dispatch(
        self,
        user_id: str,
        event_type: SubscriptionEventType,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Fire-and-forget ``publish`` usable from sync or async code."""
        coro = self.publish(user_id, event_type, data)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            task = running.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._on_task_done)
            return

        if self._loop is not None and self._loop.is_running():
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
            future.add_done_callback(self._on_future_done)
            return

        coro.close()
        logger.debug(f"No event loop bound; {SubscriptionEventType(event_type).value} for {user_id} dropped")

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        self._on_future_done(task)

    @staticmethod
    def _on_future_done(future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Subscription event delivery failed: {error}")

    def _fan_out(self, user_id: str, message: Dict[str, Any]) -> None:
        try:
            envelope = build_envelope(self.instance_id, user_id, message)
            self._redis.publish(event_channel(user_id), json.dumps(envelope, default=str))
        except RedisError as e:
            logger.warning(f"Redis fan-out failed for user {user_id}: {e}")

    # ------------------------------------------------------------------ #
    # Typed helpers
    # ------------------------------------------------------------------ #

    def subscription_updated(self, user_id: str, subscription: Dict[str, Any]) -> None:
        self.dispatch(user_id, SubscriptionEventType.SUBSCRIPTION_UPDATED, subscription)

    def trial_expired(self, user_id: str, subscription_id: str, fallback_plan: Optional[str] = None) -> None:
        self.dispatch(
            user_id,
            SubscriptionEventType.TRIAL_EXPIRED,
            {"subscriptionId": subscription_id, "fallbackPlan": fallback_plan},
        )

    def subscription_expired(self, user_id: str, subscription_id: str, reason: Optional[str] = None) -> None:
        self.dispatch(
            user_id,
            SubscriptionEventType.SUBSCRIPTION_EXPIRED,
            {"subscriptionId": subscription_id, "reason": reason},
        )

    def usage_limit_warning(self, user_id: str, limit_type: str, current_usage: int, limit: int) -> None:
        percentage = round(current_usage * 100 / limit, 1) if limit else 100.0
        self.dispatch(
            user_id,
            SubscriptionEventType.USAGE_LIMIT_WARNING,
            {
                "limitType": limit_type,
                "currentUsage": current_usage,
                "limit": limit,
                "percentage": percentage,
            },
        )

    def payment_success(self, user_id: str, payment: Dict[str, Any]) -> None:
        self.dispatch(user_id, SubscriptionEventType.PAYMENT_SUCCESS, payment)

    def payment_failed(self, user_id: str, payment: Dict[str, Any]) -> None:
        self.dispatch(user_id, SubscriptionEventType.PAYMENT_FAILED, payment)

    # ------------------------------------------------------------------ #
    # Sweeps
    # ------------------------------------------------------------------ #

    async def notify_expiring_trials(self, lifecycle, within_days: Optional[int] = None) -> int:
        """
        Warn users whose trial ends within ``within_days``.

        Args:
            lifecycle: SubscriptionLifecycleService used to find the trials

        Returns:
            Number of users notified
        """
        result = lifecycle.get_trials_expiring_within(within_days)
        if not result.is_success:
            logger.warning(f"Trial expiry warning sweep skipped: {result.message}")
            return 0

        notified = 0
        for trial in result.data:
            await self.publish(
                trial.user_id,
                SubscriptionEventType.TRIAL_EXPIRING,
                {
                    "subscriptionId": trial.id,
                    "daysRemaining": trial.trial_days_remaining,
                    "trialEndDate": trial.trial_end_date.isoformat() if trial.trial_end_date else None,
                },
            )
            notified += 1
        logger.info(f"Trial expiry warnings sent to {notified} users")
        return notified
