"""
Cross-instance relay for subscription events.

Each API instance pattern-subscribes to the per-user event channels and
pushes what it receives into its own connection registry. Envelopes
published by this instance are ignored; their local delivery already
happened in ``SubscriptionNotifier.publish``.
"""

from typing import Any, Optional
import asyncio
import contextlib
import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.config.redis import EVENT_CHANNEL_PATTERN
from app.services.notification.subscription_notifier import SubscriptionNotifier

logger = logging.getLogger(__name__)


class SubscriptionEventRelay:
    """Listens on Redis and delivers foreign events to local sockets."""

    def __init__(
        self,
        notifier: SubscriptionNotifier,
        redis_client: aioredis.Redis,
        pattern: str = EVENT_CHANNEL_PATTERN,
    ):
        self.notifier = notifier
        self.pattern = pattern
        self._redis = redis_client
        self._pubsub = None
        self._listen_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._listen_task is not None and not self._listen_task.done()

    async def start(self) -> None:
        """
        Subscribe and start the listener task.

        Raises:
            RedisError: the subscription could not be established
        """
        if self.is_running:
            return
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(self.pattern)
        self._listen_task = asyncio.create_task(self._listen(), name="subscription-event-relay")
        logger.info(f"Subscription event relay listening on {self.pattern} as {self.notifier.instance_id}")

    async def stop(self) -> None:
        """Cancel the listener and release the subscription."""
        task, self._listen_task = self._listen_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._pubsub is not None:
            try:
                await self._pubsub.punsubscribe(self.pattern)
                await self._pubsub.aclose()
            except RedisError as e:
                logger.warning(f"Closing relay subscription failed: {e}")
            self._pubsub = None

        await self._redis.aclose()
        logger.info("Subscription event relay stopped")

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") not in ("message", "pmessage"):
                    continue
                await self.handle(message.get("data"))
        except RedisError as e:
            logger.error(f"Subscription event relay lost its Redis subscription: {e}")

    async def handle(self, raw: Any) -> int:
        """
        Deliver one relayed envelope locally.

        Returns:
            Number of local connections reached; 0 for our own or
            unreadable envelopes
        """
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        try:
            envelope = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable relay payload: {e}")
            return 0

        if not isinstance(envelope, dict) or not envelope.get("userId") or not isinstance(envelope.get("message"), dict):
            logger.warning("Discarding relay payload without userId/message")
            return 0

        if envelope.get("origin") == self.notifier.instance_id:
            return 0

        return await self.notifier.deliver(envelope["userId"], envelope["message"])
