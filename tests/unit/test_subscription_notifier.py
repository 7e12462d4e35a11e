"""Tests for the connection registry and subscription notifier."""

import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.config.redis import event_channel
from app.main import start_event_relay
from app.services.notification import (
    ConnectionRegistry,
    SubscriptionEventRelay,
    SubscriptionEventType,
    SubscriptionNotifier,
    build_envelope,
    build_message,
)


class FakeConnection:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.closed = False

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


class FakeRedis:
    def __init__(self, fail=False):
        self.published = []
        self.fail = fail

    def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.published.append((channel, message))
        return 1


class FakePubSub:
    def __init__(self, messages=()):
        self.messages = list(messages)
        self.patterns = []
        self.closed = False

    async def psubscribe(self, *patterns):
        self.patterns.extend(patterns)

    async def punsubscribe(self, *patterns):
        for pattern in patterns:
            self.patterns.remove(pattern)

    async def listen(self):
        for message in self.messages:
            yield message
        await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FakeAsyncRedis:
    def __init__(self, messages=()):
        self.pubsub_client = FakePubSub(messages)
        self.closed = False

    def pubsub(self):
        return self.pubsub_client

    async def aclose(self):
        self.closed = True


class TickingClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.unit
class TestConnectionRegistry:
    """Test connection bookkeeping."""

    def test_register_and_deregister(self):
        registry = ConnectionRegistry()
        first, second = FakeConnection(), FakeConnection()

        registry.register("user-1", first)
        registry.register("user-1", second)

        assert registry.is_user_connected("user-1")
        assert registry.connected_users_count() == 1
        assert registry.connections_for("user-1") == [first, second]

        assert registry.deregister("user-1", first) is True
        assert registry.deregister("user-1", first) is False
        assert registry.deregister("user-2", second) is False

        registry.deregister("user-1", second)
        assert not registry.is_user_connected("user-1")
        assert registry.connected_users_count() == 0

    def test_sweep_drops_closed_connections(self):
        registry = ConnectionRegistry()
        live, dead = FakeConnection(), FakeConnection()
        registry.register("user-1", live)
        registry.register("user-2", dead)
        dead.closed = True

        assert registry.sweep() == 1
        assert registry.is_user_connected("user-1")
        assert not registry.is_user_connected("user-2")

    def test_sweep_drops_idle_connections(self):
        clock = TickingClock()
        registry = ConnectionRegistry(clock=clock)
        idle, active = FakeConnection(), FakeConnection()
        registry.register("user-1", idle)
        registry.register("user-2", active)

        clock.now = 100.0
        registry.touch(active)
        clock.now = 130.0

        assert registry.sweep(max_idle_seconds=60) == 1
        assert registry.connections_for("user-2") == [active]
        assert registry.connections_for("user-1") == []


@pytest.mark.unit
class TestSubscriptionNotifier:
    """Test event delivery."""

    def test_build_message_shape(self):
        message = build_message(SubscriptionEventType.TRIAL_EXPIRED, {"subscriptionId": "sub-1"})

        assert message["type"] == "TRIAL_EXPIRED"
        assert message["data"] == {"subscriptionId": "sub-1"}
        assert "T" in message["timestamp"]

    def test_publish_reaches_every_connection(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry)
        first, second = FakeConnection(), FakeConnection()
        registry.register("user-1", first)
        registry.register("user-1", second)

        delivered = asyncio.run(
            notifier.publish("user-1", SubscriptionEventType.SUBSCRIPTION_UPDATED, {"id": "sub-1"})
        )

        assert delivered == 2
        assert first.sent[0]["type"] == "SUBSCRIPTION_UPDATED"
        assert second.sent[0]["data"] == {"id": "sub-1"}

    def test_failed_send_deregisters_connection(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry)
        good, broken = FakeConnection(), FakeConnection(fail=True)
        registry.register("user-1", good)
        registry.register("user-1", broken)

        delivered = asyncio.run(notifier.publish("user-1", SubscriptionEventType.PAYMENT_SUCCESS))

        assert delivered == 1
        assert registry.connections_for("user-1") == [good]

    def test_publish_without_connections(self):
        notifier = SubscriptionNotifier(ConnectionRegistry())

        assert asyncio.run(notifier.publish("user-1", SubscriptionEventType.PAYMENT_FAILED)) == 0

    def test_redis_fan_out(self):
        redis = FakeRedis()
        notifier = SubscriptionNotifier(ConnectionRegistry(), redis_client=redis, instance_id="api-1")

        asyncio.run(notifier.publish("user-1", SubscriptionEventType.PAYMENT_SUCCESS, {"paymentId": "pay_1"}))

        [(channel, payload)] = redis.published
        envelope = json.loads(payload)
        assert channel == event_channel("user-1")
        assert envelope["origin"] == "api-1"
        assert envelope["userId"] == "user-1"
        assert envelope["message"]["type"] == "payment_success"
        assert envelope["message"]["data"] == {"paymentId": "pay_1"}

    def test_redis_failure_does_not_break_delivery(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry, redis_client=FakeRedis(fail=True))
        connection = FakeConnection()
        registry.register("user-1", connection)

        delivered = asyncio.run(notifier.publish("user-1", SubscriptionEventType.PAYMENT_SUCCESS))

        assert delivered == 1

    def test_dispatch_without_loop_is_dropped(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry)
        connection = FakeConnection()
        registry.register("user-1", connection)

        notifier.subscription_updated("user-1", {"id": "sub-1"})

        assert connection.sent == []

    def test_dispatch_inside_running_loop(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry)
        connection = FakeConnection()
        registry.register("user-1", connection)

        async def scenario():
            notifier.usage_limit_warning("user-1", "beds", 9, 10)
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        asyncio.run(scenario())

        [message] = connection.sent
        assert message["type"] == "USAGE_LIMIT_WARNING"
        assert message["data"] == {"limitType": "beds", "currentUsage": 9, "limit": 10, "percentage": 90.0}


@pytest.mark.unit
class TestEventRelay:
    """Test cross-instance delivery of subscription events."""

    def relayed(self, origin, user_id="user-1", event_type=SubscriptionEventType.SUBSCRIPTION_UPDATED):
        envelope = build_envelope(origin, user_id, build_message(event_type, {"id": "sub-1"}))
        return {"type": "pmessage", "channel": event_channel(user_id), "data": json.dumps(envelope)}

    def test_foreign_event_reaches_local_socket(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry, instance_id="api-2")
        connection = FakeConnection()
        registry.register("user-1", connection)
        relay = SubscriptionEventRelay(notifier, FakeAsyncRedis())

        message = build_message(SubscriptionEventType.TRIAL_EXPIRED, {"subscriptionId": "sub-1"})
        payload = json.dumps(build_envelope("api-1", "user-1", message))

        delivered = asyncio.run(relay.handle(payload))

        assert delivered == 1
        assert connection.sent[0]["type"] == "TRIAL_EXPIRED"
        assert connection.sent[0]["data"] == {"subscriptionId": "sub-1"}

    def test_own_event_is_not_delivered_twice(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry, instance_id="api-1")
        connection = FakeConnection()
        registry.register("user-1", connection)
        relay = SubscriptionEventRelay(notifier, FakeAsyncRedis())

        delivered = asyncio.run(relay.handle(self.relayed("api-1")["data"]))

        assert delivered == 0
        assert connection.sent == []

    @pytest.mark.parametrize("raw", ["not json", json.dumps(["list"]), json.dumps({"origin": "api-1"}), None])
    def test_unreadable_payload_is_discarded(self, raw):
        notifier = SubscriptionNotifier(ConnectionRegistry(), instance_id="api-2")
        relay = SubscriptionEventRelay(notifier, FakeAsyncRedis())

        assert asyncio.run(relay.handle(raw)) == 0

    def test_listener_relays_until_stopped(self):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry, instance_id="api-2")
        connection = FakeConnection()
        registry.register("user-1", connection)
        redis = FakeAsyncRedis(
            [
                {"type": "psubscribe", "channel": "subscription-events:*", "data": 1},
                self.relayed("api-1"),
                self.relayed("api-2"),
                self.relayed("api-3", event_type=SubscriptionEventType.PAYMENT_SUCCESS),
            ]
        )
        relay = SubscriptionEventRelay(notifier, redis)

        async def scenario():
            await relay.start()
            assert redis.pubsub_client.patterns == ["subscription-events:*"]
            for _ in range(5):
                await asyncio.sleep(0)
            assert relay.is_running
            await relay.stop()

        asyncio.run(scenario())

        assert [message["type"] for message in connection.sent] == ["SUBSCRIPTION_UPDATED", "payment_success"]
        assert not relay.is_running
        assert redis.pubsub_client.patterns == []
        assert redis.pubsub_client.closed
        assert redis.closed

    def test_relay_not_started_without_fan_out(self):
        assert asyncio.run(start_event_relay()) is None


@pytest.mark.unit
class TestTrialExpiryWarnings:
    """Test the expiring-trial sweep."""

    def test_warns_users_near_trial_end(self, lifecycle, system_plans, clock):
        registry = ConnectionRegistry()
        notifier = SubscriptionNotifier(registry)
        connection = FakeConnection()
        registry.register("user-1", connection)
        trial = lifecycle.activate_free_trial("user-1").data
        lifecycle.activate_free_trial("user-2")

        clock.advance(days=12)
        notified = asyncio.run(notifier.notify_expiring_trials(lifecycle, within_days=3))

        assert notified == 2
        [message] = connection.sent
        assert message["type"] == "TRIAL_EXPIRING"
        assert message["data"]["subscriptionId"] == trial.id

    def test_no_trials_in_window(self, lifecycle, system_plans):
        notifier = SubscriptionNotifier(ConnectionRegistry())
        lifecycle.activate_free_trial("user-1")

        assert asyncio.run(notifier.notify_expiring_trials(lifecycle, within_days=3)) == 0
