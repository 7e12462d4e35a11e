"""Real-time subscription notifications."""

from app.services.notification.connection_registry import ConnectionRegistry
from app.services.notification.event_relay import SubscriptionEventRelay
from app.services.notification.subscription_notifier import (
    SubscriptionEventType,
    SubscriptionNotifier,
    build_envelope,
    build_message,
)

__all__ = [
    "ConnectionRegistry",
    "SubscriptionEventRelay",
    "SubscriptionEventType",
    "SubscriptionNotifier",
    "build_envelope",
    "build_message",
]
