from liquidity.notifications.dispatcher import (
    ChannelOutcome,
    DeliveryReport,
    DeliveryStatus,
    NotificationDispatcher,
)
from liquidity.notifications.events import EventType, NotificationEvent
from liquidity.notifications.signing import WebhookSigner

__all__ = [
    "ChannelOutcome",
    "DeliveryReport",
    "DeliveryStatus",
    "EventType",
    "NotificationDispatcher",
    "NotificationEvent",
    "WebhookSigner",
]
