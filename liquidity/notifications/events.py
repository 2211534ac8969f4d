# liquidity/notifications/events.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class EventType(str, Enum):
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_PROCESSING = "request_processing"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_DENIED = "request_denied"
    REQUEST_CANCELLED = "request_cancelled"
    ADMIN_NEW_REQUEST = "admin_new_request"
    RESERVE_LOW_WARNING = "reserve_low_warning"
    SPONSOR_MONTHLY_SUMMARY = "sponsor_monthly_summary"


INVESTOR_EVENTS = frozenset(
    {
        EventType.REQUEST_SUBMITTED,
        EventType.REQUEST_APPROVED,
        EventType.REQUEST_PROCESSING,
        EventType.REQUEST_COMPLETED,
        EventType.REQUEST_DENIED,
        EventType.REQUEST_CANCELLED,
    }
)

ADMIN_EVENTS = frozenset({EventType.ADMIN_NEW_REQUEST, EventType.RESERVE_LOW_WARNING})

# outbound webhook event names; types missing here are never sent to the webhook
WEBHOOK_EVENT_NAMES: Dict[EventType, str] = {
    EventType.REQUEST_SUBMITTED: "liquidity_request.created",
    EventType.REQUEST_APPROVED: "liquidity_request.approved",
    EventType.REQUEST_PROCESSING: "liquidity_request.processing",
    EventType.REQUEST_COMPLETED: "liquidity_request.completed",
    EventType.REQUEST_DENIED: "liquidity_request.denied",
    EventType.REQUEST_CANCELLED: "liquidity_request.cancelled",
    EventType.RESERVE_LOW_WARNING: "reserve.low_balance",
}

# status each lifecycle event announces
EVENT_STATUS: Dict[EventType, str] = {
    EventType.REQUEST_SUBMITTED: "submitted",
    EventType.REQUEST_APPROVED: "approved",
    EventType.REQUEST_PROCESSING: "processing",
    EventType.REQUEST_COMPLETED: "completed",
    EventType.REQUEST_DENIED: "denied",
    EventType.REQUEST_CANCELLED: "cancelled",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def natural_key(event_type: EventType, request_id: Any, status: Any) -> str:
    """Dedupe key for consumers: (event type, request id, status)."""
    return f"{event_type.value}:{request_id}:{status}"


@dataclass(frozen=True)
class NotificationEvent:
    type: EventType
    data: Mapping[str, Any]
    idempotency_key: str
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        event_type: EventType | str,
        data: Mapping[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> "NotificationEvent":
        event_type = EventType(event_type)
        frozen = MappingProxyType({k: v for k, v in dict(data).items() if v is not None})
        if idempotency_key is None:
            idempotency_key = natural_key(event_type, frozen.get("request_id"), frozen.get("status"))
        return cls(type=event_type, data=frozen, idempotency_key=idempotency_key)

    @property
    def subtype(self) -> str:
        # request_submitted -> submitted
        return self.type.value.split("_", 1)[1] if self.type in INVESTOR_EVENTS else self.type.value

    @property
    def webhook_event(self) -> Optional[str]:
        return WEBHOOK_EVENT_NAMES.get(self.type)


def request_event(
    event_type: EventType,
    request,
    *,
    property_name: Optional[str] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> NotificationEvent:
    """Build a lifecycle/admin event from a RedemptionRequest row or snapshot."""
    status = EVENT_STATUS.get(event_type, request.status)
    data: Dict[str, Any] = {
        "request_id": request.id,
        "request_number": request.request_number,
        "investor_id": request.investor_id,
        "investor_email": request.investor_email,
        "offering_id": request.offering_id,
        "property_name": property_name,
        "quantity": request.quantity,
        "gross_value": request.gross_value,
        "fee_amount": request.fee_amount,
        "net_payout": request.net_payout,
        "status": status,
        "denial_reason": request.denial_reason,
        "payout_reference": request.payout_reference,
    }
    if extra:
        data.update(extra)
    return NotificationEvent.create(
        event_type,
        data,
        idempotency_key=natural_key(event_type, request.id, status),
    )
