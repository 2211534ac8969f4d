# liquidity/notifications/signing.py
"""Outbound webhook payloads and their HMAC signature.

The signature covers the exact bytes that are transmitted, so the body is serialized once
(canonical JSON) and both signed and sent from that buffer.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from liquidity.notifications.events import NotificationEvent

SIGNATURE_HEADER = "X-Webhook-Signature"
IDEMPOTENCY_HEADER = "X-Idempotency-Key"

# ids, amounts and status only: no emails, names or secrets leave the platform
WEBHOOK_FIELDS = (
    "request_id",
    "request_number",
    "investor_id",
    "offering_id",
    "property_name",
    "quantity",
    "gross_value",
    "fee_amount",
    "net_payout",
    "status",
    "payout_reference",
    "reserve_balance",
    "reserve_target",
    "pending_requests_count",
)


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(
        payload,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_default,
    ).encode("utf-8")


def build_webhook_payload(event: NotificationEvent) -> Dict[str, Any]:
    data = {k: event.data[k] for k in WEBHOOK_FIELDS if event.data.get(k) is not None}
    return {
        "event": event.webhook_event or event.type.value,
        "timestamp": event.created_at.isoformat(),
        "data": data,
    }


def sign(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Receiver side check. A missing header means "unverified", reported as False."""
    if not signature:
        return False
    return hmac.compare_digest(sign(body, secret), signature)


class WebhookSigner:
    def __init__(self, secret: Optional[str] = None):
        self._secret = secret or None

    @property
    def enabled(self) -> bool:
        return self._secret is not None

    def headers(self, body: bytes) -> Dict[str, str]:
        if not self._secret:
            return {}
        return {SIGNATURE_HEADER: sign(body, self._secret)}
