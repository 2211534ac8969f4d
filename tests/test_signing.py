import base64
import hashlib
import hmac
import json
from decimal import Decimal

from liquidity.notifications.events import EventType, NotificationEvent
from liquidity.notifications.signing import (
    SIGNATURE_HEADER,
    WebhookSigner,
    build_webhook_payload,
    serialize_payload,
    sign,
    verify,
)

SECRET = "whsec_test"


def _completed_event():
    return NotificationEvent.create(
        EventType.REQUEST_COMPLETED,
        {
            "request_id": 7,
            "request_number": "LIQ-2026-0007",
            "investor_id": "inv-1",
            "investor_email": "investor@example.com",
            "offering_id": "OFF-1",
            "net_payout": Decimal("1700.00"),
            "status": "completed",
            "payout_reference": "WIRE-991",
        },
    )


def test_signature_is_base64_hmac_sha256_of_body():
    body = b'{"a":1}'
    expected = base64.b64encode(hmac.new(SECRET.encode(), body, hashlib.sha256).digest()).decode()

    assert sign(body, SECRET) == expected
    assert WebhookSigner(SECRET).headers(body) == {SIGNATURE_HEADER: expected}


def test_receiver_verification():
    body = serialize_payload(build_webhook_payload(_completed_event()))
    signature = sign(body, SECRET)

    assert verify(body, signature, SECRET)
    assert not verify(body.replace(b"1700.00", b"9700.00"), signature, SECRET)
    assert not verify(body, signature, "other-secret")
    assert not verify(body, None, SECRET)


def test_unsigned_without_secret():
    signer = WebhookSigner(None)
    assert not signer.enabled
    assert signer.headers(b"{}") == {}
    assert not WebhookSigner("").enabled


def test_payload_carries_no_email_addresses():
    payload = build_webhook_payload(_completed_event())

    assert payload["event"] == "liquidity_request.completed"
    assert "investor_email" not in payload["data"]
    assert payload["data"]["payout_reference"] == "WIRE-991"
    assert b"@" not in serialize_payload(payload)


def test_serialization_is_canonical():
    body = serialize_payload({"b": Decimal("1.50"), "a": {"d": 1, "c": 2}})

    assert body == b'{"a":{"c":2,"d":1},"b":"1.50"}'
    assert json.loads(body)["b"] == "1.50"
