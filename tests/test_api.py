from datetime import date

import pytest
from fastapi.testclient import TestClient

from liquidity.main import app, get_services
from tests.conftest import OFFERING, held_for


@pytest.fixture
def client(services):
    # no context manager: startup would initialize the configured database
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


TIERS = [
    {"min_months": 0, "max_months": 6, "fee_percent": "15"},
    {"min_months": 6, "max_months": 12, "fee_percent": "10"},
    {"min_months": 12, "max_months": None, "fee_percent": "5"},
]


def setup_offering(client, balance="100000", target="100000"):
    r = client.put(
        f"/liquidity/programs/{OFFERING}",
        json={"property_name": "Maple Court", "fee_tiers": TIERS, "min_holding_days": 30},
    )
    assert r.status_code == 200, r.text
    r = client.post(f"/liquidity/reserves/{OFFERING}", json={"balance": balance, "target": target})
    assert r.status_code == 200, r.text


def submit(client, quantity="100", days=400, investor="inv-1"):
    return client.post(
        "/liquidity/requests",
        json={
            "offering_id": OFFERING,
            "quantity": quantity,
            "token_price": "10",
            "holding_start_date": held_for(days).isoformat(),
            "investor_id": investor,
            "investor_email": f"{investor}@example.com",
        },
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_ready_checks_database(client):
    body = client.get("/ready").json()
    assert body["status"] == "ok"
    assert body["checks"][1]["name"] == "db:select1"


def test_program_with_gapped_tiers_is_rejected(client):
    bad = [
        {"min_months": 0, "max_months": 6, "fee_percent": "15"},
        {"min_months": 8, "max_months": None, "fee_percent": "5"},
    ]
    r = client.put(f"/liquidity/programs/{OFFERING}", json={"fee_tiers": bad})

    assert r.status_code == 422
    assert r.json()["error"] == "config_error"
    assert client.get(f"/liquidity/programs/{OFFERING}").status_code == 404


def test_program_defaults_to_configured_tiers(client):
    r = client.put(f"/liquidity/programs/{OFFERING}", json={"property_name": "Maple Court"})

    assert r.status_code == 200
    body = r.json()
    assert [t["min_months"] for t in body["fee_tiers"]] == [0, 12, 24, 36]
    assert body["fee_tiers"][-1]["max_months"] is None
    assert body["min_holding_days"] == 30


def test_reserve_health(client):
    setup_offering(client, balance="15000")

    body = client.get(f"/liquidity/reserves/{OFFERING}/health").json()
    assert body["is_low"] is True
    assert body["available"] == "15000.00"


def test_preview(client):
    setup_offering(client)

    r = client.post(
        "/liquidity/preview",
        json={
            "offering_id": OFFERING,
            "quantity": "100",
            "token_price": "10.50",
            "holding_start_date": held_for(240).isoformat(),
        },
    )

    assert r.status_code == 200
    body = r.json()
    assert body["holding_months"] == 8
    assert body["net_payout"] == "945.00"
    assert body["tier_applied"]["fee_percent"] == "10"
    assert body["eligible"] is True


def test_submit_and_approve(client):
    setup_offering(client)

    r = submit(client)
    assert r.status_code == 201, r.text
    request = r.json()["request"]
    assert request["request_number"] == f"LIQ-{date.today().year}-0001"
    assert request["net_payout"] == "950.00"

    r = client.post(f"/liquidity/requests/{request['id']}/approve", json={"reviewed_by": "admin-1"})
    assert r.status_code == 200
    body = r.json()
    assert body["request"]["status"] == "approved"
    statuses = {o["channel"]: o["status"] for o in body["deliveries"][0]["outcomes"]}
    assert statuses["email"] == "sent"
    assert statuses["webhook"] == "sent"

    listed = client.get("/liquidity/requests", params={"status": "approved"}).json()
    assert [row["id"] for row in listed] == [request["id"]]


def test_invalid_transition_is_409(client):
    setup_offering(client)
    request_id = submit(client).json()["request"]["id"]

    r = client.post(f"/liquidity/requests/{request_id}/complete", json={"payout_reference": "WIRE-1"})

    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"


def test_insufficient_reserve_is_409(client):
    setup_offering(client, balance="100")

    r = submit(client)

    assert r.status_code == 409
    assert r.json()["error"] == "insufficient_reserve"
    assert client.get("/liquidity/requests").json() == []


def test_not_eligible_is_422(client):
    setup_offering(client)

    r = submit(client, days=5)

    assert r.status_code == 422
    assert r.json()["error"] == "not_eligible"


def test_unknown_request_is_404(client):
    r = client.get("/liquidity/requests/12345")

    assert r.status_code == 404
    assert r.json() == {"ok": False, "error": "request_not_found", "detail": "redemption request 12345 not found"}


def test_cancel_by_owner(client):
    setup_offering(client)
    request_id = submit(client).json()["request"]["id"]

    assert client.post(f"/liquidity/requests/{request_id}/cancel", json={"investor_id": "someone-else"}).status_code == 404
    r = client.post(f"/liquidity/requests/{request_id}/cancel", json={"investor_id": "inv-1"})
    assert r.status_code == 200
    assert r.json()["request"]["status"] == "cancelled"
    assert client.get(f"/liquidity/reserves/{OFFERING}/health").json()["reserved"] == "0.00"


def test_oversized_preview_is_422(client):
    setup_offering(client)

    r = client.post(
        "/liquidity/preview",
        json={
            "offering_id": OFFERING,
            "quantity": "1e20",
            "token_price": "1e10",
            "holding_start_date": held_for(400).isoformat(),
        },
    )

    assert r.status_code == 422
    assert r.json()["error"] == "invalid_request"


def test_reserve_cannot_be_reopened(client):
    setup_offering(client)
    submit(client)

    r = client.post(f"/liquidity/reserves/{OFFERING}", json={"balance": "100", "target": "100000"})

    assert r.status_code == 409
    assert r.json()["error"] == "reserve_account_exists"
    health = client.get(f"/liquidity/reserves/{OFFERING}/health").json()
    assert health["balance"] == "100000.00"
    assert health["available"] == "99050.00"

    r = client.post(f"/liquidity/reserves/{OFFERING}/fund", json={"amount": "500"})
    assert r.json()["balance"] == "100500.00"


def test_workflow_response_shape(client):
    setup_offering(client)

    body = submit(client).json()

    assert set(body) == {"request", "deliveries"}
    submitted = body["deliveries"][0]
    assert submitted["event_type"] == "request_submitted"
    assert submitted["idempotency_key"] == f"request_submitted:{body['request']['id']}:submitted"
    assert {o["status"] for o in submitted["outcomes"]} == {"sent"}
