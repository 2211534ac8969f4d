from decimal import Decimal

import pytest

from liquidity import crud
from liquidity.alerts import AdminAlertRouter
from liquidity.core.errors import ProgramNotFound
from liquidity.database import session_scope
from liquidity.notifications.dispatcher import DeliveryStatus
from liquidity.reserve_ledger import ReserveHealth
from tests.conftest import OFFERING, STANDARD_TIERS


def snapshot(balance="15000.00"):
    return ReserveHealth(
        offering_id=OFFERING,
        balance=Decimal(balance),
        target=Decimal("100000.00"),
        reserved=Decimal("0.00"),
        available=Decimal(balance),
        ratio=Decimal(balance) / Decimal("100000"),
        is_low=True,
    )


def test_admin_recipients_are_merged_without_duplicates(session_factory):
    with session_scope(session_factory) as db:
        prog = crud.upsert_program(
            db,
            offering_id=OFFERING,
            fee_tiers=STANDARD_TIERS,
            admin_emails=["admin@example.com", "ops@example.com"],
        )
        merged = crud.program_admin_emails(prog, ["ops@example.com", "cfo@example.com"])

    assert merged == ["admin@example.com", "ops@example.com", "cfo@example.com"]
    assert crud.program_admin_emails(None, ["cfo@example.com"]) == ["cfo@example.com"]


@pytest.mark.asyncio
async def test_reserve_warning_without_program_uses_defaults(session_factory, dispatcher, channels):
    router = AdminAlertRouter(session_factory, dispatcher, ledger=None, default_admin_emails=["ops@example.com"])

    report = await router.route_reserve_warning(OFFERING, snapshot())

    assert [o.target for o in report.for_channel("email")] == ["ops@example.com"]
    event = channels["webhook"].calls[0][0]
    assert event.webhook_event == "reserve.low_balance"
    assert event.data["pending_requests_count"] == 0
    assert report.idempotency_key == f"reserve_low_warning:{OFFERING}:15000.00"


@pytest.mark.asyncio
async def test_sponsor_summary_without_sponsor_is_skipped(services, program):
    with session_scope(services.session_factory) as db:
        crud.upsert_program(db, offering_id=OFFERING, fee_tiers=STANDARD_TIERS, sponsor_email=None)

    report = await services.alerts.send_sponsor_summary(OFFERING, 2026, 1)

    [outcome] = report.outcomes
    assert outcome.status == DeliveryStatus.SKIPPED
    assert outcome.error == "no sponsor email"


@pytest.mark.asyncio
async def test_sponsor_summary_for_unknown_offering(services):
    with pytest.raises(ProgramNotFound):
        await services.alerts.send_sponsor_summary("OFF-404", 2026, 1)
