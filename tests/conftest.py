"""Shared fixtures: a throwaway SQLite database per test and recording channels."""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from liquidity import crud
from liquidity.core.config import Settings
from liquidity.core.errors import ChannelDeliveryError
from liquidity.database import build_engine, build_sessionmaker, init_db, session_scope
from liquidity.fee_schedule import FeeTier
from liquidity.notifications.dispatcher import NotificationDispatcher
from liquidity.services import build_services

OFFERING = "OFF-1"

STANDARD_TIERS = (
    FeeTier(0, 6, Decimal("15")),
    FeeTier(6, 12, Decimal("10")),
    FeeTier(12, None, Decimal("5")),
)


class RecordingChannel:
    """Stands in for any delivery channel; records calls, can fail or stall."""

    def __init__(self, name, *, target="", fail=False, delay=0.0, configured=True):
        self.name = name
        self.target = target
        self.fail = fail
        self.delay = delay
        self.configured = configured
        self.calls = []

    async def send(self, *args):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ChannelDeliveryError(f"{self.name} is down")
        self.calls.append(args)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'liquidity.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        LIQUIDITY_ADMIN_EMAILS="ops@example.com",
        NOTIFY_CHANNEL_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def channels():
    return {
        "email": RecordingChannel("email"),
        "in_app": RecordingChannel("in_app"),
        "webhook": RecordingChannel("webhook", target="https://hooks.example.com/liquidity"),
        "telegram": RecordingChannel("telegram", target="-100200", configured=False),
    }


@pytest.fixture
def dispatcher(channels):
    return NotificationDispatcher(timeout=2.0, **channels)


@pytest.fixture
def services(settings, session_factory, dispatcher):
    return build_services(settings, session_factory, dispatcher=dispatcher)


def make_program(services, *, balance="100000", target="100000", max_monthly_amount=None):
    """Offering with the 15/10/5 tiers, a 30 day minimum hold and a freshly opened reserve."""
    with session_scope(services.session_factory) as db:
        crud.upsert_program(
            db,
            offering_id=OFFERING,
            fee_tiers=STANDARD_TIERS,
            property_name="Maple Court",
            min_holding_days=30,
            max_monthly_amount=None if max_monthly_amount is None else Decimal(max_monthly_amount),
            admin_emails=["admin@example.com"],
            sponsor_email="sponsor@example.com",
        )
        services.ledger.open_account(db, offering_id=OFFERING, balance=Decimal(balance), target=Decimal(target))
    return OFFERING


@pytest.fixture
def program(services):
    return make_program(services)


def held_for(days: int) -> date:
    return date.today() - timedelta(days=days)
