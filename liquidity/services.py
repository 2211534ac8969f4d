# liquidity/services.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx
from sqlalchemy.orm import sessionmaker

from liquidity.alerts import AdminAlertRouter
from liquidity.core.config import Settings
from liquidity.database import get_sessionmaker
from liquidity.notifications.channels import EmailChannel, InAppChannel, TelegramChannel, WebhookChannel
from liquidity.notifications.dispatcher import NotificationDispatcher
from liquidity.notifications.signing import WebhookSigner
from liquidity.redemptions import RedemptionWorkflow
from liquidity.reserve_ledger import ReserveLedger


@dataclass
class LiquidityServices:
    settings: Settings
    session_factory: sessionmaker
    ledger: ReserveLedger
    dispatcher: NotificationDispatcher
    alerts: AdminAlertRouter
    workflow: RedemptionWorkflow


def build_dispatcher(
    settings: Settings,
    session_factory: sessionmaker,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> NotificationDispatcher:
    timeout = settings.NOTIFY_CHANNEL_TIMEOUT_SECONDS
    return NotificationDispatcher(
        email=EmailChannel(
            api_key=settings.RESEND_API_KEY,
            api_url=settings.RESEND_API_URL,
            sender=settings.EMAIL_FROM,
            client=http_client,
            timeout=timeout,
        ),
        in_app=InAppChannel(session_factory),
        webhook=WebhookChannel(
            url=settings.LIQUIDITY_WEBHOOK_URL,
            signer=WebhookSigner(settings.LIQUIDITY_WEBHOOK_SECRET),
            client=http_client,
            timeout=timeout,
        ),
        telegram=TelegramChannel(token=settings.BOT_TOKEN, chat_id=settings.ADMIN_CHAT_ID),
        timeout=timeout,
    )


def build_services(
    settings: Settings,
    session_factory: Optional[sessionmaker] = None,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> LiquidityServices:
    session_factory = session_factory or get_sessionmaker()
    ledger = ReserveLedger(low_ratio=Decimal(settings.RESERVE_LOW_RATIO))
    dispatcher = dispatcher or build_dispatcher(settings, session_factory, http_client=http_client)
    alerts = AdminAlertRouter(
        session_factory,
        dispatcher,
        ledger,
        default_admin_emails=settings.admin_emails(),
    )
    workflow = RedemptionWorkflow(
        session_factory,
        ledger,
        dispatcher,
        alerts,
        number_prefix=settings.REQUEST_NUMBER_PREFIX,
    )
    return LiquidityServices(
        settings=settings,
        session_factory=session_factory,
        ledger=ledger,
        dispatcher=dispatcher,
        alerts=alerts,
        workflow=workflow,
    )
