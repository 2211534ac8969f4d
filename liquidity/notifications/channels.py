# liquidity/notifications/channels.py
"""Delivery channels. Each send() either completes or raises ChannelDeliveryError;
isolation, timeouts and reporting are the dispatcher's job."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import httpx
from sqlalchemy.orm import sessionmaker
from telegram import Bot
from telegram.error import TelegramError

from liquidity import models
from liquidity.core.errors import ChannelDeliveryError
from liquidity.database import session_scope
from liquidity.notifications.events import NotificationEvent
from liquidity.notifications.signing import (
    IDEMPOTENCY_HEADER,
    WebhookSigner,
    build_webhook_payload,
    serialize_payload,
)
from liquidity.notifications.templates import render_email, render_in_app, render_operator_text

logger = logging.getLogger(__name__)


async def _post(client: Optional[httpx.AsyncClient], url: str, timeout: float, **kwargs) -> httpx.Response:
    try:
        if client is not None:
            response = await client.post(url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=timeout) as own:
                response = await own.post(url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise ChannelDeliveryError(f"{url} answered {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ChannelDeliveryError(f"{url} unreachable: {e!r}") from e
    return response


class EmailChannel:
    name = "email"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        api_url: str,
        sender: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._sender = sender
        self._client = client
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, recipient: str, event: NotificationEvent) -> None:
        content = render_email(event)
        await _post(
            self._client,
            self._api_url,
            self._timeout,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                IDEMPOTENCY_HEADER: f"{event.idempotency_key}:{recipient}",
            },
            json={
                "from": self._sender,
                "to": [recipient],
                "subject": content.subject,
                "html": content.html,
            },
        )
        logger.info("Email %s sent to %s", event.type.value, recipient)


class WebhookChannel:
    name = "webhook"

    def __init__(
        self,
        *,
        url: Optional[str],
        signer: WebhookSigner,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._url = url
        self._signer = signer
        self._client = client
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._url)

    @property
    def target(self) -> str:
        return self._url or ""

    async def send(self, event: NotificationEvent) -> None:
        body = serialize_payload(build_webhook_payload(event))
        headers = {
            "Content-Type": "application/json",
            IDEMPOTENCY_HEADER: event.idempotency_key,
            **self._signer.headers(body),
        }
        response = await _post(self._client, self._url, self._timeout, content=body, headers=headers)
        logger.info("Webhook %s sent to %s: %s", event.webhook_event, self._url, response.status_code)


class InAppChannel:
    """Best-effort insert of a notification row. Failures are reported, not retried."""

    name = "in_app"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def send(self, user_id: str, event: NotificationEvent) -> None:
        await asyncio.to_thread(self._insert, user_id, event)

    def _insert(self, user_id: str, event: NotificationEvent) -> None:
        title, message = render_in_app(event)
        data = {
            "request_id": event.data.get("request_id"),
            "request_number": event.data.get("request_number"),
        }
        try:
            with session_scope(self._session_factory) as db:
                db.add(
                    models.Notification(
                        user_id=str(user_id),
                        type=f"liquidity_{event.subtype}",
                        title=title,
                        message=message,
                        data=json.dumps(data, sort_keys=True),
                        is_read=False,
                        is_archived=False,
                    )
                )
        except Exception as e:
            raise ChannelDeliveryError(f"in-app insert failed: {e!r}") from e


class TelegramChannel:
    """Operator chat for admin events, via the Telegram Bot API."""

    name = "telegram"

    def __init__(
        self,
        *,
        token: Optional[str],
        chat_id: Optional[str],
        bot_factory: Callable[[str], Any] = Bot,
    ):
        self._token = token
        self._chat_id = chat_id
        self._bot_factory = bot_factory

    @property
    def configured(self) -> bool:
        return bool(self._token and self._chat_id)

    @property
    def target(self) -> str:
        return str(self._chat_id or "")

    async def send(self, event: NotificationEvent) -> None:
        try:
            async with self._bot_factory(self._token) as bot:
                await bot.send_message(chat_id=self._chat_id, text=render_operator_text(event))
        except TelegramError as e:
            raise ChannelDeliveryError(f"telegram send failed: {e}") from e
