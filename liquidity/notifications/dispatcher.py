# liquidity/notifications/dispatcher.py
"""Fan a NotificationEvent out to every channel that applies to its type.

Each delivery runs as its own task with its own timeout; the tasks are joined before the
report is returned. A failing or slow channel only ever marks its own outcome as failed.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from liquidity.notifications.channels import EmailChannel, InAppChannel, TelegramChannel, WebhookChannel
from liquidity.notifications.events import (
    ADMIN_EVENTS,
    INVESTOR_EVENTS,
    EventType,
    NotificationEvent,
)

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ChannelOutcome:
    channel: str
    target: str
    status: DeliveryStatus
    error: Optional[str] = None


@dataclass(frozen=True)
class DeliveryReport:
    event_type: str
    idempotency_key: str
    outcomes: Tuple[ChannelOutcome, ...] = field(default_factory=tuple)

    def for_channel(self, channel: str) -> List[ChannelOutcome]:
        return [o for o in self.outcomes if o.channel == channel]

    def _with_status(self, status: DeliveryStatus) -> List[ChannelOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def sent(self) -> List[ChannelOutcome]:
        return self._with_status(DeliveryStatus.SENT)

    @property
    def failed(self) -> List[ChannelOutcome]:
        return self._with_status(DeliveryStatus.FAILED)

    @property
    def skipped(self) -> List[ChannelOutcome]:
        return self._with_status(DeliveryStatus.SKIPPED)


Send = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class _Planned:
    channel: str
    target: str
    send: Optional[Send] = None
    reason: Optional[str] = None  # set when skipped


class NotificationDispatcher:
    def __init__(
        self,
        *,
        email: Optional[EmailChannel] = None,
        in_app: Optional[InAppChannel] = None,
        webhook: Optional[WebhookChannel] = None,
        telegram: Optional[TelegramChannel] = None,
        timeout: float = 10.0,
    ):
        self.email = email
        self.in_app = in_app
        self.webhook = webhook
        self.telegram = telegram
        self.timeout = timeout

    # -------- planning --------

    def plan(self, event: NotificationEvent) -> List[_Planned]:
        d = event.data
        planned: List[_Planned] = []

        if event.type in INVESTOR_EVENTS:
            planned.append(self._plan_email(event, d.get("investor_email"), "no investor email"))
            investor_id = d.get("investor_id")
            if self.in_app is None:
                planned.append(_Planned("in_app", str(investor_id or ""), reason="in-app channel disabled"))
            elif not investor_id:
                planned.append(_Planned("in_app", "", reason="no investor id"))
            else:
                planned.append(_Planned("in_app", str(investor_id), self._bind(self.in_app.send, str(investor_id), event)))

        elif event.type in ADMIN_EVENTS:
            admins = list(d.get("admin_emails") or ())
            if not admins:
                planned.append(_Planned("email", "", reason="no admin recipients"))
            for address in admins:
                planned.append(self._plan_email(event, address, "no admin recipients"))
            if self.telegram is None or not self.telegram.configured:
                planned.append(_Planned("telegram", "", reason="operator chat not configured"))
            else:
                planned.append(_Planned("telegram", self.telegram.target, self._bind(self.telegram.send, event)))

        elif event.type == EventType.SPONSOR_MONTHLY_SUMMARY:
            planned.append(self._plan_email(event, d.get("sponsor_email"), "no sponsor email"))

        if event.webhook_event is not None:
            if self.webhook is None or not self.webhook.configured:
                planned.append(_Planned("webhook", "", reason="webhook endpoint not configured"))
            else:
                planned.append(_Planned("webhook", self.webhook.target, self._bind(self.webhook.send, event)))

        return planned

    def _plan_email(self, event: NotificationEvent, recipient: Optional[str], missing: str) -> _Planned:
        if not recipient:
            return _Planned("email", "", reason=missing)
        if self.email is None or not self.email.configured:
            return _Planned("email", recipient, reason="email transport not configured")
        return _Planned("email", recipient, self._bind(self.email.send, recipient, event))

    @staticmethod
    def _bind(fn, *args) -> Send:
        return lambda: fn(*args)

    # -------- delivery --------

    async def dispatch(self, event: NotificationEvent) -> DeliveryReport:
        planned = self.plan(event)
        outcomes = await asyncio.gather(*(self._deliver(event, p) for p in planned))
        report = DeliveryReport(
            event_type=event.type.value,
            idempotency_key=event.idempotency_key,
            outcomes=tuple(outcomes),
        )
        logger.info(
            "Dispatched %s key=%s sent=%d failed=%d skipped=%d",
            event.type.value,
            event.idempotency_key,
            len(report.sent),
            len(report.failed),
            len(report.skipped),
        )
        return report

    async def _deliver(self, event: NotificationEvent, planned: _Planned) -> ChannelOutcome:
        if planned.send is None:
            return ChannelOutcome(planned.channel, planned.target, DeliveryStatus.SKIPPED, planned.reason)
        try:
            await asyncio.wait_for(planned.send(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s delivery of %s to %s timed out after %ss",
                planned.channel,
                event.idempotency_key,
                planned.target,
                self.timeout,
            )
            return ChannelOutcome(planned.channel, planned.target, DeliveryStatus.FAILED, "timeout")
        except Exception as e:
            logger.warning(
                "%s delivery of %s to %s failed: %s",
                planned.channel,
                event.idempotency_key,
                planned.target,
                e,
            )
            return ChannelOutcome(planned.channel, planned.target, DeliveryStatus.FAILED, str(e))
        return ChannelOutcome(planned.channel, planned.target, DeliveryStatus.SENT)
