"""Operator-facing notices: new requests, reserve health, sponsor summaries."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from liquidity import crud
from liquidity.database import session_scope
from liquidity.notifications.dispatcher import DeliveryReport, NotificationDispatcher
from liquidity.notifications.events import EventType, NotificationEvent, request_event
from liquidity.reserve_ledger import ReserveHealth, ReserveLedger

logger = logging.getLogger(__name__)


class AdminAlertRouter:
    def __init__(
        self,
        session_factory: sessionmaker,
        dispatcher: NotificationDispatcher,
        ledger: ReserveLedger,
        *,
        default_admin_emails: Sequence[str] = (),
    ):
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._ledger = ledger
        self._default_admin_emails = list(default_admin_emails)

    async def route_reserve_warning(self, offering_id: str, snapshot: ReserveHealth) -> DeliveryReport:
        """Called once per downward crossing of the low-balance ratio."""
        recipients, pending, property_name = await asyncio.to_thread(self._warning_context, offering_id)

        event = NotificationEvent.create(
            EventType.RESERVE_LOW_WARNING,
            {
                "offering_id": offering_id,
                "property_name": property_name,
                "reserve_balance": snapshot.balance,
                "reserve_target": snapshot.target,
                "pending_requests_count": pending,
                "admin_emails": tuple(recipients),
                "status": "low_balance",
            },
            idempotency_key=f"{EventType.RESERVE_LOW_WARNING.value}:{offering_id}:{snapshot.balance}",
        )
        logger.warning(
            "Reserve warning offering=%s ratio=%s pending=%d recipients=%d",
            offering_id,
            snapshot.ratio,
            pending,
            len(recipients),
        )
        return await self._dispatcher.dispatch(event)

    async def route_new_request(self, request, *, property_name: str | None = None) -> DeliveryReport:
        recipients = await asyncio.to_thread(self._recipients, request.offering_id)
        event = request_event(
            EventType.ADMIN_NEW_REQUEST,
            request,
            property_name=property_name,
            extra={"admin_emails": tuple(recipients)},
        )
        return await self._dispatcher.dispatch(event)

    async def send_sponsor_summary(self, offering_id: str, year: int, month: int) -> DeliveryReport:
        data = await asyncio.to_thread(self._summary_data, offering_id, year, month)
        event = NotificationEvent.create(
            EventType.SPONSOR_MONTHLY_SUMMARY,
            data,
            idempotency_key=f"{EventType.SPONSOR_MONTHLY_SUMMARY.value}:{offering_id}:{year:04d}-{month:02d}",
        )
        return await self._dispatcher.dispatch(event)

    # -------- reads (worker thread) --------

    def _recipients(self, offering_id: str) -> List[str]:
        with session_scope(self._session_factory) as db:
            return crud.program_admin_emails(crud.get_program(db, offering_id), self._default_admin_emails)

    def _warning_context(self, offering_id: str) -> Tuple[List[str], int, Optional[str]]:
        with session_scope(self._session_factory) as db:
            prog = crud.get_program(db, offering_id)
            return (
                crud.program_admin_emails(prog, self._default_admin_emails),
                crud.count_open_requests(db, offering_id),
                prog.property_name if prog else None,
            )

    def _summary_data(self, offering_id: str, year: int, month: int) -> dict:
        with session_scope(self._session_factory) as db:
            prog = crud.require_program(db, offering_id)
            count, amount = crud.monthly_completed(db, offering_id, year, month)
            health = self._ledger.query_health(db, offering_id)
            return {
                "offering_id": offering_id,
                "property_name": prog.property_name,
                "sponsor_email": prog.sponsor_email,
                "monthly_redemptions": count,
                "monthly_amount": amount,
                "reserve_balance": health.balance,
            }
