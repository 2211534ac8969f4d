# liquidity/redemptions.py
"""Redemption request lifecycle.

    submitted -> approved -> processing -> completed
    submitted -> denied
    submitted -> cancelled

Every transition is a compare-and-set UPDATE on (id, expected status), so two reviewers
racing on one request cannot both win. Ledger effects happen in the same transaction as
the status change; notifications go out only after commit and never undo it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from liquidity import crud, models
from liquidity.alerts import AdminAlertRouter
from liquidity.core.errors import (
    InvalidTransition,
    MonthlyCapExceeded,
    NotEligible,
    ProgramUnavailable,
    RequestNotFound,
)
from liquidity.database import session_scope
from liquidity.fee_schedule import PayoutBreakdown, compute_payout, holding_period
from liquidity.notifications.dispatcher import DeliveryReport, NotificationDispatcher
from liquidity.notifications.events import EventType, request_event
from liquidity.reserve_ledger import Authorization, ReserveLedger, Settlement, to_cents
from liquidity.schemas import RedemptionOut, SubmitRedemption

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 20


class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DENIED = "denied"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({RequestStatus.DENIED, RequestStatus.COMPLETED, RequestStatus.CANCELLED})

# target -> (required source, timestamp column written once on entry)
TRANSITIONS: Dict[RequestStatus, Tuple[RequestStatus, str]] = {
    RequestStatus.APPROVED: (RequestStatus.SUBMITTED, "approved_at"),
    RequestStatus.DENIED: (RequestStatus.SUBMITTED, "denied_at"),
    RequestStatus.CANCELLED: (RequestStatus.SUBMITTED, "cancelled_at"),
    RequestStatus.PROCESSING: (RequestStatus.APPROVED, "processing_at"),
    RequestStatus.COMPLETED: (RequestStatus.PROCESSING, "completed_at"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Preview:
    payout: PayoutBreakdown
    holding_days: int
    eligible: bool


@dataclass(frozen=True)
class WorkflowResult:
    request: RedemptionOut
    deliveries: List[DeliveryReport] = field(default_factory=list)


def next_request_number(db: Session, *, prefix: str, year: int) -> str:
    """Allocate PREFIX-YEAR-NNNN from the persisted per-year sequence."""
    seq = models.RequestSequence
    for _ in range(MAX_NUMBER_ATTEMPTS):
        bumped = (
            db.query(seq)
            .filter(seq.year == year)
            .update({seq.last_value: seq.last_value + 1}, synchronize_session=False)
        )
        if bumped == 0:
            try:
                with db.begin_nested():
                    db.add(seq(year=year, last_value=1))
            except IntegrityError:
                # another writer created the year row first; bump theirs
                continue

        value = db.query(seq.last_value).filter(seq.year == year).scalar()
        number = f"{prefix}-{year}-{value:04d}"
        if not crud.request_number_taken(db, number):
            return number
        logger.warning("Request number %s already taken, skipping", number)

    raise RuntimeError(f"could not allocate a request number for {year}")


class RedemptionWorkflow:
    """Async entry points run each transaction in a worker thread; only dispatch runs on the loop."""

    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: ReserveLedger,
        dispatcher: NotificationDispatcher,
        alerts: AdminAlertRouter,
        *,
        number_prefix: str = "LIQ",
    ):
        self._session_factory = session_factory
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.alerts = alerts
        self.number_prefix = number_prefix

    # -------- queries --------

    def get(self, request_id: int) -> RedemptionOut:
        with session_scope(self._session_factory) as db:
            row = crud.get_request(db, request_id)
            if row is None:
                raise RequestNotFound(f"redemption request {request_id} not found")
            return RedemptionOut.model_validate(row)

    def list_requests(self, **filters) -> List[RedemptionOut]:
        with session_scope(self._session_factory) as db:
            return [RedemptionOut.model_validate(r) for r in crud.list_requests(db, **filters)]

    def preview(
        self,
        *,
        offering_id: str,
        quantity: Decimal,
        token_price: Decimal,
        holding_start_date: date,
        today: Optional[date] = None,
    ) -> Preview:
        with session_scope(self._session_factory) as db:
            prog = crud.require_program(db, offering_id)
            tiers = crud.program_tiers(prog)
            min_days = prog.min_holding_days
        days, months = holding_period(holding_start_date, today)
        payout = compute_payout(quantity, token_price, months, tiers)
        return Preview(payout=payout, holding_days=days, eligible=days >= min_days)

    # -------- submit --------

    async def submit(self, req: SubmitRedemption, *, today: Optional[date] = None) -> WorkflowResult:
        today = today or date.today()
        snapshot, property_name, auth = await asyncio.to_thread(self._insert_request, req, today)

        logger.info(
            "Redemption %s submitted offering=%s net=%s",
            snapshot.request_number,
            snapshot.offering_id,
            snapshot.net_payout,
        )

        reports = await asyncio.gather(
            self.dispatcher.dispatch(
                request_event(EventType.REQUEST_SUBMITTED, snapshot, property_name=property_name)
            ),
            self.alerts.route_new_request(snapshot, property_name=property_name),
        )
        deliveries = list(reports)
        if auth.low_balance_crossed:
            deliveries.append(await self.alerts.route_reserve_warning(req.offering_id, auth.health))
        return WorkflowResult(request=snapshot, deliveries=deliveries)

    def _insert_request(
        self, req: SubmitRedemption, today: date
    ) -> Tuple[RedemptionOut, Optional[str], Authorization]:
        days, months = holding_period(req.holding_start_date, today)

        with session_scope(self._session_factory) as db:
            # row lock serializes submits per offering, so the cap check below cannot race
            prog = crud.lock_program(db, req.offering_id)
            if not prog.enabled:
                raise ProgramUnavailable(f"liquidity program for {req.offering_id} is disabled")
            if days < prog.min_holding_days:
                raise NotEligible(
                    f"tokens held {days} days, minimum is {prog.min_holding_days} "
                    f"({prog.min_holding_days - days} days to go)"
                )

            payout = compute_payout(req.quantity, req.token_price, months, crud.program_tiers(prog))

            if prog.max_monthly_amount is not None:
                used = crud.monthly_requested_amount(db, req.offering_id, today.year, today.month)
                cap = Decimal(str(prog.max_monthly_amount))
                if used + payout.net_payout > cap:
                    raise MonthlyCapExceeded(
                        f"monthly redemption cap {cap} for {req.offering_id} would be exceeded"
                    )

            # raises InsufficientReserve before anything is written
            auth = self.ledger.authorize(db, offering_id=req.offering_id, amount=payout.net_payout)

            row = models.RedemptionRequest(
                request_number=next_request_number(db, prefix=self.number_prefix, year=today.year),
                offering_id=req.offering_id,
                investor_id=req.investor_id,
                investor_email=req.investor_email,
                quantity=payout.quantity,
                token_price=payout.token_price,
                holding_days=days,
                holding_months=months,
                fee_percent=payout.fee_percent,
                gross_value=payout.gross_value,
                fee_amount=payout.fee_amount,
                net_payout=payout.net_payout,
                net_payout_cents=to_cents(payout.net_payout),
                reservation_id=auth.reservation_id,
                status=RequestStatus.SUBMITTED.value,
                created_at=_utcnow(),
            )
            db.add(row)
            db.flush()
            return RedemptionOut.model_validate(row), prog.property_name, auth

    # -------- review --------

    async def approve(self, request_id: int, *, reviewed_by: Optional[str] = None) -> WorkflowResult:
        snapshot, property_name, _ = await asyncio.to_thread(
            self._apply, request_id, RequestStatus.APPROVED, reviewed_by=reviewed_by
        )
        return await self._announce(EventType.REQUEST_APPROVED, snapshot, property_name)

    async def deny(self, request_id: int, reason: str, *, reviewed_by: Optional[str] = None) -> WorkflowResult:
        if not reason or not reason.strip():
            raise ValueError("a denial reason is required")
        snapshot, property_name, _ = await asyncio.to_thread(
            self._apply,
            request_id,
            RequestStatus.DENIED,
            self._release,
            reviewed_by=reviewed_by,
            denial_reason=reason.strip(),
        )
        return await self._announce(EventType.REQUEST_DENIED, snapshot, property_name)

    async def cancel(self, request_id: int, *, investor_id: str) -> WorkflowResult:
        snapshot, property_name, _ = await asyncio.to_thread(
            self._apply, request_id, RequestStatus.CANCELLED, self._release, owner=investor_id
        )
        return await self._announce(EventType.REQUEST_CANCELLED, snapshot, property_name)

    async def begin_processing(self, request_id: int) -> WorkflowResult:
        snapshot, property_name, _ = await asyncio.to_thread(self._apply, request_id, RequestStatus.PROCESSING)
        return await self._announce(EventType.REQUEST_PROCESSING, snapshot, property_name)

    async def complete(self, request_id: int, payout_reference: str) -> WorkflowResult:
        if not payout_reference or not payout_reference.strip():
            raise ValueError("a payout reference is required")
        snapshot, property_name, settlement = await asyncio.to_thread(
            self._apply,
            request_id,
            RequestStatus.COMPLETED,
            self._settle,
            payout_reference=payout_reference.strip(),
        )

        result = await self._announce(EventType.REQUEST_COMPLETED, snapshot, property_name)
        if settlement.low_balance_crossed:
            result.deliveries.append(
                await self.alerts.route_reserve_warning(snapshot.offering_id, settlement.health)
            )
        return result

    # -------- internals --------

    def _release(self, db: Session, row: models.RedemptionRequest):
        return self.ledger.release(db, reservation_id=row.reservation_id)

    def _settle(self, db: Session, row: models.RedemptionRequest) -> Settlement:
        return self.ledger.settle(db, reservation_id=row.reservation_id)

    def _apply(
        self,
        request_id: int,
        target: RequestStatus,
        ledger_effect: Optional[Callable[[Session, models.RedemptionRequest], Any]] = None,
        *,
        owner: Optional[str] = None,
        **values,
    ) -> Tuple[RedemptionOut, Optional[str], Any]:
        """Transition plus its ledger effect in one transaction."""
        with session_scope(self._session_factory) as db:
            if owner is not None:
                row = crud.get_request(db, request_id)
                if row is None or row.investor_id != owner:
                    # other investors' requests are indistinguishable from missing ones
                    raise RequestNotFound(f"redemption request {request_id} not found")
            row = self._transition(db, request_id, target, **values)
            effect = ledger_effect(db, row) if ledger_effect else None
            snapshot, property_name = self._snapshot(db, row)
        return snapshot, property_name, effect

    def _transition(self, db: Session, request_id: int, target: RequestStatus, **values) -> models.RedemptionRequest:
        source, stamp = TRANSITIONS[target]
        rr = models.RedemptionRequest
        values = {getattr(rr, k): v for k, v in values.items() if v is not None}
        values[rr.status] = target.value
        values[getattr(rr, stamp)] = _utcnow()

        updated = (
            db.query(rr)
            .filter(rr.id == request_id, rr.status == source.value)
            .update(values, synchronize_session=False)
        )
        row = crud.get_request(db, request_id)
        if row is None:
            raise RequestNotFound(f"redemption request {request_id} not found")
        db.refresh(row)
        if updated != 1:
            raise InvalidTransition(request_id, row.status, target.value)

        logger.info("Redemption %s: %s -> %s", row.request_number, source.value, target.value)
        return row

    def _snapshot(self, db: Session, row: models.RedemptionRequest) -> Tuple[RedemptionOut, Optional[str]]:
        prog = crud.get_program(db, row.offering_id)
        return RedemptionOut.model_validate(row), (prog.property_name if prog else None)

    async def _announce(self, event_type: EventType, snapshot: RedemptionOut, property_name: Optional[str]) -> WorkflowResult:
        report = await self.dispatcher.dispatch(
            request_event(event_type, snapshot, property_name=property_name)
        )
        return WorkflowResult(request=snapshot, deliveries=[report])
