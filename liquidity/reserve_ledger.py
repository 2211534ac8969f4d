# liquidity/reserve_ledger.py
"""Reserve accounting per offering.

All mutations are single conditional UPDATEs so concurrent callers cannot overdraft the
reserve or close a reservation twice. Methods flush but never commit: the caller's
session scope decides, which keeps authorize + request insert in one transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from liquidity import models
from liquidity.core.errors import (
    InsufficientReserve,
    ReservationClosed,
    ReserveAccountExists,
    ReserveAccountNotFound,
)

logger = logging.getLogger(__name__)

DEFAULT_LOW_RATIO = Decimal("0.20")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_cents(amount) -> int:
    amt = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((amt * 100).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ReserveHealth:
    offering_id: str
    balance: Decimal
    target: Decimal
    reserved: Decimal
    available: Decimal
    ratio: Decimal
    is_low: bool


@dataclass(frozen=True)
class Authorization:
    reservation_id: int
    amount: Decimal
    health: ReserveHealth
    low_balance_crossed: bool


@dataclass(frozen=True)
class Settlement:
    reservation_id: int
    amount: Decimal
    health: ReserveHealth
    low_balance_crossed: bool


class ReserveLedger:
    def __init__(self, low_ratio: Decimal = DEFAULT_LOW_RATIO):
        self.low_ratio = Decimal(str(low_ratio))

    # -------- accounts --------

    def open_account(self, db: Session, *, offering_id: str, balance, target) -> ReserveHealth:
        balance_cents = to_cents(balance)
        target_cents = to_cents(target)
        if balance_cents < 0:
            raise ValueError("balance must be >= 0")
        if target_cents <= 0:
            raise ValueError("target must be > 0")

        if db.get(models.ReserveAccount, offering_id) is not None:
            # overwriting the balance would ignore held reservations and the alert edge
            raise ReserveAccountExists(f"reserve account for {offering_id} already exists; use fund")

        acct = models.ReserveAccount(
            offering_id=offering_id,
            balance_cents=balance_cents,
            target_cents=target_cents,
            reserved_cents=0,
            # an account that starts below the ratio is already "below": no crossing to report
            low_balance_alerted=self._is_low(balance_cents, target_cents),
        )
        db.add(acct)
        db.flush()
        logger.info("Reserve opened offering=%s balance=%s target=%s", offering_id, balance, target)
        return self.query_health(db, offering_id)

    def fund(self, db: Session, *, offering_id: str, amount) -> ReserveHealth:
        cents = to_cents(amount)
        if cents <= 0:
            raise ValueError("amount must be > 0")
        updated = (
            db.query(models.ReserveAccount)
            .filter(models.ReserveAccount.offering_id == offering_id)
            .update(
                {models.ReserveAccount.balance_cents: models.ReserveAccount.balance_cents + cents},
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise ReserveAccountNotFound(f"no reserve account for {offering_id}")
        self._evaluate_low_balance(db, offering_id)
        return self.query_health(db, offering_id)

    # -------- reservations --------

    def authorize(self, db: Session, *, offering_id: str, amount) -> Authorization:
        cents = to_cents(amount)
        if cents <= 0:
            raise ValueError("amount must be > 0")

        acct = models.ReserveAccount
        # check-and-reserve in one statement: headroom is consumed only if it suffices
        updated = (
            db.query(acct)
            .filter(
                acct.offering_id == offering_id,
                (acct.balance_cents - acct.reserved_cents) >= cents,
            )
            .update(
                {acct.reserved_cents: acct.reserved_cents + cents},
                synchronize_session=False,
            )
        )
        if updated != 1:
            health = self.query_health(db, offering_id)
            raise InsufficientReserve(offering_id, models.cents_to_decimal(cents), health.available)

        row = models.ReserveReservation(
            offering_id=offering_id,
            amount_cents=cents,
            status="held",
            created_at=_utcnow(),
        )
        db.add(row)
        db.flush()

        crossed = self._evaluate_low_balance(db, offering_id)
        return Authorization(
            reservation_id=row.id,
            amount=models.cents_to_decimal(cents),
            health=self.query_health(db, offering_id),
            low_balance_crossed=crossed,
        )

    def release(self, db: Session, *, reservation_id: int) -> ReserveHealth:
        row = self._close_reservation(db, reservation_id, "released")
        acct = models.ReserveAccount
        (
            db.query(acct)
            .filter(acct.offering_id == row.offering_id)
            .update(
                {acct.reserved_cents: acct.reserved_cents - row.amount_cents},
                synchronize_session=False,
            )
        )
        logger.info("Reservation %s released (%s cents)", reservation_id, row.amount_cents)
        return self.query_health(db, row.offering_id)

    def settle(self, db: Session, *, reservation_id: int) -> Settlement:
        row = self._close_reservation(db, reservation_id, "settled")
        acct = models.ReserveAccount
        (
            db.query(acct)
            .filter(acct.offering_id == row.offering_id)
            .update(
                {
                    acct.balance_cents: acct.balance_cents - row.amount_cents,
                    acct.reserved_cents: acct.reserved_cents - row.amount_cents,
                },
                synchronize_session=False,
            )
        )
        crossed = self._evaluate_low_balance(db, row.offering_id)
        logger.info("Reservation %s settled (%s cents)", reservation_id, row.amount_cents)
        return Settlement(
            reservation_id=reservation_id,
            amount=models.cents_to_decimal(row.amount_cents),
            health=self.query_health(db, row.offering_id),
            low_balance_crossed=crossed,
        )

    # -------- queries --------

    def query_health(self, db: Session, offering_id: str) -> ReserveHealth:
        acct = models.ReserveAccount
        row = (
            db.query(acct.balance_cents, acct.target_cents, acct.reserved_cents)
            .filter(acct.offering_id == offering_id)
            .first()
        )
        if row is None:
            raise ReserveAccountNotFound(f"no reserve account for {offering_id}")
        balance_cents, target_cents, reserved_cents = row
        ratio = (Decimal(balance_cents) / Decimal(target_cents)).quantize(Decimal("0.0001"))
        return ReserveHealth(
            offering_id=offering_id,
            balance=models.cents_to_decimal(balance_cents),
            target=models.cents_to_decimal(target_cents),
            reserved=models.cents_to_decimal(reserved_cents),
            available=models.cents_to_decimal(balance_cents - reserved_cents),
            ratio=ratio,
            is_low=self._is_low(balance_cents, target_cents),
        )

    # -------- internals --------

    def _is_low(self, balance_cents: int, target_cents: int) -> bool:
        return Decimal(balance_cents) < self.low_ratio * Decimal(target_cents)

    def _close_reservation(self, db: Session, reservation_id: int, status: str) -> models.ReserveReservation:
        res = models.ReserveReservation
        updated = (
            db.query(res)
            .filter(res.id == reservation_id, res.status == "held")
            .update({res.status: status, res.closed_at: _utcnow()}, synchronize_session=False)
        )
        row: Optional[models.ReserveReservation] = db.get(res, reservation_id)
        if row is None:
            raise ReservationClosed(f"reservation {reservation_id} does not exist")
        if updated != 1:
            db.refresh(row)
            raise ReservationClosed(f"reservation {reservation_id} is already {row.status}")
        return row

    def _evaluate_low_balance(self, db: Session, offering_id: str) -> bool:
        """Flip the alert flag on the way down (returns True once) and re-arm on recovery."""
        acct = models.ReserveAccount
        balance_cents, target_cents = (
            db.query(acct.balance_cents, acct.target_cents)
            .filter(acct.offering_id == offering_id)
            .one()
        )
        low = self._is_low(balance_cents, target_cents)
        flipped = (
            db.query(acct)
            .filter(acct.offering_id == offering_id, acct.low_balance_alerted.is_(not low))
            .update({acct.low_balance_alerted: low}, synchronize_session=False)
        )
        if low and flipped == 1:
            logger.warning(
                "Reserve for %s crossed below %s of target (balance=%s target=%s)",
                offering_id,
                self.low_ratio,
                models.cents_to_decimal(balance_cents),
                models.cents_to_decimal(target_cents),
            )
            return True
        return False
