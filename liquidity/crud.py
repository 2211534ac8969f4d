# liquidity/crud.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from liquidity import models
from liquidity.core.config import split_emails
from liquidity.core.errors import ProgramNotFound
from liquidity.fee_schedule import FeeTier, dump_tiers, parse_tiers, validate_tiers

OPEN_STATUSES = ("submitted", "approved", "processing")
# requests that still count against the monthly cap
ACTIVE_STATUSES = ("submitted", "approved", "processing", "completed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc) if month == 12 else datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


# -------- Programs --------

def get_program(db: Session, offering_id: str) -> Optional[models.LiquidityProgram]:
    return db.get(models.LiquidityProgram, offering_id)


def require_program(db: Session, offering_id: str) -> models.LiquidityProgram:
    prog = get_program(db, offering_id)
    if prog is None:
        raise ProgramNotFound(f"no liquidity program for offering {offering_id}")
    return prog


def lock_program(db: Session, offering_id: str) -> models.LiquidityProgram:
    """Load the program with a row lock held until commit (no-op on SQLite, where writers serialize)."""
    prog = (
        db.query(models.LiquidityProgram)
        .filter(models.LiquidityProgram.offering_id == offering_id)
        .with_for_update()
        .first()
    )
    if prog is None:
        raise ProgramNotFound(f"no liquidity program for offering {offering_id}")
    return prog


def program_tiers(prog: models.LiquidityProgram) -> Tuple[FeeTier, ...]:
    # stored rows are validated again on load; a bad row is a ConfigError, never tolerated
    return parse_tiers(prog.fee_tiers)


def program_admin_emails(prog: Optional[models.LiquidityProgram], defaults: Sequence[str] = ()) -> List[str]:
    seen: List[str] = []
    for address in [*(split_emails(prog.admin_emails) if prog else []), *defaults]:
        if address not in seen:
            seen.append(address)
    return seen


def upsert_program(
    db: Session,
    *,
    offering_id: str,
    fee_tiers: Sequence[FeeTier],
    property_name: Optional[str] = None,
    enabled: bool = True,
    min_holding_days: int = 30,
    max_monthly_amount: Optional[Decimal] = None,
    admin_emails: Sequence[str] = (),
    sponsor_email: Optional[str] = None,
) -> models.LiquidityProgram:
    tiers = validate_tiers(fee_tiers)
    if min_holding_days < 0:
        raise ValueError("min_holding_days must be >= 0")

    prog = get_program(db, offering_id)
    if prog is None:
        prog = models.LiquidityProgram(offering_id=offering_id)
    prog.property_name = property_name
    prog.enabled = bool(enabled)
    prog.fee_tiers = dump_tiers(tiers)
    prog.min_holding_days = min_holding_days
    prog.max_monthly_amount = max_monthly_amount
    prog.admin_emails = ",".join(admin_emails) or None
    prog.sponsor_email = sponsor_email
    prog.updated_at = _utcnow()
    db.add(prog)
    db.flush()
    return prog


# -------- Redemption requests --------

def get_request(db: Session, request_id: int) -> Optional[models.RedemptionRequest]:
    return db.get(models.RedemptionRequest, request_id)


def request_number_taken(db: Session, request_number: str) -> bool:
    row = (
        db.query(models.RedemptionRequest.id)
        .filter(models.RedemptionRequest.request_number == request_number)
        .first()
    )
    return bool(row)


def list_requests(
    db: Session,
    *,
    status: Optional[str] = None,
    offering_id: Optional[str] = None,
    investor_id: Optional[str] = None,
    limit: int = 50,
) -> List[models.RedemptionRequest]:
    q = db.query(models.RedemptionRequest)
    if status:
        q = q.filter(models.RedemptionRequest.status == status)
    if offering_id:
        q = q.filter(models.RedemptionRequest.offering_id == offering_id)
    if investor_id:
        q = q.filter(models.RedemptionRequest.investor_id == investor_id)
    return q.order_by(models.RedemptionRequest.id.desc()).limit(limit).all()


def count_open_requests(db: Session, offering_id: str) -> int:
    return (
        db.query(models.RedemptionRequest)
        .filter(
            models.RedemptionRequest.offering_id == offering_id,
            models.RedemptionRequest.status.in_(OPEN_STATUSES),
        )
        .count()
    )


def monthly_requested_amount(db: Session, offering_id: str, year: int, month: int) -> Decimal:
    start, end = month_bounds(year, month)
    total = (
        db.query(func.coalesce(func.sum(models.RedemptionRequest.net_payout_cents), 0))
        .filter(
            models.RedemptionRequest.offering_id == offering_id,
            models.RedemptionRequest.status.in_(ACTIVE_STATUSES),
            models.RedemptionRequest.created_at >= start,
            models.RedemptionRequest.created_at < end,
        )
        .scalar()
    )
    return models.cents_to_decimal(int(total))


def monthly_completed(db: Session, offering_id: str, year: int, month: int) -> Tuple[int, Decimal]:
    start, end = month_bounds(year, month)
    count, total = (
        db.query(
            func.count(models.RedemptionRequest.id),
            func.coalesce(func.sum(models.RedemptionRequest.net_payout_cents), 0),
        )
        .filter(
            models.RedemptionRequest.offering_id == offering_id,
            models.RedemptionRequest.status == "completed",
            models.RedemptionRequest.completed_at >= start,
            models.RedemptionRequest.completed_at < end,
        )
        .one()
    )
    return int(count), models.cents_to_decimal(int(total))
