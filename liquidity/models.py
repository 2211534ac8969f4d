# liquidity/models.py
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Column,
    BigInteger,
    String,
    Numeric,
    DateTime,
    Integer,
    Boolean,
    Text,
    Index,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

CENT = Decimal("0.01")


def cents_to_decimal(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(CENT)


class LiquidityProgram(Base):
    """Per-offering program settings. fee_tiers is validated JSON (see fee_schedule.parse_tiers)."""

    __tablename__ = "liquidity_programs"

    offering_id = Column(String(64), primary_key=True)
    property_name = Column(String(256), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)

    fee_tiers = Column(Text, nullable=False)
    min_holding_days = Column(Integer, nullable=False, default=30)
    max_monthly_amount = Column(Numeric(24, 2), nullable=True)  # None = no cap

    admin_emails = Column(Text, nullable=True)  # comma separated
    sponsor_email = Column(String(256), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)


class ReserveAccount(Base):
    """Platform reserve per offering. Money columns are integer cents so that the
    conditional check-and-reserve UPDATE is exact on every backend."""

    __tablename__ = "reserve_accounts"

    offering_id = Column(String(64), primary_key=True)

    balance_cents = Column(BigInteger, nullable=False, default=0)
    target_cents = Column(BigInteger, nullable=False)
    reserved_cents = Column(BigInteger, nullable=False, default=0)

    # set when balance/target dropped below the low ratio, cleared once it recovers
    low_balance_alerted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)


class ReserveReservation(Base):
    __tablename__ = "reserve_reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    offering_id = Column(String(64), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)

    # held / released / settled
    status = Column(String(16), nullable=False, default="held")

    created_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_reserve_reservations_offering", "offering_id"),
    )


class RedemptionRequest(Base):
    __tablename__ = "redemption_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_number = Column(String(32), nullable=False, unique=True)

    offering_id = Column(String(64), nullable=False)
    investor_id = Column(String(64), nullable=False)
    investor_email = Column(String(256), nullable=True)

    quantity = Column(Numeric(24, 8), nullable=False)
    token_price = Column(Numeric(24, 8), nullable=False)
    holding_days = Column(Integer, nullable=False)
    holding_months = Column(Integer, nullable=False)

    fee_percent = Column(Numeric(6, 2), nullable=False)
    gross_value = Column(Numeric(24, 2), nullable=False)
    fee_amount = Column(Numeric(24, 2), nullable=False)
    net_payout = Column(Numeric(24, 2), nullable=False)
    # exact copy of net_payout; sums run on this column since SQLite has no native decimal
    net_payout_cents = Column(BigInteger, nullable=False)

    reservation_id = Column(Integer, nullable=False)

    # submitted / approved / denied / processing / completed / cancelled
    status = Column(String(16), nullable=False, default="submitted")
    payout_reference = Column(String(128), nullable=True)
    denial_reason = Column(Text, nullable=True)
    reviewed_by = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    denied_at = Column(DateTime(timezone=True), nullable=True)
    processing_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_redemption_requests_offering", "offering_id"),
        Index("ix_redemption_requests_investor", "investor_id"),
        Index("ix_redemption_requests_status", "status"),
    )


class RequestSequence(Base):
    """Per-year counter behind PREFIX-YEAR-NNNN request numbers."""

    __tablename__ = "request_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)


class Notification(Base):
    """In-app notification shown to an investor."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)

    type = Column(String(64), nullable=False)  # liquidity_<subtype>
    title = Column(String(256), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(Text, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_notifications_user", "user_id"),
    )
