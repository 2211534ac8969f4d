# liquidity/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from liquidity.notifications.dispatcher import DeliveryStatus


class FeeTierIn(BaseModel):
    min_months: int = Field(ge=0)
    max_months: Optional[int] = None
    fee_percent: Decimal


class ProgramIn(BaseModel):
    property_name: Optional[str] = None
    enabled: bool = True
    fee_tiers: Optional[List[FeeTierIn]] = None  # None = configured defaults
    min_holding_days: Optional[int] = Field(default=None, ge=0)
    max_monthly_amount: Optional[Decimal] = Field(default=None, gt=0)
    admin_emails: List[str] = Field(default_factory=list)
    sponsor_email: Optional[str] = None


class ProgramOut(BaseModel):
    offering_id: str
    property_name: Optional[str] = None
    enabled: bool
    fee_tiers: List[FeeTierIn]
    min_holding_days: int
    max_monthly_amount: Optional[Decimal] = None
    admin_emails: List[str]
    sponsor_email: Optional[str] = None


class PreviewIn(BaseModel):
    offering_id: str
    # same bounds as the Numeric(24, 8) request columns
    quantity: Decimal = Field(gt=0, max_digits=24, decimal_places=8)
    token_price: Decimal = Field(gt=0, max_digits=24, decimal_places=8)
    holding_start_date: date


class SubmitRedemption(PreviewIn):
    investor_id: str
    investor_email: Optional[str] = None


class PayoutOut(BaseModel):
    quantity: Decimal
    token_price: Decimal
    holding_days: int
    holding_months: int
    gross_value: Decimal
    fee_percent: Decimal
    fee_amount: Decimal
    net_payout: Decimal
    tier_applied: FeeTierIn
    eligible: bool


class RedemptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_number: str
    offering_id: str
    investor_id: str
    investor_email: Optional[str] = None
    quantity: Decimal
    token_price: Decimal
    holding_days: int
    holding_months: int
    fee_percent: Decimal
    gross_value: Decimal
    fee_amount: Decimal
    net_payout: Decimal
    reservation_id: int
    status: str
    payout_reference: Optional[str] = None
    denial_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    denied_at: Optional[datetime] = None
    processing_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class ReviewIn(BaseModel):
    reviewed_by: Optional[str] = None


class DenyIn(ReviewIn):
    reason: str = Field(min_length=1)


class CompleteIn(BaseModel):
    payout_reference: str = Field(min_length=1)


class CancelIn(BaseModel):
    investor_id: str


class ReserveOpenIn(BaseModel):
    balance: Decimal = Field(ge=0)
    target: Decimal = Field(gt=0)


class ReserveFundIn(BaseModel):
    amount: Decimal = Field(gt=0)


class ReserveHealthOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    offering_id: str
    balance: Decimal
    target: Decimal
    reserved: Decimal
    available: Decimal
    ratio: Decimal
    is_low: bool


class SummaryIn(BaseModel):
    year: int = Field(ge=2000)
    month: int = Field(ge=1, le=12)


class ChannelOutcomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel: str
    target: str
    status: DeliveryStatus
    error: Optional[str] = None


class DeliveryReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    idempotency_key: str
    outcomes: List[ChannelOutcomeOut]


class WorkflowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request: RedemptionOut
    deliveries: List[DeliveryReportOut]
