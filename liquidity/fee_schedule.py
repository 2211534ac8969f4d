# liquidity/fee_schedule.py
"""Holding-duration fee tiers and payout computation.

Pure functions only: the same inputs always give the same breakdown, so the module backs
both real redemptions and payout previews.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from liquidity.core.errors import ConfigError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DAYS_PER_MONTH = 30
# request money columns are Numeric(24, 2)
MAX_GROSS_VALUE = Decimal(10) ** 22


def _d(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def quantize_money(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeTier:
    min_months: int
    max_months: Optional[int]
    fee_percent: Decimal

    def contains(self, holding_months: int) -> bool:
        if holding_months < self.min_months:
            return False
        return self.max_months is None or holding_months < self.max_months

    def as_dict(self) -> Dict[str, Any]:
        return {
            "min_months": self.min_months,
            "max_months": self.max_months,
            "fee_percent": str(self.fee_percent),
        }


@dataclass(frozen=True)
class PayoutBreakdown:
    quantity: Decimal
    token_price: Decimal
    holding_months: int
    gross_value: Decimal
    fee_percent: Decimal
    fee_amount: Decimal
    net_payout: Decimal
    tier_applied: FeeTier


def parse_tiers(raw: Iterable[Dict[str, Any]] | str) -> Tuple[FeeTier, ...]:
    """Load tiers from JSON text or dicts and validate them as a partition."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigError(f"fee tiers are not valid JSON: {e}") from e

    tiers: List[FeeTier] = []
    try:
        for item in raw:
            max_months = item.get("max_months")
            tiers.append(
                FeeTier(
                    min_months=int(item["min_months"]),
                    max_months=None if max_months is None else int(max_months),
                    fee_percent=_d(item["fee_percent"]),
                )
            )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise ConfigError(f"malformed fee tier: {e}") from e

    return validate_tiers(tiers)


def dump_tiers(tiers: Sequence[FeeTier]) -> str:
    return json.dumps([t.as_dict() for t in tiers], separators=(",", ":"))


def validate_tiers(tiers: Sequence[FeeTier]) -> Tuple[FeeTier, ...]:
    """Tiers must partition [0, inf) in ascending order with non-increasing fees."""
    if not tiers:
        raise ConfigError("at least one fee tier is required")

    if tiers[0].min_months != 0:
        raise ConfigError("first fee tier must start at 0 months")

    for i, tier in enumerate(tiers):
        if not (Decimal("0") <= tier.fee_percent <= HUNDRED):
            raise ConfigError(f"tier {i}: fee_percent must be within [0, 100]")

        last = i == len(tiers) - 1
        if tier.max_months is None:
            if not last:
                raise ConfigError(f"tier {i}: only the last tier may be unbounded")
            continue
        if last:
            raise ConfigError("last fee tier must be unbounded (max_months = null)")
        if tier.max_months <= tier.min_months:
            raise ConfigError(f"tier {i}: max_months must be greater than min_months")

        nxt = tiers[i + 1]
        if nxt.min_months != tier.max_months:
            kind = "gap" if nxt.min_months > tier.max_months else "overlap"
            raise ConfigError(f"{kind} between tier {i} and tier {i + 1}")
        if nxt.fee_percent > tier.fee_percent:
            raise ConfigError(f"tier {i + 1}: fee_percent may not increase with holding time")

    return tuple(tiers)


def default_fee_tiers() -> Tuple[FeeTier, ...]:
    return validate_tiers(
        [
            FeeTier(0, 12, Decimal("10")),
            FeeTier(12, 24, Decimal("7")),
            FeeTier(24, 36, Decimal("5")),
            FeeTier(36, None, Decimal("3")),
        ]
    )


def select_tier(holding_months: int, tiers: Sequence[FeeTier]) -> FeeTier:
    if holding_months < 0:
        raise ValueError("holding_months must be >= 0")
    for tier in tiers:
        if tier.contains(holding_months):
            return tier
    # unreachable for a validated partition
    raise ConfigError(f"no fee tier covers {holding_months} months")


def compute_payout(
    quantity,
    token_price,
    holding_months: int,
    tiers: Sequence[FeeTier],
) -> PayoutBreakdown:
    qty = _d(quantity)
    price = _d(token_price)
    if not (qty.is_finite() and price.is_finite()):
        raise ValueError("quantity and token_price must be finite numbers")
    if qty <= 0:
        raise ValueError("quantity must be > 0")
    if price <= 0:
        raise ValueError("token_price must be > 0")
    if holding_months < 0:
        raise ValueError("holding_months must be >= 0")

    tier = select_tier(holding_months, validate_tiers(tiers))

    raw_gross = qty * price
    if raw_gross >= MAX_GROSS_VALUE:
        raise ValueError(f"gross value must be below {MAX_GROSS_VALUE:,}")
    gross = quantize_money(raw_gross)
    fee = quantize_money(gross * tier.fee_percent / HUNDRED)
    # net is derived, never rounded on its own, so net + fee == gross exactly
    net = gross - fee

    return PayoutBreakdown(
        quantity=qty,
        token_price=price,
        holding_months=holding_months,
        gross_value=gross,
        fee_percent=tier.fee_percent,
        fee_amount=fee,
        net_payout=net,
        tier_applied=tier,
    )


def holding_period(start: date, today: Optional[date] = None) -> Tuple[int, int]:
    """Return (days, months) held; a month counts as 30 days."""
    today = today or date.today()
    days = (today - start).days
    if days < 0:
        raise ValueError("holding start date is in the future")
    return days, days // DAYS_PER_MONTH
