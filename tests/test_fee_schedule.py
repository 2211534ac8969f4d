"""Fee tier validation and payout arithmetic."""

from datetime import date
from decimal import Decimal

import pytest

from liquidity.core.config import Settings
from liquidity.core.errors import ConfigError
from liquidity.fee_schedule import (
    FeeTier,
    compute_payout,
    default_fee_tiers,
    holding_period,
    parse_tiers,
    select_tier,
    validate_tiers,
)
from tests.conftest import STANDARD_TIERS


class TestComputePayout:
    def test_documented_example(self):
        """50 tokens at 100 held 14 months -> 5% tier."""
        p = compute_payout(50, 100, 14, STANDARD_TIERS)

        assert p.gross_value == Decimal("5000.00")
        assert p.fee_percent == Decimal("5")
        assert p.fee_amount == Decimal("250.00")
        assert p.net_payout == Decimal("4750.00")
        assert p.tier_applied == STANDARD_TIERS[2]

    @pytest.mark.parametrize(
        "months,fee",
        [(0, "15"), (5, "15"), (6, "10"), (11, "10"), (12, "5"), (600, "5")],
    )
    def test_tier_boundaries_are_half_open(self, months, fee):
        assert compute_payout(1, 10, months, STANDARD_TIERS).fee_percent == Decimal(fee)

    def test_net_plus_fee_equals_gross_exactly(self):
        tiers = validate_tiers(
            [FeeTier(0, 3, Decimal("12.5")), FeeTier(3, 9, Decimal("7.25")), FeeTier(9, None, Decimal("3.33"))]
        )
        for qty in ("1", "3", "7", "13.5", "0.333"):
            for price in ("0.01", "33.333", "99.99", "1234.567"):
                for months in (0, 4, 10):
                    p = compute_payout(Decimal(qty), Decimal(price), months, tiers)
                    assert p.net_payout + p.fee_amount == p.gross_value
                    assert p.fee_amount == p.fee_amount.quantize(Decimal("0.01"))
                    assert p.gross_value == p.gross_value.quantize(Decimal("0.01"))

    def test_fee_rounds_half_up_to_the_cent(self):
        tiers = validate_tiers([FeeTier(0, None, Decimal("5"))])

        assert compute_payout(1, Decimal("10.10"), 0, tiers).fee_amount == Decimal("0.51")  # 0.505
        assert compute_payout(1, Decimal("10.05"), 0, tiers).fee_amount == Decimal("0.50")  # 0.5025

    def test_same_inputs_same_breakdown(self):
        a = compute_payout(Decimal("7.5"), Decimal("41.37"), 8, STANDARD_TIERS)
        b = compute_payout(Decimal("7.5"), Decimal("41.37"), 8, STANDARD_TIERS)
        assert a == b

    def test_floats_are_taken_at_their_decimal_repr(self):
        p = compute_payout(3, 0.1, 0, STANDARD_TIERS)
        assert p.gross_value == Decimal("0.30")

    @pytest.mark.parametrize("qty,price,months", [(0, 10, 1), (-1, 10, 1), (1, 0, 1), (1, -5, 1), (1, 10, -1)])
    def test_preconditions(self, qty, price, months):
        with pytest.raises(ValueError):
            compute_payout(qty, price, months, STANDARD_TIERS)

    @pytest.mark.parametrize(
        "qty,price",
        [
            (Decimal("1e20"), Decimal("1e10")),
            (Decimal("1e11"), Decimal("1e11")),
            (Decimal("NaN"), Decimal("1")),
            (Decimal("Infinity"), Decimal("1")),
        ],
    )
    def test_out_of_range_amounts_are_value_errors(self, qty, price):
        with pytest.raises(ValueError):
            compute_payout(qty, price, 14, STANDARD_TIERS)

    def test_largest_storable_gross_still_computes(self):
        p = compute_payout(Decimal("1e11"), Decimal("999999999.99"), 14, STANDARD_TIERS)
        assert p.gross_value == Decimal("99999999999000000000.00")
        assert p.net_payout + p.fee_amount == p.gross_value

    def test_invalid_tiers_fail_before_computing(self):
        with pytest.raises(ConfigError):
            compute_payout(1, 10, 1, [FeeTier(0, 6, Decimal("10"))])


class TestTierSelection:
    def test_every_month_matches_exactly_one_tier(self):
        tiers = default_fee_tiers()
        for months in range(0, 240):
            matches = [t for t in tiers if t.contains(months)]
            assert len(matches) == 1
            assert select_tier(months, tiers) is matches[0]

    def test_negative_months_rejected(self):
        with pytest.raises(ValueError):
            select_tier(-1, STANDARD_TIERS)


class TestValidateTiers:
    @pytest.mark.parametrize(
        "tiers",
        [
            [],
            [FeeTier(1, None, Decimal("5"))],  # does not start at 0
            [FeeTier(0, 6, Decimal("10")), FeeTier(8, None, Decimal("5"))],  # gap
            [FeeTier(0, 6, Decimal("10")), FeeTier(4, None, Decimal("5"))],  # overlap
            [FeeTier(0, None, Decimal("10")), FeeTier(6, None, Decimal("5"))],  # unbounded not last
            [FeeTier(0, 6, Decimal("10")), FeeTier(6, 12, Decimal("5"))],  # top tier bounded
            [FeeTier(0, 6, Decimal("5")), FeeTier(6, None, Decimal("10"))],  # fee increases
            [FeeTier(0, 0, Decimal("5")), FeeTier(0, None, Decimal("5"))],  # empty range
            [FeeTier(0, None, Decimal("101"))],
            [FeeTier(0, None, Decimal("-1"))],
        ],
    )
    def test_rejects_non_partitions(self, tiers):
        with pytest.raises(ConfigError):
            validate_tiers(tiers)

    def test_equal_fees_are_allowed(self):
        tiers = validate_tiers([FeeTier(0, 6, Decimal("5")), FeeTier(6, None, Decimal("5"))])
        assert len(tiers) == 2


class TestParseTiers:
    def test_parses_configured_defaults(self):
        tiers = parse_tiers(Settings(_env_file=None).DEFAULT_FEE_TIERS)

        assert tiers == default_fee_tiers()

    def test_parses_dicts_with_numeric_fees(self):
        tiers = parse_tiers(
            [
                {"min_months": 0, "max_months": 6, "fee_percent": 15},
                {"min_months": 6, "max_months": None, "fee_percent": 7.5},
            ]
        )
        assert tiers[1].fee_percent == Decimal("7.5")
        assert tiers[1].max_months is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '[{"min_months": 0}]',
            '[{"min_months": "x", "max_months": null, "fee_percent": 1}]',
            '[{"min_months": 0, "max_months": null, "fee_percent": "abc"}]',
        ],
    )
    def test_malformed_input_is_a_config_error(self, raw):
        with pytest.raises(ConfigError):
            parse_tiers(raw)


class TestHoldingPeriod:
    def test_months_are_thirty_day_blocks(self):
        assert holding_period(date(2026, 1, 1), date(2026, 2, 15)) == (45, 1)
        assert holding_period(date(2026, 1, 1), date(2026, 1, 1)) == (0, 0)

    def test_future_start_rejected(self):
        with pytest.raises(ValueError):
            holding_period(date(2026, 3, 1), date(2026, 2, 1))
