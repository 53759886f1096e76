"""
Tests for share math

Checks:
1. Anti-dilution conversion: worked example, zero cases, degenerate case,
   raw > supply, ownership law
2. Time-weighted accrual: zero elapsed, one year, proportionality
3. Gross share value
"""

import pytest

from src.core.errors import InvariantViolationError
from src.core.math import (
    DEGENERATE_SHARES_DUE,
    SECONDS_IN_YEAR,
    SHARE_UNIT,
    convert_raw_shares_due,
    gross_share_value,
    seconds_since,
    time_weighted_raw_shares_due,
)


# =============================================================================
# ANTI-DILUTION
# =============================================================================


class TestConvertRawSharesDue:
    def test_one_percent_of_a_million(self) -> None:
        """10,000 raw on 1,000,000 supply -> 10,101 minted."""
        shares_due = convert_raw_shares_due(10_000, 1_000_000)
        assert shares_due == 10101

        # Post-mint ownership ~ 1.000%
        ownership_bps = shares_due * 10_000 // (1_000_000 + shares_due)
        assert ownership_bps == 99 or ownership_bps == 100

    def test_zero_supply(self) -> None:
        assert convert_raw_shares_due(0, 0) == 0

    def test_zero_raw(self) -> None:
        assert convert_raw_shares_due(0, 1_000_000) == 0

    def test_degenerate_full_supply(self) -> None:
        assert convert_raw_shares_due(1_000, 1_000) == DEGENERATE_SHARES_DUE == 1

    def test_degenerate_case_is_logged(self, caplog) -> None:
        with caplog.at_level("WARNING", logger="src.core.math.share_math"):
            convert_raw_shares_due(7, 7)
        assert "degenerate" in caplog.text

    def test_raw_above_supply_rejected(self) -> None:
        with pytest.raises(InvariantViolationError):
            convert_raw_shares_due(1_001, 1_000)

    @pytest.mark.parametrize(
        "raw,supply",
        [
            (1, 2),
            (1, 1_000_000),
            (10_000, 1_000_000),
            (333_333, 1_000_000),
            (999_999, 1_000_000),
            (12_345_678, 10**24),
            (10**17, 3 * 10**18 + 7),
        ],
    )
    def test_ownership_law(self, raw: int, supply: int) -> None:
        """d * (s - r) <= r * s < (d + 1) * (s - r), i.e. d*s == r*(s+d) up to one unit."""
        d = convert_raw_shares_due(raw, supply)
        assert d * (supply - raw) <= raw * supply < (d + 1) * (supply - raw)

    def test_monotonic_in_raw(self) -> None:
        supply = 1_000_000
        results = [convert_raw_shares_due(raw, supply) for raw in range(0, 500_000, 25_000)]
        assert results == sorted(results)


# =============================================================================
# TIME-WEIGHTED ACCRUAL
# =============================================================================


class TestTimeWeightedRawSharesDue:
    def test_zero_elapsed_accrues_nothing(self) -> None:
        for rate in (0, 1, 250, 9_999):
            assert time_weighted_raw_shares_due(1_000_000, rate, 0) == 0

    def test_zero_supply_accrues_nothing(self) -> None:
        assert time_weighted_raw_shares_due(0, 100, SECONDS_IN_YEAR) == 0

    def test_one_year_at_fifty_bps(self) -> None:
        assert time_weighted_raw_shares_due(2_000_000, 50, SECONDS_IN_YEAR) == 10_000

    def test_half_year(self) -> None:
        assert time_weighted_raw_shares_due(2_000_000, 50, SECONDS_IN_YEAR // 2) == 5_000

    def test_floors(self) -> None:
        # 1,000 shares at 1% for one second is far below one share
        assert time_weighted_raw_shares_due(1_000, 100, 1) == 0

    def test_julian_year(self) -> None:
        assert SECONDS_IN_YEAR == 365 * 86_400 + 6 * 3_600


class TestSecondsSince:
    def test_elapsed(self) -> None:
        assert seconds_since(100, 40) == 60
        assert seconds_since(100, 100) == 0

    def test_future_timestamp_rejected(self) -> None:
        with pytest.raises(InvariantViolationError):
            seconds_since(100, 101, "last_settled")


# =============================================================================
# SHARE VALUE
# =============================================================================


class TestGrossShareValue:
    def test_value_per_share_unit(self) -> None:
        # 2,000 USDC backing 1,000 shares -> 2 USDC per share
        assert gross_share_value(2_000 * 10**6, 1_000 * SHARE_UNIT, 10**6) == 2 * 10**6

    def test_no_supply_is_one_denomination_unit(self) -> None:
        assert gross_share_value(0, 0, 10**6) == 10**6
        assert gross_share_value(5 * 10**6, 0, 10**6) == 10**6
