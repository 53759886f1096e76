"""
Share Math — Time-Weighted Accrual & Anti-Dilution Conversion

The module turns fees expressed as a fraction of the current share supply
into an exact number of shares to mint:
- Time-weighted accrual at an annual rate in basis points
- Anti-dilution conversion: rawSharesDue -> sharesDue
- Gross share value (value per SHARE_UNIT shares)

CRITICAL INVARIANTS:
1. Integer arithmetic only, single floor rounding per formula
2. Zero supply or zero elapsed time never accrues anything
3. rawSharesDue > sharesSupply is an invariant violation
4. All results are deterministic and reproducible

FORMULAS:
    rawSharesDue = floor(sharesSupply * rateBps * seconds / (SECONDS_IN_YEAR * 10000))

    Anti-dilution, solving sharesDue / (sharesSupply + sharesDue) = raw / sharesSupply:
    sharesDue = floor(raw * sharesSupply / (sharesSupply - raw))

    grossShareValue = floor(gav * SHARE_UNIT / sharesSupply)
"""

import logging
from typing import Final

from src.core.errors import InvariantViolationError
from src.core.math.fixed_point import (
    BPS_DENOMINATOR,
    SHARE_UNIT,
    mul_div_floor,
    validate_bps,
    validate_uint,
)

log = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Julian year: 365.25 days
SECONDS_IN_YEAR: Final[int] = 31_557_600

# sharesDue returned when rawSharesDue == sharesSupply (100% fee).
# The exact formula divides by zero there; 1 share is a policy floor.
DEGENERATE_SHARES_DUE: Final[int] = 1


# =============================================================================
# ANTI-DILUTION
# =============================================================================


def convert_raw_shares_due(raw_shares_due: int, shares_supply: int) -> int:
    """
    Convert a fee expressed as a fraction of the current supply into shares to mint.

    Minting the returned amount gives the recipient raw / supply of the
    post-mint supply (up to one unit of floor rounding).

    Args:
        raw_shares_due: Fee as shares of the *current* supply
        shares_supply: Current total share supply

    Returns:
        Shares to mint:
        - 0 if shares_supply == 0 or raw_shares_due == 0
        - DEGENERATE_SHARES_DUE if raw_shares_due == shares_supply
        - floor(raw * supply / (supply - raw)) otherwise

    Raises:
        InvariantViolationError: If raw_shares_due > shares_supply

    Examples:
        >>> convert_raw_shares_due(10_000, 1_000_000)
        10101
        >>> convert_raw_shares_due(0, 1_000_000)
        0
        >>> convert_raw_shares_due(5, 0)
        0
    """
    validate_uint(raw_shares_due, "raw_shares_due")
    validate_uint(shares_supply, "shares_supply")

    if shares_supply == 0 or raw_shares_due == 0:
        return 0

    if raw_shares_due > shares_supply:
        raise InvariantViolationError(
            "raw shares due exceed shares supply",
            details={"raw_shares_due": raw_shares_due, "shares_supply": shares_supply},
        )

    if raw_shares_due == shares_supply:
        log.warning(
            "degenerate anti-dilution conversion (raw == supply == %d), using %d share(s)",
            shares_supply,
            DEGENERATE_SHARES_DUE,
        )
        return DEGENERATE_SHARES_DUE

    return mul_div_floor(raw_shares_due, shares_supply, shares_supply - raw_shares_due)


# =============================================================================
# TIME-WEIGHTED ACCRUAL
# =============================================================================


def time_weighted_raw_shares_due(shares_supply: int, rate_bps: int, seconds_elapsed: int) -> int:
    """
    Shares owed for an annual bps rate over an elapsed period, before anti-dilution.

    Args:
        shares_supply: Share supply the rate applies to
        rate_bps: Annual rate in basis points
        seconds_elapsed: Seconds since the last settlement

    Returns:
        floor(supply * rate_bps * seconds / (SECONDS_IN_YEAR * 10000)),
        0 when supply or seconds is 0

    Examples:
        >>> time_weighted_raw_shares_due(2_000_000, 50, SECONDS_IN_YEAR)
        10000
        >>> time_weighted_raw_shares_due(2_000_000, 50, 0)
        0
    """
    validate_uint(shares_supply, "shares_supply")
    validate_bps(rate_bps, "rate_bps")
    validate_uint(seconds_elapsed, "seconds_elapsed")

    if shares_supply == 0 or seconds_elapsed == 0:
        return 0

    return mul_div_floor(
        shares_supply * rate_bps,
        seconds_elapsed,
        SECONDS_IN_YEAR * BPS_DENOMINATOR,
    )


def seconds_since(now: int, last: int, name: str = "last") -> int:
    """
    now - last for ledger timestamps.

    Raises:
        InvariantViolationError: If last is in the future
    """
    validate_uint(now, "now")
    validate_uint(last, name)
    if last > now:
        raise InvariantViolationError(
            f"{name} timestamp is in the future", details={"now": now, name: last}
        )
    return now - last


# =============================================================================
# SHARE VALUE
# =============================================================================


def gross_share_value(gav: int, shares_supply: int, denomination_unit: int) -> int:
    """
    Value of SHARE_UNIT shares in denomination units.

    With no shares outstanding the value is one whole denomination unit, so
    the first buyer gets shares 1:1.

    Examples:
        >>> gross_share_value(2 * 10**6, 10**18, 10**6)
        2000000
        >>> gross_share_value(0, 0, 10**6)
        1000000
    """
    validate_uint(gav, "gav")
    validate_uint(shares_supply, "shares_supply")
    validate_uint(denomination_unit, "denomination_unit")

    if shares_supply == 0:
        return denomination_unit
    return mul_div_floor(gav, SHARE_UNIT, shares_supply)
