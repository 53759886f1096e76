"""
Fixed-Point Safeguards — Integer Math Primitives

The module provides the only sanctioned arithmetic for share and value
amounts:
- Validation of unsigned integer amounts (uint256 range)
- mul_div with a single floor rounding step
- Basis-point portions and basis-point rate validation

CRITICAL INVARIANTS:
1. All amounts are Python ints, never floats (bool is rejected too)
2. Every amount is within [0, MAX_UINT256]
3. Rounding is always toward zero (floor), exactly once per mul_div
4. Division by zero never happens silently: it is an invariant violation
"""

from typing import Final

from src.core.errors import InvariantViolationError

# =============================================================================
# CONSTANTS
# =============================================================================

# Basis points in one whole (100%)
BPS_DENOMINATOR: Final[int] = 10_000

# Upper bound for any ledger amount
MAX_UINT256: Final[int] = 2**256 - 1

# Shares carry 18 decimals; share prices are quoted per SHARE_UNIT shares
SHARE_DECIMALS: Final[int] = 18
SHARE_UNIT: Final[int] = 10**SHARE_DECIMALS


# =============================================================================
# VALIDATION
# =============================================================================


def is_uint(value: object) -> bool:
    """
    Check that value is an int in [0, MAX_UINT256].

    Examples:
        >>> is_uint(0)
        True
        >>> is_uint(-1)
        False
        >>> is_uint(1.0)
        False
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value <= MAX_UINT256


def validate_uint(value: object, name: str) -> int:
    """
    Validate an unsigned integer amount.

    Args:
        value: Amount to validate
        name: Parameter name (for the error message)

    Returns:
        The value, unchanged

    Raises:
        InvariantViolationError: If value is not an int, is negative or
            exceeds MAX_UINT256
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvariantViolationError(
            f"{name} must be an integer", details={name: repr(value)}
        )
    if value < 0:
        raise InvariantViolationError(f"{name} must be non-negative", details={name: value})
    if value > MAX_UINT256:
        raise InvariantViolationError(f"{name} exceeds uint256", details={name: value})
    return value


def validate_bps(rate_bps: int, name: str, max_bps: int = BPS_DENOMINATOR) -> int:
    """
    Validate a rate expressed in basis points.

    Args:
        rate_bps: Rate in bps (100 = 1%)
        name: Parameter name
        max_bps: Inclusive upper bound (default: 10000)

    Raises:
        InvariantViolationError: If rate_bps is not within [0, max_bps]
    """
    validate_uint(rate_bps, name)
    if rate_bps > max_bps:
        raise InvariantViolationError(
            f"{name} exceeds {max_bps} bps", details={name: rate_bps, "max_bps": max_bps}
        )
    return rate_bps


# =============================================================================
# ARITHMETIC
# =============================================================================


def mul_div_floor(a: int, b: int, denominator: int) -> int:
    """
    floor(a * b / denominator) with a single rounding step.

    The product is exact (arbitrary precision ints), so the only rounding is
    the final floor division.

    Args:
        a: First factor
        b: Second factor
        denominator: Divisor, must be > 0

    Returns:
        floor(a * b / denominator)

    Raises:
        InvariantViolationError: On a zero divisor, invalid inputs or a result
            outside uint256

    Examples:
        >>> mul_div_floor(10_000, 1_000_000, 990_000)
        10101
        >>> mul_div_floor(7, 3, 2)
        10
    """
    validate_uint(a, "a")
    validate_uint(b, "b")
    validate_uint(denominator, "denominator")
    if denominator == 0:
        raise InvariantViolationError("division by zero", details={"a": a, "b": b})

    result = a * b // denominator
    if result > MAX_UINT256:
        raise InvariantViolationError("mul_div result exceeds uint256", details={"a": a, "b": b})
    return result


def bps_portion(amount: int, rate_bps: int) -> int:
    """
    floor(amount * rate_bps / 10000).

    Examples:
        >>> bps_portion(1_000, 100)
        10
        >>> bps_portion(99, 100)
        0
    """
    validate_bps(rate_bps, "rate_bps")
    return mul_div_floor(amount, rate_bps, BPS_DENOMINATOR)


def checked_add(a: int, b: int) -> int:
    """Sum of two uint amounts, bounded by uint256."""
    validate_uint(a, "a")
    validate_uint(b, "b")
    return validate_uint(a + b, "sum")


def checked_sub(a: int, b: int) -> int:
    """
    a - b for uint amounts.

    Raises:
        InvariantViolationError: If b > a (underflow)
    """
    validate_uint(a, "a")
    validate_uint(b, "b")
    if b > a:
        raise InvariantViolationError("subtraction underflow", details={"a": a, "b": b})
    return a - b
