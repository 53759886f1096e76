"""
Core math modules

Integer fixed-point primitives and share math with guaranteed determinism.
"""

# Fixed-point safeguards
from src.core.math.fixed_point import (
    # Constants
    BPS_DENOMINATOR,
    MAX_UINT256,
    SHARE_DECIMALS,
    SHARE_UNIT,
    # Validation
    is_uint,
    validate_bps,
    validate_uint,
    # Arithmetic
    bps_portion,
    checked_add,
    checked_sub,
    mul_div_floor,
)

# Share math
from src.core.math.share_math import (
    DEGENERATE_SHARES_DUE,
    SECONDS_IN_YEAR,
    convert_raw_shares_due,
    gross_share_value,
    seconds_since,
    time_weighted_raw_shares_due,
)

__all__ = [
    # Fixed-point — Constants
    "BPS_DENOMINATOR",
    "MAX_UINT256",
    "SHARE_DECIMALS",
    "SHARE_UNIT",
    # Fixed-point — Validation
    "is_uint",
    "validate_bps",
    "validate_uint",
    # Fixed-point — Arithmetic
    "bps_portion",
    "checked_add",
    "checked_sub",
    "mul_div_floor",
    # Share math — Constants
    "DEGENERATE_SHARES_DUE",
    "SECONDS_IN_YEAR",
    # Share math — Functions
    "convert_raw_shares_due",
    "gross_share_value",
    "seconds_since",
    "time_weighted_raw_shares_due",
]
