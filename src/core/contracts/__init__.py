"""
Contract Validation Module

Validation of encoded fee settings against JSON Schema contracts.
"""

from .validators import (
    CONTRACT_VALIDATORS,
    ContractValidator,
    EntranceRateFeeValidator,
    ExitRateFeeValidator,
    ManagementFeeValidator,
    MinSharesSupplyFeeValidator,
    PerformanceFeeValidator,
    SchemaLoader,
    decode_settings,
    get_validator,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "EntranceRateFeeValidator",
    "ExitRateFeeValidator",
    "ManagementFeeValidator",
    "PerformanceFeeValidator",
    "MinSharesSupplyFeeValidator",
    "CONTRACT_VALIDATORS",
    # Functions
    "decode_settings",
    "get_validator",
]
