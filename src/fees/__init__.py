"""
Fees — the fee family and the Fee Manager.

Importing this package registers the built-in fee types:
ENTRANCE_RATE, EXIT_RATE, MANAGEMENT, PERFORMANCE, MIN_SHARES_SUPPLY.
"""

from src.fees.base import FEE_TYPES, Fee, create_fee, register_fee_type
from src.fees.entrance_rate import ENTRANCE_RATE_FEE, EntranceRateFee
from src.fees.exit_rate import EXIT_RATE_FEE, ExitRateFee
from src.fees.fee_manager import DispatchResult, FeeManager, FeeManagerConfig
from src.fees.management import MANAGEMENT_FEE, ManagementFee
from src.fees.min_shares_supply import MIN_SHARES_SUPPLY_FEE, MinSharesSupplyFee
from src.fees.performance import PERFORMANCE_FEE, PerformanceFee
from src.fees.registry import FeeRegistry

__all__ = [
    # Base
    "FEE_TYPES",
    "Fee",
    "create_fee",
    "register_fee_type",
    # Fee types
    "ENTRANCE_RATE_FEE",
    "EXIT_RATE_FEE",
    "MANAGEMENT_FEE",
    "MIN_SHARES_SUPPLY_FEE",
    "PERFORMANCE_FEE",
    "EntranceRateFee",
    "ExitRateFee",
    "ManagementFee",
    "MinSharesSupplyFee",
    "PerformanceFee",
    # Orchestration
    "DispatchResult",
    "FeeManager",
    "FeeManagerConfig",
    "FeeRegistry",
]
