"""
Domain models and value objects.

Contains fundamental domain entities like Asset, Rate, FundState,
SettlementInstruction and the persisted fee records.
"""

from src.core.domain.asset import (
    Asset,
    AssetKind,
    DecompositionComponent,
    DerivativeDecomposition,
    Rate,
)
from src.core.domain.fee_records import (
    EntranceRateFeeRecord,
    ExitRateFeeRecord,
    FundFeeRecord,
    ManagementFeeRecord,
    MinSharesSupplyFeeRecord,
    PerformanceFeeRecord,
    ProtocolFeeState,
    RateFeeSettlement,
)
from src.core.domain.fund import FundContext, FundState
from src.core.domain.settlement import (
    PAYLOAD_TYPES,
    BuySharesPayload,
    FeeHook,
    HookPayload,
    RedeemSharesPayload,
    SettlementInstruction,
    SettlementType,
)

__all__ = [
    # Asset module
    "Asset",
    "AssetKind",
    "DecompositionComponent",
    "DerivativeDecomposition",
    "Rate",
    # Fund module
    "FundContext",
    "FundState",
    # Settlement module
    "PAYLOAD_TYPES",
    "BuySharesPayload",
    "FeeHook",
    "HookPayload",
    "RedeemSharesPayload",
    "SettlementInstruction",
    "SettlementType",
    # Fee records
    "EntranceRateFeeRecord",
    "ExitRateFeeRecord",
    "FundFeeRecord",
    "ManagementFeeRecord",
    "MinSharesSupplyFeeRecord",
    "PerformanceFeeRecord",
    "ProtocolFeeState",
    "RateFeeSettlement",
]
