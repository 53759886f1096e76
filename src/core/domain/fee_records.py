"""
Fee Records — persisted fee configuration and accounting state

One Pydantic model per fee type, stored under (fund_id, fee_type); plus the
Fee Manager's per-fund record and the Protocol Fee State.

Records are immutable; every mutation writes a new, re-validated instance.
JSON encoding (`model_dump_json`) round-trips
deterministically through `model_validate_json`.
"""

from enum import Enum
from typing import Dict, Tuple

from pydantic import BaseModel, Field, field_validator

from src.core.math.fixed_point import BPS_DENOMINATOR


# =============================================================================
# ENUMS
# =============================================================================


class RateFeeSettlement(str, Enum):
    """Settlement mode for entrance/exit rate fees."""

    BURN = "burn"
    DIRECT = "direct"


# =============================================================================
# FEE RECORDS
# =============================================================================


class EntranceRateFeeRecord(BaseModel):
    """Entrance fee charged on shares bought."""

    rate_bps: int = Field(..., ge=0, lt=BPS_DENOMINATOR)
    settlement: RateFeeSettlement = RateFeeSettlement.BURN

    model_config = {"frozen": True}


class ExitRateFeeRecord(BaseModel):
    """Exit fee charged on shares redeemed, by redemption kind."""

    in_kind_rate_bps: int = Field(..., ge=0, lt=BPS_DENOMINATOR)
    specific_assets_rate_bps: int = Field(..., ge=0, lt=BPS_DENOMINATOR)
    settlement: RateFeeSettlement = RateFeeSettlement.BURN

    model_config = {"frozen": True}


class ManagementFeeRecord(BaseModel):
    """Time-weighted fee on share supply at an annual rate."""

    rate_bps: int = Field(..., ge=0, lt=BPS_DENOMINATOR, description="Annual rate")
    last_settled: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class PerformanceFeeRecord(BaseModel):
    """Fee on share price growth above the high-water mark."""

    rate_bps: int = Field(..., ge=0, lt=BPS_DENOMINATOR)
    period_sec: int = Field(..., gt=0, description="Crystallization period")
    activated_at: int = Field(default=0, ge=0)
    last_paid_at: int = Field(default=0, ge=0)
    high_water_mark: int = Field(
        default=0, ge=0, description="Crystallized value per 10**18 shares; 0 = unset"
    )
    last_share_price: int = Field(
        default=0, ge=0, description="Share price before this fee's escrow, at the last settlement"
    )
    last_net_share_price: int = Field(
        default=0, ge=0, description="Share price with this fee's escrow, at the last settlement"
    )
    aggregate_value_due: int = Field(
        default=0, ge=0, description="Value owed since the last crystallization"
    )

    model_config = {"frozen": True}


class MinSharesSupplyFeeRecord(BaseModel):
    """One-time minimum share floor minted on the first purchase."""

    min_shares: int = Field(..., gt=0)
    locked_account: str = Field(default="locked:min-shares-supply", min_length=1)
    settled: bool = False

    model_config = {"frozen": True}


# =============================================================================
# FEE MANAGER RECORD
# =============================================================================


class FundFeeRecord(BaseModel):
    """Ordered fee types enabled for a fund and their shares outstanding."""

    fee_types: Tuple[str, ...] = ()
    shares_outstanding: Dict[str, int] = Field(default_factory=dict)
    activated: bool = False

    model_config = {"frozen": True}

    @field_validator("shares_outstanding")
    @classmethod
    def validate_outstanding(cls, v: Dict[str, int]) -> Dict[str, int]:
        for fee_type, amount in v.items():
            if amount < 0:
                raise ValueError(f"shares outstanding for {fee_type} is negative: {amount}")
        return v

    def outstanding_for(self, fee_type: str) -> int:
        return self.shares_outstanding.get(fee_type, 0)

    def total_outstanding(self) -> int:
        return sum(self.shares_outstanding.values())


# =============================================================================
# PROTOCOL FEE STATE
# =============================================================================


class ProtocolFeeState(BaseModel):
    """Per-fund protocol fee rate and last payment time."""

    fee_bps: int = Field(..., ge=0, lt=BPS_DENOMINATOR)
    last_paid: int = Field(..., ge=0)

    model_config = {"frozen": True}
