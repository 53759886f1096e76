"""
Fee hooks, settlement types, settlement instructions and hook payloads.

A Settlement Instruction is created by a Fee for one hook invocation and
consumed by the Fee Manager within the same dispatch; it is never persisted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from src.core.math.fixed_point import validate_uint


# =============================================================================
# ENUMS
# =============================================================================


class FeeHook(str, Enum):
    """Points in the fund lifecycle at which fees are evaluated."""

    CONTINUOUS = "CONTINUOUS"
    PRE_BUY_SHARES = "PRE_BUY_SHARES"
    POST_BUY_SHARES = "POST_BUY_SHARES"
    PRE_REDEEM_SHARES = "PRE_REDEEM_SHARES"


class SettlementType(str, Enum):
    """
    How a computed fee is paid.

    DIRECT                   — transfer existing shares payer -> payee
    MINT                     — mint new shares to the payee
    BURN                     — burn shares from the payer
    MINT_SHARES_OUTSTANDING  — mint into escrow, released later by payout
    BURN_SHARES_OUTSTANDING  — burn from the fee's escrowed balance
    """

    DIRECT = "DIRECT"
    MINT = "MINT"
    BURN = "BURN"
    MINT_SHARES_OUTSTANDING = "MINT_SHARES_OUTSTANDING"
    BURN_SHARES_OUTSTANDING = "BURN_SHARES_OUTSTANDING"


# =============================================================================
# SETTLEMENT INSTRUCTION
# =============================================================================


@dataclass(frozen=True)
class SettlementInstruction:
    """Result of one fee settlement."""

    settlement_type: SettlementType
    shares_due: int
    payer: Optional[str] = None
    payee: Optional[str] = None

    def __post_init__(self) -> None:
        validate_uint(self.shares_due, "shares_due")


# =============================================================================
# HOOK PAYLOADS
# =============================================================================


class BuySharesPayload(BaseModel):
    """Payload for PRE_BUY_SHARES / POST_BUY_SHARES."""

    buyer: str = Field(..., min_length=1)
    investment_amount: int = Field(..., ge=0, description="Denomination asset invested")
    shares_bought: int = Field(default=0, ge=0, description="Shares minted to the buyer")

    model_config = {"frozen": True}


class RedeemSharesPayload(BaseModel):
    """Payload for PRE_REDEEM_SHARES."""

    redeemer: str = Field(..., min_length=1)
    shares_to_redeem: int = Field(..., ge=0)
    for_specific_assets: bool = Field(
        default=False, description="Redemption for specific assets instead of in kind"
    )

    model_config = {"frozen": True}


HookPayload = Union[BuySharesPayload, RedeemSharesPayload, None]

PAYLOAD_TYPES: dict[FeeHook, Optional[type]] = {
    FeeHook.CONTINUOUS: None,
    FeeHook.PRE_BUY_SHARES: BuySharesPayload,
    FeeHook.POST_BUY_SHARES: BuySharesPayload,
    FeeHook.PRE_REDEEM_SHARES: RedeemSharesPayload,
}
