"""
FundContext / FundState — what a dispatch knows about a fund

FundContext is handed in by the fund-lifecycle collaborator: identity,
denomination asset, the vault to mutate, the fees recipient and the ledger
timestamp of the current atomic step.

FundState is the immutable snapshot the Fee Manager hands to every fee. It is
built at dispatch entry and carried forward after each fee, so later fees see
the supply and escrow left by earlier ones. Fees never see the vault itself.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from pydantic import BaseModel, Field

from src.core.domain.asset import Asset
from src.core.math.share_math import gross_share_value

if TYPE_CHECKING:
    from src.vault.ledger import VaultCommands


# =============================================================================
# FUND CONTEXT
# =============================================================================


@dataclass(frozen=True)
class FundContext:
    """Fund identity and collaborators for one engine invocation."""

    fund_id: str
    denomination_asset: Asset
    vault: "VaultCommands"
    fees_recipient: str
    now: int


# =============================================================================
# FUND STATE
# =============================================================================


class FundState(BaseModel):
    """
    Snapshot of a fund at dispatch entry.

    `gav` is None when no fee on the hook needs the fund value.
    """

    fund_id: str = Field(..., min_length=1)
    denomination_asset: Asset
    fees_recipient: str = Field(..., min_length=1)
    now: int = Field(..., ge=0, description="Ledger timestamp (seconds)")
    shares_supply: int = Field(..., ge=0, description="Total share supply, escrow included")
    shares_outstanding: int = Field(
        default=0, ge=0, description="Shares held in escrow for all fees of the fund"
    )
    fee_shares_outstanding: Dict[str, int] = Field(
        default_factory=dict, description="Escrowed shares by fee type"
    )
    gav: Optional[int] = Field(default=None, ge=0, description="Gross asset value")

    model_config = {"frozen": True}

    @property
    def holder_shares_supply(self) -> int:
        """Shares held by investors and recipients (escrow excluded)."""
        return self.shares_supply - self.shares_outstanding

    def outstanding_for(self, fee_type: str) -> int:
        return self.fee_shares_outstanding.get(fee_type, 0)

    def gross_share_value(self) -> int:
        """
        Value of 10**18 shares in denomination units.

        Raises:
            ValueError: If the snapshot was built without a GAV
        """
        if self.gav is None:
            raise ValueError(f"fund {self.fund_id}: gav not available in this snapshot")
        return gross_share_value(self.gav, self.shares_supply, self.denomination_asset.unit)
