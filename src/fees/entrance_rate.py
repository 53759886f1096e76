"""
Entrance Rate Fee — a percentage of shares bought

Settles on POST_BUY_SHARES:

    sharesDue = floor(sharesBought * rateBps / 10000)

Settlement mode (per fund):
- burn   -> BURN from the buyer (the buyer keeps sharesBought - sharesDue)
- direct -> DIRECT transfer buyer -> fund fees recipient
"""

from typing import Optional

from src.core.domain.fee_records import EntranceRateFeeRecord, RateFeeSettlement
from src.core.domain.fund import FundState
from src.core.domain.settlement import (
    BuySharesPayload,
    FeeHook,
    HookPayload,
    SettlementInstruction,
    SettlementType,
)
from src.core.math.fixed_point import bps_portion
from src.fees.base import Fee, register_fee_type

ENTRANCE_RATE_FEE = "ENTRANCE_RATE"


def rate_fee_instruction(
    settlement: RateFeeSettlement, shares_due: int, payer: str, fees_recipient: str
) -> Optional[SettlementInstruction]:
    """Instruction for a burn/direct rate fee; None when nothing is due."""
    if shares_due == 0:
        return None
    if settlement == RateFeeSettlement.DIRECT:
        return SettlementInstruction(
            SettlementType.DIRECT, shares_due, payer=payer, payee=fees_recipient
        )
    return SettlementInstruction(SettlementType.BURN, shares_due, payer=payer)


@register_fee_type
class EntranceRateFee(Fee):
    """Fee on every purchase, in shares bought."""

    fee_type = ENTRANCE_RATE_FEE
    schema_name = "entrance_rate_fee"
    record_model = EntranceRateFeeRecord

    settles_on = frozenset({FeeHook.POST_BUY_SHARES})

    def settle(
        self, hook: FeeHook, fund: FundState, payload: HookPayload
    ) -> Optional[SettlementInstruction]:
        payload = self._expect_payload(hook, payload, BuySharesPayload)
        record: EntranceRateFeeRecord = self.get_record(fund.fund_id)
        shares_due = bps_portion(payload.shares_bought, record.rate_bps)
        return rate_fee_instruction(
            record.settlement, shares_due, payload.buyer, fund.fees_recipient
        )
