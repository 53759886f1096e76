"""
MinSharesSupply Fee — one-time locked share floor

On the first purchase into a fund, mints `min_shares` to a locked account
that can never redeem. Inflating the share price by donating assets to a
near-empty fund then costs the attacker a share of the donation.

Settles on POST_BUY_SHARES as MINT, once. Not anti-dilution converted: the
floor is an absolute share count.
"""

from typing import Optional

from src.core.domain.fee_records import MinSharesSupplyFeeRecord
from src.core.domain.fund import FundState
from src.core.domain.settlement import (
    FeeHook,
    HookPayload,
    SettlementInstruction,
    SettlementType,
)
from src.fees.base import Fee, register_fee_type

MIN_SHARES_SUPPLY_FEE = "MIN_SHARES_SUPPLY"


@register_fee_type
class MinSharesSupplyFee(Fee):
    fee_type = MIN_SHARES_SUPPLY_FEE
    schema_name = "min_shares_supply_fee"
    record_model = MinSharesSupplyFeeRecord

    settles_on = frozenset({FeeHook.POST_BUY_SHARES})
    updates_on = frozenset({FeeHook.POST_BUY_SHARES})

    def activate(self, fund: FundState) -> None:
        # A fund that already has holders is past its first purchase
        if fund.shares_supply > 0:
            record = self.get_record(fund.fund_id)
            self._save(fund.fund_id, record, settled=True)

    def settle(
        self, hook: FeeHook, fund: FundState, payload: HookPayload
    ) -> Optional[SettlementInstruction]:
        record: MinSharesSupplyFeeRecord = self.get_record(fund.fund_id)
        if record.settled:
            return None
        return SettlementInstruction(
            SettlementType.MINT, record.min_shares, payee=record.locked_account
        )

    def update(self, hook: FeeHook, fund: FundState, payload: HookPayload) -> None:
        record: MinSharesSupplyFeeRecord = self.get_record(fund.fund_id)
        if not record.settled:
            self._save(fund.fund_id, record, settled=True)
