"""
Management Fee — time-weighted accrual on share supply

Settles on CONTINUOUS as MINT_SHARES_OUTSTANDING: shares are minted into
escrow and released to the fees recipient by a later payout, so they do not
move the share price while the fee accrues.

FORMULAS:
    seconds      = now - last_settled
    rawSharesDue = floor(supply * rateBps * seconds / (SECONDS_IN_YEAR * 10000))
    sharesDue    = convert_raw_shares_due(rawSharesDue, supply)

CRITICAL INVARIANTS:
1. Zero elapsed seconds accrue nothing, whatever the rate
2. last_settled advances to now on every Continuous update, paid or not
3. last_settled never moves backwards (now < last_settled is a violation)
"""

import logging
from typing import Optional

from src.core.domain.fee_records import ManagementFeeRecord
from src.core.domain.fund import FundState
from src.core.domain.settlement import (
    FeeHook,
    HookPayload,
    SettlementInstruction,
    SettlementType,
)
from src.core.math.share_math import (
    convert_raw_shares_due,
    seconds_since,
    time_weighted_raw_shares_due,
)
from src.fees.base import Fee, register_fee_type

log = logging.getLogger(__name__)

MANAGEMENT_FEE = "MANAGEMENT"


@register_fee_type
class ManagementFee(Fee):
    """Annual-rate fee on share supply, escrowed until payout."""

    fee_type = MANAGEMENT_FEE
    schema_name = "management_fee"
    record_model = ManagementFeeRecord

    settles_on = frozenset({FeeHook.CONTINUOUS})
    updates_on = frozenset({FeeHook.CONTINUOUS})

    def activate(self, fund: FundState) -> None:
        record = self.get_record(fund.fund_id)
        self._save(fund.fund_id, record, last_settled=fund.now)

    def settle(
        self, hook: FeeHook, fund: FundState, payload: HookPayload
    ) -> Optional[SettlementInstruction]:
        record: ManagementFeeRecord = self.get_record(fund.fund_id)
        seconds = seconds_since(fund.now, record.last_settled, "last_settled")

        raw_shares_due = time_weighted_raw_shares_due(fund.shares_supply, record.rate_bps, seconds)
        shares_due = convert_raw_shares_due(raw_shares_due, fund.shares_supply)
        if shares_due == 0:
            return None

        log.debug(
            "fund %s: management fee %d shares over %ds", fund.fund_id, shares_due, seconds
        )
        return SettlementInstruction(SettlementType.MINT_SHARES_OUTSTANDING, shares_due)

    def update(self, hook: FeeHook, fund: FundState, payload: HookPayload) -> None:
        record = self.get_record(fund.fund_id)
        self._save(fund.fund_id, record, last_settled=fund.now)

    def payout(self, fund: FundState) -> bool:
        return True
