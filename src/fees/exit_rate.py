"""
Exit Rate Fee — a percentage of shares redeemed

Settles on PRE_REDEEM_SHARES, against sharesToRedeem. The rate depends on
the redemption kind:
- in kind            -> in_kind_rate_bps
- specific assets    -> specific_assets_rate_bps

Settlement mode mirrors the entrance fee (burn or direct, payer = redeemer).
"""

from typing import Optional

from src.core.domain.fee_records import ExitRateFeeRecord
from src.core.domain.fund import FundState
from src.core.domain.settlement import (
    FeeHook,
    HookPayload,
    RedeemSharesPayload,
    SettlementInstruction,
)
from src.core.math.fixed_point import bps_portion
from src.fees.base import Fee, register_fee_type
from src.fees.entrance_rate import rate_fee_instruction

EXIT_RATE_FEE = "EXIT_RATE"


@register_fee_type
class ExitRateFee(Fee):
    """Fee on every redemption, in shares redeemed."""

    fee_type = EXIT_RATE_FEE
    schema_name = "exit_rate_fee"
    record_model = ExitRateFeeRecord

    settles_on = frozenset({FeeHook.PRE_REDEEM_SHARES})

    def settle(
        self, hook: FeeHook, fund: FundState, payload: HookPayload
    ) -> Optional[SettlementInstruction]:
        payload = self._expect_payload(hook, payload, RedeemSharesPayload)
        record: ExitRateFeeRecord = self.get_record(fund.fund_id)
        if payload.for_specific_assets:
            rate_bps = record.specific_assets_rate_bps
        else:
            rate_bps = record.in_kind_rate_bps
        shares_due = bps_portion(payload.shares_to_redeem, rate_bps)
        return rate_fee_instruction(
            record.settlement, shares_due, payload.redeemer, fund.fees_recipient
        )
