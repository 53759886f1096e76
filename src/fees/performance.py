"""
Performance Fee — share of value-per-share growth above a high-water mark

Settles on CONTINUOUS against escrow. The fee tracks the value it is owed
since the last crystallization (aggregate value due); every tick mints or
burns shares outstanding so that its escrow is worth that value. A fall in
share price burns escrowed shares back. Escrowed shares are paid out at most
once per completed crystallization period, counted from activation, and the
payout crystallizes the mark.

Prices exclude this fee's own escrow. Shares escrowed by other fees count as
supply, so they dilute the price like any other share.

FORMULAS:
    netSupply    = supply - ownSharesOutstanding
    price        = floor(gav * 10**18 / netSupply)
    gain         = max(hwm, price) - max(hwm, lastPrice)
    valueDue     = max(0, valueDue + sign(gain) * floor(floor(|gain| * netSupply / 10**18) * rateBps / 10000))
    targetShares = convert_raw_shares_due(floor(valueDue * netSupply / gav), netSupply)
    sharesDue    = targetShares - ownSharesOutstanding
                   > 0: MINT_SHARES_OUTSTANDING, < 0: BURN_SHARES_OUTSTANDING
    netPrice     = floor(gav * 10**18 / (netSupply + targetShares))

    on payout: hwm = max(hwm, lastNetPrice), lastPrice = lastNetPrice, valueDue = 0

CRITICAL INVARIANTS:
1. Only growth strictly above the mark accrues value
2. After each settlement the fee's escrow matches its aggregate value due
3. The mark only moves at payout, to the post-fee share price of the last
   settlement, and never decreases; except the reset to 0 when a
   redemption takes every non-escrowed share
4. A mark of 0 means unset: nothing accrues until it is seeded from the
   share price (activation with supply, next purchase, or next tick)
"""

import logging
from typing import NamedTuple, Optional

from src.core.domain.fee_records import PerformanceFeeRecord
from src.core.domain.fund import FundState
from src.core.domain.settlement import (
    FeeHook,
    HookPayload,
    RedeemSharesPayload,
    SettlementInstruction,
    SettlementType,
)
from src.core.errors import InvariantViolationError
from src.core.math.fixed_point import SHARE_UNIT, bps_portion, mul_div_floor
from src.core.math.share_math import convert_raw_shares_due
from src.fees.base import Fee, register_fee_type

log = logging.getLogger(__name__)

PERFORMANCE_FEE = "PERFORMANCE"


class Performance(NamedTuple):
    """Outcome of one settlement, before it is stored."""

    share_price: int
    net_share_price: int
    value_due: int
    target_shares: int
    shares_outstanding: int

    @property
    def shares_due(self) -> int:
        """Escrow change: positive mints, negative burns."""
        return self.target_shares - self.shares_outstanding


@register_fee_type
class PerformanceFee(Fee):
    """High-water-mark fee with escrow claw-back and periodic crystallization."""

    fee_type = PERFORMANCE_FEE
    schema_name = "performance_fee"
    record_model = PerformanceFeeRecord

    settles_on = frozenset({FeeHook.CONTINUOUS})
    updates_on = frozenset(
        {FeeHook.CONTINUOUS, FeeHook.PRE_REDEEM_SHARES, FeeHook.POST_BUY_SHARES}
    )
    gav_hooks = frozenset({FeeHook.CONTINUOUS, FeeHook.POST_BUY_SHARES})

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def activate(self, fund: FundState) -> None:
        record = self.get_record(fund.fund_id)
        price = self._share_price(fund)
        self._save(
            fund.fund_id,
            record,
            high_water_mark=price,
            last_share_price=price,
            last_net_share_price=price,
            aggregate_value_due=0,
            activated_at=fund.now,
            last_paid_at=fund.now,
        )

    def settle(
        self, hook: FeeHook, fund: FundState, payload: HookPayload
    ) -> Optional[SettlementInstruction]:
        record: PerformanceFeeRecord = self.get_record(fund.fund_id)
        performance = self.calc_performance(record, fund)
        if performance is None or performance.shares_due == 0:
            return None

        if performance.shares_due > 0:
            log.debug(
                "fund %s: performance fee escrows %d shares, value due %d",
                fund.fund_id,
                performance.shares_due,
                performance.value_due,
            )
            return SettlementInstruction(
                SettlementType.MINT_SHARES_OUTSTANDING, performance.shares_due
            )

        log.info(
            "fund %s: performance fee claws back %d escrowed shares, value due %d",
            fund.fund_id,
            -performance.shares_due,
            performance.value_due,
        )
        return SettlementInstruction(
            SettlementType.BURN_SHARES_OUTSTANDING, -performance.shares_due
        )

    def update(self, hook: FeeHook, fund: FundState, payload: HookPayload) -> None:
        record: PerformanceFeeRecord = self.get_record(fund.fund_id)

        if hook == FeeHook.CONTINUOUS:
            if record.high_water_mark == 0:
                self._seed(record, fund)
                return
            performance = self.calc_performance(record, fund)
            if performance is not None:
                self._save(
                    fund.fund_id,
                    record,
                    last_share_price=performance.share_price,
                    last_net_share_price=performance.net_share_price,
                    aggregate_value_due=performance.value_due,
                )

        elif hook == FeeHook.PRE_REDEEM_SHARES:
            payload = self._expect_payload(hook, payload, RedeemSharesPayload)
            if payload.shares_to_redeem >= fund.holder_shares_supply and record.high_water_mark:
                log.info("fund %s: full redemption, high-water mark reset", fund.fund_id)
                self._save(
                    fund.fund_id,
                    record,
                    high_water_mark=0,
                    last_share_price=0,
                    last_net_share_price=0,
                )

        elif hook == FeeHook.POST_BUY_SHARES:
            if record.high_water_mark == 0:
                self._seed(record, fund)

    def payout(self, fund: FundState) -> bool:
        """
        Allowed once per completed period.

        Crystallizes: the mark rises to the post-fee price of the last
        settlement and the value due restarts from 0.
        """
        record: PerformanceFeeRecord = self.get_record(fund.fund_id)
        if fund.now < record.last_paid_at:
            return False

        current_period = (fund.now - record.activated_at) // record.period_sec
        paid_period = (record.last_paid_at - record.activated_at) // record.period_sec
        if current_period <= paid_period:
            return False

        hwm = max(record.high_water_mark, record.last_net_share_price)
        self._save(
            fund.fund_id,
            record,
            last_paid_at=fund.now,
            high_water_mark=hwm,
            last_share_price=record.last_net_share_price,
            aggregate_value_due=0,
        )
        log.info(
            "fund %s: performance fee crystallized %d, high-water mark %d",
            fund.fund_id,
            record.aggregate_value_due,
            hwm,
        )
        return True

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def calc_performance(
        self, record: PerformanceFeeRecord, fund: FundState
    ) -> Optional[Performance]:
        """
        Value due and escrow target at the fund's current price.

        Returns None while the mark is unset or there is nothing to price.

        Raises:
            InvariantViolationError: If the value due reaches the fund value
        """
        if record.high_water_mark == 0:
            return None

        shares_outstanding = fund.outstanding_for(self.fee_type)
        net_supply = fund.shares_supply - shares_outstanding
        if net_supply <= 0 or not fund.gav:
            return None

        price = mul_div_floor(fund.gav, SHARE_UNIT, net_supply)
        current = max(record.high_water_mark, price)
        previous = max(record.high_water_mark, record.last_share_price)

        value_due = record.aggregate_value_due
        if current > previous:
            value_due += self._value_of(current - previous, net_supply, record.rate_bps)
        elif current < previous:
            value_due -= min(value_due, self._value_of(previous - current, net_supply, record.rate_bps))

        target_shares = 0
        if value_due > 0:
            if value_due >= fund.gav:
                raise InvariantViolationError(
                    "performance value due reaches fund value",
                    details={"fund_id": fund.fund_id, "value_due": value_due, "gav": fund.gav},
                )
            raw_shares_due = mul_div_floor(value_due, net_supply, fund.gav)
            target_shares = convert_raw_shares_due(raw_shares_due, net_supply)

        net_price = mul_div_floor(fund.gav, SHARE_UNIT, net_supply + target_shares)
        return Performance(price, net_price, value_due, target_shares, shares_outstanding)

    @staticmethod
    def _value_of(price_change: int, net_supply: int, rate_bps: int) -> int:
        return bps_portion(mul_div_floor(price_change, net_supply, SHARE_UNIT), rate_bps)

    def _share_price(self, fund: FundState) -> int:
        """Price per 10**18 shares outside this fee's escrow; 0 if unpriced."""
        net_supply = fund.shares_supply - fund.outstanding_for(self.fee_type)
        if net_supply <= 0 or not fund.gav:
            return 0
        return mul_div_floor(fund.gav, SHARE_UNIT, net_supply)

    def _seed(self, record: PerformanceFeeRecord, fund: FundState) -> None:
        price = self._share_price(fund)
        if price:
            self._save(
                fund.fund_id,
                record,
                high_water_mark=price,
                last_share_price=price,
                last_net_share_price=price,
            )
