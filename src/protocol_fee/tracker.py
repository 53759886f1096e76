"""
Protocol Fee Tracker — time-weighted protocol fee per fund

Independent of the Fee Manager: its own state, its own re-entrancy guard,
typically invoked once per continuous tick.

FORMULAS:
    seconds      = now - last_paid
    rawSharesDue = floor(supply * feeBps * seconds / (SECONDS_IN_YEAR * 10000))
    sharesDue    = convert_raw_shares_due(rawSharesDue, supply)

CRITICAL INVARIANTS:
1. sharesDue == 0 when supply == 0 or seconds == 0, whatever the rate
2. pay_fee advances last_paid to now even when nothing was due
3. A fund's rate never exceeds max_fee_bps
4. State lives under ("protocol_fee", fund_id)
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Set

from src.core.domain.fee_records import ProtocolFeeState
from src.core.domain.fund import FundContext
from src.core.errors import ConfigurationError, InvariantViolationError, ReentrantDispatchError
from src.core.math.fixed_point import BPS_DENOMINATOR, validate_bps, validate_uint
from src.core.math.share_math import (
    convert_raw_shares_due,
    seconds_since,
    time_weighted_raw_shares_due,
)
from src.storage.state_store import StateKey, StateStore
from src.vault.ledger import ShareCommand

log = logging.getLogger(__name__)

PROTOCOL_FEE_NAMESPACE = "protocol_fee"


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class ProtocolFeeConfig:
    """Protocol fee parameters."""

    default_fee_bps: int = 25
    max_fee_bps: int = 1_000
    fee_recipient: str = "protocol:fee-reserve"

    def __post_init__(self) -> None:
        if not 0 <= self.max_fee_bps < BPS_DENOMINATOR:
            raise ValueError(f"max_fee_bps must be in [0, {BPS_DENOMINATOR}), got {self.max_fee_bps}")
        if not 0 <= self.default_fee_bps <= self.max_fee_bps:
            raise ValueError(
                f"default_fee_bps must be in [0, {self.max_fee_bps}], got {self.default_fee_bps}"
            )
        if not self.fee_recipient:
            raise ValueError("fee_recipient must not be empty")


# =============================================================================
# TRACKER
# =============================================================================


class ProtocolFeeTracker:
    """Protocol fee rate and last payment per fund."""

    def __init__(self, store: StateStore, config: ProtocolFeeConfig = ProtocolFeeConfig()):
        self._store = store
        self.config = config
        self._fee_bps_default = config.default_fee_bps
        self._paying: Set[str] = set()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def get_fee_bps_default(self) -> int:
        return self._fee_bps_default

    def set_fee_bps_default(self, fee_bps: int) -> None:
        """Rate given to funds initialized from now on."""
        self._fee_bps_default = self._check_bps(fee_bps)
        log.info("protocol fee default set to %d bps", fee_bps)

    def initialize_for_fund(self, fund_id: str, now: int) -> ProtocolFeeState:
        """
        Start tracking a fund at the default rate, last paid at `now`.

        Raises:
            ConfigurationError: If the fund is already tracked
        """
        if self._store.contains(self._key(fund_id)):
            raise ConfigurationError(
                "protocol fee already initialized", details={"fund_id": fund_id}
            )
        state = ProtocolFeeState(fee_bps=self._fee_bps_default, last_paid=validate_uint(now, "now"))
        self._store.put(self._key(fund_id), state)
        log.info("fund %s: protocol fee initialized at %d bps", fund_id, state.fee_bps)
        return state

    def set_protocol_fee_bps_for_fund(self, fund_id: str, fee_bps: int) -> None:
        state = self._get_state(fund_id)
        self._store.put(
            self._key(fund_id), state.model_copy(update={"fee_bps": self._check_bps(fee_bps)})
        )
        log.info("fund %s: protocol fee set to %d bps", fund_id, fee_bps)

    def remove_fund(self, fund_id: str) -> None:
        self._store.delete(self._key(fund_id))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_fee_bps_for_fund(self, fund_id: str) -> int:
        return self._get_state(fund_id).fee_bps

    def get_last_paid_for_fund(self, fund_id: str) -> int:
        return self._get_state(fund_id).last_paid

    def calc_shares_due(self, fund_id: str, shares_supply: int, now: int) -> int:
        """
        Protocol fee shares owed by a fund since its last payment.

        Args:
            fund_id: Tracked fund
            shares_supply: Current total share supply
            now: Ledger timestamp

        Returns:
            Shares to mint to the protocol fee recipient

        Raises:
            ConfigurationError: If the fund is not tracked
            InvariantViolationError: If now is before the last payment

        Examples:
            50 bps on 2,000,000 shares for one year: raw 10,000, minted 10,050
        """
        state = self._get_state(fund_id)
        seconds = seconds_since(now, state.last_paid, "last_paid")
        raw_shares_due = time_weighted_raw_shares_due(shares_supply, state.fee_bps, seconds)
        return convert_raw_shares_due(raw_shares_due, shares_supply)

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    def pay_fee(self, fund: FundContext) -> int:
        """
        Mint the shares due to the protocol fee recipient and mark the fund paid.

        Returns:
            Shares minted (possibly 0)

        Raises:
            ReentrantDispatchError: If a payment for the fund is in progress
        """
        with self._payment_guard(fund.fund_id), self._store.transaction():
            state = self._get_state(fund.fund_id)
            shares_due = self.calc_shares_due(fund.fund_id, fund.vault.total_supply(), fund.now)
            if shares_due > 0:
                fund.vault.execute_batch([ShareCommand.mint(self.config.fee_recipient, shares_due)])
            self._store.put(
                self._key(fund.fund_id), state.model_copy(update={"last_paid": fund.now})
            )

        if shares_due > 0:
            log.info("fund %s: protocol fee %d shares", fund.fund_id, shares_due)
        return shares_due

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _key(fund_id: str) -> StateKey:
        return (PROTOCOL_FEE_NAMESPACE, fund_id)

    def _get_state(self, fund_id: str) -> ProtocolFeeState:
        state = self._store.get(self._key(fund_id), ProtocolFeeState)
        if state is None:
            raise ConfigurationError("protocol fee not initialized", details={"fund_id": fund_id})
        return state

    def _check_bps(self, fee_bps: int) -> int:
        try:
            return validate_bps(fee_bps, "fee_bps", max_bps=self.config.max_fee_bps)
        except InvariantViolationError as e:
            raise ConfigurationError(e.message, details=e.details) from e

    @contextmanager
    def _payment_guard(self, fund_id: str) -> Iterator[None]:
        if fund_id in self._paying:
            raise ReentrantDispatchError(
                "nested protocol fee payment rejected", details={"fund_id": fund_id}
            )
        self._paying.add(fund_id)
        try:
            yield
        finally:
            self._paying.discard(fund_id)
