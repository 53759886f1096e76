"""
Price Oracle Adapter — one external rate source for one asset

The adapter wraps an aggregator-style source that reports an integer answer
(scaled by `answer_decimals`) and the time it was last updated. It converts
the answer into an exact Rate between the asset and its quote asset:

    quote_amount = answer * quote_asset.unit
    base_amount  = 10**answer_decimals * asset.unit

No rounding happens here; the Value Interpreter floors once at the end.

Reads are pure queries: no retries, no caching. A missing or non-positive
answer is reported as an absent rate, never as an exception.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from src.core.domain.asset import Asset, Rate

log = logging.getLogger(__name__)


# =============================================================================
# RATE SOURCES
# =============================================================================


class RateSource(Protocol):
    """External rate source: latest (answer, updated_at) or None."""

    def latest_answer(self) -> Optional[Tuple[int, int]]: ...


class StaticRateSource:
    """
    Rate source holding a single settable answer.

    Used by hosts that push prices into the engine and by tests.
    """

    def __init__(self, answer: Optional[int] = None, updated_at: int = 0):
        self._answer = answer
        self._updated_at = updated_at

    def set_answer(self, answer: Optional[int], updated_at: int) -> None:
        self._answer = answer
        self._updated_at = updated_at

    def latest_answer(self) -> Optional[Tuple[int, int]]:
        if self._answer is None:
            return None
        return self._answer, self._updated_at


# =============================================================================
# ADAPTER
# =============================================================================


@dataclass(frozen=True)
class OracleReading:
    """Rate plus staleness indicator."""

    rate: Optional[Rate]
    is_stale: bool

    @property
    def is_valid(self) -> bool:
        return self.rate is not None and not self.is_stale and self.rate.base_amount > 0


class PriceOracleAdapter:
    """Adapter for one asset priced in one quote asset."""

    def __init__(
        self,
        asset: Asset,
        quote_asset: Asset,
        source: RateSource,
        answer_decimals: int = 18,
    ):
        """
        Args:
            asset: Asset being priced (base)
            quote_asset: Asset the answer is denominated in
            source: External rate source
            answer_decimals: Decimal scaling of the source answer
        """
        if asset.asset_id == quote_asset.asset_id:
            raise ValueError(f"asset {asset.asset_id} cannot be quoted in itself")
        if answer_decimals < 0:
            raise ValueError(f"answer_decimals must be non-negative, got {answer_decimals}")

        self.asset = asset
        self.quote_asset = quote_asset
        self.source = source
        self.answer_decimals = answer_decimals

    def get_rate(self, asset: Asset, quote_asset: Asset) -> Optional[Rate]:
        """
        Rate of `asset` in `quote_asset`, or None.

        None for any other pair, for a missing answer and for a non-positive
        answer.
        """
        if asset.asset_id != self.asset.asset_id or quote_asset.asset_id != self.quote_asset.asset_id:
            return None

        latest = self.source.latest_answer()
        if latest is None:
            log.debug("oracle %s/%s: no answer", self.asset.asset_id, self.quote_asset.asset_id)
            return None

        answer, updated_at = latest
        if answer <= 0 or updated_at < 0:
            log.debug(
                "oracle %s/%s: rejected answer %s at %s",
                self.asset.asset_id,
                self.quote_asset.asset_id,
                answer,
                updated_at,
            )
            return None

        return Rate(
            quote_amount=answer * self.quote_asset.unit,
            base_amount=10**self.answer_decimals * self.asset.unit,
            updated_at=updated_at,
        )

    def read(self, now: int, stale_threshold_sec: int) -> OracleReading:
        rate = self.get_rate(self.asset, self.quote_asset)
        if rate is None:
            return OracleReading(rate=None, is_stale=False)
        return OracleReading(rate=rate, is_stale=rate.is_stale(now, stale_threshold_sec))
