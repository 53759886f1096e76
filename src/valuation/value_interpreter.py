"""
Value Interpreter — canonical value of any registered asset

Converts an amount of an asset into an amount of a fund's denomination asset.

Resolution rules:
- asset == denomination            -> (amount, True), no rounding
- PRIMITIVE                        -> one floor over the rate product
    1. direct pair:     asset quoted in the denomination asset
    2. shared quote:    asset and denomination quoted in the same asset
    3. inverse pair:    denomination quoted in the asset
    4. cross quote:     the two quote assets priced one in the other
- DERIVATIVE                       -> sum of underlying values, recursively
- UNSUPPORTED                      -> (0, False)

CRITICAL INVARIANTS:
1. Fail-closed: any invalid component invalidates the whole result, the
   value is then always 0 (never a partial sum)
2. Stale and missing rates are indistinguishable to callers
3. Derivative resolution depth is bounded; exhausting it is invalid
4. Integer arithmetic only; the only time-dependent branch is staleness
5. No module-level state: everything comes from the ValuationContext

FORMULAS:
    direct:       value = floor(amount * q_a / b_a)
    shared quote: value = floor(amount * q_a * b_d / (b_a * q_d))
    inverse:      value = floor(amount * b_d / q_d)
    cross quote:  value = floor(amount * q_a * q_x * b_d / (b_a * b_x * q_d))
                  x: asset quote priced in denomination quote; with the
                  oracle the other way round, q_x and b_x swap
"""

import logging
from dataclasses import dataclass, replace
from typing import Final, NamedTuple, Optional, Sequence, Tuple

from src.core.domain.asset import Asset, AssetKind, Rate
from src.core.math.fixed_point import validate_uint
from src.valuation.classifier import AssetClassifier

log = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# 1 day + 1 hour: tolerance for feeds with a daily heartbeat
DEFAULT_STALE_RATE_THRESHOLD_SEC: Final[int] = 90_000

# Maximum derivative nesting resolved before failing closed
DEFAULT_MAX_RESOLUTION_DEPTH: Final[int] = 8


# =============================================================================
# CONFIG / CONTEXT / RESULT
# =============================================================================


@dataclass(frozen=True)
class ValueInterpreterConfig:
    """Valuation parameters."""

    stale_rate_threshold_sec: int = DEFAULT_STALE_RATE_THRESHOLD_SEC
    max_resolution_depth: int = DEFAULT_MAX_RESOLUTION_DEPTH

    def __post_init__(self) -> None:
        if self.stale_rate_threshold_sec < 0:
            raise ValueError(
                f"stale_rate_threshold_sec must be non-negative, got {self.stale_rate_threshold_sec}"
            )
        if self.max_resolution_depth < 1:
            raise ValueError(
                f"max_resolution_depth must be >= 1, got {self.max_resolution_depth}"
            )


@dataclass(frozen=True)
class ValuationContext:
    """Read-only asset/rate/decomposition state plus the current timestamp."""

    classifier: AssetClassifier
    now: int
    config: ValueInterpreterConfig = ValueInterpreterConfig()

    def at(self, now: int) -> "ValuationContext":
        return replace(self, now=now)


class ValuationResult(NamedTuple):
    """Value in denomination units and its validity flag."""

    value: int
    is_valid: bool


INVALID: Final[ValuationResult] = ValuationResult(0, False)


# =============================================================================
# PUBLIC API
# =============================================================================


def calc_canonical_value(
    context: ValuationContext,
    asset: Asset,
    amount: int,
    denomination_asset: Asset,
) -> ValuationResult:
    """
    Value of `amount` of `asset` in `denomination_asset`.

    Args:
        context: Classifier, timestamp and valuation config
        asset: Asset to value
        amount: Amount in the asset's smallest unit
        denomination_asset: Asset to express the value in

    Returns:
        ValuationResult(value, is_valid); (0, False) when the value cannot be
        trusted

    Raises:
        InvariantViolationError: If amount is not a uint
    """
    validate_uint(amount, "amount")
    return _calc(context, asset, amount, denomination_asset, context.config.max_resolution_depth)


def calc_canonical_values(
    context: ValuationContext,
    assets: Sequence[Asset],
    amounts: Sequence[int],
    denomination_asset: Asset,
) -> ValuationResult:
    """
    Summed value of a batch of assets, fail-closed.

    Raises:
        ValueError: If assets and amounts differ in length
    """
    if len(assets) != len(amounts):
        raise ValueError(
            f"assets and amounts must have equal length, got {len(assets)} and {len(amounts)}"
        )

    total = 0
    for asset, amount in zip(assets, amounts):
        value, is_valid = calc_canonical_value(context, asset, amount, denomination_asset)
        if not is_valid:
            return INVALID
        total += value
    return ValuationResult(total, True)


def calc_fund_gav(context: ValuationContext, vault, denomination_asset: Asset) -> ValuationResult:
    """Gross asset value of every asset tracked by a vault."""
    holdings = vault.tracked_assets()
    return calc_canonical_values(
        context,
        [asset for asset, _ in holdings],
        [balance for _, balance in holdings],
        denomination_asset,
    )


# =============================================================================
# RESOLUTION
# =============================================================================


def _calc(
    context: ValuationContext,
    asset: Asset,
    amount: int,
    denomination_asset: Asset,
    depth_remaining: int,
) -> ValuationResult:
    if asset.asset_id == denomination_asset.asset_id:
        return ValuationResult(amount, True)

    kind = context.classifier.classify(asset)

    if kind == AssetKind.PRIMITIVE:
        return _calc_primitive(context, asset, amount, denomination_asset)

    if kind == AssetKind.DERIVATIVE:
        return _calc_derivative(context, asset, amount, denomination_asset, depth_remaining)

    log.debug("unsupported asset %s", asset.asset_id)
    return INVALID


def _calc_derivative(
    context: ValuationContext,
    asset: Asset,
    amount: int,
    denomination_asset: Asset,
    depth_remaining: int,
) -> ValuationResult:
    if depth_remaining <= 0:
        log.debug("resolution depth exhausted at derivative %s", asset.asset_id)
        return INVALID

    decomposition = context.classifier.get_decomposition(asset)
    if decomposition is None:
        return INVALID

    total = 0
    for underlying, underlying_amount in decomposition.underlying_amounts(amount):
        value, is_valid = _calc(
            context, underlying, underlying_amount, denomination_asset, depth_remaining - 1
        )
        if not is_valid:
            log.debug("derivative %s: underlying %s invalid", asset.asset_id, underlying.asset_id)
            return INVALID
        total += value
    return ValuationResult(total, True)


def _calc_primitive(
    context: ValuationContext,
    asset: Asset,
    amount: int,
    denomination_asset: Asset,
) -> ValuationResult:
    adapter = context.classifier.get_oracle(asset)
    if adapter is None:
        return INVALID
    quote_asset = adapter.quote_asset

    # 1. Direct pair
    if quote_asset.asset_id == denomination_asset.asset_id:
        rate = _usable_rate(context, asset, quote_asset)
        if rate is None:
            return INVALID
        return ValuationResult(amount * rate.quote_amount // rate.base_amount, True)

    denomination_adapter = context.classifier.get_oracle(denomination_asset)
    if denomination_adapter is None or context.classifier.classify(denomination_asset) != AssetKind.PRIMITIVE:
        log.debug(
            "no pair between %s and denomination %s", asset.asset_id, denomination_asset.asset_id
        )
        return INVALID
    denomination_quote = denomination_adapter.quote_asset

    # 2. Shared intermediate quote asset
    if denomination_quote.asset_id == quote_asset.asset_id:
        asset_rate = _usable_rate(context, asset, quote_asset)
        denomination_rate = _usable_rate(context, denomination_asset, quote_asset)
        if asset_rate is None or denomination_rate is None or denomination_rate.quote_amount == 0:
            return INVALID
        value = (amount * asset_rate.quote_amount * denomination_rate.base_amount) // (
            asset_rate.base_amount * denomination_rate.quote_amount
        )
        return ValuationResult(value, True)

    # 3. Inverse pair
    if denomination_quote.asset_id == asset.asset_id:
        denomination_rate = _usable_rate(context, denomination_asset, asset)
        if denomination_rate is None or denomination_rate.quote_amount == 0:
            return INVALID
        return ValuationResult(
            amount * denomination_rate.base_amount // denomination_rate.quote_amount, True
        )

    # 4. Cross quote: the two quote assets priced one in the other
    bridge = _conversion(context, quote_asset, denomination_quote)
    if bridge is None:
        log.debug(
            "no usable quote path between %s (%s) and %s (%s)",
            asset.asset_id,
            quote_asset.asset_id,
            denomination_asset.asset_id,
            denomination_quote.asset_id,
        )
        return INVALID

    asset_rate = _usable_rate(context, asset, quote_asset)
    denomination_rate = _usable_rate(context, denomination_asset, denomination_quote)
    if asset_rate is None or denomination_rate is None or denomination_rate.quote_amount == 0:
        return INVALID
    bridge_numerator, bridge_denominator = bridge
    value = (
        amount * asset_rate.quote_amount * bridge_numerator * denomination_rate.base_amount
    ) // (asset_rate.base_amount * bridge_denominator * denomination_rate.quote_amount)
    return ValuationResult(value, True)


def _conversion(
    context: ValuationContext, from_asset: Asset, to_asset: Asset
) -> Optional[Tuple[int, int]]:
    """
    (numerator, denominator) turning `from_asset` units into `to_asset` units,
    from whichever of the two is priced in the other; None without a usable rate.
    """
    adapter = context.classifier.get_oracle(from_asset)
    if adapter is not None and adapter.quote_asset.asset_id == to_asset.asset_id:
        rate = _usable_rate(context, from_asset, to_asset)
        if rate is None:
            return None
        return rate.quote_amount, rate.base_amount

    adapter = context.classifier.get_oracle(to_asset)
    if adapter is not None and adapter.quote_asset.asset_id == from_asset.asset_id:
        rate = _usable_rate(context, to_asset, from_asset)
        if rate is None or rate.quote_amount == 0:
            return None
        return rate.base_amount, rate.quote_amount

    return None


def _usable_rate(context: ValuationContext, asset: Asset, quote_asset: Asset) -> Optional[Rate]:
    adapter = context.classifier.get_oracle(asset)
    if adapter is None:
        return None
    rate = adapter.get_rate(asset, quote_asset)
    if rate is None:
        return None
    if not rate.is_usable(context.now, context.config.stale_rate_threshold_sec):
        log.debug(
            "stale rate for %s/%s: updated_at=%d now=%d",
            asset.asset_id,
            quote_asset.asset_id,
            rate.updated_at,
            context.now,
        )
        return None
    return rate
