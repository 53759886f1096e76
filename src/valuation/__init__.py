"""Valuation — price oracle adapters, asset classification and canonical value.

- PriceOracleAdapter: one rate source for one asset, with staleness
- AssetClassifier: Primitive / Derivative / Unsupported
- Value Interpreter: calc_canonical_value / calc_canonical_values, fail-closed
"""

from .classifier import AssetClassifier
from .oracle import OracleReading, PriceOracleAdapter, RateSource, StaticRateSource
from .value_interpreter import (
    DEFAULT_MAX_RESOLUTION_DEPTH,
    DEFAULT_STALE_RATE_THRESHOLD_SEC,
    INVALID,
    ValuationContext,
    ValuationResult,
    ValueInterpreterConfig,
    calc_canonical_value,
    calc_canonical_values,
    calc_fund_gav,
)

__all__ = [
    "AssetClassifier",
    "OracleReading",
    "PriceOracleAdapter",
    "RateSource",
    "StaticRateSource",
    "DEFAULT_MAX_RESOLUTION_DEPTH",
    "DEFAULT_STALE_RATE_THRESHOLD_SEC",
    "INVALID",
    "ValuationContext",
    "ValuationResult",
    "ValueInterpreterConfig",
    "calc_canonical_value",
    "calc_canonical_values",
    "calc_fund_gav",
]
