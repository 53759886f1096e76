"""
Asset, Rate, Derivative Decomposition — valuation domain models

Immutable Pydantic models describing what can be valued and how:
- Asset: opaque identifier + fixed decimal precision
- Rate: (quote amount, base amount, timestamp) for one asset pair
- DerivativeDecomposition: derivative -> (underlying, amount per unit) pairs
"""

from enum import Enum

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class AssetKind(str, Enum):
    """Classification of an asset for valuation purposes."""

    PRIMITIVE = "PRIMITIVE"
    DERIVATIVE = "DERIVATIVE"
    UNSUPPORTED = "UNSUPPORTED"


# =============================================================================
# ASSET
# =============================================================================


class Asset(BaseModel):
    """
    Asset identifier with its decimal precision.

    Two assets are the same asset when their identifiers match; precision is
    fixed at registration (enforced by the AssetClassifier).
    """

    asset_id: str = Field(..., min_length=1, description="Opaque asset identifier")
    decimals: int = Field(..., ge=0, le=36, description="Decimal precision")

    model_config = {"frozen": True}

    @property
    def unit(self) -> int:
        """One whole unit of the asset in its smallest denomination."""
        return 10**self.decimals

    def same_as(self, other: "Asset") -> bool:
        return self.asset_id == other.asset_id


# =============================================================================
# RATE
# =============================================================================


class Rate(BaseModel):
    """
    Exchange rate for one asset pair.

    `base_amount` units of the base asset are worth `quote_amount` units of
    the quote asset, as of `updated_at` (ledger seconds).
    """

    quote_amount: int = Field(..., ge=0, description="Quote asset amount")
    base_amount: int = Field(..., ge=0, description="Base asset amount")
    updated_at: int = Field(..., ge=0, description="Timestamp of the observation")

    model_config = {"frozen": True}

    def is_stale(self, now: int, stale_threshold_sec: int) -> bool:
        """
        Whether the rate must not be used at `now`.

        Rates from the future are treated as stale too.
        """
        if self.updated_at > now:
            return True
        return now - self.updated_at > stale_threshold_sec

    def is_usable(self, now: int, stale_threshold_sec: int) -> bool:
        return self.base_amount > 0 and not self.is_stale(now, stale_threshold_sec)


# =============================================================================
# DERIVATIVE DECOMPOSITION
# =============================================================================


class DecompositionComponent(BaseModel):
    """Underlying asset amount per one whole unit of the derivative."""

    underlying: Asset
    amount_per_unit: int = Field(..., ge=0, description="Underlying amount per derivative unit")

    model_config = {"frozen": True}


class DerivativeDecomposition(BaseModel):
    """
    Decomposition of one derivative asset into underlying assets.

    Underlyings may themselves be derivatives; the Value Interpreter bounds
    the resolution depth. Direct self-reference is rejected here.
    """

    derivative: Asset
    components: tuple[DecompositionComponent, ...] = Field(..., min_length=1)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_components(self) -> "DerivativeDecomposition":
        seen: set[str] = set()
        for component in self.components:
            underlying_id = component.underlying.asset_id
            if underlying_id == self.derivative.asset_id:
                raise ValueError(
                    f"derivative {underlying_id} cannot decompose into itself"
                )
            if underlying_id in seen:
                raise ValueError(f"duplicate underlying {underlying_id}")
            seen.add(underlying_id)
        return self

    def underlying_amounts(self, amount: int) -> list[tuple[Asset, int]]:
        """
        Underlying amounts for `amount` of the derivative (floor per component).
        """
        unit = self.derivative.unit
        return [
            (component.underlying, amount * component.amount_per_unit // unit)
            for component in self.components
        ]
