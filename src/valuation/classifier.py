"""
Asset Classifier — Primitive / Derivative / Unsupported

Maps an asset to its valuation kind and, depending on the kind, to its
price oracle adapter (primitive) or its decomposition rule (derivative).

Registration rules:
- An asset's precision is fixed at its first registration, including when it
  first appears as a quote asset or as an underlying
- An asset is either primitive or derivative, never both
- Duplicate registration is a configuration error (derivatives may be
  replaced explicitly)
"""

import logging
from typing import Dict, Iterable, List, Optional

from src.core.domain.asset import Asset, AssetKind, DerivativeDecomposition
from src.core.errors import ConfigurationError
from src.valuation.oracle import PriceOracleAdapter

log = logging.getLogger(__name__)


class AssetClassifier:
    """Registry of valuable assets."""

    def __init__(self) -> None:
        self._primitives: Dict[str, PriceOracleAdapter] = {}
        self._derivatives: Dict[str, DerivativeDecomposition] = {}
        self._decimals: Dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_primitive(self, adapter: PriceOracleAdapter) -> None:
        """
        Register a primitive asset with its price oracle adapter.

        Raises:
            ConfigurationError: If the asset is already registered or its
                precision conflicts with a previous registration
        """
        asset = adapter.asset
        if asset.asset_id in self._primitives or asset.asset_id in self._derivatives:
            raise ConfigurationError(
                "asset already registered", details={"asset": asset.asset_id}
            )
        self._check_precision([asset, adapter.quote_asset])
        self._primitives[asset.asset_id] = adapter
        log.info(
            "registered primitive %s quoted in %s",
            asset.asset_id,
            adapter.quote_asset.asset_id,
        )

    def register_primitives(self, adapters: Iterable[PriceOracleAdapter]) -> None:
        for adapter in adapters:
            self.register_primitive(adapter)

    def register_derivative(self, decomposition: DerivativeDecomposition, replace: bool = False) -> None:
        """
        Register (or replace) the decomposition rule of a derivative asset.

        Raises:
            ConfigurationError: If the asset is a primitive, is already a
                derivative and replace is False, or has conflicting precision
        """
        asset = decomposition.derivative
        if asset.asset_id in self._primitives:
            raise ConfigurationError(
                "asset already registered as primitive", details={"asset": asset.asset_id}
            )
        if asset.asset_id in self._derivatives and not replace:
            raise ConfigurationError(
                "derivative already registered", details={"asset": asset.asset_id}
            )
        self._check_precision([asset] + [c.underlying for c in decomposition.components])
        self._derivatives[asset.asset_id] = decomposition
        log.info(
            "registered derivative %s over %d underlying(s)",
            asset.asset_id,
            len(decomposition.components),
        )

    def deregister(self, asset: Asset) -> None:
        """
        Remove an asset; it becomes Unsupported. Its precision stays fixed.

        Raises:
            ConfigurationError: If the asset is not registered
        """
        if self._primitives.pop(asset.asset_id, None) is not None:
            return
        if self._derivatives.pop(asset.asset_id, None) is not None:
            return
        raise ConfigurationError("asset not registered", details={"asset": asset.asset_id})

    def _check_precision(self, assets: List[Asset]) -> None:
        for asset in assets:
            known = self._decimals.get(asset.asset_id)
            if known is not None and known != asset.decimals:
                raise ConfigurationError(
                    "asset precision cannot change",
                    details={
                        "asset": asset.asset_id,
                        "registered_decimals": known,
                        "decimals": asset.decimals,
                    },
                )
        for asset in assets:
            self._decimals.setdefault(asset.asset_id, asset.decimals)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def classify(self, asset: Asset) -> AssetKind:
        if not self._matches_precision(asset):
            return AssetKind.UNSUPPORTED
        if asset.asset_id in self._primitives:
            return AssetKind.PRIMITIVE
        if asset.asset_id in self._derivatives:
            return AssetKind.DERIVATIVE
        return AssetKind.UNSUPPORTED

    def is_supported(self, asset: Asset) -> bool:
        return self.classify(asset) != AssetKind.UNSUPPORTED

    def is_known(self, asset: Asset) -> bool:
        """Registered, or referenced as a quote asset or underlying, at its fixed precision."""
        known = self._decimals.get(asset.asset_id)
        return known is not None and known == asset.decimals

    def get_oracle(self, asset: Asset) -> Optional[PriceOracleAdapter]:
        return self._primitives.get(asset.asset_id)

    def get_decomposition(self, asset: Asset) -> Optional[DerivativeDecomposition]:
        return self._derivatives.get(asset.asset_id)

    def _matches_precision(self, asset: Asset) -> bool:
        known = self._decimals.get(asset.asset_id)
        return known is None or known == asset.decimals
