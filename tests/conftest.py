"""
Shared fixtures: assets, rate sources, classifier, vault, store, fund context.

Market used throughout:
- USDC (6 decimals)  denomination asset, 1.00 USD
- WETH (18 decimals) 2000.00 USD
- DAI  (18 decimals) 1.00 USDC (direct pair)
- LP   (18 decimals) derivative: 1 WETH + 2000 USDC per unit
- USD  (8 decimals)  quote asset only
"""

from dataclasses import replace

import pytest

from src.core.domain import Asset, DecompositionComponent, DerivativeDecomposition, FundContext
from src.fees import (
    ENTRANCE_RATE_FEE,
    EXIT_RATE_FEE,
    MANAGEMENT_FEE,
    MIN_SHARES_SUPPLY_FEE,
    PERFORMANCE_FEE,
    FeeManager,
)
from src.protocol_fee import ProtocolFeeTracker
from src.storage import StateStore
from src.valuation import AssetClassifier, PriceOracleAdapter, StaticRateSource, ValuationContext
from src.vault import InMemoryVault

NOW = 1_700_000_000

USD = Asset(asset_id="USD", decimals=8)
USDC = Asset(asset_id="USDC", decimals=6)
WETH = Asset(asset_id="WETH", decimals=18)
DAI = Asset(asset_id="DAI", decimals=18)
LP = Asset(asset_id="LP", decimals=18)

ALL_FEE_TYPES = (
    ENTRANCE_RATE_FEE,
    EXIT_RATE_FEE,
    MANAGEMENT_FEE,
    PERFORMANCE_FEE,
    MIN_SHARES_SUPPLY_FEE,
)


# =============================================================================
# MARKET
# =============================================================================


@pytest.fixture
def sources():
    """Settable rate sources, all fresh at NOW."""
    return {
        "WETH": StaticRateSource(answer=2000 * 10**8, updated_at=NOW),
        "USDC": StaticRateSource(answer=10**8, updated_at=NOW),
        "DAI": StaticRateSource(answer=10**18, updated_at=NOW),
    }


@pytest.fixture
def classifier(sources):
    classifier = AssetClassifier()
    classifier.register_primitives(
        [
            PriceOracleAdapter(WETH, USD, sources["WETH"], answer_decimals=8),
            PriceOracleAdapter(USDC, USD, sources["USDC"], answer_decimals=8),
            PriceOracleAdapter(DAI, USDC, sources["DAI"], answer_decimals=18),
        ]
    )
    classifier.register_derivative(
        DerivativeDecomposition(
            derivative=LP,
            components=(
                DecompositionComponent(underlying=WETH, amount_per_unit=10**18),
                DecompositionComponent(underlying=USDC, amount_per_unit=2000 * 10**6),
            ),
        )
    )
    return classifier


@pytest.fixture
def valuation(classifier):
    return ValuationContext(classifier=classifier, now=NOW)


def refresh(sources, now):
    """Mark every source as updated at `now`."""
    for source in sources.values():
        answer, _ = source.latest_answer()
        source.set_answer(answer, now)


# =============================================================================
# FUND
# =============================================================================


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def vault():
    return InMemoryVault("vault-1")


@pytest.fixture
def fund(vault):
    return FundContext(
        fund_id="fund-1",
        denomination_asset=USDC,
        vault=vault,
        fees_recipient="manager",
        now=NOW,
    )


def at(fund, now):
    """Same fund, later ledger timestamp."""
    return replace(fund, now=now)


@pytest.fixture
def fee_manager(store, valuation):
    manager = FeeManager(store, valuation)
    for fee_type in ALL_FEE_TYPES:
        manager.register_fee_type(fee_type)
    return manager


@pytest.fixture
def protocol_fee_tracker(store):
    return ProtocolFeeTracker(store)
