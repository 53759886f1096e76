"""
Tests for the Fee Manager

Checks:
1. Fee type registration and fund configuration (all or nothing)
2. Activation, attach, deactivation
3. Dispatch: atomicity, re-entrancy guard, payload validation, snapshot
   carried from fee to fee
4. Settlement mapping: escrow, payout, capped BurnSharesOutstanding
5. Supply conservation across a sequence of dispatches
"""

from dataclasses import replace
from typing import Optional

import pytest

from src.core.domain import (
    BuySharesPayload,
    FeeHook,
    FundState,
    ManagementFeeRecord,
    RedeemSharesPayload,
    SettlementInstruction,
    SettlementType,
)
from src.core.errors import (
    ConfigurationError,
    FeeSettlementError,
    InvariantViolationError,
    ReentrantDispatchError,
)
from src.core.math import SECONDS_IN_YEAR
from src.fees import (
    ENTRANCE_RATE_FEE,
    EXIT_RATE_FEE,
    MANAGEMENT_FEE,
    PERFORMANCE_FEE,
    Fee,
    FeeManager,
    FeeManagerConfig,
)
from src.vault import ESCROW_ACCOUNT, InMemoryVault, ShareCommandKind
from tests.conftest import NOW, USDC, at


# =============================================================================
# TEST FEES
# =============================================================================


class _ScriptedFee(Fee):
    """Continuous fee returning a scripted sequence of instructions."""

    fee_type = "SCRIPTED"
    schema_name = "management_fee"
    record_model = ManagementFeeRecord
    settles_on = frozenset({FeeHook.CONTINUOUS})
    updates_on = frozenset({FeeHook.CONTINUOUS})

    def __init__(self, store, script):
        super().__init__(store)
        self.script = list(script)
        self.seen = []
        self.updates = 0

    def settle(self, hook, fund: FundState, payload) -> Optional[SettlementInstruction]:
        self.seen.append(fund)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step()
        return step

    def update(self, hook, fund, payload) -> None:
        self.updates += 1


class _CountingVault(InMemoryVault):
    """Counts batches; optionally rejects any batch releasing escrow."""

    def __init__(self, escrow_locked: bool = False):
        super().__init__("vault-2")
        self.escrow_locked = escrow_locked
        self.batches = 0

    def execute_batch(self, commands) -> None:
        self.batches += 1
        if self.escrow_locked and any(
            c.kind == ShareCommandKind.TRANSFER and c.from_account == ESCROW_ACCOUNT for c in commands
        ):
            raise InvariantViolationError("escrow locked")
        super().execute_batch(commands)


@pytest.fixture
def managed(fee_manager, fund, vault):
    """Fund with management + entrance + exit fees, 1,000,000 shares, active."""
    fee_manager.set_config_for_fund(
        "fund-1",
        USDC,
        [
            (MANAGEMENT_FEE, {"rate_bps": 100}),
            (ENTRANCE_RATE_FEE, {"rate_bps": 100}),
            (EXIT_RATE_FEE, {"in_kind_rate_bps": 50, "specific_assets_rate_bps": 100}),
        ],
    )
    vault.mint_shares("alice", 1_000_000)
    fee_manager.activate_for_fund(fund)
    return fee_manager


# =============================================================================
# REGISTRATION
# =============================================================================


class TestRegistration:
    def test_duplicate_fee_type(self, fee_manager) -> None:
        with pytest.raises(ConfigurationError):
            fee_manager.register_fee_type(MANAGEMENT_FEE)

    def test_unknown_fee_type(self, fee_manager) -> None:
        with pytest.raises(ConfigurationError):
            fee_manager.register_fee_type("CARRY")

    def test_register_fees_all_or_nothing(self, store, valuation) -> None:
        manager = FeeManager(store, valuation)
        scripted = _ScriptedFee(store, [])
        with pytest.raises(ConfigurationError):
            manager.register_fees([scripted, _ScriptedFee(store, [])])
        assert not manager.registry.is_registered("SCRIPTED")

    def test_deregister_in_use(self, managed) -> None:
        with pytest.raises(ConfigurationError):
            managed.deregister_fees([MANAGEMENT_FEE])
        assert managed.registry.is_registered(MANAGEMENT_FEE)

    def test_deregister_unused(self, fee_manager) -> None:
        fee_manager.deregister_fees([PERFORMANCE_FEE])
        assert not fee_manager.registry.is_registered(PERFORMANCE_FEE)


class TestSetConfigForFund:
    def test_enabled_fees_in_order(self, managed) -> None:
        assert managed.get_enabled_fees("fund-1") == [MANAGEMENT_FEE, ENTRANCE_RATE_FEE, EXIT_RATE_FEE]

    def test_already_configured(self, managed) -> None:
        with pytest.raises(ConfigurationError):
            managed.set_config_for_fund("fund-1", USDC, [(PERFORMANCE_FEE, {"rate_bps": 1, "period_sec": 1})])

    def test_duplicate_fee_type(self, fee_manager) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            fee_manager.set_config_for_fund(
                "fund-1", USDC, [(MANAGEMENT_FEE, {"rate_bps": 1}), (MANAGEMENT_FEE, {"rate_bps": 2})]
            )
        assert exc_info.value.details["fee_types"] == [MANAGEMENT_FEE]

    def test_unregistered_fee_type(self, fee_manager) -> None:
        with pytest.raises(ConfigurationError):
            fee_manager.set_config_for_fund("fund-1", USDC, [("CARRY", {"rate_bps": 1})])

    def test_too_many_fees(self, store, valuation) -> None:
        manager = FeeManager(store, valuation, FeeManagerConfig(max_fees_per_fund=1))
        manager.register_fee_type(MANAGEMENT_FEE)
        manager.register_fee_type(ENTRANCE_RATE_FEE)
        with pytest.raises(ConfigurationError):
            manager.set_config_for_fund(
                "fund-1", USDC, [(MANAGEMENT_FEE, {"rate_bps": 1}), (ENTRANCE_RATE_FEE, {"rate_bps": 1})]
            )

    def test_unsupported_denomination(self, fee_manager) -> None:
        from src.core.domain import Asset

        with pytest.raises(ConfigurationError):
            fee_manager.set_config_for_fund(
                "fund-1", Asset(asset_id="DOGE", decimals=8), [(MANAGEMENT_FEE, {"rate_bps": 100})]
            )

    def test_invalid_settings_store_nothing(self, fee_manager, store) -> None:
        with pytest.raises(ConfigurationError):
            fee_manager.set_config_for_fund(
                "fund-1",
                USDC,
                [(MANAGEMENT_FEE, {"rate_bps": 100}), (ENTRANCE_RATE_FEE, {"rate_bps": 10_000})],
            )
        assert store.keys() == []
        assert fee_manager.get_enabled_fees("fund-1") == []


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:
    def test_activate_twice(self, managed, fund) -> None:
        with pytest.raises(ConfigurationError):
            managed.activate_for_fund(fund)

    def test_activate_unconfigured(self, fee_manager, fund) -> None:
        with pytest.raises(ConfigurationError):
            fee_manager.activate_for_fund(fund)

    def test_inactive_fund_is_not_charged(self, fee_manager, fund, vault) -> None:
        fee_manager.set_config_for_fund("fund-1", USDC, [(MANAGEMENT_FEE, {"rate_bps": 100})])
        vault.mint_shares("alice", 1_000_000)
        result = fee_manager.dispatch(FeeHook.CONTINUOUS, at(fund, NOW + SECONDS_IN_YEAR))
        assert result.commands == ()
        assert vault.total_supply() == 1_000_000

    def test_attach_to_active_fund_activates(self, managed, fund) -> None:
        later = at(fund, NOW + 100)
        managed.attach_fee_to_fund(later, PERFORMANCE_FEE, {"rate_bps": 1_000, "period_sec": 86_400})
        assert managed.get_enabled_fees("fund-1")[-1] == PERFORMANCE_FEE
        record = managed.registry.get(PERFORMANCE_FEE).get_record("fund-1")
        assert record.activated_at == NOW + 100

    def test_attach_duplicate(self, managed, fund) -> None:
        with pytest.raises(ConfigurationError):
            managed.attach_fee_to_fund(fund, MANAGEMENT_FEE, {"rate_bps": 100})

    def test_deactivate_settles_and_pays_everything(self, managed, fund, vault, store) -> None:
        managed.dispatch(FeeHook.CONTINUOUS, at(fund, NOW + SECONDS_IN_YEAR))
        escrowed = vault.balance_of(ESCROW_ACCOUNT)
        assert escrowed == 10101

        result = managed.deactivate_for_fund(at(fund, NOW + 2 * SECONDS_IN_YEAR))

        assert vault.balance_of(ESCROW_ACCOUNT) == 0
        assert vault.balance_of("manager") == vault.total_supply() - 1_000_000
        assert vault.balance_of("manager") > escrowed
        assert result.minted == vault.total_supply() - 1_000_000 - escrowed
        assert managed.get_enabled_fees("fund-1") == []
        assert store.keys() == []

    def test_deactivate_applies_one_batch(self, managed, fund) -> None:
        vault = _CountingVault()
        vault.mint_shares("alice", 1_000_000)

        result = managed.deactivate_for_fund(replace(fund, vault=vault, now=NOW + SECONDS_IN_YEAR))

        assert vault.batches == 1
        assert [c.kind for c in result.commands] == [ShareCommandKind.MINT, ShareCommandKind.TRANSFER]
        assert vault.balance_of("manager") == 10101

    def test_failed_payout_undoes_final_settlement(self, managed, fund, store) -> None:
        vault = _CountingVault(escrow_locked=True)
        vault.mint_shares("alice", 1_000_000)
        before_store = store.snapshot()
        before_balances = vault.balances()

        with pytest.raises(InvariantViolationError):
            managed.deactivate_for_fund(replace(fund, vault=vault, now=NOW + SECONDS_IN_YEAR))

        assert vault.balances() == before_balances
        assert vault.total_supply() == 1_000_000
        assert store.snapshot() == before_store
        assert managed.get_enabled_fees("fund-1") == [MANAGEMENT_FEE, ENTRANCE_RATE_FEE, EXIT_RATE_FEE]


# =============================================================================
# DISPATCH
# =============================================================================


class TestDispatch:
    def test_buy_and_redeem_hooks(self, managed, fund, vault) -> None:
        vault.mint_shares("bob", 10_000)
        managed.dispatch(
            FeeHook.POST_BUY_SHARES,
            fund,
            BuySharesPayload(buyer="bob", investment_amount=10_000, shares_bought=10_000),
        )
        assert vault.balance_of("bob") == 9_900

        managed.dispatch(
            FeeHook.PRE_REDEEM_SHARES,
            fund,
            RedeemSharesPayload(redeemer="bob", shares_to_redeem=9_900),
        )
        assert vault.balance_of("bob") == 9_900 - 49

    def test_pre_buy_has_no_fees(self, managed, fund) -> None:
        result = managed.dispatch(
            FeeHook.PRE_BUY_SHARES, fund, BuySharesPayload(buyer="bob", investment_amount=1)
        )
        assert result.commands == ()

    def test_continuous_takes_no_payload(self, managed, fund) -> None:
        with pytest.raises(InvariantViolationError):
            managed.dispatch(FeeHook.CONTINUOUS, fund, BuySharesPayload(buyer="bob", investment_amount=1))

    def test_wrong_payload_type(self, managed, fund) -> None:
        with pytest.raises(InvariantViolationError):
            managed.dispatch(
                FeeHook.POST_BUY_SHARES, fund, RedeemSharesPayload(redeemer="bob", shares_to_redeem=1)
            )

    def test_invalid_payload_mapping(self, managed, fund) -> None:
        with pytest.raises(InvariantViolationError):
            managed.dispatch(FeeHook.POST_BUY_SHARES, fund, {"buyer": "bob"})


class TestAtomicity:
    def test_failing_vault_command_changes_nothing(self, managed, fund, vault, store) -> None:
        before_store = store.snapshot()
        before_balances = vault.balances()

        # carol never received the shares she claims to have bought
        with pytest.raises(InvariantViolationError):
            managed.dispatch(
                FeeHook.POST_BUY_SHARES,
                at(fund, NOW + SECONDS_IN_YEAR),
                BuySharesPayload(buyer="carol", investment_amount=1, shares_bought=10_000),
            )

        assert store.snapshot() == before_store
        assert vault.balances() == before_balances

    def test_failing_fee_aborts_whole_dispatch(self, managed, fund, vault, store) -> None:
        failing = _ScriptedFee(store, [RuntimeError("bad state")])
        managed.register_fees([failing])
        managed.attach_fee_to_fund(fund, "SCRIPTED", {"rate_bps": 1})
        before_store = store.snapshot()

        with pytest.raises(FeeSettlementError) as exc_info:
            managed.dispatch(FeeHook.CONTINUOUS, at(fund, NOW + SECONDS_IN_YEAR))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.details["fee_type"] == "SCRIPTED"
        # The management fee ran before the failure; none of it is kept
        assert store.snapshot() == before_store
        assert vault.total_supply() == 1_000_000

    def test_update_runs_even_without_settlement(self, managed, fund, store) -> None:
        scripted = _ScriptedFee(store, [None])
        managed.register_fees([scripted])
        managed.attach_fee_to_fund(fund, "SCRIPTED", {"rate_bps": 1})
        managed.dispatch(FeeHook.CONTINUOUS, fund)
        assert scripted.updates == 1

    def test_later_fee_sees_earlier_mints(self, managed, fund, store) -> None:
        scripted = _ScriptedFee(store, [None])
        managed.register_fees([scripted])
        managed.attach_fee_to_fund(fund, "SCRIPTED", {"rate_bps": 1})

        managed.dispatch(FeeHook.CONTINUOUS, at(fund, NOW + SECONDS_IN_YEAR))

        state = scripted.seen[0]
        assert state.shares_supply == 1_000_000 + 10101
        assert state.shares_outstanding == 10101
        assert state.outstanding_for(MANAGEMENT_FEE) == 10101


class TestReentrancy:
    def test_nested_dispatch_rejected(self, managed, fund, store) -> None:
        nested = _ScriptedFee(store, [lambda: managed.dispatch(FeeHook.CONTINUOUS, fund)])
        managed.register_fees([nested])
        managed.attach_fee_to_fund(fund, "SCRIPTED", {"rate_bps": 1})

        with pytest.raises(ReentrantDispatchError):
            managed.dispatch(FeeHook.CONTINUOUS, fund)

        assert not managed.is_dispatching("fund-1")

    def test_guard_cleared_after_failure(self, managed, fund, vault) -> None:
        with pytest.raises(InvariantViolationError):
            managed.dispatch(FeeHook.CONTINUOUS, fund, {"unexpected": True})
        assert not managed.is_dispatching("fund-1")
        managed.dispatch(FeeHook.CONTINUOUS, at(fund, NOW + 1))


class TestSharesOutstanding:
    def test_burn_outstanding_is_capped(self, fee_manager, fund, vault, store) -> None:
        scripted = _ScriptedFee(
            store,
            [
                SettlementInstruction(SettlementType.MINT_SHARES_OUTSTANDING, 100),
                SettlementInstruction(SettlementType.BURN_SHARES_OUTSTANDING, 1_000),
            ],
        )
        fee_manager.register_fees([scripted])
        fee_manager.set_config_for_fund("fund-1", USDC, [("SCRIPTED", {"rate_bps": 1})])
        vault.mint_shares("alice", 1_000)
        fee_manager.activate_for_fund(fund)

        fee_manager.dispatch(FeeHook.CONTINUOUS, fund)
        assert fee_manager.get_shares_outstanding("fund-1", "SCRIPTED") == 100

        result = fee_manager.dispatch(FeeHook.CONTINUOUS, fund)
        assert result.burned == 100
        assert fee_manager.get_shares_outstanding("fund-1", "SCRIPTED") == 0
        assert vault.total_supply() == 1_000

    def test_manual_payout(self, managed, fund, vault) -> None:
        managed.dispatch(FeeHook.CONTINUOUS, at(fund, NOW + SECONDS_IN_YEAR))
        result = managed.payout_shares_outstanding(fund, [MANAGEMENT_FEE])
        assert result.commands[0].amount == 10101
        assert vault.balance_of("manager") == 10101
        assert managed.get_shares_outstanding("fund-1", MANAGEMENT_FEE) == 0

    def test_manual_payout_of_unknown_fee(self, managed, fund) -> None:
        with pytest.raises(ConfigurationError):
            managed.payout_shares_outstanding(fund, [PERFORMANCE_FEE])


class TestSupplyConservation:
    def test_supply_equals_initial_plus_minted_minus_burned(self, managed, fund, vault) -> None:
        initial = vault.total_supply()
        minted = burned = 0
        externally_minted = 0

        for day in range(1, 11):
            now = NOW + day * 86_400
            result = managed.dispatch(FeeHook.CONTINUOUS, at(fund, now))
            minted += result.minted
            burned += result.burned

            buyer = f"buyer-{day}"
            vault.mint_shares(buyer, 1_000 * day)
            externally_minted += 1_000 * day
            result = managed.dispatch(
                FeeHook.POST_BUY_SHARES,
                at(fund, now),
                BuySharesPayload(buyer=buyer, investment_amount=1, shares_bought=1_000 * day),
            )
            minted += result.minted
            burned += result.burned

            result = managed.dispatch(
                FeeHook.PRE_REDEEM_SHARES,
                at(fund, now),
                RedeemSharesPayload(redeemer="alice", shares_to_redeem=5_000),
            )
            minted += result.minted
            burned += result.burned

        assert minted > 0 and burned > 0
        assert vault.total_supply() == initial + externally_minted + minted - burned
        assert sum(vault.balances().values()) == vault.total_supply()
