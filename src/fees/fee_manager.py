"""
Fee Manager — hook dispatch, settlement aggregation and vault commands

dispatch(hook, fund, payload):
1. Reject nested dispatch on the same fund (re-entrancy guard)
2. Snapshot the fund: share supply, shares outstanding and, if any relevant
   fee needs it, the gross asset value
3. For each enabled fee in registration order:
   - CONTINUOUS only: release the fee's escrowed shares if fee.payout() allows
   - settle, if the fee settles on the hook
   - update, unconditionally
   - carry the snapshot forward, so the next fee sees this fee's mints,
     burns and escrow
4. Apply every resulting vault command as one atomic batch

Settlement type -> vault command:
- DIRECT                   transfer payer -> payee
- MINT                     mint to payee (fees recipient by default)
- BURN                     burn from payer
- MINT_SHARES_OUTSTANDING  mint to escrow, credit the fee's outstanding
- BURN_SHARES_OUTSTANDING  burn from escrow, at most the fee's outstanding

CRITICAL INVARIANTS:
1. All or nothing: any failure leaves share balances and every fee record
   exactly as before the dispatch
2. Supply conservation: supply after = supply before + minted - burned
3. An invalid fund valuation aborts the dispatch (InvalidValuationError)
4. Fees never touch the vault; only the Fee Manager issues commands
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from src.core.contracts.validators import EncodedSettings
from src.core.domain.asset import Asset
from src.core.domain.fee_records import FundFeeRecord
from src.core.domain.fund import FundContext, FundState
from src.core.domain.settlement import (
    PAYLOAD_TYPES,
    FeeHook,
    HookPayload,
    SettlementInstruction,
    SettlementType,
)
from src.core.errors import (
    ConfigurationError,
    FeeEngineError,
    FeeSettlementError,
    InvalidValuationError,
    InvariantViolationError,
    ReentrantDispatchError,
)
from src.core.math.fixed_point import checked_add, checked_sub
from src.fees.base import Fee, create_fee
from src.fees.registry import FeeRegistry
from src.storage.state_store import StateStore
from src.valuation.value_interpreter import ValuationContext, calc_fund_gav
from src.vault.ledger import ESCROW_ACCOUNT, ShareCommand, ShareCommandKind

log = logging.getLogger(__name__)


# =============================================================================
# CONFIG / RESULT
# =============================================================================


@dataclass(frozen=True)
class FeeManagerConfig:
    """Fee Manager limits."""

    max_fees_per_fund: int = 16

    def __post_init__(self) -> None:
        if self.max_fees_per_fund < 1:
            raise ValueError(f"max_fees_per_fund must be >= 1, got {self.max_fees_per_fund}")


@dataclass(frozen=True)
class DispatchResult:
    """Instructions produced by one dispatch and the vault commands applied."""

    instructions: Tuple[Tuple[str, SettlementInstruction], ...] = ()
    commands: Tuple[ShareCommand, ...] = ()

    @property
    def minted(self) -> int:
        return sum(c.amount for c in self.commands if c.kind == ShareCommandKind.MINT)

    @property
    def burned(self) -> int:
        return sum(c.amount for c in self.commands if c.kind == ShareCommandKind.BURN)


EMPTY_RESULT = DispatchResult()


# =============================================================================
# FEE MANAGER
# =============================================================================


class FeeManager:
    """Orchestrates the fee family for every fund."""

    def __init__(
        self,
        store: StateStore,
        valuation: ValuationContext,
        config: FeeManagerConfig = FeeManagerConfig(),
    ):
        """
        Args:
            store: Persisted fee records
            valuation: Classifier and valuation config; `now` is taken from
                each FundContext
            config: Fee Manager limits
        """
        self._store = store
        self._valuation = valuation
        self.config = config
        self.registry = FeeRegistry(store)
        self._dispatching: Set[str] = set()

    # -------------------------------------------------------------------------
    # Fee type registration
    # -------------------------------------------------------------------------

    def register_fee_type(self, fee_type: str) -> Fee:
        """Instantiate a built-in fee type and register it."""
        fee = create_fee(fee_type, self._store)
        self.registry.register(fee)
        return fee

    def register_fees(self, fees: Iterable[Fee]) -> None:
        self.registry.register_all(fees)

    def deregister_fees(self, fee_types: Sequence[str]) -> None:
        """
        Remove fee types; none is removed if any is unknown or still in use.

        Raises:
            ConfigurationError: If a fee type is not registered or is enabled
                for some fund
        """
        for fee_type in fee_types:
            self.registry.get(fee_type)
            funds = self.registry.funds_using(fee_type)
            if funds:
                raise ConfigurationError(
                    "fee type in use", details={"fee_type": fee_type, "funds": funds}
                )
        for fee_type in fee_types:
            self.registry.deregister(fee_type)

    # -------------------------------------------------------------------------
    # Fund configuration
    # -------------------------------------------------------------------------

    def set_config_for_fund(
        self,
        fund_id: str,
        denomination_asset: Asset,
        settings: Sequence[Tuple[str, EncodedSettings]],
    ) -> FundFeeRecord:
        """
        Enable fees for a fund, in dispatch order, all or nothing.

        Args:
            fund_id: Fund identifier
            denomination_asset: The fund's denomination asset
            settings: (fee_type, encoded settings) pairs

        Returns:
            The fund's fee record

        Raises:
            ConfigurationError: If the fund is already configured, a fee type
                is duplicated or unregistered, the fee count exceeds the
                limit, the denomination asset is unknown to the classifier,
                or any settings fail to decode
        """
        if self.registry.has_fund(fund_id):
            raise ConfigurationError("fund already configured", details={"fund_id": fund_id})

        fee_types = [fee_type for fee_type, _ in settings]
        if len(fee_types) > self.config.max_fees_per_fund:
            raise ConfigurationError(
                "too many fees for fund",
                details={"fund_id": fund_id, "count": len(fee_types), "max": self.config.max_fees_per_fund},
            )
        duplicates = sorted({t for t in fee_types if fee_types.count(t) > 1})
        if duplicates:
            raise ConfigurationError(
                "fee type enabled twice", details={"fund_id": fund_id, "fee_types": duplicates}
            )
        if not self._valuation.classifier.is_known(denomination_asset):
            raise ConfigurationError(
                "unsupported denomination asset",
                details={"fund_id": fund_id, "asset": denomination_asset.asset_id},
            )

        with self._store.transaction():
            for fee_type, encoded in settings:
                self.registry.get(fee_type).add_fund_settings(fund_id, encoded)
            record = FundFeeRecord(fee_types=tuple(fee_types))
            self.registry.put_fund_record(fund_id, record)

        log.info("fund %s: fees configured %s", fund_id, fee_types)
        return record

    def attach_fee_to_fund(
        self, fund: FundContext, fee_type: str, encoded: EncodedSettings
    ) -> FundFeeRecord:
        """
        Enable one more fee for a fund; it runs after the fund's other fees.

        On an already activated fund the fee is activated immediately.
        """
        fund_id = fund.fund_id
        with self._dispatch_guard(fund_id), self._store.transaction():
            record = self.registry.get_fund_record(fund_id)
            if fee_type in record.fee_types:
                raise ConfigurationError(
                    "fee type enabled twice", details={"fund_id": fund_id, "fee_types": [fee_type]}
                )
            if len(record.fee_types) >= self.config.max_fees_per_fund:
                raise ConfigurationError(
                    "too many fees for fund",
                    details={"fund_id": fund_id, "max": self.config.max_fees_per_fund},
                )
            if not record.fee_types and not self._valuation.classifier.is_known(fund.denomination_asset):
                raise ConfigurationError(
                    "unsupported denomination asset",
                    details={"fund_id": fund_id, "asset": fund.denomination_asset.asset_id},
                )

            fee = self.registry.get(fee_type)
            fee.add_fund_settings(fund_id, encoded)
            record = record.model_copy(update={"fee_types": record.fee_types + (fee_type,)})
            self.registry.put_fund_record(fund_id, record)

            if record.activated:
                state = self._fund_state(fund, record.shares_outstanding, needs_gav=bool(fee.gav_hooks))
                fee.activate(state)

        log.info("fund %s: fee %s attached", fund_id, fee_type)
        return record

    def activate_for_fund(self, fund: FundContext) -> None:
        """
        Activate every enabled fee of a fund, once.

        Raises:
            ConfigurationError: If the fund has no fees configured or is
                already active
            InvalidValuationError: If a fee needs the fund value and it
                cannot be computed
        """
        fund_id = fund.fund_id
        with self._dispatch_guard(fund_id), self._store.transaction():
            if not self.registry.has_fund(fund_id):
                raise ConfigurationError("fund not configured", details={"fund_id": fund_id})
            record = self.registry.get_fund_record(fund_id)
            if record.activated:
                raise ConfigurationError("fund fees already active", details={"fund_id": fund_id})

            fees = self.registry.fees_for_fund(fund_id)
            state = self._fund_state(fund, record.shares_outstanding, needs_gav=any(f.gav_hooks for f in fees))
            for fee in fees:
                fee.activate(state)
            self.registry.put_fund_record(fund_id, record.model_copy(update={"activated": True}))

        log.info("fund %s: fees activated", fund_id)

    def deactivate_for_fund(self, fund: FundContext) -> DispatchResult:
        """
        Settle Continuous fees one last time, pay out every share outstanding
        regardless of payout schedules, and delete all fee state of the fund.

        Settlement and payout are applied as one vault batch.
        """
        fund_id = fund.fund_id
        with self._dispatch_guard(fund_id), self._store.transaction():
            record = self.registry.get_fund_record(fund_id)
            outstanding = dict(record.shares_outstanding)
            instructions: List[Tuple[str, SettlementInstruction]] = []
            commands: List[ShareCommand] = []

            if record.activated:
                fees = self._fees_on_hook(fund_id, FeeHook.CONTINUOUS)
                if fees:
                    instructions, commands = self._run_fees(FeeHook.CONTINUOUS, fund, fees, None, outstanding)

            for fee_type in record.fee_types:
                commands.extend(self._release(fee_type, outstanding, fund.fees_recipient))
            if commands:
                fund.vault.execute_batch(commands)

            for fee in self.registry.fees_for_fund(fund_id):
                fee.remove_fund_settings(fund_id)
            self.registry.delete_fund_record(fund_id)

        log.info("fund %s: fees deactivated", fund_id)
        return DispatchResult(tuple(instructions), tuple(commands))

    def payout_shares_outstanding(self, fund: FundContext, fee_types: Sequence[str]) -> DispatchResult:
        """Release escrowed shares of the given fees whose payout is due."""
        with self._dispatch_guard(fund.fund_id), self._store.transaction():
            record = self.registry.get_fund_record(fund.fund_id)
            unknown = [t for t in fee_types if t not in record.fee_types]
            if unknown:
                raise ConfigurationError(
                    "fee type not enabled for fund",
                    details={"fund_id": fund.fund_id, "fee_types": unknown},
                )
            return self._payout(fund, record, fee_types)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_enabled_fees(self, fund_id: str) -> List[str]:
        return list(self.registry.get_fund_record(fund_id).fee_types)

    def get_shares_outstanding(self, fund_id: str, fee_type: str) -> int:
        return self.registry.get_fund_record(fund_id).outstanding_for(fee_type)

    def is_dispatching(self, fund_id: str) -> bool:
        return fund_id in self._dispatching

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(
        self,
        hook: FeeHook,
        fund: FundContext,
        payload: HookPayload | Mapping[str, Any] = None,
    ) -> DispatchResult:
        """
        Run every enabled fee of the fund on one lifecycle hook.

        Args:
            hook: Lifecycle hook
            fund: Fund identity, vault and current timestamp
            payload: Hook payload (None for CONTINUOUS); mappings are
                validated into the hook's payload model

        Returns:
            DispatchResult with the instructions and commands applied; empty
            for funds whose fees are not active

        Raises:
            ReentrantDispatchError: If the fund is already being dispatched
            InvalidValuationError: If a fee needs the fund value and it
                cannot be computed
            InvariantViolationError: If a fee or a vault command fails
        """
        try:
            with self._dispatch_guard(fund.fund_id), self._store.transaction():
                return self._dispatch(hook, fund, payload)
        except FeeEngineError as e:
            log.warning("fund %s: %s dispatch aborted (%s): %s", fund.fund_id, hook.value, e.code, e.message)
            raise

    def _dispatch(self, hook: FeeHook, fund: FundContext, payload: Any) -> DispatchResult:
        payload = self._validate_payload(hook, payload)
        record = self.registry.get_fund_record(fund.fund_id)
        if not record.activated:
            log.debug("fund %s: fees inactive, %s ignored", fund.fund_id, hook.value)
            return EMPTY_RESULT

        fees = self._fees_on_hook(fund.fund_id, hook)
        if not fees:
            return EMPTY_RESULT

        outstanding = dict(record.shares_outstanding)
        instructions, commands = self._run_fees(hook, fund, fees, payload, outstanding)

        fund.vault.execute_batch(commands)
        self.registry.put_fund_record(
            fund.fund_id,
            record.model_copy(update={"shares_outstanding": _prune(outstanding)}),
        )

        log.debug(
            "fund %s: %s settled %d fee(s), %d command(s)",
            fund.fund_id,
            hook.value,
            len(instructions),
            len(commands),
        )
        return DispatchResult(tuple(instructions), tuple(commands))

    def _run_fees(
        self,
        hook: FeeHook,
        fund: FundContext,
        fees: Sequence[Fee],
        payload: HookPayload,
        outstanding: Dict[str, int],
    ) -> Tuple[List[Tuple[str, SettlementInstruction]], List[ShareCommand]]:
        """
        Settle and update fees in order; commands are collected, not applied.

        Each fee sees the supply and escrow left by the fees before it.
        `outstanding` is updated in place.
        """
        state = self._fund_state(fund, outstanding, needs_gav=any(f.uses_gav(hook) for f in fees))
        instructions: List[Tuple[str, SettlementInstruction]] = []
        commands: List[ShareCommand] = []

        for fee in fees:
            try:
                if hook == FeeHook.CONTINUOUS and outstanding.get(fee.fee_type, 0) > 0:
                    if fee.payout(state):
                        released = self._release(fee.fee_type, outstanding, fund.fees_recipient)
                        commands.extend(released)
                        state = _carry_forward(state, released, outstanding)

                fee_commands: List[ShareCommand] = []
                if fee.settles_on_hook(hook):
                    instruction = fee.settle(hook, state, payload)
                    if instruction is not None and instruction.shares_due > 0:
                        instructions.append((fee.fee_type, instruction))
                        fee_commands = self._commands_for(fee.fee_type, instruction, fund, outstanding)

                fee.update(hook, state, payload)
                commands.extend(fee_commands)
                state = _carry_forward(state, fee_commands, outstanding)
            except FeeEngineError:
                raise
            except Exception as e:
                raise FeeSettlementError(
                    "fee failed during dispatch",
                    details={"fund_id": fund.fund_id, "fee_type": fee.fee_type, "hook": hook.value},
                ) from e

        return instructions, commands

    def _payout(
        self, fund: FundContext, record: FundFeeRecord, fee_types: Sequence[str]
    ) -> DispatchResult:
        outstanding = dict(record.shares_outstanding)
        commands: List[ShareCommand] = []
        state: Optional[FundState] = None

        for fee_type in fee_types:
            if outstanding.get(fee_type, 0) == 0:
                continue
            state = state or self._fund_state(fund, record.shares_outstanding, needs_gav=False)
            if not self.registry.get(fee_type).payout(state):
                continue
            commands.extend(self._release(fee_type, outstanding, fund.fees_recipient))

        if commands:
            fund.vault.execute_batch(commands)
            self.registry.put_fund_record(
                fund.fund_id,
                record.model_copy(update={"shares_outstanding": _prune(outstanding)}),
            )
        return DispatchResult(commands=tuple(commands))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _fees_on_hook(self, fund_id: str, hook: FeeHook) -> List[Fee]:
        return [
            fee
            for fee in self.registry.fees_for_fund(fund_id)
            if fee.settles_on_hook(hook) or fee.updates_on_hook(hook)
        ]

    @contextmanager
    def _dispatch_guard(self, fund_id: str) -> Iterator[None]:
        if fund_id in self._dispatching:
            raise ReentrantDispatchError(
                "nested fee dispatch rejected", details={"fund_id": fund_id}
            )
        self._dispatching.add(fund_id)
        try:
            yield
        finally:
            self._dispatching.discard(fund_id)

    def _fund_state(
        self, fund: FundContext, outstanding: Mapping[str, int], needs_gav: bool
    ) -> FundState:
        gav = None
        if needs_gav:
            valuation = calc_fund_gav(
                self._valuation.at(fund.now), fund.vault, fund.denomination_asset
            )
            if not valuation.is_valid:
                raise InvalidValuationError(
                    "fund value cannot be computed", details={"fund_id": fund.fund_id}
                )
            gav = valuation.value

        return FundState(
            fund_id=fund.fund_id,
            denomination_asset=fund.denomination_asset,
            fees_recipient=fund.fees_recipient,
            now=fund.now,
            shares_supply=fund.vault.total_supply(),
            shares_outstanding=sum(outstanding.values()),
            fee_shares_outstanding=_prune(outstanding),
            gav=gav,
        )

    @staticmethod
    def _validate_payload(hook: FeeHook, payload: Any) -> HookPayload:
        expected = PAYLOAD_TYPES[hook]
        if expected is None:
            if payload is not None:
                raise InvariantViolationError(
                    "hook takes no payload", details={"hook": hook.value}
                )
            return None
        if isinstance(payload, expected):
            return payload
        if isinstance(payload, Mapping):
            try:
                return expected.model_validate(payload)
            except ValidationError as e:
                raise InvariantViolationError(
                    "invalid hook payload", details={"hook": hook.value, "errors": e.errors()}
                ) from e
        raise InvariantViolationError(
            "invalid hook payload",
            details={"hook": hook.value, "expected": expected.__name__, "got": type(payload).__name__},
        )

    @staticmethod
    def _release(fee_type: str, outstanding: Dict[str, int], recipient: str) -> List[ShareCommand]:
        amount = outstanding.pop(fee_type, 0)
        if amount == 0:
            return []
        log.info("releasing %d outstanding %s share(s) to %s", amount, fee_type, recipient)
        return [ShareCommand.transfer(ESCROW_ACCOUNT, recipient, amount)]

    @staticmethod
    def _commands_for(
        fee_type: str,
        instruction: SettlementInstruction,
        fund: FundContext,
        outstanding: Dict[str, int],
    ) -> List[ShareCommand]:
        kind = instruction.settlement_type
        amount = instruction.shares_due

        if kind == SettlementType.DIRECT:
            if not instruction.payer or not instruction.payee:
                raise FeeSettlementError(
                    "direct settlement needs payer and payee", details={"fee_type": fee_type}
                )
            return [ShareCommand.transfer(instruction.payer, instruction.payee, amount)]

        if kind == SettlementType.MINT:
            return [ShareCommand.mint(instruction.payee or fund.fees_recipient, amount)]

        if kind == SettlementType.BURN:
            if not instruction.payer:
                raise FeeSettlementError("burn settlement needs a payer", details={"fee_type": fee_type})
            return [ShareCommand.burn(instruction.payer, amount)]

        if kind == SettlementType.MINT_SHARES_OUTSTANDING:
            outstanding[fee_type] = checked_add(outstanding.get(fee_type, 0), amount)
            return [ShareCommand.mint(ESCROW_ACCOUNT, amount)]

        # BURN_SHARES_OUTSTANDING
        amount = min(amount, outstanding.get(fee_type, 0))
        if amount == 0:
            return []
        outstanding[fee_type] = checked_sub(outstanding[fee_type], amount)
        return [ShareCommand.burn(ESCROW_ACCOUNT, amount)]


def _prune(outstanding: Dict[str, int]) -> Dict[str, int]:
    return {fee_type: amount for fee_type, amount in outstanding.items() if amount > 0}


def _carry_forward(
    state: FundState, commands: Sequence[ShareCommand], outstanding: Dict[str, int]
) -> FundState:
    """Snapshot as left by `commands`: supply and escrow move, GAV does not."""
    minted = sum(c.amount for c in commands if c.kind == ShareCommandKind.MINT)
    burned = sum(c.amount for c in commands if c.kind == ShareCommandKind.BURN)
    return state.model_copy(
        update={
            "shares_supply": state.shares_supply + minted - burned,
            "shares_outstanding": sum(outstanding.values()),
            "fee_shares_outstanding": _prune(outstanding),
        }
    )
