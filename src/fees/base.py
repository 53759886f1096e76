"""
Fee — common interface of the fee family

Every fee type implements:
- activate(fund)                     once, when the fund's fees are activated
- settle(hook, fund, payload)        -> SettlementInstruction | None
- update(hook, fund, payload)        roll accounting state forward
- payout(fund)                       -> whether escrowed shares may be released

and declares on which hooks it settles, updates and needs the fund value.

Each fee owns only its own per-fund record, stored under (fund_id, fee_type).
Fees never touch the vault; they return instructions and the Fee Manager
turns them into vault commands.

Fee classes are registered by type identifier with @register_fee_type, so
new fees plug in without changing the Fee Manager.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Type

from pydantic import BaseModel, ValidationError

from src.core.contracts.validators import EncodedSettings, decode_settings
from src.core.domain.fund import FundState
from src.core.domain.settlement import FeeHook, HookPayload, SettlementInstruction
from src.core.errors import ConfigurationError, InvariantViolationError
from src.storage.state_store import StateKey, StateStore

log = logging.getLogger(__name__)


class Fee(ABC):
    """Base class for fee types."""

    fee_type: ClassVar[str]
    schema_name: ClassVar[str]
    record_model: ClassVar[Type[BaseModel]]

    settles_on: ClassVar[FrozenSet[FeeHook]] = frozenset()
    updates_on: ClassVar[FrozenSet[FeeHook]] = frozenset()
    gav_hooks: ClassVar[FrozenSet[FeeHook]] = frozenset()

    def __init__(self, store: StateStore):
        self._store = store

    # -------------------------------------------------------------------------
    # Hook declarations
    # -------------------------------------------------------------------------

    def settles_on_hook(self, hook: FeeHook) -> bool:
        return hook in self.settles_on

    def updates_on_hook(self, hook: FeeHook) -> bool:
        return hook in self.updates_on

    def uses_gav(self, hook: FeeHook) -> bool:
        return hook in self.gav_hooks

    # -------------------------------------------------------------------------
    # Per-fund settings
    # -------------------------------------------------------------------------

    def record_key(self, fund_id: str) -> StateKey:
        return (fund_id, self.fee_type)

    def has_settings(self, fund_id: str) -> bool:
        return self._store.contains(self.record_key(fund_id))

    def add_fund_settings(self, fund_id: str, encoded: EncodedSettings) -> BaseModel:
        """
        Decode, validate and store the fee's settings for a fund.

        Raises:
            ConfigurationError: If settings exist already or do not decode to
                the fee's expected shape
        """
        if self.has_settings(fund_id):
            raise ConfigurationError(
                "fee already configured for fund",
                details={"fund_id": fund_id, "fee_type": self.fee_type},
            )
        data = decode_settings(encoded, self.schema_name)
        record = self._validate_record(fund_id, data)
        self._store.put(self.record_key(fund_id), record)
        log.info("fund %s: %s settings added", fund_id, self.fee_type)
        return record

    def remove_fund_settings(self, fund_id: str) -> None:
        self._store.delete(self.record_key(fund_id))

    def get_record(self, fund_id: str) -> Any:
        record = self._store.get(self.record_key(fund_id), self.record_model)
        if record is None:
            raise ConfigurationError(
                "fee not configured for fund",
                details={"fund_id": fund_id, "fee_type": self.fee_type},
            )
        return record

    def _save(self, fund_id: str, record: BaseModel, **changes: Any) -> Any:
        updated = self._validate_record(fund_id, {**record.model_dump(), **changes})
        self._store.put(self.record_key(fund_id), updated)
        return updated

    def _validate_record(self, fund_id: str, data: Dict[str, Any]) -> BaseModel:
        try:
            return self.record_model.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                "invalid fee settings",
                details={"fund_id": fund_id, "fee_type": self.fee_type, "errors": e.errors()},
            ) from e

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def activate(self, fund: FundState) -> None:
        """Called once when the fund's fees are activated."""

    @abstractmethod
    def settle(
        self, hook: FeeHook, fund: FundState, payload: HookPayload
    ) -> Optional[SettlementInstruction]:
        """Compute shares due for this hook; None when nothing is due."""

    def update(self, hook: FeeHook, fund: FundState, payload: HookPayload) -> None:
        """Roll accounting state forward after settlement."""

    def payout(self, fund: FundState) -> bool:
        """Whether shares outstanding may be released now (may record the payout)."""
        return False

    def _expect_payload(self, hook: FeeHook, payload: HookPayload, expected: Type[BaseModel]) -> Any:
        """
        Narrow a hook payload to the model the fee needs.

        Raises:
            InvariantViolationError: If the payload is of another type
        """
        if not isinstance(payload, expected):
            raise InvariantViolationError(
                "unexpected hook payload",
                details={
                    "fee_type": self.fee_type,
                    "hook": hook.value,
                    "expected": expected.__name__,
                    "got": type(payload).__name__,
                },
            )
        return payload


# =============================================================================
# FEE TYPE REGISTRY
# =============================================================================

FEE_TYPES: Dict[str, Type[Fee]] = {}


def register_fee_type(cls: Type[Fee]) -> Type[Fee]:
    """Class decorator: make a fee type constructible by its identifier."""
    if cls.fee_type in FEE_TYPES and FEE_TYPES[cls.fee_type] is not cls:
        raise ConfigurationError("fee type identifier reused", details={"fee_type": cls.fee_type})
    FEE_TYPES[cls.fee_type] = cls
    return cls


def create_fee(fee_type: str, store: StateStore) -> Fee:
    """
    Instantiate a registered fee type.

    Raises:
        ConfigurationError: If the identifier is unknown
    """
    cls = FEE_TYPES.get(fee_type)
    if cls is None:
        raise ConfigurationError("unknown fee type", details={"fee_type": fee_type})
    return cls(store)
