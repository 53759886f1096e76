"""
Vault share ledger — command interface and in-memory reference vault

The vault is owned by the surrounding fund infrastructure. The engine only
mutates it through share commands:
- mint_shares(to, amount)
- burn_shares(from_account, amount)
- transfer_shares(from_account, to, amount)
- execute_batch(commands) — all commands apply or none do

CRITICAL INVARIANTS:
1. Total supply == sum of all balances (escrow included)
2. Supply and balances are never negative; burning beyond balance fails loudly
3. A failed batch leaves balances and supply exactly as before
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from src.core.domain.asset import Asset
from src.core.errors import InvariantViolationError
from src.core.math.fixed_point import checked_add, checked_sub, validate_uint

log = logging.getLogger(__name__)

# Holder of minted-but-unpaid fee shares (shares outstanding)
ESCROW_ACCOUNT = "vault:shares-outstanding"


# =============================================================================
# COMMANDS
# =============================================================================


class ShareCommandKind(str, Enum):
    MINT = "MINT"
    BURN = "BURN"
    TRANSFER = "TRANSFER"


@dataclass(frozen=True)
class ShareCommand:
    """One share-ledger mutation."""

    kind: ShareCommandKind
    amount: int
    from_account: Optional[str] = None
    to_account: Optional[str] = None

    def __post_init__(self) -> None:
        validate_uint(self.amount, "amount")
        if self.kind == ShareCommandKind.MINT and not self.to_account:
            raise InvariantViolationError("mint requires to_account")
        if self.kind == ShareCommandKind.BURN and not self.from_account:
            raise InvariantViolationError("burn requires from_account")
        if self.kind == ShareCommandKind.TRANSFER and not (self.from_account and self.to_account):
            raise InvariantViolationError("transfer requires from_account and to_account")

    @classmethod
    def mint(cls, to_account: str, amount: int) -> "ShareCommand":
        return cls(ShareCommandKind.MINT, amount, to_account=to_account)

    @classmethod
    def burn(cls, from_account: str, amount: int) -> "ShareCommand":
        return cls(ShareCommandKind.BURN, amount, from_account=from_account)

    @classmethod
    def transfer(cls, from_account: str, to_account: str, amount: int) -> "ShareCommand":
        return cls(ShareCommandKind.TRANSFER, amount, from_account=from_account, to_account=to_account)


class VaultCommands(Protocol):
    """What the engine requires from a vault."""

    def total_supply(self) -> int: ...

    def balance_of(self, account: str) -> int: ...

    def mint_shares(self, to_account: str, amount: int) -> None: ...

    def burn_shares(self, from_account: str, amount: int) -> None: ...

    def transfer_shares(self, from_account: str, to_account: str, amount: int) -> None: ...

    def execute_batch(self, commands: Iterable[ShareCommand]) -> None: ...

    def tracked_assets(self) -> List[Tuple[Asset, int]]: ...


# =============================================================================
# IN-MEMORY VAULT
# =============================================================================


class InMemoryVault:
    """
    Reference vault holding share balances and tracked asset balances.

    Used by tests and by hosts that keep vault state in process.
    """

    def __init__(self, vault_id: str):
        self.vault_id = vault_id
        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self._assets: Dict[str, Tuple[Asset, int]] = {}

    # -------------------------------------------------------------------------
    # Share ledger
    # -------------------------------------------------------------------------

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def balances(self) -> Dict[str, int]:
        return {k: v for k, v in self._balances.items() if v > 0}

    def mint_shares(self, to_account: str, amount: int) -> None:
        validate_uint(amount, "amount")
        self._total_supply = checked_add(self._total_supply, amount)
        self._balances[to_account] = checked_add(self.balance_of(to_account), amount)

    def burn_shares(self, from_account: str, amount: int) -> None:
        validate_uint(amount, "amount")
        balance = self.balance_of(from_account)
        if amount > balance:
            raise InvariantViolationError(
                "burn exceeds balance",
                details={"account": from_account, "balance": balance, "amount": amount},
            )
        self._balances[from_account] = balance - amount
        self._total_supply = checked_sub(self._total_supply, amount)

    def transfer_shares(self, from_account: str, to_account: str, amount: int) -> None:
        validate_uint(amount, "amount")
        balance = self.balance_of(from_account)
        if amount > balance:
            raise InvariantViolationError(
                "transfer exceeds balance",
                details={"account": from_account, "balance": balance, "amount": amount},
            )
        self._balances[from_account] = balance - amount
        self._balances[to_account] = checked_add(self.balance_of(to_account), amount)

    def apply(self, command: ShareCommand) -> None:
        if command.kind == ShareCommandKind.MINT:
            self.mint_shares(command.to_account, command.amount)
        elif command.kind == ShareCommandKind.BURN:
            self.burn_shares(command.from_account, command.amount)
        else:
            self.transfer_shares(command.from_account, command.to_account, command.amount)

    def execute_batch(self, commands: Iterable[ShareCommand]) -> None:
        """
        Apply all commands atomically.

        Raises:
            InvariantViolationError: If any command fails; no command is kept
        """
        snapshot = self.snapshot()
        try:
            for command in commands:
                self.apply(command)
        except Exception:
            self.restore(snapshot)
            log.warning("vault %s: share batch rolled back", self.vault_id)
            raise

    # -------------------------------------------------------------------------
    # Tracked assets
    # -------------------------------------------------------------------------

    def set_asset_balance(self, asset: Asset, balance: int) -> None:
        validate_uint(balance, "balance")
        self._assets[asset.asset_id] = (asset, balance)

    def remove_tracked_asset(self, asset: Asset) -> None:
        self._assets.pop(asset.asset_id, None)

    def tracked_assets(self) -> List[Tuple[Asset, int]]:
        return list(self._assets.values())

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> Tuple[Dict[str, int], int]:
        return dict(self._balances), self._total_supply

    def restore(self, snapshot: Tuple[Dict[str, int], int]) -> None:
        balances, total_supply = snapshot
        self._balances = dict(balances)
        self._total_supply = total_supply
