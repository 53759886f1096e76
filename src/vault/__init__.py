"""Vault — share ledger command interface consumed by the fee engine."""

from .ledger import (
    ESCROW_ACCOUNT,
    InMemoryVault,
    ShareCommand,
    ShareCommandKind,
    VaultCommands,
)

__all__ = [
    "ESCROW_ACCOUNT",
    "InMemoryVault",
    "ShareCommand",
    "ShareCommandKind",
    "VaultCommands",
]
