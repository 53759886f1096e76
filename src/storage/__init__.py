"""Storage — persisted fee records and protocol fee state."""

from .state_store import StateKey, StateStore

__all__ = [
    "StateKey",
    "StateStore",
]
