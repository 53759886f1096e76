"""
StateStore — key-value storage for persisted engine records

Keys are tuples of strings:
- (fund_id, fee_type)        fee configuration + accounting state
- ("fee_manager", fund_id)   enabled fees and shares outstanding
- ("protocol_fee", fund_id)  protocol fee state

Values are Pydantic records encoded with model_dump_json(); decoding goes
through model_validate_json(), so every read re-validates the record.

transaction() gives all-or-nothing semantics: any exception restores the
store to its state at entry.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

log = logging.getLogger(__name__)

StateKey = Tuple[str, ...]
RecordT = TypeVar("RecordT", bound=BaseModel)


class StateStore:
    """In-process key-value store with snapshot/restore."""

    def __init__(self) -> None:
        self._data: Dict[StateKey, str] = {}

    def get(self, key: StateKey, model: Type[RecordT]) -> Optional[RecordT]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return model.model_validate_json(raw)

    def put(self, key: StateKey, record: BaseModel) -> None:
        self._data[key] = record.model_dump_json()

    def delete(self, key: StateKey) -> None:
        self._data.pop(key, None)

    def contains(self, key: StateKey) -> bool:
        return key in self._data

    def keys(self, prefix: StateKey = ()) -> List[StateKey]:
        n = len(prefix)
        return sorted(k for k in self._data if k[:n] == prefix)

    def raw(self, key: StateKey) -> Optional[str]:
        return self._data.get(key)

    # -------------------------------------------------------------------------
    # Atomicity
    # -------------------------------------------------------------------------

    def snapshot(self) -> Dict[StateKey, str]:
        return dict(self._data)

    def restore(self, snapshot: Dict[StateKey, str]) -> None:
        self._data = dict(snapshot)

    @contextmanager
    def transaction(self) -> Iterator["StateStore"]:
        snapshot = self.snapshot()
        try:
            yield self
        except BaseException:
            self.restore(snapshot)
            log.debug("state store transaction rolled back")
            raise
