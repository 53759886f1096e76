"""
Tests for StateStore

Checks key-value semantics, re-validation on read, prefix listing and
transaction rollback.
"""

import pytest

from src.core.domain import ManagementFeeRecord, ProtocolFeeState
from src.storage import StateStore


@pytest.fixture
def store() -> StateStore:
    return StateStore()


class TestStateStore:
    def test_put_get(self, store: StateStore) -> None:
        record = ManagementFeeRecord(rate_bps=100, last_settled=5)
        store.put(("fund-1", "MANAGEMENT"), record)
        assert store.get(("fund-1", "MANAGEMENT"), ManagementFeeRecord) == record

    def test_missing_key(self, store: StateStore) -> None:
        assert store.get(("fund-1", "MANAGEMENT"), ManagementFeeRecord) is None
        assert not store.contains(("fund-1", "MANAGEMENT"))

    def test_values_are_json(self, store: StateStore) -> None:
        store.put(("protocol_fee", "fund-1"), ProtocolFeeState(fee_bps=25, last_paid=10))
        assert store.raw(("protocol_fee", "fund-1")) == '{"fee_bps":25,"last_paid":10}'

    def test_delete_is_idempotent(self, store: StateStore) -> None:
        store.put(("a",), ProtocolFeeState(fee_bps=1, last_paid=0))
        store.delete(("a",))
        store.delete(("a",))
        assert not store.contains(("a",))

    def test_keys_by_prefix(self, store: StateStore) -> None:
        state = ProtocolFeeState(fee_bps=1, last_paid=0)
        store.put(("protocol_fee", "b"), state)
        store.put(("protocol_fee", "a"), state)
        store.put(("fee_manager", "a"), state)
        assert store.keys(("protocol_fee",)) == [("protocol_fee", "a"), ("protocol_fee", "b")]
        assert len(store.keys()) == 3


class TestTransaction:
    def test_commit(self, store: StateStore) -> None:
        with store.transaction():
            store.put(("a",), ProtocolFeeState(fee_bps=1, last_paid=0))
        assert store.contains(("a",))

    def test_rollback_on_error(self, store: StateStore) -> None:
        store.put(("a",), ProtocolFeeState(fee_bps=1, last_paid=0))

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.put(("a",), ProtocolFeeState(fee_bps=2, last_paid=9))
                store.put(("b",), ProtocolFeeState(fee_bps=3, last_paid=0))
                raise RuntimeError("boom")

        assert store.get(("a",), ProtocolFeeState) == ProtocolFeeState(fee_bps=1, last_paid=0)
        assert not store.contains(("b",))
