"""
Fee Registry — registered fee instances and per-fund fee lists

Two layers:
- Fee types: one Fee instance per type identifier, shared by all funds
- Funds: FundFeeRecord under ("fee_manager", fund_id) holding the ordered
  fee types enabled for the fund and each fee's shares outstanding

Registration order of a fund's fees is dispatch order.
"""

import logging
from typing import Dict, Iterable, List

from src.core.domain.fee_records import FundFeeRecord
from src.core.errors import ConfigurationError
from src.fees.base import Fee
from src.storage.state_store import StateKey, StateStore

log = logging.getLogger(__name__)

FUND_RECORD_NAMESPACE = "fee_manager"


class FeeRegistry:
    """Fee instances by type identifier plus per-fund enabled fees."""

    def __init__(self, store: StateStore):
        self._store = store
        self._fees: Dict[str, Fee] = {}

    # -------------------------------------------------------------------------
    # Fee types
    # -------------------------------------------------------------------------

    def register(self, fee: Fee) -> None:
        if fee.fee_type in self._fees:
            raise ConfigurationError("fee type already registered", details={"fee_type": fee.fee_type})
        self._fees[fee.fee_type] = fee
        log.info("registered fee type %s", fee.fee_type)

    def register_all(self, fees: Iterable[Fee]) -> None:
        """Register several fees; none is registered if any is rejected."""
        fees = list(fees)
        seen = set()
        for fee in fees:
            if fee.fee_type in self._fees or fee.fee_type in seen:
                raise ConfigurationError(
                    "fee type already registered", details={"fee_type": fee.fee_type}
                )
            seen.add(fee.fee_type)
        for fee in fees:
            self.register(fee)

    def deregister(self, fee_type: str) -> None:
        if self._fees.pop(fee_type, None) is None:
            raise ConfigurationError("fee type not registered", details={"fee_type": fee_type})
        log.info("deregistered fee type %s", fee_type)

    def is_registered(self, fee_type: str) -> bool:
        return fee_type in self._fees

    def get(self, fee_type: str) -> Fee:
        fee = self._fees.get(fee_type)
        if fee is None:
            raise ConfigurationError("fee type not registered", details={"fee_type": fee_type})
        return fee

    def fee_types(self) -> List[str]:
        return list(self._fees)

    # -------------------------------------------------------------------------
    # Funds
    # -------------------------------------------------------------------------

    @staticmethod
    def fund_key(fund_id: str) -> StateKey:
        return (FUND_RECORD_NAMESPACE, fund_id)

    def has_fund(self, fund_id: str) -> bool:
        return self._store.contains(self.fund_key(fund_id))

    def get_fund_record(self, fund_id: str) -> FundFeeRecord:
        record = self._store.get(self.fund_key(fund_id), FundFeeRecord)
        return record if record is not None else FundFeeRecord()

    def put_fund_record(self, fund_id: str, record: FundFeeRecord) -> None:
        self._store.put(self.fund_key(fund_id), record)

    def delete_fund_record(self, fund_id: str) -> None:
        self._store.delete(self.fund_key(fund_id))

    def fees_for_fund(self, fund_id: str) -> List[Fee]:
        return [self.get(fee_type) for fee_type in self.get_fund_record(fund_id).fee_types]

    def funds_using(self, fee_type: str) -> List[str]:
        return [
            key[1]
            for key in self._store.keys((FUND_RECORD_NAMESPACE,))
            if fee_type in self.get_fund_record(key[1]).fee_types
        ]
