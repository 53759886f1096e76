"""
Error taxonomy for the valuation and fee-settlement engine.

Classes:
- FeeEngineError (base)
- ConfigurationError       — fatal to a registration / attach operation
- InvariantViolationError  — fatal to the whole dispatch
- FeeSettlementError       — unexpected failure inside a fee, wrapped
- ReentrantDispatchError   — nested dispatch on the same fund
- InvalidValuationError    — a fee needed the fund value and it was invalid

Invalid valuations are NOT exceptions inside the Value Interpreter: it returns
(0, False). InvalidValuationError is raised only by callers that cannot proceed
without a value (the Fee Manager).

Every error carries a stable `code` and a `details` mapping so it can be logged
or surfaced without string parsing.
"""

import json
from typing import Any, Dict, Mapping, Optional


class FeeEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "FEE_ENGINE_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        if self.details:
            packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class ConfigurationError(FeeEngineError):
    """
    Invalid registration or fund configuration.

    Duplicate fee registration, unregistered fee type, malformed settings,
    unsupported denomination asset, inconsistent asset precision.
    """

    code = "CONFIGURATION_ERROR"


class InvariantViolationError(FeeEngineError):
    """
    Arithmetic or ledger invariant broken.

    Negative amounts, values outside uint256, zero divisors, burns beyond
    balance, time running backwards.
    """

    code = "INVARIANT_VIOLATION"


class FeeSettlementError(InvariantViolationError):
    """A fee failed in settle/update/payout with an unexpected exception."""

    code = "FEE_SETTLEMENT_ERROR"


class ReentrantDispatchError(FeeEngineError):
    """A dispatch (or protocol fee payment) was entered twice for one fund."""

    code = "REENTRANT_DISPATCH"


class InvalidValuationError(FeeEngineError):
    """The fund value was required but could not be computed (stale/missing rate)."""

    code = "INVALID_VALUATION"
