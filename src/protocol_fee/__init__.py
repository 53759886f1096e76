"""Protocol Fee Tracker — time-weighted protocol fee, independent of the Fee Manager."""

from src.protocol_fee.tracker import PROTOCOL_FEE_NAMESPACE, ProtocolFeeConfig, ProtocolFeeTracker

__all__ = [
    "PROTOCOL_FEE_NAMESPACE",
    "ProtocolFeeConfig",
    "ProtocolFeeTracker",
]
