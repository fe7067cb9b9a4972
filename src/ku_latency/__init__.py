"""Kernel to userspace UDP receive latency probe."""

from .packets import LatencySample, LogRecord, ReceivedPacket, Timestamp, extract_sequence_number
from .timestamps import get_kernel_receive_timestamp
from .capture import TimestampedReceiver
from .config import SessionConfig, build_config, load_config_file, resolve_interface_address
from .metrics import CumulativeStats, LatencyAggregator, LatencyLog, RollingWindow
from .session import LatencySession, SessionState, StopToken
from .report import SessionSummary, write_log

__all__ = [
    "Timestamp",
    "ReceivedPacket",
    "LatencySample",
    "LogRecord",
    "extract_sequence_number",
    "get_kernel_receive_timestamp",
    "TimestampedReceiver",
    "SessionConfig",
    "build_config",
    "load_config_file",
    "resolve_interface_address",
    "RollingWindow",
    "CumulativeStats",
    "LatencyLog",
    "LatencyAggregator",
    "LatencySession",
    "SessionState",
    "StopToken",
    "SessionSummary",
    "write_log",
]
