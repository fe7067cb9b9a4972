"""Data models for received datagrams and the latency values derived from them."""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass
from typing import Optional

USEC_PER_SEC = 1_000_000

# Second 16-bit word of an RTP header.
SEQUENCE_OFFSET = 2
_SEQUENCE = struct.Struct("!H")


@dataclass(frozen=True, slots=True)
class Timestamp:
    """Wall clock value with microsecond resolution, shaped like ``struct timeval``."""

    sec: int
    usec: int

    @classmethod
    def now(cls) -> "Timestamp":
        sec, usec = divmod(time.time_ns() // 1000, USEC_PER_SEC)
        return cls(sec=sec, usec=usec)

    def usec_since(self, earlier: "Timestamp") -> int:
        """Return ``self - earlier`` in whole microseconds. The result may be negative."""

        return (self.sec - earlier.sec) * USEC_PER_SEC + (self.usec - earlier.usec)

    def __str__(self) -> str:
        return f"{self.sec}.{self.usec:06d}"


@dataclass(frozen=True, slots=True)
class ReceivedPacket:
    """A datagram together with the kernel and user-space receive times.

    ``stale`` is set when the kernel supplied no timestamp for this receive
    and ``kernel_time`` was carried over from the previous datagram.
    """

    payload: bytes
    kernel_time: Timestamp
    user_time: Timestamp
    stale: bool = False

    @property
    def latency_usec(self) -> int:
        return self.user_time.usec_since(self.kernel_time)


@dataclass(frozen=True, slots=True)
class LatencySample:
    latency_usec: int
    sequence_number: Optional[int] = None
    stale: bool = False


@dataclass(frozen=True, slots=True)
class LogRecord:
    sequence_number: int
    latency_usec: int

    def to_line(self) -> str:
        return f"{self.sequence_number} {self.latency_usec}\n"


def extract_sequence_number(payload: bytes) -> Optional[int]:
    """Read the RTP sequence number (bytes 2-3, network byte order).

    Returns ``None`` for payloads too short to carry one. No other part of the
    payload is inspected.
    """

    if len(payload) < SEQUENCE_OFFSET + _SEQUENCE.size:
        return None
    return _SEQUENCE.unpack_from(payload, SEQUENCE_OFFSET)[0]
