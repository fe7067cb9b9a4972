"""Kernel receive timestamp extraction from socket ancillary data.

``recvmsg`` returns ancillary data as ``(level, type, data)`` triples. With
``SO_TIMESTAMP`` enabled the kernel attaches one ``SCM_TIMESTAMP`` record whose
payload is a native ``struct timeval``.
"""

from __future__ import annotations

import socket
import struct
from typing import Iterable, Optional, Tuple

from .packets import Timestamp

# struct timeval { time_t tv_sec; suseconds_t tv_usec; }
TIMEVAL = struct.Struct("@ll")

SO_TIMESTAMP = getattr(socket, "SO_TIMESTAMP", 29)
SCM_TIMESTAMP = getattr(socket, "SCM_TIMESTAMP", SO_TIMESTAMP)

AncillaryRecord = Tuple[int, int, bytes]


def control_buffer_size() -> int:
    return socket.CMSG_SPACE(TIMEVAL.size)


def encode_timeval(timestamp: Timestamp) -> bytes:
    return TIMEVAL.pack(timestamp.sec, timestamp.usec)


def get_kernel_receive_timestamp(ancdata: Iterable[AncillaryRecord]) -> Optional[Timestamp]:
    """Return the kernel timestamp carried by ``ancdata``, or ``None`` if absent."""

    for level, kind, data in ancdata:
        if level != socket.SOL_SOCKET or kind != SCM_TIMESTAMP:
            continue
        if len(data) != TIMEVAL.size:
            continue
        sec, usec = TIMEVAL.unpack(data)
        return Timestamp(sec=sec, usec=usec)
    return None
