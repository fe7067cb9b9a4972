from __future__ import annotations

import socket
from typing import List, Optional, Sequence, Union

from ku_latency.packets import ReceivedPacket, Timestamp, USEC_PER_SEC
from ku_latency.timestamps import SCM_TIMESTAMP, encode_timeval

BASE_TIME = Timestamp(sec=1_700_000_000, usec=999_990)


def shifted(timestamp: Timestamp, usec: int) -> Timestamp:
    sec, rem = divmod(timestamp.sec * USEC_PER_SEC + timestamp.usec + usec, USEC_PER_SEC)
    return Timestamp(sec=sec, usec=rem)


def rtp_payload(sequence_number: int, size: int = 12) -> bytes:
    header = bytes([0x80, 0x60]) + sequence_number.to_bytes(2, "big")
    return header + b"\x00" * max(0, size - len(header))


def make_packet(
    latency_usec: int,
    payload: Optional[bytes] = None,
    kernel_time: Timestamp = BASE_TIME,
    stale: bool = False,
) -> ReceivedPacket:
    return ReceivedPacket(
        payload=rtp_payload(1) if payload is None else payload,
        kernel_time=kernel_time,
        user_time=shifted(kernel_time, latency_usec),
        stale=stale,
    )


def timestamp_record(timestamp: Timestamp) -> tuple[int, int, bytes]:
    return (socket.SOL_SOCKET, SCM_TIMESTAMP, encode_timeval(timestamp))


class FakeSocket:
    """Socket stand-in returning scripted ``recvmsg`` results."""

    def __init__(self, messages: Sequence[Union[tuple, Exception]]) -> None:
        self.messages = list(messages)
        self.calls: List[tuple[int, int]] = []
        self.closed = False

    def recvmsg(self, bufsize: int, ancbufsize: int = 0) -> tuple:
        self.calls.append((bufsize, ancbufsize))
        item = self.messages.pop(0)
        if isinstance(item, Exception):
            raise item
        data, ancdata = item
        flags = socket.MSG_TRUNC if len(data) > bufsize else 0
        return data[:bufsize], ancdata, flags, ("127.0.0.1", 40000)

    def getsockname(self) -> tuple[str, int]:
        return ("127.0.0.1", 1025)

    def close(self) -> None:
        self.closed = True


class ScriptedReceiver:
    """Receiver stand-in handing out prepared packets or raising prepared errors."""

    def __init__(self, items: Sequence[Union[ReceivedPacket, Exception]]) -> None:
        self.items = list(items)
        self.closed = False

    def receive_one(self) -> ReceivedPacket:
        if not self.items:
            raise AssertionError("receive_one called after the script ran out")
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "ScriptedReceiver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
