from __future__ import annotations

import errno
import socket
import sys

import pytest

from ku_latency.capture import TimestampedReceiver
from ku_latency.config import SessionConfig
from ku_latency.errors import BindError, ReceiveError
from ku_latency.packets import Timestamp

from .conftest import FakeSocket, rtp_payload, timestamp_record

linux_only = pytest.mark.skipif(not sys.platform.startswith("linux"), reason="SO_TIMESTAMP receive path is Linux only")


def test_receive_one_pairs_kernel_and_user_time() -> None:
    kernel = Timestamp(sec=1_700_000_000, usec=1)
    fake = FakeSocket([(rtp_payload(3), [timestamp_record(kernel)])])
    receiver = TimestampedReceiver(fake, payload_size=4096)

    before = Timestamp.now()
    packet = receiver.receive_one()

    assert packet.payload == rtp_payload(3)
    assert packet.kernel_time == kernel
    assert packet.user_time.usec_since(before) >= 0
    assert not packet.stale
    assert fake.calls[0][0] == 4096


def test_long_datagrams_are_truncated() -> None:
    fake = FakeSocket([(b"x" * 100, [timestamp_record(Timestamp(1, 0))])])
    receiver = TimestampedReceiver(fake, payload_size=16)
    assert receiver.receive_one().payload == b"x" * 16


def test_missing_timestamp_reuses_previous_and_flags_stale() -> None:
    kernel = Timestamp(sec=50, usec=500)
    fake = FakeSocket([(b"abcd", [timestamp_record(kernel)]), (b"efgh", [])])
    receiver = TimestampedReceiver(fake)
    receiver.receive_one()
    packet = receiver.receive_one()
    assert packet.stale
    assert packet.kernel_time == kernel


def test_missing_first_timestamp_is_a_transient_error() -> None:
    receiver = TimestampedReceiver(FakeSocket([(b"abcd", [])]))
    with pytest.raises(ReceiveError) as info:
        receiver.receive_one()
    assert not info.value.fatal


@pytest.mark.parametrize(
    ("error", "fatal"),
    [
        (OSError(errno.EBADF, "Bad file descriptor"), True),
        (OSError(errno.ENOTSOCK, "Socket operation on non-socket"), True),
        (OSError(errno.ENOBUFS, "No buffer space available"), False),
    ],
)
def test_receive_errors_are_classified(error: OSError, fatal: bool) -> None:
    receiver = TimestampedReceiver(FakeSocket([error]))
    with pytest.raises(ReceiveError) as info:
        receiver.receive_one()
    assert info.value.fatal is fatal
    assert info.value.__cause__ is error


def test_context_manager_closes_socket() -> None:
    fake = FakeSocket([])
    with TimestampedReceiver(fake) as receiver:
        assert receiver.local_address == ("127.0.0.1", 1025)
    assert fake.closed


@linux_only
def test_loopback_datagram_carries_kernel_timestamp() -> None:
    config = SessionConfig(address="127.0.0.1", port=0, recv_buffer_size=65536)
    with TimestampedReceiver.open(config) as receiver:
        receiver.socket.settimeout(5.0)
        assert receiver.recv_buffer_size > 0
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            sender.sendto(rtp_payload(0x0102), receiver.local_address)
        packet = receiver.receive_one()

    assert packet.payload == rtp_payload(0x0102)
    assert not packet.stale
    assert -1_000_000 < packet.latency_usec < 5_000_000


@linux_only
def test_bind_conflict_raises_bind_error() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as holder:
        holder.bind(("127.0.0.1", 0))
        port = holder.getsockname()[1]
        with pytest.raises(BindError) as info:
            TimestampedReceiver.open(SessionConfig(address="127.0.0.1", port=port))
    assert str(port) in str(info.value)
