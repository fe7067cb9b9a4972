"""Timestamped UDP receiver."""

from __future__ import annotations

import errno
import logging
import socket
from typing import Any, Optional

from .config import DEFAULT_PAYLOAD_SIZE, SessionConfig
from .errors import BindError, ReceiveError, SocketError
from .packets import ReceivedPacket, Timestamp
from .timestamps import SO_TIMESTAMP, control_buffer_size, get_kernel_receive_timestamp

logger = logging.getLogger(__name__)

SO_RCVBUFFORCE = getattr(socket, "SO_RCVBUFFORCE", 33)

# errno values meaning the socket itself is unusable.
_FATAL_ERRNOS = {errno.EBADF, errno.ENOTSOCK, errno.EINVAL, errno.EFAULT}


def _enlarge_receive_buffer(sock: socket.socket, size: int) -> int:
    """Ask for a ``size`` byte receive buffer and return what the kernel granted.

    ``SO_RCVBUFFORCE`` needs CAP_NET_ADMIN. Without it the request falls back
    to ``SO_RCVBUF``, which the kernel caps at ``net.core.rmem_max``.
    """

    try:
        sock.setsockopt(socket.SOL_SOCKET, SO_RCVBUFFORCE, size)
    except OSError as exc:
        logger.debug("setsockopt(SO_RCVBUFFORCE) failed: %s", exc.strerror)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, size)
        except OSError as fallback_exc:
            logger.warning("setsockopt(SO_RCVBUF) failed: %s", fallback_exc.strerror)
    granted = sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF)
    if granted < size:
        logger.warning("Receive buffer is %d bytes, requested %d", granted, size)
    else:
        logger.info("Receive buffer is %d bytes", granted)
    return granted


class TimestampedReceiver:
    """Receive datagrams together with their kernel and user-space receive times.

    ``sock`` is normally created by :meth:`open`; anything with a compatible
    ``recvmsg`` method is accepted.
    """

    def __init__(
        self,
        sock: Any,
        payload_size: int = DEFAULT_PAYLOAD_SIZE,
        recv_buffer_size: Optional[int] = None,
    ) -> None:
        self.socket = sock
        self.payload_size = payload_size
        self.recv_buffer_size = recv_buffer_size
        self._control_size = control_buffer_size()
        self._last_kernel_time: Optional[Timestamp] = None

    @classmethod
    def open(cls, config: SessionConfig) -> "TimestampedReceiver":
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise SocketError(f"socket() failed: {exc.strerror}") from exc

        try:
            granted = _enlarge_receive_buffer(sock, config.recv_buffer_size)
            try:
                sock.setsockopt(socket.SOL_SOCKET, SO_TIMESTAMP, 1)
            except OSError as exc:
                raise SocketError(f"setsockopt(SO_TIMESTAMP) failed: {exc.strerror}") from exc
            try:
                sock.bind(config.endpoint)
            except OSError as exc:
                raise BindError(
                    f"bind() to {config.address}:{config.port} failed: {exc.strerror}"
                ) from exc
        except BaseException:
            sock.close()
            raise

        receiver = cls(sock, payload_size=config.payload_size, recv_buffer_size=granted)
        logger.info("Listening to: %s:%d", *receiver.local_address)
        return receiver

    @property
    def local_address(self) -> tuple[str, int]:
        return self.socket.getsockname()

    def receive_one(self) -> ReceivedPacket:
        """Block until one datagram arrives and return it stamped.

        Datagrams longer than ``payload_size`` are truncated. When the kernel
        attached no timestamp the previous one is reused and the packet is
        marked ``stale``.
        """

        try:
            payload, ancdata, flags, _address = self.socket.recvmsg(self.payload_size, self._control_size)
            user_time = Timestamp.now()
        except OSError as exc:
            raise ReceiveError(
                f"recvmsg() failed: {exc.strerror or exc}",
                fatal=exc.errno in _FATAL_ERRNOS,
            ) from exc

        if flags & socket.MSG_TRUNC:
            logger.debug("Datagram truncated to %d bytes", self.payload_size)
        if flags & socket.MSG_CTRUNC:
            logger.debug("Ancillary data truncated")

        kernel_time = get_kernel_receive_timestamp(ancdata)
        stale = kernel_time is None
        if kernel_time is None:
            if self._last_kernel_time is None:
                raise ReceiveError("Datagram carried no kernel timestamp")
            kernel_time = self._last_kernel_time
            logger.warning("No kernel timestamp on datagram, reusing %s", kernel_time)
        self._last_kernel_time = kernel_time

        return ReceivedPacket(payload=payload, kernel_time=kernel_time, user_time=user_time, stale=stale)

    def close(self) -> None:
        self.socket.close()

    def __enter__(self) -> "TimestampedReceiver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
