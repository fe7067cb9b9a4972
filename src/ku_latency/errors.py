"""Exception hierarchy shared by the receiver, aggregator and CLI."""

from __future__ import annotations


class KuLatencyError(Exception):
    """Base class for every error raised by the package."""


class ConfigError(KuLatencyError, ValueError):
    """Raised when the session configuration is invalid or unreadable."""


class InterfaceError(KuLatencyError):
    """Raised when an interface name cannot be resolved to an IPv4 address."""


class SocketError(KuLatencyError):
    """Raised when the datagram socket cannot be created or configured."""


class BindError(KuLatencyError):
    """Raised when the socket cannot be bound to the requested endpoint."""


class ReceiveError(KuLatencyError):
    """Raised when a single receive call fails.

    ``fatal`` is set when the socket itself is no longer usable and the
    measurement loop cannot continue.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class LogWriteError(KuLatencyError):
    """Raised when the log artifact cannot be written at shutdown."""


class LogCapacityExceeded(KuLatencyError):
    """Raised when the in-memory latency log is full."""


class NoSamplesError(KuLatencyError, ZeroDivisionError):
    """Raised when a mean is requested before any sample was observed."""
