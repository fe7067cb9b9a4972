"""Session configuration: defaults, YAML config files and interface resolution."""

from __future__ import annotations

import fcntl
import ipaddress
import logging
import socket
import struct
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError, InterfaceError
from .metrics import DEFAULT_LOG_CAPACITY

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "0.0.0.0"
DEFAULT_PORT = 1025
DEFAULT_PACKET_LIMIT = 3000
DEFAULT_LOG_PATH = "ku-latency.log"
DEFAULT_RECV_BUFFER_SIZE = 1 << 20
DEFAULT_PAYLOAD_SIZE = 4096

SIOCGIFADDR = 0x8915
IFNAMSIZ = 16


@dataclass(frozen=True)
class SessionConfig:
    """Resolved, read-only settings for one measurement run.

    ``packet_limit`` of 0 keeps the loop running until it is stopped
    externally.
    """

    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    packet_limit: int = DEFAULT_PACKET_LIMIT
    verbose: bool = False
    log_enabled: bool = False
    log_path: Path = Path(DEFAULT_LOG_PATH)
    log_capacity: int = DEFAULT_LOG_CAPACITY
    recv_buffer_size: int = DEFAULT_RECV_BUFFER_SIZE
    payload_size: int = DEFAULT_PAYLOAD_SIZE

    def __post_init__(self) -> None:
        if not isinstance(self.address, str):
            raise ConfigError(f"Address must be a dotted-quad string, got {self.address!r}")
        for name in ("verbose", "log_enabled"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false, got {getattr(self, name)!r}")
        for name in ("port", "packet_limit", "log_capacity", "recv_buffer_size", "payload_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        try:
            ipaddress.IPv4Address(self.address)
        except ValueError as exc:
            raise ConfigError(f"Invalid IPv4 address '{self.address}'") from exc
        if not 0 <= self.port <= 0xFFFF:
            raise ConfigError(f"Port {self.port} is out of range")
        if self.packet_limit < 0:
            raise ConfigError("Packet limit must not be negative")
        if self.log_capacity < 1:
            raise ConfigError("Log capacity must be at least 1")
        if self.recv_buffer_size < 1:
            raise ConfigError("Receive buffer size must be positive")
        if self.payload_size < 1:
            raise ConfigError("Payload size must be positive")
        object.__setattr__(self, "log_path", Path(self.log_path))

    @property
    def endpoint(self) -> tuple[str, int]:
        return (self.address, self.port)


_CONFIG_KEYS = {item.name for item in fields(SessionConfig)} | {"interface"}


def load_config_file(path: Path | str) -> Dict[str, Any]:
    """Read a YAML mapping of :class:`SessionConfig` fields.

    An ``interface`` key may be used instead of ``address``.
    """

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc.strerror}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error parsing config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    unknown = sorted(set(data) - _CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    logger.info("Loaded config: %s", path)
    return data


def resolve_interface_address(name: str) -> str:
    """Return the IPv4 address assigned to interface ``name`` (``SIOCGIFADDR``)."""

    encoded = name.encode("ascii", errors="replace")
    if not encoded or len(encoded) > IFNAMSIZ - 1:
        raise InterfaceError(f"Invalid interface name '{name}'")
    request = struct.pack("256s", encoded)
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            result = fcntl.ioctl(sock.fileno(), SIOCGIFADDR, request)
        except OSError as exc:
            raise InterfaceError(f"ioctl(SIOCGIFADDR) failed for interface '{name}': {exc.strerror}") from exc
    # struct ifreq: 16 byte name, then sockaddr_in (family, port, addr).
    return socket.inet_ntoa(result[20:24])


def build_config(
    file_values: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SessionConfig:
    """Merge config file values with explicit overrides into a :class:`SessionConfig`.

    Overrides whose value is ``None`` are ignored. An ``interface`` entry is
    resolved to its address and takes precedence over ``address`` from the
    same source.
    """

    values: Dict[str, Any] = {}
    for source in (file_values or {}, overrides or {}):
        values.update(
            (key, value) for key, value in source.items() if key != "interface" and value is not None
        )
        interface = source.get("interface")
        if interface is not None:
            values["address"] = resolve_interface_address(interface)
            logger.debug("Interface %s resolved to %s", interface, values["address"])
    try:
        return SessionConfig(**values)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc
