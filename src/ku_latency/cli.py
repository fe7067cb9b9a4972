"""Command line entry point for the latency probe."""

from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path
from typing import Any, Dict, List

from .capture import TimestampedReceiver
from .config import build_config, load_config_file
from .errors import BindError, ConfigError, InterfaceError, LogWriteError, ReceiveError, SocketError
from .session import LatencySession, StopToken

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILED = 1
EXIT_RECEIVE_FAILED = 2
EXIT_LOG_WRITE_FAILED = 3


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ku-latency",
        description="Measure kernel to userspace receive latency of UDP datagrams.",
        epilog="With no options the probe listens on all interfaces, port 1025.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-i", "--ip", dest="address", help="IP address of the interface to listen on")
    group.add_argument("-e", "--interface", help="Name of the interface to listen on (e.g. eth0)")
    parser.add_argument("-p", "--port", type=int, default=None, help="UDP port to listen on")
    parser.add_argument(
        "-l",
        "--log",
        dest="log_enabled",
        action="store_true",
        default=None,
        help="Log (RTP sequence number, kernel latency) for each packet",
    )
    parser.add_argument(
        "-n", "--count", dest="packet_limit", type=int, default=None, help="Stop after N packets (default 3000)"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=None, help="Print kernel latency stats for every packet"
    )
    parser.add_argument("-c", "--config", type=Path, default=None, help="YAML config file")
    parser.add_argument("--log-file", dest="log_path", type=Path, default=None, help="Log file path")
    parser.add_argument("--log-capacity", type=int, default=None, help="Maximum number of log records")
    parser.add_argument("--debug", action="store_true", help="Enable debug diagnostics")
    return parser


def _install_signal_handlers(token: StopToken) -> None:
    def _handler(signum: int, frame: Any) -> None:
        token.set()
        # A blocked recvmsg is retried after the handler; a second signal kills.
        signal.signal(signum, signal.SIG_DFL)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: List[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    overrides: Dict[str, Any] = {
        key: getattr(args, key)
        for key in ("address", "interface", "port", "log_enabled", "packet_limit", "verbose", "log_path", "log_capacity")
    }
    try:
        file_values = load_config_file(args.config) if args.config else {}
        config = build_config(file_values, overrides)
        receiver = TimestampedReceiver.open(config)
    except (ConfigError, InterfaceError, SocketError, BindError) as exc:
        logger.error("%s", exc)
        return EXIT_STARTUP_FAILED

    token = StopToken()
    _install_signal_handlers(token)
    session = LatencySession(config, receiver, stop_token=token)
    exit_code = EXIT_OK
    with receiver:
        try:
            session.run()
        except ReceiveError as exc:
            logger.error("Measurement aborted: %s", exc)
            exit_code = EXIT_RECEIVE_FAILED
        except LogWriteError as exc:
            logger.error("%s", exc)
            exit_code = EXIT_LOG_WRITE_FAILED

    print(session.summary().to_text())
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
