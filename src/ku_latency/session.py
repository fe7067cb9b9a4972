"""Measurement loop tying the receiver, aggregator and log together."""

from __future__ import annotations

import enum
import logging
import sys
from typing import Optional, Protocol, TextIO

from .config import SessionConfig
from .errors import LogCapacityExceeded, LogWriteError, ReceiveError
from .metrics import LatencyAggregator, LatencyLog
from .packets import LatencySample, ReceivedPacket
from .report import SessionSummary, format_packet_report, write_log

logger = logging.getLogger(__name__)


class PacketReceiver(Protocol):
    def receive_one(self) -> ReceivedPacket:  # pragma: no cover - interface definition
        ...


class SessionState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class StopToken:
    """Stop flag checked by the loop between iterations.

    :meth:`set` only assigns an attribute, so it is safe to call from a signal
    handler.
    """

    def __init__(self) -> None:
        self._stopped = False

    def set(self) -> None:
        self._stopped = True

    @property
    def is_set(self) -> bool:
        return self._stopped


class LatencySession:
    """One measurement run.

    The loop receives a datagram, folds it into the statistics and then checks
    whether the packet limit was reached or a stop was requested. A blocked
    receive is never interrupted. The log artifact, when enabled, is written
    exactly once after the loop ends.
    """

    def __init__(
        self,
        config: SessionConfig,
        receiver: PacketReceiver,
        stop_token: Optional[StopToken] = None,
        output: Optional[TextIO] = None,
    ) -> None:
        self.config = config
        self.receiver = receiver
        self.stop_token = stop_token or StopToken()
        self.output = output if output is not None else sys.stdout
        self.log = LatencyLog(capacity=config.log_capacity) if config.log_enabled else None
        self.aggregator = LatencyAggregator(log=self.log)
        self.state = SessionState.IDLE
        self.skipped_errors = 0
        self.log_records_written = 0
        # Empty datagrams are measured but do not count towards packet_limit.
        self.counted_packets = 0

    def should_stop(self) -> bool:
        limit = self.config.packet_limit
        if limit and self.counted_packets >= limit:
            return True
        return self.stop_token.is_set

    def step(self) -> LatencySample:
        packet = self.receiver.receive_one()
        sample = self.aggregator.observe(packet)
        if packet.payload:
            self.counted_packets += 1
        if self.config.verbose:
            print(format_packet_report(packet, sample, self.aggregator), file=self.output)
        return sample

    def run(self) -> SessionSummary:
        pending: Optional[BaseException] = None
        self.state = SessionState.RUNNING
        try:
            self._loop()
        except BaseException as exc:
            pending = exc
            raise
        finally:
            # The log is flushed however the loop ended; an exception from the
            # loop takes precedence over a failed log write.
            self.state = SessionState.STOPPING
            try:
                self._flush_log()
            except LogWriteError as exc:
                if pending is None:
                    raise
                logger.error("%s", exc)
            finally:
                self.state = SessionState.STOPPED
        return self.summary()

    def _loop(self) -> None:
        while not self.should_stop():
            try:
                self.step()
            except ReceiveError as exc:
                if exc.fatal:
                    logger.error("%s; stopping", exc)
                    raise
                self.skipped_errors += 1
                logger.warning("Skipping datagram: %s", exc)
            except LogCapacityExceeded as exc:
                logger.error("%s; stopping", exc)
                return

    def summary(self) -> SessionSummary:
        return SessionSummary.from_aggregator(
            self.aggregator,
            skipped_errors=self.skipped_errors,
            log_records=self.log_records_written,
        )

    def _flush_log(self) -> None:
        if self.log is None:
            return
        self.log_records_written = write_log(self.config.log_path, self.log)
