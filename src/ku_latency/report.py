"""Human-readable reports and the end-of-run log artifact."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import LogWriteError, NoSamplesError
from .metrics import LatencyAggregator
from .packets import LatencySample, LogRecord, ReceivedPacket

logger = logging.getLogger(__name__)


def format_packet_report(packet: ReceivedPacket, sample: LatencySample, aggregator: LatencyAggregator) -> str:
    stats = aggregator.cumulative
    lines: List[str] = [
        "",
        f"time_kernel                  : {packet.kernel_time}{' (stale)' if sample.stale else ''}",
        f"time_user                    : {packet.user_time}",
        f"Time diff                    : {sample.latency_usec} us",
        f"Total Average                : {stats.total_usec}/{stats.count} = {aggregator.mean_all_time():.2f} us",
        f"Rolling Average ({aggregator.window.capacity} samples) : {aggregator.mean_rolling():.2f} us",
    ]
    return "\n".join(lines)


@dataclass
class SessionSummary:
    packets: int
    mean_all_time_usec: Optional[float]
    mean_rolling_usec: float
    stale_packets: int
    skipped_errors: int
    log_records: int

    @classmethod
    def from_aggregator(
        cls,
        aggregator: LatencyAggregator,
        *,
        skipped_errors: int = 0,
        log_records: int = 0,
    ) -> "SessionSummary":
        try:
            mean_all_time: Optional[float] = aggregator.mean_all_time()
        except NoSamplesError:
            mean_all_time = None
        return cls(
            packets=aggregator.packet_count,
            mean_all_time_usec=mean_all_time,
            mean_rolling_usec=aggregator.mean_rolling(),
            stale_packets=aggregator.stale_count,
            skipped_errors=skipped_errors,
            log_records=log_records,
        )

    def to_text(self) -> str:
        mean = "n/a" if self.mean_all_time_usec is None else f"{self.mean_all_time_usec:.2f} us"
        lines = [
            f"Packets received             : {self.packets}",
            f"Total Average                : {mean}",
            f"Rolling Average              : {self.mean_rolling_usec:.2f} us",
        ]
        if self.stale_packets:
            lines.append(f"Stale kernel timestamps      : {self.stale_packets}")
        if self.skipped_errors:
            lines.append(f"Skipped receive errors       : {self.skipped_errors}")
        return "\n".join(lines)


def write_log(path: Path | str, records: Iterable[LogRecord]) -> int:
    """Write ``records`` to ``path`` in one pass and return how many were written."""

    path = Path(path)
    body = "".join(record.to_line() for record in records)
    try:
        with path.open("w", encoding="ascii") as handle:
            handle.write(body)
    except OSError as exc:
        raise LogWriteError(f"Cannot write log file {path}: {exc.strerror}") from exc
    count = body.count("\n")
    logger.info("Wrote %d log records to %s", count, path)
    return count
