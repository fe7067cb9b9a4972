"""Cumulative and rolling latency statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .errors import LogCapacityExceeded, NoSamplesError
from .packets import LatencySample, LogRecord, ReceivedPacket, extract_sequence_number

ROLLING_WINDOW_SIZE = 32
DEFAULT_LOG_CAPACITY = 1_000_000


class RollingWindow:
    """Fixed-size circular buffer of the most recent samples with an O(1) running sum.

    Unfilled slots hold zero, so :meth:`mean` reads low until ``capacity``
    samples have been pushed.
    """

    def __init__(self, capacity: int = ROLLING_WINDOW_SIZE) -> None:
        if capacity < 1:
            raise ValueError("Rolling window capacity must be at least 1")
        self.capacity = capacity
        self.slots: List[int] = [0] * capacity
        self.total = 0
        self.cursor = 0

    def push(self, value: int) -> None:
        self.total -= self.slots[self.cursor]
        self.slots[self.cursor] = value
        self.total += value
        self.cursor = (self.cursor + 1) % self.capacity

    def mean(self) -> float:
        return self.total / self.capacity


@dataclass
class CumulativeStats:
    total_usec: int = 0
    count: int = 0

    def add(self, latency_usec: int) -> None:
        self.total_usec += latency_usec
        self.count += 1

    def mean(self) -> float:
        if self.count == 0:
            raise NoSamplesError("No latency samples observed yet")
        return self.total_usec / self.count


@dataclass
class LatencyLog:
    """In-memory log of ``(sequence number, latency)`` records, flushed once at shutdown."""

    capacity: int = DEFAULT_LOG_CAPACITY
    records: List[LogRecord] = field(default_factory=list)

    def append(self, record: LogRecord) -> None:
        if len(self.records) >= self.capacity:
            raise LogCapacityExceeded(f"Latency log is full ({self.capacity} records)")
        self.records.append(record)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(self.records)


class LatencyAggregator:
    """Fold received packets into latency samples and aggregate views.

    When ``log`` is given, every sample with an extractable sequence number is
    appended to it. Samples without one still count towards the means.
    """

    def __init__(
        self,
        window_size: int = ROLLING_WINDOW_SIZE,
        log: Optional[LatencyLog] = None,
    ) -> None:
        self.cumulative = CumulativeStats()
        self.window = RollingWindow(window_size)
        self.log = log
        self.stale_count = 0

    @property
    def packet_count(self) -> int:
        return self.cumulative.count

    def observe(self, packet: ReceivedPacket) -> LatencySample:
        latency = packet.latency_usec
        self.cumulative.add(latency)
        self.window.push(latency)
        if packet.stale:
            self.stale_count += 1

        sample = LatencySample(
            latency_usec=latency,
            sequence_number=extract_sequence_number(packet.payload),
            stale=packet.stale,
        )
        if self.log is not None and sample.sequence_number is not None:
            self.log.append(LogRecord(sample.sequence_number, latency))
        return sample

    def mean_all_time(self) -> float:
        return self.cumulative.mean()

    def mean_rolling(self) -> float:
        return self.window.mean()
