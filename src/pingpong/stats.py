from __future__ import annotations

import statistics
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Optional

from . import config
from .ping import PingError, PingResult, PingSuccess, PingTimeout


class ConnectionQuality(Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def color(self) -> str:
        return {
            ConnectionQuality.GOOD: "green",
            ConnectionQuality.FAIR: "yellow",
            ConnectionQuality.POOR: "red",
        }[self]

    @property
    def symbol(self) -> str:
        return {
            ConnectionQuality.GOOD: "●",
            ConnectionQuality.FAIR: "◐",
            ConnectionQuality.POOR: "○",
        }[self]


@dataclass(frozen=True)
class RttStats:
    """RTT summary in milliseconds. All zero when there are no replies."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    median: float = 0.0
    jitter: float = 0.0  # population standard deviation


def _rtt(result: PingResult) -> Optional[float]:
    if isinstance(result, PingSuccess):
        return result.rtt_ms
    if isinstance(result, (PingTimeout, PingError)):
        return None
    raise TypeError(f"not a ping result: {result!r}")


class HostStatistics:
    """Bounded result history for one host plus lifetime counters.

    The counters cover every result ever recorded; the history keeps only
    the most recent ``capacity`` results. Derived metrics are recomputed
    from the history on each call.
    """

    def __init__(self, capacity: int = config.HISTORY_SIZE):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.history: Deque[PingResult] = deque(maxlen=capacity)
        self.total = 0
        self.successful = 0
        self.timed_out = 0
        self.errored = 0

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"HostStatistics(total={self.total}, successful={self.successful}, "
            f"timed_out={self.timed_out}, errored={self.errored}, "
            f"history={len(self.history)}/{self.capacity})"
        )

    def record(self, result: PingResult):
        if isinstance(result, PingSuccess):
            self.successful += 1
        elif isinstance(result, PingTimeout):
            self.timed_out += 1
        elif isinstance(result, PingError):
            self.errored += 1
        else:
            raise TypeError(f"not a ping result: {result!r}")
        self.total += 1
        self.history.append(result)  # deque drops the oldest once full

    def copy(self) -> "HostStatistics":
        other = HostStatistics(self.capacity)
        other.history.extend(self.history)
        other.total = self.total
        other.successful = self.successful
        other.timed_out = self.timed_out
        other.errored = self.errored
        return other

    @property
    def last_result(self) -> Optional[PingResult]:
        return self.history[-1] if self.history else None

    @property
    def consecutive_failures(self) -> int:
        """Failures since the last success, counted within the history."""
        count = 0
        for result in reversed(self.history):
            if isinstance(result, PingSuccess):
                break
            count += 1
        return count

    def packet_loss_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.total - self.successful) / self.total * 100.0

    def packet_loss_percent_recent(self, window: int = config.QUALITY_WINDOW) -> float:
        recent = self.recent_results(window)
        if not recent:
            return 0.0
        successful = sum(1 for r in recent if isinstance(r, PingSuccess))
        return (len(recent) - successful) / len(recent) * 100.0

    def recent_results(self, count: int) -> list[PingResult]:
        """The ``count`` most recent results, newest first."""
        if count <= 0:
            return []
        out = []
        for result in reversed(self.history):
            if len(out) == count:
                break
            out.append(result)
        return out

    def rtt_stats(self) -> RttStats:
        rtts = [rtt for rtt in map(_rtt, self.history) if rtt is not None]
        if not rtts:
            return RttStats()
        ordered = sorted(rtts)
        return RttStats(
            min=ordered[0],
            max=ordered[-1],
            avg=statistics.fmean(rtts),
            median=statistics.median(ordered),
            jitter=statistics.pstdev(rtts),
        )

    def connection_quality(self) -> ConnectionQuality:
        loss = self.packet_loss_percent_recent(config.QUALITY_WINDOW)
        avg = self.rtt_stats().avg
        if loss > config.POOR_LOSS_PCT or avg > config.POOR_RTT_MS:
            return ConnectionQuality.POOR
        if loss > config.FAIR_LOSS_PCT or avg > config.FAIR_RTT_MS:
            return ConnectionQuality.FAIR
        return ConnectionQuality.GOOD

    def rtt_history_for_graph(self, points: int) -> list[Optional[float]]:
        """Downsample the history to ``points`` RTT values, oldest first.

        Lost probes and padding are None.
        """
        if points <= 0:
            return []
        total = len(self.history)
        step = 1 if total <= points else total // points
        graph = [_rtt(self.history[i]) for i in range(0, total, step)][:points]
        graph.extend([None] * (points - len(graph)))
        return graph
