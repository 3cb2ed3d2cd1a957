from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List

from shared.models import ChannelRange


@dataclass
class RunningStat:
    """Count, sum and sum of squares of the values seen for one channel."""

    count: int = 0
    sum: float = 0.0
    sumsq: float = 0.0

    def add(self, value: float) -> None:
        value = float(value)
        self.count += 1
        self.sum += value
        self.sumsq += value * value

    def mean(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def meansq(self) -> float:
        return self.sumsq / self.count if self.count else 0.0

    def rms(self) -> float:
        # Mean square minus squared mean: neither Bessel corrected nor square rooted.
        valm = self.mean()
        return self.meansq() - valm * valm

    def dmean(self) -> float:
        if not self.count:
            return 0.0
        return math.sqrt(max(self.rms(), 0.0) / self.count)


@dataclass
class AggregationState:
    """Everything the metric tool changes after construction."""

    call_count: int = 0
    first_run: int = 0
    last_run: int = 0
    first_event: int = 0
    last_event: int = 0
    event_count: int = 0
    run_count: int = 0
    range_stats: Dict[ChannelRange, List[RunningStat]] = field(default_factory=dict)

    def update(self, run: int, event: int) -> None:
        if self.call_count == 0:
            self.first_run = run
            self.first_event = event
            self.run_count = 1
            self.event_count = 1
        else:
            if run != self.last_run:
                self.run_count += 1
            if event != self.last_event:
                self.event_count += 1
        self.last_run = run
        self.last_event = event
        self.call_count += 1

    def stats_for(self, channel_range: ChannelRange) -> List[RunningStat]:
        stats = self.range_stats.get(channel_range)
        if stats is None:
            stats = [RunningStat() for _ in range(channel_range.size)]
            self.range_stats[channel_range] = stats
        return stats

    def snapshot(self) -> Dict[str, int]:
        return {
            "call_count": self.call_count,
            "first_run": self.first_run,
            "last_run": self.last_run,
            "first_event": self.first_event,
            "last_event": self.last_event,
            "event_count": self.event_count,
            "run_count": self.run_count,
            "ranges": len(self.range_stats),
        }


__all__ = ["RunningStat", "AggregationState"]
