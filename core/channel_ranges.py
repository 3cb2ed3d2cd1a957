"""Channel range lookup.

The metric tool only needs ``resolve(name) -> ChannelRange``; hosts provide
their own catalog (geometry service, database, ...). The static catalog here
covers tests, demos and detectors with a fixed layout.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Protocol

from shared.models import ChannelRange

logger = logging.getLogger(__name__)

# protoDUNE-SP readout layout.
APA_COUNT = 6
CHANNELS_PER_APA = 2560
PLANE_SIZES = (("u", 800), ("v", 800), ("z", 960))


class ChannelRangeCatalog(Protocol):
    def resolve(self, name: str) -> ChannelRange:
        """Return the named range or raise KeyError."""
        ...


class StaticChannelRangeCatalog:
    """Dictionary-backed catalog keyed by range name."""

    def __init__(self, ranges: Iterable[ChannelRange] = ()) -> None:
        self._lock = threading.Lock()
        self._ranges: Dict[str, ChannelRange] = {}
        for channel_range in ranges:
            self.add(channel_range)

    def add(self, channel_range: ChannelRange) -> None:
        with self._lock:
            if channel_range.name in self._ranges:
                logger.debug("Replacing channel range %s", channel_range.name)
            self._ranges[channel_range.name] = channel_range

    def resolve(self, name: str) -> ChannelRange:
        with self._lock:
            channel_range = self._ranges.get(name)
        if channel_range is None:
            raise KeyError(f"No channel range named {name!r}")
        return channel_range

    def names(self) -> List[str]:
        with self._lock:
            return list(self._ranges)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._ranges

    def __len__(self) -> int:
        with self._lock:
            return len(self._ranges)


def protodune_ranges() -> List[ChannelRange]:
    """Whole-APA and per-plane ranges for the six protoDUNE-SP APAs."""
    ranges: List[ChannelRange] = []
    for apa in range(1, APA_COUNT + 1):
        first = (apa - 1) * CHANNELS_PER_APA
        ranges.append(ChannelRange(first, first + CHANNELS_PER_APA - 1, f"apa{apa}", f"APA {apa}"))
        start = first
        for plane, size in PLANE_SIZES:
            ranges.append(ChannelRange(start, start + size - 1, f"apa{apa}{plane}", f"APA {apa}{plane}"))
            start += size
    return ranges


__all__ = ["ChannelRangeCatalog", "StaticChannelRangeCatalog", "protodune_ranges"]
