"""Channel marker lines (APA, FEMB and plane boundaries) for metric plots."""
from __future__ import annotations

from typing import List, Sequence

from shared.models import ChannelRange


def line_positions(channel_range: ChannelRange, modulus: int, pattern: Sequence[int]) -> List[int]:
    """Channels inside ``channel_range`` where marker lines are drawn.

    With ``modulus == 0`` the pattern entries are used directly. Otherwise a
    line is drawn at every ``N*modulus + p`` for any integer ``N`` and pattern
    entry ``p``. Bounds are inclusive; the result is sorted and unique.
    """
    if modulus < 0:
        raise ValueError("modulus must be non-negative")
    first, last = channel_range.first, channel_range.last
    positions = set()
    if modulus == 0:
        for p in pattern:
            if first <= p <= last:
                positions.add(int(p))
        return sorted(positions)
    for p in pattern:
        # Smallest N*modulus + p that is >= first.
        start = p + ((first - p + modulus - 1) // modulus) * modulus
        positions.update(range(start, last + 1, modulus))
    return sorted(positions)


__all__ = ["line_positions"]
