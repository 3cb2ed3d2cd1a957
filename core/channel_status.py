from __future__ import annotations

from typing import AbstractSet, Iterable, Protocol

from shared.models import ChannelStatus


class ChannelStatusClassifier(Protocol):
    def classify(self, channel: int) -> ChannelStatus:
        ...


class StaticChannelStatus:
    """Fixed bad/noisy channel lists; everything else is good.

    A channel listed as both bad and noisy is classified bad.
    """

    def __init__(self, bad: Iterable[int] = (), noisy: Iterable[int] = ()) -> None:
        self._bad: AbstractSet[int] = frozenset(int(ch) for ch in bad)
        self._noisy: AbstractSet[int] = frozenset(int(ch) for ch in noisy)

    def classify(self, channel: int) -> ChannelStatus:
        if channel in self._bad:
            return ChannelStatus.BAD
        if channel in self._noisy:
            return ChannelStatus.NOISY
        return ChannelStatus.GOOD


__all__ = ["ChannelStatusClassifier", "StaticChannelStatus"]
