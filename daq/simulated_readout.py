# daq/simulated_readout.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

import numpy as np

from shared.models import ChannelRecord


@dataclass
class SimulatedChannel:
    """Fixed per-channel response sampled once at initialization."""

    channel: int
    pedestal: float
    noise: float


class SimulatedReadout:
    """
    Simulates prepared ADC data for a block of readout channels.

    Each channel gets a pedestal and noise level drawn once; every event
    produces ``n_ticks`` Gaussian samples around that pedestal. Channels listed
    in ``noisy`` get ``noisy_factor`` times the nominal noise and channels in
    ``dead`` read a flat pedestal. Pedestal and noise estimates are computed
    from the generated samples the way a pedestal finder would (median and a
    MAD-based sigma).
    """

    def __init__(
        self,
        channels: Iterable[int],
        *,
        n_ticks: int = 500,
        pedestal_mean: float = 900.0,
        pedestal_spread: float = 50.0,
        noise_mean: float = 4.0,
        noise_spread: float = 0.5,
        noisy: Iterable[int] = (),
        dead: Iterable[int] = (),
        noisy_factor: float = 5.0,
        seed: Optional[int] = None,
    ) -> None:
        if n_ticks <= 0:
            raise ValueError("n_ticks must be positive")
        self._rng = np.random.default_rng(seed)
        self._n_ticks = int(n_ticks)
        self._noisy = frozenset(noisy)
        self._dead = frozenset(dead)
        self._channels: List[SimulatedChannel] = []
        for ch in sorted(set(int(c) for c in channels)):
            noise = max(0.1, float(self._rng.normal(noise_mean, noise_spread)))
            if ch in self._noisy:
                noise *= noisy_factor
            self._channels.append(
                SimulatedChannel(
                    channel=ch,
                    pedestal=float(self._rng.normal(pedestal_mean, pedestal_spread)),
                    noise=noise,
                )
            )
        self._run = 0
        self._subrun = 0
        self._event = 0

    @property
    def channels(self) -> List[int]:
        return [c.channel for c in self._channels]

    def configure(self, *, run: int, subrun: int = 0, first_event: int = 1) -> None:
        self._run = int(run)
        self._subrun = int(subrun)
        self._event = int(first_event) - 1

    def next_event(self) -> Dict[int, ChannelRecord]:
        """Generate one event keyed by channel."""
        self._event += 1
        return {c.channel: self._record(c) for c in self._channels}

    def events(self, count: int) -> Iterator[Dict[int, ChannelRecord]]:
        for _ in range(count):
            yield self.next_event()

    @property
    def run(self) -> int:
        return self._run

    @property
    def subrun(self) -> int:
        return self._subrun

    @property
    def event(self) -> int:
        return self._event

    def _record(self, sim: SimulatedChannel) -> ChannelRecord:
        if sim.channel in self._dead:
            raw = np.full(self._n_ticks, round(sim.pedestal), dtype=np.float64)
        else:
            raw = np.rint(self._rng.normal(sim.pedestal, sim.noise, self._n_ticks))
        pedestal = float(np.median(raw))
        mad = float(np.median(np.abs(raw - pedestal)))
        return ChannelRecord(
            channel=sim.channel,
            raw=raw,
            pedestal=pedestal,
            pedestal_rms=1.4826 * mad,
            metadata={"nominalNoise": sim.noise, "nominalPedestal": sim.pedestal},
            run=self._run,
            subrun=self._subrun,
            event=self._event,
        )


__all__ = ["SimulatedReadout", "SimulatedChannel"]
