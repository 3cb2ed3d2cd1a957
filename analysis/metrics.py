"""Per-channel metric evaluation.

Built-in metrics (selected by name in the tool configuration):
- pedestal: Pedestal estimate attached to the channel
- pedestalRms: Noise estimate attached to the channel
- fembID: Front-end board number derived from the channel index, [0, 120) in protoDUNE
- apaFembID: Front-end board number within its APA, [0, 20)
- fembChannel: Channel number within its front-end board, [0, 128)
- rawRms: RMS of (ADC - pedestal)
- rawTailFraction: Fraction of ticks with |ADC - pedestal| > 3 * noise

Any other name is looked up in the channel metadata. Hosts add metrics by
registering kernels or by chaining an evaluator in front of the built-in one.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Protocol

import numpy as np

from shared.models import ChannelRecord, MetricValue

CHANNELS_PER_FEMB = 128
FEMBS_PER_APA = 20
TAIL_SIGMA = 3.0
ADC_UNITS = "ADC count"

MetricKernel = Callable[[ChannelRecord], float]


class MetricEvaluator(Protocol):
    def evaluate(self, metric: str, record: ChannelRecord) -> Optional[MetricValue]:
        """Return the metric value and units, or None if ``metric`` is unknown."""
        ...


@dataclass(frozen=True)
class MetricSpec:
    name: str
    kernel: MetricKernel
    units: str = ""
    help: str = ""


METRIC_REGISTRY: Dict[str, MetricSpec] = {}


def register_metric(name: str, *, units: str = "", help: str = "") -> Callable[[MetricKernel], MetricKernel]:
    if not name:
        raise ValueError("metric name must not be empty")

    def decorator(kernel: MetricKernel) -> MetricKernel:
        METRIC_REGISTRY[name] = MetricSpec(name=name, kernel=kernel, units=units, help=help)
        return kernel

    return decorator


# ----------------------------
# Built-in kernels
# ----------------------------

@register_metric("pedestal", units=ADC_UNITS, help="Pedestal estimate")
def pedestal(record: ChannelRecord) -> float:
    return float(record.pedestal)


@register_metric("pedestalRms", units=ADC_UNITS, help="Pedestal noise estimate")
def pedestal_rms(record: ChannelRecord) -> float:
    return float(record.pedestal_rms)


@register_metric("fembID", help="FEMB number")
def femb_id(record: ChannelRecord) -> float:
    return float(record.channel // CHANNELS_PER_FEMB)


@register_metric("apaFembID", help="FEMB number within the APA")
def apa_femb_id(record: ChannelRecord) -> float:
    return float((record.channel // CHANNELS_PER_FEMB) % FEMBS_PER_APA)


@register_metric("fembChannel", help="Channel number within the FEMB")
def femb_channel(record: ChannelRecord) -> float:
    return float(record.channel % CHANNELS_PER_FEMB)


@register_metric("rawRms", units=ADC_UNITS, help="RMS of (ADC - pedestal)")
def raw_rms(record: ChannelRecord) -> float:
    if record.raw.size == 0:
        return 0.0
    dev = record.raw - record.pedestal
    return float(np.sqrt(np.mean(dev * dev)))


@register_metric("rawTailFraction", help="Fraction of ticks with |ADC - pedestal| > 3 * noise")
def raw_tail_fraction(record: ChannelRecord) -> float:
    if record.raw.size == 0:
        return 0.0
    limit = TAIL_SIGMA * float(record.pedestal_rms)
    outside = np.abs(record.raw - record.pedestal) > limit
    return float(np.count_nonzero(outside)) / float(record.raw.size)


# ----------------------------
# Evaluators
# ----------------------------

class MetricTable:
    """Evaluator over an explicit name -> MetricSpec table."""

    def __init__(self, specs: Mapping[str, MetricSpec]) -> None:
        self._specs = dict(specs)

    @classmethod
    def from_kernels(cls, kernels: Mapping[str, MetricKernel], *, units: str = "") -> "MetricTable":
        return cls({name: MetricSpec(name=name, kernel=fn, units=units) for name, fn in kernels.items()})

    def evaluate(self, metric: str, record: ChannelRecord) -> Optional[MetricValue]:
        spec = self._specs.get(metric)
        if spec is None:
            return None
        return MetricValue(float(spec.kernel(record)), spec.units)


class BuiltinMetricEvaluator:
    """Registered kernels first, then the channel metadata."""

    def __init__(self, registry: Optional[Mapping[str, MetricSpec]] = None) -> None:
        self._registry = METRIC_REGISTRY if registry is None else registry

    def evaluate(self, metric: str, record: ChannelRecord) -> Optional[MetricValue]:
        spec = self._registry.get(metric)
        if spec is not None:
            return MetricValue(float(spec.kernel(record)), spec.units)
        if metric in record.metadata:
            return MetricValue(float(record.metadata[metric]), "")
        return None


class ChainedMetricEvaluator:
    """Try ``extension`` first and fall back to ``fallback`` for names it does not know."""

    def __init__(self, extension: MetricEvaluator, fallback: Optional[MetricEvaluator] = None) -> None:
        self._extension = extension
        self._fallback = fallback if fallback is not None else BuiltinMetricEvaluator()

    def evaluate(self, metric: str, record: ChannelRecord) -> Optional[MetricValue]:
        result = self._extension.evaluate(metric, record)
        if result is not None:
            return result
        return self._fallback.evaluate(metric, record)


def is_known_metric(metric: str) -> bool:
    return metric in METRIC_REGISTRY


__all__ = [
    "MetricEvaluator",
    "MetricSpec",
    "MetricKernel",
    "METRIC_REGISTRY",
    "register_metric",
    "MetricTable",
    "BuiltinMetricEvaluator",
    "ChainedMetricEvaluator",
    "is_known_metric",
    "CHANNELS_PER_FEMB",
    "FEMBS_PER_APA",
]
