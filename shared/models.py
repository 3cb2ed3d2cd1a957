from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None) -> np.ndarray:
    """Return a read-only, C-contiguous float copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=np.float64, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


def _copy_mapping(mapping: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    if mapping is None:
        return {}
    if not isinstance(mapping, Mapping):
        raise TypeError("metadata must be a mapping type")
    return {str(key): float(value) for key, value in mapping.items()}


# ----------------------------
# Channel data
# ----------------------------

@dataclass(frozen=True)
class ChannelRecord:
    """Prepared data for one readout channel in one event."""

    channel: int
    raw: np.ndarray = field(repr=False)
    pedestal: float = 0.0
    pedestal_rms: float = 0.0
    metadata: Mapping[str, float] = field(default_factory=dict)
    run: int = 0
    subrun: int = 0
    event: int = 0

    def __post_init__(self) -> None:
        if self.channel < 0:
            raise ValueError("channel must be non-negative")
        for name in ("run", "subrun", "event"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        object.__setattr__(self, "raw", _freeze_array(self.raw, ndim=1))
        object.__setattr__(self, "metadata", _copy_mapping(self.metadata))

    @property
    def n_samples(self) -> int:
        return int(self.raw.size)


@dataclass(frozen=True, order=True)
class ChannelRange:
    """Named, inclusive span of channel indices.

    Ordering and equality use the bounds and the name only so a range can key
    the accumulated statistics no matter how it is labelled.
    """

    first: int
    last: int
    name: str
    label: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if self.first < 0:
            raise ValueError("first channel must be non-negative")
        if self.last < self.first:
            raise ValueError("last channel must not precede first channel")
        if not self.label:
            object.__setattr__(self, "label", self.name)

    @property
    def size(self) -> int:
        return self.last - self.first + 1

    def contains(self, channel: int) -> bool:
        return self.first <= channel <= self.last

    def offset(self, channel: int) -> int:
        if not self.contains(channel):
            raise IndexError(f"channel {channel} outside range {self.name} [{self.first}, {self.last}]")
        return channel - self.first


class ChannelStatus(str, enum.Enum):
    BAD = "bad"
    NOISY = "noisy"
    GOOD = "good"


# ----------------------------
# Metric results
# ----------------------------

@dataclass(frozen=True)
class MetricValue:
    value: float
    units: str = ""


@dataclass(frozen=True)
class MetricSample:
    channel: int
    value: float
    units: str = ""


@dataclass(frozen=True)
class MetricRow:
    """One channel of a range table.

    ``raw_value`` is the evaluated metric, ``value`` the value after axis
    clamping. ``mean``/``dmean``/``count`` describe the cumulative statistic
    for this channel including the current call.
    """

    channel: int
    raw_value: float
    value: float
    units: str
    mean: float
    dmean: float
    count: int


@dataclass
class RangeTable:
    """Per-channel metric values for one channel range in one call."""

    range: ChannelRange
    rows: List[MetricRow] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def channels(self) -> List[int]:
        return [row.channel for row in self.rows]

    @property
    def values(self) -> np.ndarray:
        return np.array([row.value for row in self.rows], dtype=np.float64)

    @property
    def raw_values(self) -> np.ndarray:
        return np.array([row.raw_value for row in self.rows], dtype=np.float64)

    @property
    def means(self) -> np.ndarray:
        return np.array([row.mean for row in self.rows], dtype=np.float64)

    @property
    def dmeans(self) -> np.ndarray:
        return np.array([row.dmean for row in self.rows], dtype=np.float64)

    @property
    def units(self) -> str:
        for row in self.rows:
            if row.units:
                return row.units
        return ""

    def samples(self) -> List[MetricSample]:
        return [MetricSample(row.channel, row.value, row.units) for row in self.rows]

    def summary(self) -> Dict[str, float]:
        """Count, mean and standard deviation of this call's (clamped) values."""
        values = self.values
        if values.size == 0:
            return {"count": 0, "mean": 0.0, "std": 0.0}
        return {
            "count": int(values.size),
            "mean": float(np.mean(values)),
            "std": float(np.std(values)),
        }

    def subset(self, channels: Sequence[int]) -> "RangeTable":
        keep = set(channels)
        return RangeTable(
            range=self.range,
            rows=[row for row in self.rows if row.channel in keep],
            skipped=[ch for ch in self.skipped if ch in keep],
        )


# ----------------------------
# Batch results
# ----------------------------

class BatchError(str, enum.Enum):
    NO_RANGES_CONFIGURED = "no_ranges_configured"
    NO_VALID_RANGES = "no_valid_ranges"


@dataclass(frozen=True)
class MetricOutput:
    """A named, titled table handed to the presentation layer."""

    name: str
    title: str
    metric_label: str
    table: RangeTable
    status: Optional[ChannelStatus]
    line_positions: Tuple[int, ...]
    plot_file_name: str = ""
    data_file_name: str = ""
    plot_size: Optional[Tuple[int, int]] = None
    substitutions: Mapping[str, str] = field(default_factory=dict)

    @property
    def range(self) -> ChannelRange:
        return self.table.range


@dataclass(frozen=True)
class BatchResult:
    outputs: Tuple[MetricOutput, ...] = ()
    error: Optional[BatchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def by_name(self) -> Dict[str, MetricOutput]:
        return {output.name: output for output in self.outputs}


__all__ = [
    "ChannelRecord",
    "ChannelRange",
    "ChannelStatus",
    "MetricValue",
    "MetricSample",
    "MetricRow",
    "RangeTable",
    "BatchError",
    "MetricOutput",
    "BatchResult",
]
