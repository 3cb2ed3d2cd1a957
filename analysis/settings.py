from __future__ import annotations

import json
import logging
import math
import numbers
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from shared.naming import has_status_placeholder

logger = logging.getLogger(__name__)

ALL_RANGES = ("all", "")

# Keys used by the original tool configuration, accepted alongside snake_case.
_LEGACY_KEYS = {
    "LogLevel": "log_level",
    "Metric": "metric",
    "ChannelRanges": "channel_ranges",
    "MetricMin": "metric_min",
    "MetricMax": "metric_max",
    "ChannelLineModulus": "channel_line_modulus",
    "ChannelLinePattern": "channel_line_pattern",
    "HistName": "hist_name",
    "HistTitle": "hist_title",
    "MetricLabel": "metric_label",
    "PlotSizeX": "plot_size_x",
    "PlotSizeY": "plot_size_y",
    "PlotFileName": "plot_file_name",
    "DataFileName": "data_file_name",
    "RootFileName": "data_file_name",
}


def _integer(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return int(value)


def _integers(name: str, values: Any) -> Tuple[int, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise ValueError(f"{name} must be a list of integers, got {values!r}")
    return tuple(_integer(name, v) for v in values)


def _finite(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError(f"{name} must be a number, got {value!r}")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return result


def _names(values: Any) -> Tuple[str, ...]:
    # A single range name is accepted in place of a list.
    if isinstance(values, str):
        return (values,)
    if not isinstance(values, Iterable):
        raise ValueError(f"channel_ranges must be a list of names, got {values!r}")
    names = tuple(values)
    for name in names:
        if not isinstance(name, str):
            raise ValueError(f"channel range names must be strings, got {name!r}")
    return names


@dataclass(frozen=True)
class MetricToolConfig:
    """Immutable configuration for one metric tool instance."""

    metric: str = "pedestal"
    channel_ranges: Tuple[str, ...] = ()
    metric_min: float = 0.0
    metric_max: float = 0.0
    channel_line_modulus: int = 0
    channel_line_pattern: Tuple[int, ...] = ()
    hist_name: str = "hchmet%CRNAME%_%RUN%_%EVENT%"
    hist_title: str = "Metric for run %RUN% event %EVENT% channels %CHAN1%-%CHAN2%"
    metric_label: str = "Metric"
    plot_size_x: int = 0
    plot_size_y: int = 0
    plot_file_name: str = ""
    data_file_name: str = ""
    log_level: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "channel_ranges", _names(self.channel_ranges))
        object.__setattr__(self, "channel_line_pattern", _integers("channel_line_pattern", self.channel_line_pattern))
        for name in ("metric_min", "metric_max"):
            object.__setattr__(self, name, _finite(name, getattr(self, name)))
        for name in ("channel_line_modulus", "plot_size_x", "plot_size_y", "log_level"):
            object.__setattr__(self, name, _integer(name, getattr(self, name)))
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.metric, str) or not self.metric:
            raise ValueError("metric must be a non-empty string")
        if self.channel_line_modulus < 0:
            raise ValueError("channel_line_modulus must be non-negative")
        if self.plot_size_x < 0 or self.plot_size_y < 0:
            raise ValueError("plot sizes must be non-negative")
        if not isinstance(self.hist_name, str) or not self.hist_name:
            raise ValueError("hist_name must not be empty")
        for name in ("hist_title", "metric_label", "plot_file_name", "data_file_name"):
            if not isinstance(getattr(self, name), str):
                raise ValueError(f"{name} must be a string")

    @property
    def use_status(self) -> bool:
        return has_status_placeholder(self.hist_name)

    @property
    def clamps(self) -> bool:
        """True when the metric axis bounds are usable for clamping."""
        return self.metric_min < self.metric_max

    @property
    def use_all_channels(self) -> bool:
        return not self.channel_ranges or any(name in ALL_RANGES for name in self.channel_ranges)

    @property
    def plot_size(self) -> Optional[Tuple[int, int]]:
        if self.plot_size_x == 0 or self.plot_size_y == 0:
            return None
        return (self.plot_size_x, self.plot_size_y)

    def clamp(self, value: float) -> float:
        if not self.clamps:
            return value
        if value < self.metric_min:
            return self.metric_min
        if value > self.metric_max:
            return self.metric_max
        return value

    def to_dict(self) -> Dict[str, object]:
        payload = asdict(self)
        payload["channel_ranges"] = list(self.channel_ranges)
        payload["channel_line_pattern"] = list(self.channel_line_pattern)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MetricToolConfig":
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in payload.items():
            name = _LEGACY_KEYS.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown configuration key {key!r}")
            kwargs[name] = value
        return cls(**kwargs)


def load_config(path: str | Path) -> MetricToolConfig:
    """Read a JSON configuration file."""
    config_path = Path(path)
    with config_path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"{config_path}: configuration must be a JSON object")
    config = MetricToolConfig.from_dict(payload)
    logger.debug("Loaded metric configuration from %s", config_path)
    return config


__all__ = ["MetricToolConfig", "load_config", "ALL_RANGES"]
