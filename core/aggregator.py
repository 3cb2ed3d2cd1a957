from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from analysis.metrics import BuiltinMetricEvaluator, MetricEvaluator
from analysis.settings import MetricToolConfig
from shared.models import ChannelRange, ChannelRecord, MetricRow, RangeTable

from .running_stats import AggregationState

logger = logging.getLogger(__name__)


class RangeAggregator:
    """Evaluates the configured metric over one channel range and folds it into the state."""

    def __init__(self, config: MetricToolConfig, evaluator: Optional[MetricEvaluator] = None) -> None:
        self._config = config
        self._evaluator = evaluator if evaluator is not None else BuiltinMetricEvaluator()

    def aggregate(
        self,
        channel_range: ChannelRange,
        records: Iterable[ChannelRecord],
        state: AggregationState,
    ) -> RangeTable:
        table = RangeTable(range=channel_range)
        selected = sorted(
            (rec for rec in records if channel_range.contains(rec.channel)),
            key=lambda rec: rec.channel,
        )
        if not selected:
            return table

        metric = self._config.metric
        stats = state.stats_for(channel_range)
        for record in selected:
            try:
                result = self._evaluator.evaluate(metric, record)
            except Exception as exc:
                # Plugged-in kernels must not take the whole range down.
                logger.warning("Metric %r failed for channel %d: %s", metric, record.channel, exc)
                result = None
            if result is not None and not math.isfinite(result.value):
                logger.debug("Metric %r is not finite for channel %d: %r", metric, record.channel, result.value)
                result = None
            if result is None:
                logger.debug("Metric %r unavailable for channel %d", metric, record.channel)
                table.skipped.append(record.channel)
                continue
            value = self._config.clamp(result.value)
            stat = stats[channel_range.offset(record.channel)]
            stat.add(value)
            table.rows.append(
                MetricRow(
                    channel=record.channel,
                    raw_value=result.value,
                    value=value,
                    units=result.units,
                    mean=stat.mean(),
                    dmean=stat.dmean(),
                    count=stat.count,
                )
            )
        return table


__all__ = ["RangeAggregator"]
