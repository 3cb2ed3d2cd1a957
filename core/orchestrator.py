"""BatchOrchestrator - per-event driver of the channel metric tool.

Each call evaluates the configured metric for every channel in the batch,
folds the values into running per-channel statistics for each configured
channel range and returns named tables ready for plotting. Statistics persist
for the lifetime of the orchestrator, so the mean and error-of-mean carried in
each table cover every batch seen so far.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from analysis.lines import line_positions
from analysis.metrics import BuiltinMetricEvaluator, MetricEvaluator
from analysis.settings import MetricToolConfig
from shared import naming
from shared.models import (
    BatchError,
    BatchResult,
    ChannelRange,
    ChannelRecord,
    ChannelStatus,
    MetricOutput,
    MetricValue,
    RangeTable,
)

from .aggregator import RangeAggregator
from .channel_ranges import ChannelRangeCatalog
from .channel_status import ChannelStatusClassifier
from .running_stats import AggregationState

logger = logging.getLogger(__name__)

ALL_RANGE_NAME = "all"
ALL_RANGE_LABEL = "All"

# Summary row for one channel: (channel, count, mean, dmean)
ChannelSummary = Tuple[int, int, float, float]


class BatchOrchestrator:
    """Owns the aggregation state and drives one batch of channels at a time.

    ``run`` holds an internal lock for the full call, so at most one batch
    updates the statistics at any time.
    """

    def __init__(
        self,
        config: MetricToolConfig,
        *,
        catalog: Optional[ChannelRangeCatalog] = None,
        status: Optional[ChannelStatusClassifier] = None,
        evaluator: Optional[MetricEvaluator] = None,
    ) -> None:
        self._config = config
        self._status = status
        self._evaluator = evaluator if evaluator is not None else BuiltinMetricEvaluator()
        self._aggregator = RangeAggregator(config, self._evaluator)
        self._state = AggregationState()
        self._lock = threading.Lock()

        if config.use_status and status is None:
            raise ValueError("hist_name uses %STATUS% but no channel status classifier was provided")
        if config.metric_min >= config.metric_max and (config.metric_min != 0.0 or config.metric_max != 0.0):
            logger.debug(
                "Metric axis [%s, %s] is empty; values will not be clamped",
                config.metric_min,
                config.metric_max,
            )

        self._ranges: Tuple[ChannelRange, ...] = ()
        self._unresolved: Tuple[str, ...] = ()
        if not config.use_all_channels:
            if catalog is None:
                raise ValueError("channel_ranges are configured but no channel range catalog was provided")
            self._ranges, self._unresolved = self._resolve_ranges(catalog, config.channel_ranges)

        if config.log_level >= 1:
            self._log_configuration()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> MetricToolConfig:
        return self._config

    @property
    def ranges(self) -> Tuple[ChannelRange, ...]:
        """Ranges resolved at construction (empty when all channels are used)."""
        return self._ranges

    @property
    def unresolved_ranges(self) -> Tuple[str, ...]:
        return self._unresolved

    @property
    def use_status(self) -> bool:
        return self._config.use_status

    # -------------------------------------------------------------------------
    # Tool interface
    # -------------------------------------------------------------------------

    def metric_value(self, record: ChannelRecord) -> Optional[MetricValue]:
        """Evaluate the configured metric for one channel without touching the state."""
        try:
            return self._evaluator.evaluate(self._config.metric, record)
        except Exception as exc:
            logger.warning("Metric %r failed for channel %d: %s", self._config.metric, record.channel, exc)
            return None

    def view(self, record: ChannelRecord) -> BatchResult:
        """Process a single channel as a one-record batch."""
        return self.run([record], run=record.run, event=record.event, subrun=record.subrun)

    def run(
        self,
        records: Iterable[ChannelRecord] | Mapping[int, ChannelRecord],
        run: int,
        event: int,
        *,
        subrun: int = 0,
    ) -> BatchResult:
        batch = self._collect(records)
        with self._lock:
            state = self._state
            state.update(run, event)
            if self._config.log_level >= 2:
                logger.info(
                    "Call %d: run %d event %d with %d channels",
                    state.call_count,
                    run,
                    event,
                    len(batch),
                )

            ranges, error = self._effective_ranges(batch)
            if error is not None:
                logger.warning("No channel ranges to process for run %d event %d: %s", run, event, error.value)
                return BatchResult(outputs=(), error=error)

            outputs: List[MetricOutput] = []
            for channel_range in ranges:
                table = self._aggregator.aggregate(channel_range, batch, state)
                if self._config.log_level >= 3:
                    logger.debug(
                        "Range %s: %d values, %d skipped",
                        channel_range.name,
                        len(table),
                        len(table.skipped),
                    )
                outputs.extend(self._outputs_for_range(table, run=run, subrun=subrun, event=event))
        return BatchResult(outputs=tuple(outputs))

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    def state_snapshot(self) -> Dict[str, int]:
        with self._lock:
            return self._state.snapshot()

    def summaries(self) -> Dict[ChannelRange, List[ChannelSummary]]:
        """Cumulative per-channel statistics for every range touched so far."""
        with self._lock:
            out: Dict[ChannelRange, List[ChannelSummary]] = {}
            for channel_range, stats in sorted(self._state.range_stats.items(), key=lambda item: item[0]):
                out[channel_range] = [
                    (channel_range.first + offset, stat.count, stat.mean(), stat.dmean())
                    for offset, stat in enumerate(stats)
                ]
            return out

    def close(self) -> None:
        if self._config.log_level < 1:
            return
        snap = self.state_snapshot()
        logger.info(
            "Metric %s: %d calls, %d runs (%d-%d), %d events (%d-%d)",
            self._config.metric,
            snap["call_count"],
            snap["run_count"],
            snap["first_run"],
            snap["last_run"],
            snap["event_count"],
            snap["first_event"],
            snap["last_event"],
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _collect(records: Iterable[ChannelRecord] | Mapping[int, ChannelRecord]) -> List[ChannelRecord]:
        if isinstance(records, Mapping):
            records = records.values()
        return sorted(records, key=lambda rec: rec.channel)

    @staticmethod
    def _resolve_ranges(
        catalog: ChannelRangeCatalog, names: Sequence[str]
    ) -> Tuple[Tuple[ChannelRange, ...], Tuple[str, ...]]:
        resolved: List[ChannelRange] = []
        missing: List[str] = []
        for name in names:
            try:
                channel_range = catalog.resolve(name)
            except KeyError:
                logger.warning("Channel range %r not found; skipping it", name)
                missing.append(name)
                continue
            if channel_range not in resolved:
                resolved.append(channel_range)
        return tuple(resolved), tuple(missing)

    def _effective_ranges(
        self, batch: Sequence[ChannelRecord]
    ) -> Tuple[Tuple[ChannelRange, ...], Optional[BatchError]]:
        if not self._config.use_all_channels:
            if not self._ranges:
                return (), BatchError.NO_VALID_RANGES
            return self._ranges, None
        if not batch:
            return (), BatchError.NO_RANGES_CONFIGURED
        # Batch is sorted by channel.
        span = ChannelRange(batch[0].channel, batch[-1].channel, ALL_RANGE_NAME, ALL_RANGE_LABEL)
        return (span,), None

    def _outputs_for_range(self, table: RangeTable, *, run: int, subrun: int, event: int) -> List[MetricOutput]:
        cfg = self._config
        lines = tuple(line_positions(table.range, cfg.channel_line_modulus, cfg.channel_line_pattern))
        outputs = [self._make_output(table, None, lines, run=run, subrun=subrun, event=event)]
        if not cfg.use_status:
            return outputs
        for status, sub in self._split_by_status(table).items():
            outputs.append(self._make_output(sub, status, lines, run=run, subrun=subrun, event=event))
        return outputs

    def _split_by_status(self, table: RangeTable) -> Dict[ChannelStatus, RangeTable]:
        groups: Dict[ChannelStatus, List[int]] = {status: [] for status in ChannelStatus}
        for channel in table.channels + table.skipped:
            groups[self._classify(channel)].append(channel)
        return {status: table.subset(channels) for status, channels in groups.items()}

    def _classify(self, channel: int) -> ChannelStatus:
        assert self._status is not None
        try:
            return ChannelStatus(self._status.classify(channel))
        except Exception as exc:
            logger.warning("Status lookup failed for channel %d: %s; treating it as good", channel, exc)
            return ChannelStatus.GOOD

    def _make_output(
        self,
        table: RangeTable,
        status: Optional[ChannelStatus],
        lines: Tuple[int, ...],
        *,
        run: int,
        subrun: int,
        event: int,
    ) -> MetricOutput:
        cfg = self._config
        subs = naming.substitutions(
            run=run,
            subrun=subrun,
            event=event,
            channel_range=table.range,
            status=status,
        )
        return MetricOutput(
            name=naming.render(cfg.hist_name, subs),
            title=naming.render(cfg.hist_title, subs),
            metric_label=naming.render(cfg.metric_label, subs),
            table=table,
            status=status,
            line_positions=lines,
            plot_file_name=naming.render(cfg.plot_file_name, subs),
            data_file_name=naming.render(cfg.data_file_name, subs),
            plot_size=cfg.plot_size,
            substitutions=subs,
        )

    def _log_configuration(self) -> None:
        cfg = self._config
        range_desc = (
            "all channels"
            if cfg.use_all_channels
            else ", ".join(f"{r.name}[{r.first}-{r.last}]" for r in self._ranges) or "none"
        )
        logger.info(
            "Channel metric %r: ranges %s; axis [%s, %s]%s; status split %s",
            cfg.metric,
            range_desc,
            cfg.metric_min,
            cfg.metric_max,
            "" if cfg.clamps else " (no clamping)",
            "on" if cfg.use_status else "off",
        )


__all__ = ["BatchOrchestrator", "ALL_RANGE_NAME", "ALL_RANGE_LABEL"]
