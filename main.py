"""Headless channel metric demo on simulated readout data.

Generates a few events for two protoDUNE APA planes, runs the metric tool on
each and logs the per-range tables. Adjust the constants below to try other
metrics, ranges or status splits.
"""

from __future__ import annotations

import logging
import sys

from analysis.settings import MetricToolConfig, load_config
from core import BatchOrchestrator, StaticChannelRangeCatalog, StaticChannelStatus, protodune_ranges
from daq.simulated_readout import SimulatedReadout

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

RUN = 5240
EVENT_COUNT = 5
CHANNELS = range(0, 1600)       # apa1 u and v planes
NOISY_CHANNELS = (17, 18, 901)
DEAD_CHANNELS = (400,)
SEED = 1234

DEFAULT_CONFIG = MetricToolConfig(
    metric="pedestalRms",
    channel_ranges=("apa1u", "apa1v"),
    metric_min=0.0,
    metric_max=20.0,
    channel_line_modulus=128,
    channel_line_pattern=(0,),
    hist_name="hchped_%CRNAME%_%STATUS%_run%RUN%_evt%EVENT%",
    hist_title="Pedestal noise for run %RUN% event %EVENT% %CRLABEL% (%STATUS%)",
    metric_label="Noise [ADC]",
    log_level=2,
)


def build_tool(config: MetricToolConfig) -> BatchOrchestrator:
    catalog = StaticChannelRangeCatalog(protodune_ranges())
    status = StaticChannelStatus(bad=DEAD_CHANNELS, noisy=NOISY_CHANNELS)
    return BatchOrchestrator(config, catalog=catalog, status=status)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    log = logging.getLogger("main")
    args = sys.argv[1:] if argv is None else argv
    config = load_config(args[0]) if args else DEFAULT_CONFIG

    tool = build_tool(config)
    readout = SimulatedReadout(CHANNELS, noisy=NOISY_CHANNELS, dead=DEAD_CHANNELS, seed=SEED)
    readout.configure(run=RUN)

    for batch in readout.events(EVENT_COUNT):
        result = tool.run(batch, run=readout.run, event=readout.event, subrun=readout.subrun)
        if not result.ok:
            log.error("Event %d failed: %s", readout.event, result.error.value)
            return 1
        for output in result.outputs:
            summary = output.table.summary()
            log.info(
                "%s: %d channels, mean %.3f, std %.3f %s",
                output.name,
                summary["count"],
                summary["mean"],
                summary["std"],
                output.table.units,
            )

    for channel_range, rows in tool.summaries().items():
        worst = max(rows, key=lambda row: row[2])
        log.info(
            "%s: highest mean %.3f +/- %.3f on channel %d after %d events",
            channel_range.label,
            worst[2],
            worst[3],
            worst[0],
            worst[1],
        )
    tool.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
