from __future__ import annotations

import logging
import threading

import pytest

from analysis.metrics import ChainedMetricEvaluator, MetricTable
from analysis.settings import MetricToolConfig
from core import (
    BatchError,
    BatchOrchestrator,
    ChannelRange,
    ChannelStatus,
    StaticChannelRangeCatalog,
    StaticChannelStatus,
)
from test.fixtures.channel_generators import make_pedestal_batch, make_record


@pytest.fixture
def catalog() -> StaticChannelRangeCatalog:
    return StaticChannelRangeCatalog(
        [
            ChannelRange(10, 13, "quad", "Quad"),
            ChannelRange(10, 11, "low", "Low pair"),
            ChannelRange(12, 13, "high", "High pair"),
        ]
    )


def test_end_to_end_pedestal_clamping(catalog):
    config = MetricToolConfig(metric="pedestal", channel_ranges=("quad",), metric_min=90.0, metric_max=110.0)
    tool = BatchOrchestrator(config, catalog=catalog)
    result = tool.run(make_pedestal_batch({10: 100.0, 11: 102.0, 12: 98.0, 13: 1000.0}), run=1, event=1)

    assert result.ok
    assert len(result.outputs) == 1
    table = result.outputs[0].table
    assert list(table.values) == [100.0, 102.0, 98.0, 110.0]
    channel, count, mean, _ = tool.summaries()[ChannelRange(10, 13, "quad")][3]
    assert (channel, count) == (13, 1)
    assert mean == pytest.approx(110.0)


def test_event_and_run_counting(catalog):
    tool = BatchOrchestrator(MetricToolConfig(channel_ranges=("quad",)), catalog=catalog)
    batch = make_pedestal_batch({10: 1.0})
    tool.run(batch, run=5, event=1)
    before = tool.state_snapshot()
    tool.run(batch, run=5, event=2)
    after = tool.state_snapshot()
    assert after["event_count"] == before["event_count"] + 1
    assert after["run_count"] == before["run_count"]
    assert after["call_count"] == 2
    assert (after["first_event"], after["last_event"]) == (1, 2)


def test_all_sentinel_builds_one_synthetic_range():
    tool = BatchOrchestrator(MetricToolConfig(channel_ranges=("all",)))
    result = tool.run(make_pedestal_batch({12: 1.0, 3: 2.0, 40: 3.0}), run=1, event=1)
    assert result.ok
    assert len(result.outputs) == 1
    cr = result.outputs[0].range
    assert (cr.first, cr.last, cr.name, cr.label) == (3, 40, "all", "All")
    assert result.outputs[0].table.channels == [3, 12, 40]


def test_empty_range_list_means_all_channels():
    tool = BatchOrchestrator(MetricToolConfig(channel_ranges=()))
    result = tool.run(make_pedestal_batch({0: 1.0, 1: 2.0}), run=1, event=1)
    assert [o.range.name for o in result.outputs] == ["all"]


def test_multiple_ranges_track_independent_statistics(catalog):
    config = MetricToolConfig(metric="pedestal", channel_ranges=("quad", "low", "high"))
    tool = BatchOrchestrator(config, catalog=catalog)
    tool.run(make_pedestal_batch({10: 1.0, 11: 2.0, 12: 3.0, 13: 4.0}), run=1, event=1)
    tool.run(make_pedestal_batch({10: 3.0, 12: 5.0}), run=1, event=2)

    summaries = tool.summaries()
    assert len(summaries) == 3
    quad = summaries[ChannelRange(10, 13, "quad")]
    assert [row[1] for row in quad] == [2, 1, 2, 1]
    assert quad[0][2] == pytest.approx(2.0)
    high = summaries[ChannelRange(12, 13, "high")]
    assert [row[0] for row in high] == [12, 13]
    assert high[0][2] == pytest.approx(4.0)


def test_unknown_range_is_skipped(catalog, caplog):
    config = MetricToolConfig(channel_ranges=("quad", "nowhere"))
    with caplog.at_level(logging.WARNING):
        tool = BatchOrchestrator(config, catalog=catalog)
    assert [r.name for r in tool.ranges] == ["quad"]
    assert tool.unresolved_ranges == ("nowhere",)
    assert "nowhere" in caplog.text
    result = tool.run(make_pedestal_batch({10: 1.0}), run=1, event=1)
    assert result.ok
    assert len(result.outputs) == 1


def test_no_valid_ranges_fails_batch(catalog):
    tool = BatchOrchestrator(MetricToolConfig(channel_ranges=("nowhere",)), catalog=catalog)
    result = tool.run(make_pedestal_batch({10: 1.0}), run=1, event=1)
    assert not result.ok
    assert result.error is BatchError.NO_VALID_RANGES
    assert result.outputs == ()


def test_all_channels_with_empty_batch_fails():
    tool = BatchOrchestrator(MetricToolConfig())
    result = tool.run({}, run=1, event=1)
    assert result.error is BatchError.NO_RANGES_CONFIGURED
    assert tool.state_snapshot()["call_count"] == 1


def test_configured_ranges_require_catalog():
    with pytest.raises(ValueError):
        BatchOrchestrator(MetricToolConfig(channel_ranges=("quad",)))


def test_status_split_requires_classifier():
    with pytest.raises(ValueError):
        BatchOrchestrator(MetricToolConfig(hist_name="h_%STATUS%"))


def test_status_split_partitions_channels(catalog):
    config = MetricToolConfig(
        metric="gain",
        channel_ranges=("quad",),
        hist_name="h%CRNAME%_%STATUS%",
        hist_title="%CRLABEL% %STATUS% run %RUN%",
    )
    status = StaticChannelStatus(bad=[11], noisy=[13])
    tool = BatchOrchestrator(config, catalog=catalog, status=status)
    batch = {
        10: make_record(10, metadata={"gain": 1.0}),
        11: make_record(11, metadata={"gain": 2.0}),
        12: make_record(12),
        13: make_record(13, metadata={"gain": 4.0}),
    }
    result = tool.run(batch, run=7, event=1)

    outputs = result.by_name()
    assert set(outputs) == {"hquad_all", "hquad_bad", "hquad_noisy", "hquad_good"}
    assert outputs["hquad_all"].status is None
    assert outputs["hquad_bad"].status is ChannelStatus.BAD
    assert outputs["hquad_bad"].title == "Quad bad run 7"
    assert outputs["hquad_bad"].table.channels == [11]
    assert outputs["hquad_noisy"].table.channels == [13]
    assert outputs["hquad_good"].table.channels == [10]
    assert outputs["hquad_good"].table.skipped == [12]

    combined = outputs["hquad_all"].table
    parts = [outputs[f"hquad_{s.value}"].table for s in ChannelStatus]
    seen = [ch for part in parts for ch in part.channels]
    assert sorted(seen) == combined.channels


def test_classifier_errors_default_to_good(catalog):
    class Broken:
        def classify(self, channel):
            raise RuntimeError("database offline")

    config = MetricToolConfig(channel_ranges=("low",), hist_name="h_%STATUS%")
    tool = BatchOrchestrator(config, catalog=catalog, status=Broken())
    result = tool.run(make_pedestal_batch({10: 1.0, 11: 2.0}), run=1, event=1)
    assert result.by_name()["h_good"].table.channels == [10, 11]
    assert result.by_name()["h_bad"].table.channels == []


def test_names_lines_and_files(catalog):
    config = MetricToolConfig(
        channel_ranges=("quad",),
        channel_line_modulus=2,
        channel_line_pattern=(0,),
        hist_name="hped_%CRNAME%_%RUN%_%SUBRUN%_%EVENT%",
        hist_title="Pedestals for %CRLABEL% channels %CHAN1%-%CHAN2%",
        metric_label="Pedestal [ADC]",
        plot_file_name="ped_%CRNAME%_run%RUN%.png",
        data_file_name="ped_run%RUN%.root",
        plot_size_x=1400,
        plot_size_y=500,
    )
    tool = BatchOrchestrator(config, catalog=catalog)
    output = tool.run(make_pedestal_batch({10: 1.0}), run=42, event=9, subrun=3).outputs[0]
    assert output.name == "hped_quad_42_3_9"
    assert output.title == "Pedestals for Quad channels 10-13"
    assert output.metric_label == "Pedestal [ADC]"
    assert output.plot_file_name == "ped_quad_run42.png"
    assert output.data_file_name == "ped_run42.root"
    assert output.plot_size == (1400, 500)
    assert output.line_positions == (10, 12)
    assert output.substitutions["%CHAN2%"] == "13"


def test_view_uses_record_identifiers():
    tool = BatchOrchestrator(MetricToolConfig(metric="pedestal", hist_name="h_%RUN%_%EVENT%"))
    result = tool.view(make_record(5, pedestal=3.0, run=12, event=34))
    assert result.outputs[0].name == "h_12_34"
    assert tool.state_snapshot()["last_run"] == 12


def test_metric_value_does_not_touch_state():
    tool = BatchOrchestrator(MetricToolConfig(metric="fembChannel"))
    value = tool.metric_value(make_record(130))
    assert value.value == 2.0
    assert tool.state_snapshot()["call_count"] == 0
    assert BatchOrchestrator(MetricToolConfig(metric="nope")).metric_value(make_record(1)) is None


def test_extension_evaluator(catalog):
    extension = MetricTable.from_kernels({"twice": lambda rec: 2.0 * rec.pedestal})
    tool = BatchOrchestrator(
        MetricToolConfig(metric="twice", channel_ranges=("low",)),
        catalog=catalog,
        evaluator=ChainedMetricEvaluator(extension),
    )
    table = tool.run(make_pedestal_batch({10: 4.0, 11: 5.0}), run=1, event=1).outputs[0].table
    assert list(table.values) == [8.0, 10.0]


def test_concurrent_runs_are_serialized(catalog):
    tool = BatchOrchestrator(MetricToolConfig(metric="pedestal", channel_ranges=("quad",), log_level=0), catalog=catalog)
    batch = make_pedestal_batch({10: 1.0, 11: 1.0, 12: 1.0, 13: 1.0})

    def worker(event_base: int) -> None:
        for i in range(50):
            tool.run(batch, run=1, event=event_base + i)

    threads = [threading.Thread(target=worker, args=(k * 1000,)) for k in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert tool.state_snapshot()["call_count"] == 200
    counts = [row[1] for row in tool.summaries()[ChannelRange(10, 13, "quad")]]
    assert counts == [200, 200, 200, 200]


def test_close_logs_summary(caplog):
    tool = BatchOrchestrator(MetricToolConfig())
    tool.run(make_pedestal_batch({0: 1.0}), run=3, event=4)
    with caplog.at_level(logging.INFO):
        tool.close()
    assert "1 calls" in caplog.text
