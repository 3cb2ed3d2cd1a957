"""Aggregation core: running statistics, range aggregation and the batch driver."""

from .aggregator import RangeAggregator
from .channel_ranges import ChannelRangeCatalog, StaticChannelRangeCatalog, protodune_ranges
from .channel_status import ChannelStatusClassifier, StaticChannelStatus
from .orchestrator import BatchOrchestrator
from .running_stats import AggregationState, RunningStat
from shared.models import BatchError, BatchResult, ChannelRange, ChannelRecord, ChannelStatus, MetricOutput, RangeTable

__all__ = [
    "AggregationState",
    "BatchError",
    "BatchOrchestrator",
    "BatchResult",
    "ChannelRange",
    "ChannelRangeCatalog",
    "ChannelRecord",
    "ChannelStatus",
    "ChannelStatusClassifier",
    "MetricOutput",
    "RangeAggregator",
    "RangeTable",
    "RunningStat",
    "StaticChannelRangeCatalog",
    "StaticChannelStatus",
    "protodune_ranges",
]
