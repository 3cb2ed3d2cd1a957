"""
Shared data structures available to both the metric kernels and the aggregation core.
"""

from .models import (
    BatchError,
    BatchResult,
    ChannelRange,
    ChannelRecord,
    ChannelStatus,
    MetricOutput,
    MetricRow,
    MetricSample,
    MetricValue,
    RangeTable,
)

__all__ = [
    "BatchError",
    "BatchResult",
    "ChannelRange",
    "ChannelRecord",
    "ChannelStatus",
    "MetricOutput",
    "MetricRow",
    "MetricSample",
    "MetricValue",
    "RangeTable",
]
