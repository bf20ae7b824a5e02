"""Pydantic models for weeklybrief."""

from weeklybrief.models.query import (
    BYTES_PER_GB,
    ApprovedQuery,
    Category,
    CostEstimate,
    ExecutionResult,
    QueryRequest,
)
from weeklybrief.models.series import (
    SERIES_KEYS,
    ChartDataPoint,
    SeriesMetadata,
    YearOverYearPoint,
)
from weeklybrief.models.snapshot import (
    KNOWN_VERSIONS,
    SERIES_V1,
    TABLE_V1,
    CachedSnapshot,
    SnapshotStatus,
)
from weeklybrief.models.table import ChannelRow, KpiRow

__all__ = [
    "BYTES_PER_GB",
    "KNOWN_VERSIONS",
    "SERIES_KEYS",
    "SERIES_V1",
    "TABLE_V1",
    "ApprovedQuery",
    "CachedSnapshot",
    "Category",
    "ChannelRow",
    "ChartDataPoint",
    "CostEstimate",
    "ExecutionResult",
    "KpiRow",
    "QueryRequest",
    "SeriesMetadata",
    "SnapshotStatus",
    "YearOverYearPoint",
]
