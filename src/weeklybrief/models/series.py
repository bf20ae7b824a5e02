"""Chart-facing shapes.

these are the json contract the dashboard renders. y=None and y=0 mean very
different things to the chart (gap vs. an actual zero) so nothing here is
allowed to coerce one into the other.
"""

from typing import Any

from pydantic import BaseModel, Field

SERIES_KEYS = ("daily", "cumulative", "weekly")


class ChartDataPoint(BaseModel):
    x: str  # axis label, "8/19" or "Week 34"
    y: int | float | None
    label: str
    date_value: str  # iso date

    def to_dict(self) -> dict[str, Any]:
        # model_dump keeps None as None - exclude_none would break the contract
        return self.model_dump()


class YearOverYearPoint(BaseModel):
    """One current-year x position with its prior-year counterpart."""

    x: str
    date_value: str
    current: int | float | None
    last_year: int | float  # 0 when the prior year has no such day/week


class SeriesMetadata(BaseModel):
    family: str
    last_updated: str
    data_source: str = "bigquery"
    record_count: int = 0
    current_year: str
    prior_year: str
    skipped_rows: int = 0
    is_mock_data: bool = False
    mock_reason: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)
