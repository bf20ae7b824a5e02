"""Flat table metrics (latest vs previous day/week/year)."""

from pydantic import BaseModel


class KpiRow(BaseModel):
    latest_date: str | None
    latest: int
    prev_day: int
    prev_week: int
    prev_year: int
    day_growth_rate: float | None
    week_growth_rate: float | None
    year_growth_rate: float | None


class ChannelRow(BaseModel):
    channel_category: str
    parent_category: str | None = None
    latest: int
    prev_day: int
    prev_week: int
    prev_year: int
    share_pct: float
    day_growth_rate: float | None
    week_growth_rate: float | None
    year_growth_rate: float | None
