"""Reshape chart query rows into per-year daily / cumulative / weekly series.

input is the normalized output of a chart query: one row per day or per week,
told apart by `data_type`. output is the bundle the dashboard charts read:

    {
      "daily":      {"2024": [point, ...], "2025": [...]},
      "cumulative": {...same keys, same lengths as daily...},
      "weekly":     {...keyed by iso year...},
      "aligned":    {"daily": [...], "cumulative": [...], "weekly": [...]},
      "metadata":   {...},
    }

a few rules the chart depends on:
  - cumulative is always recomputed here, never trusted from the warehouse
  - future dates in the current month show up with y=None (a gap), not 0
  - prior years only ever get real data points
  - one bad row gets skipped and recorded, the rest still go through
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

from weeklybrief.compiler.windows import ChartWindow, month_end, monday_of
from weeklybrief.errors import RowSkipWarning
from weeklybrief.log_utils import get_logger
from weeklybrief.models.series import ChartDataPoint, SeriesMetadata
from weeklybrief.reshape.alignment import align_cumulative, align_daily, align_weekly

logger = get_logger(__name__)

Number = int | float


def parse_row_date(value: Any) -> date | None:
    """ISO date (or datetime) string -> date. anything else is None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def to_number(value: Any) -> Number | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            return None
    return None


def bucket_weekly(
    items: Iterable[tuple[date, Number]], exclude_sunday: bool = True
) -> dict[tuple[int, int], tuple[date, Number]]:
    """Sum dated values into monday-start iso weeks.

    returns {(iso_year, iso_week): (monday, total)}. sundays are dropped
    entirely when exclude_sunday is set - they don't count toward any week.
    """
    buckets: dict[tuple[int, int], tuple[date, Number]] = {}
    for d, value in items:
        if exclude_sunday and d.weekday() == 6:
            continue
        iso_year, iso_week, _ = d.isocalendar()
        key = (iso_year, iso_week)
        monday, total = buckets.get(key, (monday_of(d), 0))
        buckets[key] = (monday, total + value)
    return buckets


def daily_point(d: date, y: Number | None) -> ChartDataPoint:
    return ChartDataPoint(x=f"{d.month}/{d.day}", y=y, label=f"{d.month}月{d.day}日", date_value=d.isoformat())


def cumulative_point(d: date, y: Number | None) -> ChartDataPoint:
    return ChartDataPoint(
        x=f"{d.month}/{d.day}", y=y, label=f"{d.month}月{d.day}日累計", date_value=d.isoformat()
    )


def weekly_point(iso_year: int, iso_week: int, monday: date, y: Number) -> ChartDataPoint:
    return ChartDataPoint(
        x=f"Week {iso_week}",
        y=y,
        label=f"{iso_year}年第{iso_week}週",
        date_value=monday.isoformat(),
    )


class SeriesReshaper:
    """Turns one family's chart rows into a series bundle.

    as_of is "today" for the null-fill and the year-over-year windows. it's
    passed in rather than read from the clock so refreshes are reproducible.
    """

    def __init__(
        self,
        as_of: date,
        exclude_sunday: bool = True,
        weekly_lookback_months: int = 2,
        now: datetime | None = None,
    ) -> None:
        self.as_of = as_of
        self.exclude_sunday = exclude_sunday
        self.weekly_lookback_months = weekly_lookback_months
        self.window = ChartWindow.for_date(as_of, weekly_lookback_months)
        self.now = now or datetime.now(timezone.utc)
        self.skipped: list[RowSkipWarning] = []

    def _skip(self, index: int, reason: str) -> None:
        warning = RowSkipWarning(index, reason)
        self.skipped.append(warning)
        logger.warning("Skipping row %d: %s", index, reason)

    def reshape(self, rows: list[Mapping[str, Any]], family: str) -> dict[str, Any]:
        daily_values: dict[date, Number] = defaultdict(int)
        weekly_items: list[tuple[date, Number]] = []

        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                self._skip(index, f"not a mapping ({type(row).__name__})")
                continue
            data_type = row.get("data_type")
            if data_type not in ("daily", "weekly"):
                self._skip(index, f"unknown data_type {data_type!r}")
                continue

            raw_date = row.get("metric_date")
            if data_type == "weekly" and row.get("week_start") is not None:
                raw_date = row.get("week_start")
            d = parse_row_date(raw_date)
            if d is None:
                self._skip(index, f"unparseable date {raw_date!r}")
                continue

            count = to_number(row.get("metric_count"))
            if count is None:
                self._skip(index, f"unparseable metric_count {row.get('metric_count')!r}")
                continue

            if data_type == "daily":
                daily_values[d] += count
            else:
                weekly_items.append((d, count))

        current_key = str(self.window.current_year)
        prior_key = str(self.window.prior_year)

        daily = self._daily_series(daily_values)
        cumulative = {year: self._running_sum(points) for year, points in daily.items()}
        weekly = self._weekly_series(weekly_items)
        for series in (daily, cumulative, weekly):
            series.setdefault(prior_key, [])
            series.setdefault(current_key, [])

        aligned = {
            "daily": align_daily(daily[current_key], daily[prior_key]),
            "cumulative": align_cumulative(cumulative[current_key], cumulative[prior_key]),
            "weekly": align_weekly(
                [p for series in weekly.values() for p in series
                 if self.window.weekly_current.contains(date.fromisoformat(p.date_value))],
                [p for series in weekly.values() for p in series],
            ),
        }

        metadata = SeriesMetadata(
            family=family,
            last_updated=self.now.isoformat(),
            record_count=len(rows),
            current_year=current_key,
            prior_year=prior_key,
            skipped_rows=len(self.skipped),
            extra={
                "as_of": self.as_of.isoformat(),
                "weekly_exclude_sunday": self.exclude_sunday,
                "weekly_lookback_months": self.weekly_lookback_months,
            },
        )
        logger.info(
            "Reshaped %s: %d rows -> %d daily / %d weekly points (%d skipped)",
            family,
            len(rows),
            sum(len(v) for v in daily.values()),
            sum(len(v) for v in weekly.values()),
            len(self.skipped),
        )

        return {
            "daily": _dump(daily),
            "cumulative": _dump(cumulative),
            "weekly": _dump(weekly),
            "aligned": {key: [p.model_dump() for p in points] for key, points in aligned.items()},
            "metadata": metadata.model_dump(),
        }

    def _daily_series(self, values: Mapping[date, Number]) -> dict[str, list[ChartDataPoint]]:
        by_year: dict[str, list[ChartDataPoint]] = defaultdict(list)
        for d in sorted(values):
            by_year[str(d.year)].append(daily_point(d, values[d]))

        # gap-fill the rest of the current month with None. current year only
        current = by_year[str(self.as_of.year)]
        have = {p.date_value for p in current}
        d = self.as_of + timedelta(days=1)
        end = month_end(self.as_of)
        while d <= end:
            if d.isoformat() not in have:
                current.append(daily_point(d, None))
            d += timedelta(days=1)
        current.sort(key=lambda p: p.date_value)
        return dict(by_year)

    def _running_sum(self, points: list[ChartDataPoint]) -> list[ChartDataPoint]:
        total: Number = 0
        out = []
        for p in points:
            d = date.fromisoformat(p.date_value)
            if p.y is None:
                out.append(cumulative_point(d, None))
                continue
            total += p.y
            out.append(cumulative_point(d, total))
        return out

    def _weekly_series(self, items: list[tuple[date, Number]]) -> dict[str, list[ChartDataPoint]]:
        buckets = bucket_weekly(items, self.exclude_sunday)
        by_year: dict[str, list[ChartDataPoint]] = defaultdict(list)
        for (iso_year, iso_week), (monday, total) in sorted(buckets.items(), key=lambda kv: kv[1][0]):
            by_year[str(iso_year)].append(weekly_point(iso_year, iso_week, monday, total))
        return dict(by_year)


def _dump(series: Mapping[str, list[ChartDataPoint]]) -> dict[str, list[dict[str, Any]]]:
    return {year: [p.to_dict() for p in series[year]] for year in sorted(series)}


def reshape_rows(
    rows: list[Mapping[str, Any]],
    family: str,
    as_of: date,
    exclude_sunday: bool = True,
    now: datetime | None = None,
    weekly_lookback_months: int = 2,
) -> tuple[dict[str, Any], list[RowSkipWarning]]:
    """Functional wrapper around SeriesReshaper. returns (bundle, skipped)."""
    reshaper = SeriesReshaper(
        as_of, exclude_sunday=exclude_sunday, weekly_lookback_months=weekly_lookback_months, now=now
    )
    return reshaper.reshape(rows, family), reshaper.skipped
