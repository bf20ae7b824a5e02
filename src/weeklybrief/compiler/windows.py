"""Date windows for the chart and table queries.

all the "current month / same month last year / last three months of weeks"
arithmetic happens here in python and gets embedded as literals. doing it in
sql with CURRENT_DATE() made the queries impossible to test and subtly
different from what the reshaper thought "today" was.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def shift_months(d: date, months: int) -> date:
    """First day of the month `months` away from d's month."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def iso_week_last_year(d: date) -> tuple[date, date]:
    """Monday and Sunday of the same iso week number one iso year back.

    week 53 falls back to week 52 when the prior iso year only has 52.
    """
    iso_year, iso_week, _ = d.isocalendar()
    try:
        monday = date.fromisocalendar(iso_year - 1, iso_week, 1)
    except ValueError:
        monday = date.fromisocalendar(iso_year - 1, 52, 1)
    return monday, monday + timedelta(days=6)


def same_day_last_year(d: date) -> date | None:
    """Month/day-aligned counterpart in the previous year.

    feb 29 has no counterpart in a non-leap year and gets None - callers treat
    that as "no such day", not as feb 28.
    """
    try:
        return d.replace(year=d.year - 1)
    except ValueError:
        return None


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end


@dataclass(frozen=True)
class ChartWindow:
    """The four ranges a chart refresh pulls, anchored on as_of."""

    as_of: date
    daily_current: DateRange
    daily_prior: DateRange
    weekly_current: DateRange
    weekly_prior: DateRange

    @classmethod
    def for_date(cls, as_of: date, weekly_lookback_months: int = 2) -> "ChartWindow":
        current_month = month_start(as_of)
        prior_month = date(as_of.year - 1, as_of.month, 1)
        weekly_start = monday_of(shift_months(current_month, -weekly_lookback_months))
        # the prior weekly range has to reach the iso counterparts of both ends
        # of the current range, which can sit a few days outside the prior month
        first_counterpart, _ = iso_week_last_year(weekly_start)
        _, last_counterpart = iso_week_last_year(as_of)
        return cls(
            as_of=as_of,
            daily_current=DateRange(current_month, month_end(current_month)),
            daily_prior=DateRange(prior_month, month_end(prior_month)),
            weekly_current=DateRange(weekly_start, as_of),
            weekly_prior=DateRange(
                min(monday_of(shift_months(prior_month, -weekly_lookback_months)), first_counterpart),
                max(month_end(prior_month), last_counterpart),
            ),
        )

    @property
    def current_year(self) -> int:
        return self.as_of.year

    @property
    def prior_year(self) -> int:
        return self.as_of.year - 1

    def all_ranges(self) -> list[DateRange]:
        return [self.daily_current, self.daily_prior, self.weekly_current, self.weekly_prior]


@dataclass(frozen=True)
class TableWindow:
    """Ranges for the latest / prev-day / prev-week / prev-year comparisons.

    the latest date itself comes from the data (max date in the current month
    up to as_of), so the window just has to cover every date it could pick.
    """

    as_of: date
    recent: DateRange
    prior_year: DateRange

    @classmethod
    def for_date(cls, as_of: date) -> "TableWindow":
        current_month = month_start(as_of)
        prior_month = date(as_of.year - 1, as_of.month, 1)
        return cls(
            as_of=as_of,
            # a week before month start covers prev_day and prev_week of day 1
            recent=DateRange(current_month - timedelta(days=7), as_of),
            prior_year=DateRange(prior_month, month_end(prior_month)),
        )
