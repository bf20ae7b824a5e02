"""Year-over-year alignment.

"last year" is found by calendar position, never by subtracting 365 days:
month/day for daily series, iso week number for weekly series. subtracting
days drifts the weekday and lands on the wrong date around feb 29.

feb 29 has no counterpart in a non-leap prior year, so it compares against 0.
a prior-year date or week with no data also compares against 0.
"""

from datetime import date

from weeklybrief.compiler.windows import same_day_last_year
from weeklybrief.models.series import ChartDataPoint, YearOverYearPoint


def _by_date(points: list[ChartDataPoint]) -> dict[date, int | float | None]:
    return {date.fromisoformat(p.date_value): p.y for p in points}


def prior_value(d: date, prior: dict[date, int | float | None]) -> int | float:
    """Month/day-aligned prior-year value for d, or 0 if there isn't one."""
    counterpart = same_day_last_year(d)
    if counterpart is None:
        return 0
    value = prior.get(counterpart)
    return 0 if value is None else value


def align_daily(current: list[ChartDataPoint], prior: list[ChartDataPoint]) -> list[YearOverYearPoint]:
    lookup = _by_date(prior)
    out = []
    for p in current:
        d = date.fromisoformat(p.date_value)
        out.append(YearOverYearPoint(x=p.x, date_value=p.date_value, current=p.y, last_year=prior_value(d, lookup)))
    return out


def align_cumulative(current: list[ChartDataPoint], prior: list[ChartDataPoint]) -> list[YearOverYearPoint]:
    """Like align_daily, but a prior-year day with no row carries the running total forward.

    a missing day in a cumulative series means "nothing happened that day",
    so the total so far is the right comparison, not 0.
    """
    lookup = _by_date(prior)
    ordered = sorted((d, y) for d, y in lookup.items() if y is not None)
    out = []
    for p in current:
        d = date.fromisoformat(p.date_value)
        counterpart = same_day_last_year(d)
        last_year: int | float = 0
        if counterpart is not None:
            for prior_date, y in ordered:
                if prior_date > counterpart:
                    break
                last_year = y
        out.append(YearOverYearPoint(x=p.x, date_value=p.date_value, current=p.y, last_year=last_year))
    return out


def iso_key(p: ChartDataPoint) -> tuple[int, int]:
    iso_year, iso_week, _ = date.fromisoformat(p.date_value).isocalendar()
    return iso_year, iso_week


def align_weekly(current: list[ChartDataPoint], prior: list[ChartDataPoint]) -> list[YearOverYearPoint]:
    """Match each current week to the same iso week number one iso year back."""
    lookup = {iso_key(p): p.y for p in prior}
    out = []
    for p in current:
        iso_year, iso_week = iso_key(p)
        value = lookup.get((iso_year - 1, iso_week))
        out.append(
            YearOverYearPoint(
                x=p.x, date_value=p.date_value, current=p.y, last_year=0 if value is None else value
            )
        )
    return out
