"""Flat table metrics: latest value vs previous day / week / year.

the queries only return raw counts. growth and share are worked out here so
the rounding and the "too small to compare" cutoffs live in one place.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from weeklybrief.models.table import ChannelRow, KpiRow
from weeklybrief.reshape.series import to_number

PRIOR_COLUMNS = ("prev_day", "prev_week", "prev_year")


def growth_rate(latest: int | float, prior: int | float | None, min_base: int = 1) -> float | None:
    """Percent change, one decimal. None when the prior value is too small to mean anything."""
    if prior is None or prior < min_base or prior == 0:
        return None
    return round((latest - prior) * 100 / prior, 1)


def share_pct(value: int | float, total: int | float) -> float:
    if not total:
        return 0.0
    return round(value * 100 / total, 1)


def _count(row: Mapping[str, Any], key: str) -> int:
    value = to_number(row.get(key))
    return int(value) if value is not None else 0


def build_kpi_row(row: Mapping[str, Any] | None, min_base: int = 1) -> KpiRow:
    """One KPI row from a kpi-table query result. an empty result gives all zeros."""
    row = row or {}
    latest = _count(row, "latest")
    priors = {col: _count(row, col) for col in PRIOR_COLUMNS}
    latest_date = row.get("latest_date")
    return KpiRow(
        latest_date=str(latest_date) if latest_date is not None else None,
        latest=latest,
        prev_day=priors["prev_day"],
        prev_week=priors["prev_week"],
        prev_year=priors["prev_year"],
        day_growth_rate=growth_rate(latest, priors["prev_day"], min_base),
        week_growth_rate=growth_rate(latest, priors["prev_week"], min_base),
        year_growth_rate=growth_rate(latest, priors["prev_year"], min_base),
    )


def build_channel_rows(
    rows: Sequence[Mapping[str, Any]],
    min_base: int,
    order: Sequence[str] = (),
) -> list[ChannelRow]:
    """Channel rows with share and growth.

    channels with nothing on the latest day are dropped. rows are ordered by
    `order` (matched against channel_category, then parent_category) and by
    latest volume after that.
    """
    counted = []
    for row in rows:
        latest = _count(row, "latest")
        if latest == 0:
            continue
        counted.append((row, latest))

    total = sum(latest for _, latest in counted)
    result = []
    for row, latest in counted:
        priors = {col: _count(row, col) for col in PRIOR_COLUMNS}
        result.append(
            ChannelRow(
                channel_category=str(row.get("channel_category") or ""),
                parent_category=row.get("parent_category"),
                latest=latest,
                prev_day=priors["prev_day"],
                prev_week=priors["prev_week"],
                prev_year=priors["prev_year"],
                share_pct=share_pct(latest, total),
                day_growth_rate=growth_rate(latest, priors["prev_day"], min_base),
                week_growth_rate=growth_rate(latest, priors["prev_week"], min_base),
                year_growth_rate=growth_rate(latest, priors["prev_year"], min_base),
            )
        )

    rank = {name: i for i, name in enumerate(order)}

    def sort_key(r: ChannelRow) -> tuple[int, int]:
        position = rank.get(r.channel_category, rank.get(r.parent_category or "", len(rank)))
        return position, -r.latest

    return sorted(result, key=sort_key)
