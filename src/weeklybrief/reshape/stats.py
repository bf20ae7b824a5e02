"""Summary numbers for a series bundle. handy in logs and the cli."""

from collections.abc import Mapping
from typing import Any


def _summarize(points: list[Mapping[str, Any]]) -> dict[str, Any] | None:
    # null points are gaps, not zeros - leave them out
    values = [p["y"] for p in points if p.get("y") is not None]
    if not values:
        return None
    total = sum(values)
    return {
        "count": len(values),
        "total": total,
        "average": round(total / len(values)),
        "max": max(values),
        "min": min(values),
    }


def calculate_data_stats(bundle: Mapping[str, Any]) -> dict[str, Any]:
    stats: dict[str, Any] = {
        "daily_stats": {},
        "weekly_stats": {},
        "overall": {"total_days": 0, "total_weeks": 0, "average_daily": 0, "average_weekly": 0},
    }

    for key, target in (("daily", "daily_stats"), ("weekly", "weekly_stats")):
        all_points: list[Mapping[str, Any]] = []
        for year, points in (bundle.get(key) or {}).items():
            summary = _summarize(points)
            if summary is not None:
                stats[target][year] = summary
            all_points.extend(points)
        overall = _summarize(all_points)
        if overall is not None:
            unit = "days" if key == "daily" else "weeks"
            stats["overall"][f"total_{unit}"] = overall["count"]
            stats["overall"][f"average_{key}"] = overall["average"]

    return stats
