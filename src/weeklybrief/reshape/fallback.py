"""Placeholder bundles for degraded refreshes.

these used to be hardcoded numbers that looked exactly like real data. now
the bundle has the right shape but no real values, and the metadata says
loudly that it's a placeholder.
"""

from datetime import date, datetime
from typing import Any

from weeklybrief.reshape.series import SeriesReshaper


def generate_mock_bundle(
    family: str,
    as_of: date,
    reason: str = "unknown",
    exclude_sunday: bool = True,
    now: datetime | None = None,
    weekly_lookback_months: int = 2,
) -> dict[str, Any]:
    reshaper = SeriesReshaper(
        as_of, exclude_sunday=exclude_sunday, weekly_lookback_months=weekly_lookback_months, now=now
    )
    bundle = reshaper.reshape([], family)
    metadata = bundle["metadata"]
    metadata["data_source"] = f"mock-data-{reason}"
    metadata["is_mock_data"] = True
    metadata["mock_reason"] = reason
    return bundle
