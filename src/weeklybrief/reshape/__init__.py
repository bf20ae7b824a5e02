from weeklybrief.reshape.alignment import align_cumulative, align_daily, align_weekly, prior_value
from weeklybrief.reshape.fallback import generate_mock_bundle
from weeklybrief.reshape.series import SeriesReshaper, bucket_weekly, parse_row_date, reshape_rows
from weeklybrief.reshape.stats import calculate_data_stats
from weeklybrief.reshape.table import build_channel_rows, build_kpi_row, growth_rate, share_pct

__all__ = [
    "SeriesReshaper",
    "align_cumulative",
    "align_daily",
    "align_weekly",
    "bucket_weekly",
    "build_channel_rows",
    "build_kpi_row",
    "calculate_data_stats",
    "generate_mock_bundle",
    "growth_rate",
    "parse_row_date",
    "prior_value",
    "reshape_rows",
    "share_pct",
]
