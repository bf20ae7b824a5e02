"""Tests for series reshaping, year alignment and table metrics."""

from datetime import date, datetime, timezone

import pytest

from conftest import AS_OF, FROZEN_NOW, chart_rows
from weeklybrief.models.series import ChartDataPoint
from weeklybrief.reshape.alignment import align_cumulative, align_daily, align_weekly, prior_value
from weeklybrief.reshape.fallback import generate_mock_bundle
from weeklybrief.reshape.series import SeriesReshaper, bucket_weekly, parse_row_date, reshape_rows
from weeklybrief.reshape.stats import calculate_data_stats
from weeklybrief.reshape.table import build_channel_rows, build_kpi_row, growth_rate, share_pct


def point(iso: str, y) -> ChartDataPoint:
    d = date.fromisoformat(iso)
    return ChartDataPoint(x=f"{d.month}/{d.day}", y=y, label="", date_value=iso)


@pytest.fixture
def bundle() -> dict:
    return SeriesReshaper(AS_OF, now=FROZEN_NOW).reshape(chart_rows(), "souke")


class TestParseRowDate:
    def test_iso_strings(self):
        assert parse_row_date("2025-08-19") == date(2025, 8, 19)
        assert parse_row_date("2025-08-19T00:00:00") == date(2025, 8, 19)

    def test_garbage(self):
        for value in (None, "", "19/08/2025", "2025-02-30", 20250819, {"value": "2025-08-19"}):
            assert parse_row_date(value) is None


class TestDailySeries:
    def test_point_shape(self, bundle: dict):
        first = bundle["daily"]["2025"][0]
        assert first == {"x": "8/1", "y": 10, "label": "8月1日", "date_value": "2025-08-01"}
        assert bundle["cumulative"]["2025"][0]["label"] == "8月1日累計"

    def test_current_month_null_filled(self, bundle: dict):
        daily = bundle["daily"]["2025"]
        assert len(daily) == 31
        assert daily[18] == {"x": "8/19", "y": 10, "label": "8月19日", "date_value": "2025-08-19"}
        assert daily[19]["date_value"] == "2025-08-20"
        assert daily[19]["y"] is None
        assert all(p["y"] is None for p in daily[19:])

    def test_prior_year_never_null_filled(self, bundle: dict):
        prior = bundle["daily"]["2024"]
        assert len(prior) == 31
        assert all(p["y"] == 5 for p in prior)

    def test_cumulative_is_running_sum(self, bundle: dict):
        cumulative = bundle["cumulative"]["2025"]
        assert [p["y"] for p in cumulative[:3]] == [10, 20, 30]
        assert cumulative[18]["y"] == 190
        assert cumulative[19]["y"] is None
        assert bundle["cumulative"]["2024"][-1]["y"] == 155

    def test_cumulative_matches_daily_length(self, bundle: dict):
        for year in bundle["daily"]:
            assert len(bundle["cumulative"][year]) == len(bundle["daily"][year])

    def test_sorted_ascending(self):
        rows = list(reversed(chart_rows()))
        shaped = SeriesReshaper(AS_OF, now=FROZEN_NOW).reshape(rows, "souke")
        dates = [p["date_value"] for p in shaped["daily"]["2025"]]
        assert dates == sorted(dates)

    def test_real_zero_is_not_a_gap(self):
        rows = [
            {"data_type": "daily", "metric_date": "2025-08-18", "metric_count": 0},
            {"data_type": "daily", "metric_date": "2025-08-19", "metric_count": 4},
        ]
        shaped = SeriesReshaper(AS_OF, now=FROZEN_NOW).reshape(rows, "souke")
        daily = {p["date_value"]: p["y"] for p in shaped["daily"]["2025"]}
        assert daily["2025-08-18"] == 0
        assert daily["2025-08-20"] is None

    def test_duplicate_dates_are_summed(self):
        rows = [
            {"data_type": "daily", "metric_date": "2025-08-19", "metric_count": 4},
            {"data_type": "daily", "metric_date": "2025-08-19", "metric_count": "3"},
        ]
        shaped = SeriesReshaper(AS_OF, now=FROZEN_NOW).reshape(rows, "souke")
        assert shaped["daily"]["2025"][0]["y"] == 7


class TestBadRows:
    def test_unparseable_rows_are_skipped(self):
        rows = [
            {"data_type": "daily", "metric_date": "not a date", "metric_count": 1},
            {"data_type": "daily", "metric_date": None, "metric_count": 1},
            {"data_type": "daily", "metric_date": "2025-08-19", "metric_count": "many"},
            {"data_type": "hourly", "metric_date": "2025-08-19", "metric_count": 1},
            "not a row",
            {"data_type": "daily", "metric_date": "2025-08-19", "metric_count": 2},
        ]
        shaped, skipped = reshape_rows(rows, "souke", AS_OF, now=FROZEN_NOW)
        assert [w.index for w in skipped] == [0, 1, 2, 3, 4]
        assert shaped["metadata"]["skipped_rows"] == 5
        assert shaped["daily"]["2025"][0]["y"] == 2


class TestWeekly:
    def test_bucket_weekly_drops_sundays(self):
        items = [(date(2025, 8, 11), 1), (date(2025, 8, 17), 5), (date(2025, 8, 18), 2)]
        buckets = bucket_weekly(items)
        assert buckets == {(2025, 33): (date(2025, 8, 11), 1), (2025, 34): (date(2025, 8, 18), 2)}

    def test_bucket_weekly_with_sundays(self):
        items = [(date(2025, 8, 11), 1), (date(2025, 8, 17), 5)]
        assert bucket_weekly(items, exclude_sunday=False) == {(2025, 33): (date(2025, 8, 11), 6)}

    def test_weeks_start_monday(self):
        buckets = bucket_weekly([(date(2025, 8, 14), 3)])
        assert buckets[(2025, 33)][0] == date(2025, 8, 11)

    def test_weekly_points(self, bundle: dict):
        weekly = bundle["weekly"]["2025"]
        assert weekly[-1] == {"x": "Week 34", "y": 120, "label": "2025年第34週", "date_value": "2025-08-18"}
        assert [p["x"] for p in bundle["weekly"]["2024"]] == ["Week 32", "Week 33", "Week 34"]


class TestAlignment:
    def test_daily_matches_month_and_day(self):
        prior = [point("2024-08-18", 11), point("2024-08-19", 22), point("2024-08-20", 33)]
        aligned = align_daily([point("2025-08-19", 5)], prior)
        assert aligned[0].last_year == 22
        assert aligned[0].current == 5

    def test_not_raw_day_subtraction(self):
        """2024-03-01 minus 365 days is 2023-03-02; the lookup has to say 03-01."""
        prior = [point("2023-03-01", 7), point("2023-03-02", 9)]
        aligned = align_daily([point("2024-03-01", 1)], prior)
        assert aligned[0].last_year == 7

    def test_after_leap_year(self):
        prior = [point("2024-02-28", 1), point("2024-02-29", 2), point("2024-03-01", 3)]
        aligned = align_daily([point("2025-03-01", 10), point("2025-02-28", 10)], prior)
        assert [a.last_year for a in aligned] == [3, 1]

    def test_leap_day_resolves_to_zero(self):
        prior = [point("2023-02-28", 4), point("2023-03-01", 6)]
        aligned = align_daily([point("2024-02-29", 8)], prior)
        assert aligned[0].last_year == 0
        assert prior_value(date(2024, 2, 29), {date(2023, 2, 28): 4}) == 0

    def test_missing_prior_day_is_zero(self):
        aligned = align_daily([point("2025-08-19", 5)], [])
        assert aligned[0].last_year == 0

    def test_null_current_kept(self):
        aligned = align_daily([point("2025-08-25", None)], [point("2024-08-25", 4)])
        assert aligned[0].current is None
        assert aligned[0].last_year == 4

    def test_cumulative_carries_forward(self):
        prior = [point("2024-08-01", 5), point("2024-08-02", 9)]
        aligned = align_cumulative([point("2025-08-03", 12)], prior)
        assert aligned[0].last_year == 9

    def test_weekly_matches_iso_week(self):
        current = [ChartDataPoint(x="Week 34", y=120, label="", date_value="2025-08-18")]
        prior = [
            ChartDataPoint(x="Week 33", y=260, label="", date_value="2024-08-12"),
            ChartDataPoint(x="Week 34", y=270, label="", date_value="2024-08-19"),
        ]
        assert align_weekly(current, prior)[0].last_year == 270

    def test_bundle_aligned(self, bundle: dict):
        daily = bundle["aligned"]["daily"]
        assert len(daily) == 31
        aug19 = next(p for p in daily if p["date_value"] == "2025-08-19")
        assert aug19 == {"x": "8/19", "date_value": "2025-08-19", "current": 10, "last_year": 5}
        weekly = {p["x"]: p["last_year"] for p in bundle["aligned"]["weekly"]}
        assert weekly == {"Week 32": 250, "Week 33": 260, "Week 34": 270}


class TestMetadata:
    def test_metadata(self, bundle: dict):
        meta = bundle["metadata"]
        assert meta["family"] == "souke"
        assert meta["current_year"] == "2025"
        assert meta["prior_year"] == "2024"
        assert meta["is_mock_data"] is False
        assert meta["last_updated"] == FROZEN_NOW.isoformat()
        assert meta["record_count"] == len(chart_rows())

    def test_mock_bundle_is_flagged(self):
        mock = generate_mock_bundle("naitei", AS_OF, reason="ExecutionError", now=FROZEN_NOW)
        assert mock["metadata"]["is_mock_data"] is True
        assert mock["metadata"]["mock_reason"] == "ExecutionError"
        assert mock["metadata"]["data_source"] == "mock-data-ExecutionError"
        # shape only - no made-up numbers
        assert all(p["y"] is None for p in mock["daily"]["2025"])
        assert mock["daily"]["2024"] == []

    def test_mock_bundle_takes_weekly_lookback(self):
        mock = generate_mock_bundle("souke", AS_OF, reason="timeout", now=FROZEN_NOW, weekly_lookback_months=3)
        assert mock["metadata"]["extra"]["weekly_lookback_months"] == 3

    def test_weekly_lookback_limits_aligned_weeks(self):
        rows = chart_rows() + [
            {"data_type": "weekly", "year": 2025, "metric_date": date(2025, 7, 21),
             "week_start": date(2025, 7, 21), "week_number": 30, "metric_count": 200},
        ]
        wide, _ = reshape_rows(rows, "souke", AS_OF, now=FROZEN_NOW)
        narrow, _ = reshape_rows(rows, "souke", AS_OF, now=FROZEN_NOW, weekly_lookback_months=0)
        assert [p["date_value"] for p in wide["aligned"]["weekly"]][0] == "2025-07-21"
        assert [p["date_value"] for p in narrow["aligned"]["weekly"]] == ["2025-08-04", "2025-08-11", "2025-08-18"]
        assert narrow["metadata"]["extra"]["weekly_lookback_months"] == 0


class TestStats:
    def test_ignores_null_points(self, bundle: dict):
        stats = calculate_data_stats(bundle)
        assert stats["daily_stats"]["2025"] == {"count": 19, "total": 190, "average": 10, "max": 10, "min": 10}
        assert stats["daily_stats"]["2024"]["total"] == 155
        assert stats["weekly_stats"]["2024"]["count"] == 3
        assert stats["overall"]["total_days"] == 50

    def test_empty_bundle(self):
        stats = calculate_data_stats({"daily": {}, "weekly": {}})
        assert stats["daily_stats"] == {}
        assert stats["overall"]["total_days"] == 0


class TestTableMetrics:
    def test_growth_rate(self):
        assert growth_rate(120, 100) == 20.0
        assert growth_rate(0, 4) == -100.0
        assert growth_rate(3, 0) is None
        assert growth_rate(5, 9, min_base=10) is None
        assert growth_rate(15, 10, min_base=10) == 50.0

    def test_share(self):
        assert share_pct(70, 100) == 70.0
        assert share_pct(1, 3) == 33.3
        assert share_pct(5, 0) == 0.0

    def test_kpi_row(self):
        row = build_kpi_row(
            {"latest_date": "2025-08-19", "latest": 120, "prev_day": 100, "prev_week": 0, "prev_year": None}
        )
        assert row.latest == 120
        assert row.day_growth_rate == 20.0
        assert row.week_growth_rate is None
        assert row.prev_year == 0
        assert row.year_growth_rate is None

    def test_empty_kpi_row(self):
        row = build_kpi_row(None)
        assert row.latest == 0
        assert row.latest_date is None

    def test_channel_rows(self):
        rows = [
            {"channel_category": "オーガニック流入", "latest": 30, "prev_day": 20, "prev_week": 5, "prev_year": 40},
            {"channel_category": "有料広告流入", "latest": 70, "prev_day": 50, "prev_week": 70, "prev_year": 0},
            {"channel_category": "その他・不明", "latest": 0, "prev_day": 3, "prev_week": 0, "prev_year": 0},
        ]
        out = build_channel_rows(rows, min_base=10, order=["有料広告流入", "オーガニック流入", "その他・不明"])
        assert [r.channel_category for r in out] == ["有料広告流入", "オーガニック流入"]
        assert [r.share_pct for r in out] == [70.0, 30.0]
        assert out[1].day_growth_rate == 50.0
        assert out[1].week_growth_rate is None  # 5 is under the base
        assert out[1].year_growth_rate == -25.0

    def test_detail_rows_ordered_by_parent_then_volume(self):
        rows = [
            {"channel_category": "SEO_TOP", "parent_category": "オーガニック流入", "latest": 9},
            {"channel_category": "Indeed", "parent_category": "有料広告流入", "latest": 3},
            {"channel_category": "リスティング_指名", "parent_category": "有料広告流入", "latest": 8},
        ]
        out = build_channel_rows(rows, min_base=5, order=["有料広告流入", "オーガニック流入"])
        assert [r.channel_category for r in out] == ["リスティング_指名", "Indeed", "SEO_TOP"]
