"""Pytest fixtures for weeklybrief tests.

nothing here talks to google. FakeBigQueryClient stands in for
bigquery.Client and records every dry run and every real execution, so
tests can assert on exactly what would have been sent.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from weeklybrief.cache.store import MemorySnapshotStore
from weeklybrief.config.loader import Settings
from weeklybrief.models.query import BYTES_PER_GB
from weeklybrief.service import BriefService

# 2025-08-19 12:00 in Tokyo
FROZEN_NOW = datetime(2025, 8, 19, 3, 0, tzinfo=timezone.utc)
AS_OF = date(2025, 8, 19)


class FakeJob:
    def __init__(
        self,
        job_id: str,
        bytes_processed: int,
        rows: list[dict[str, Any]] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.job_id = job_id
        self.total_bytes_processed = bytes_processed
        self.total_bytes_billed = bytes_processed
        self._rows = rows or []
        self._error = error
        self.result_timeouts: list[float | None] = []

    def result(self, timeout: float | None = None):
        self.result_timeouts.append(timeout)
        if self._error is not None:
            raise self._error
        return list(self._rows)


class FakeBigQueryClient:
    """Records queries. dry runs and real runs are kept separately.

    rows / dry_run_bytes / errors can be plain values or callables taking the
    sql text, so one client can answer several different queries.
    """

    def __init__(
        self,
        dry_run_bytes: int | Callable[[str], int] = 0,
        rows: list[dict[str, Any]] | Callable[[str], list[dict[str, Any]]] | None = None,
        dry_run_error: BaseException | None = None,
        result_error: BaseException | Callable[[str], BaseException | None] | None = None,
    ) -> None:
        self.dry_run_bytes = dry_run_bytes
        self.rows = rows
        self.dry_run_error = dry_run_error
        self.result_error = result_error
        self.dry_run_calls: list[str] = []
        self.execute_calls: list[tuple[str, Any]] = []
        self.jobs: list[FakeJob] = []

    @staticmethod
    def _resolve(value, sql):
        return value(sql) if callable(value) else value

    def query(self, sql: str, job_config=None, location: str | None = None, **kwargs):
        if job_config is not None and job_config.dry_run:
            self.dry_run_calls.append(sql)
            if self.dry_run_error is not None:
                raise self.dry_run_error
            return FakeJob("dry-run", int(self._resolve(self.dry_run_bytes, sql)))

        self.execute_calls.append((sql, job_config))
        job = FakeJob(
            f"job-{len(self.execute_calls)}",
            int(self._resolve(self.dry_run_bytes, sql)),
            rows=self._resolve(self.rows, sql),
            error=self._resolve(self.result_error, sql),
        )
        self.jobs.append(job)
        return job


def gb(value: float) -> int:
    return int(value * BYTES_PER_GB)


def kpi_rows(start: date, days: int) -> list[dict[str, Any]]:
    """What the KPI query hands back: one row per day with a running total."""
    rows = []
    total = 0
    for i in range(days):
        count = 100 + i
        total += count
        rows.append(
            {
                "metric_date": start + timedelta(days=i),
                "daily_count": count,
                "total_applications": count + 20,
                "cumulative_count": total,
            }
        )
    return rows


def chart_rows(as_of: date = AS_OF, daily_value: int = 10) -> list[dict[str, Any]]:
    """Chart query rows: current month up to as_of, the whole month last year, some weeks."""
    rows = []
    d = as_of.replace(day=1)
    while d <= as_of:
        rows.append({"data_type": "daily", "year": d.year, "metric_date": d, "metric_count": daily_value})
        d += timedelta(days=1)
    d = date(as_of.year - 1, as_of.month, 1)
    while d.month == as_of.month:
        rows.append({"data_type": "daily", "year": d.year, "metric_date": d, "metric_count": daily_value // 2})
        d += timedelta(days=1)
    for monday, count in [
        (date(2025, 8, 4), 300),
        (date(2025, 8, 11), 310),
        (date(2025, 8, 18), 120),
        (date(2024, 8, 5), 250),
        (date(2024, 8, 12), 260),
        (date(2024, 8, 19), 270),
    ]:
        iso_year, iso_week, _ = monday.isocalendar()
        rows.append(
            {
                "data_type": "weekly",
                "year": iso_year,
                "metric_date": monday,
                "week_start": monday,
                "week_number": iso_week,
                "metric_count": count,
            }
        )
    return rows


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def fake_client() -> FakeBigQueryClient:
    return FakeBigQueryClient(dry_run_bytes=gb(0.8), rows=kpi_rows(date(2025, 8, 1), 19))


@pytest.fixture
def memory_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FROZEN_NOW


@pytest.fixture
def service(settings: Settings, fake_client: FakeBigQueryClient, memory_store, clock) -> BriefService:
    return BriefService(settings, client=fake_client, store=memory_store, clock=clock)
