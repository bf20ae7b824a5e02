"""BriefService - the one object the api and cli talk to.

owns the warehouse client, the query builder, the cost-gated runner and the
snapshot store, and strings them together into the three flows the
dashboard needs:

  - run_kpi: validate -> build -> estimate -> execute -> normalize
  - refresh_series: fan out the chart queries, reshape, validate, persist
  - fetch_table_data: fan out the table queries, compute growth/share

everything that touches the outside world is injected, so tests swap in a
fake bigquery client, an in-memory store and a frozen clock.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from weeklybrief.cache.snapshot import make_snapshot, read_data, snapshot_status
from weeklybrief.cache.store import SnapshotStore, build_store
from weeklybrief.cache.validate import ValidationReport, ensure_persistable, validate_table_data
from weeklybrief.compiler.catalog import build_catalog_query, timeout_for
from weeklybrief.compiler.sql_builder import QueryBuilder
from weeklybrief.config.loader import Settings
from weeklybrief.errors import NormalizationWarning, RefreshFailedError, RowSkipWarning, WeeklyBriefError
from weeklybrief.executor.bigquery_executor import QueryRunner, WarehouseClient
from weeklybrief.log_utils import get_logger
from weeklybrief.models.query import CostEstimate, ExecutionResult, QueryRequest
from weeklybrief.models.snapshot import SERIES_V1, TABLE_V1, CachedSnapshot, SnapshotStatus
from weeklybrief.normalize.rows import RowNormalizer
from weeklybrief.reshape.fallback import generate_mock_bundle
from weeklybrief.reshape.series import SeriesReshaper
from weeklybrief.reshape.table import build_channel_rows, build_kpi_row

logger = get_logger(__name__)

TABLE_FAMILY = "table_data"
TABLE_KEYS = ("kpi", "naitei_kpi", "channel_overview", "channel_detail")


@dataclass
class KpiRun:
    rows: list[dict[str, Any]]
    result: ExecutionResult
    warnings: list[NormalizationWarning] = field(default_factory=list)

    def metadata(self) -> dict[str, Any]:
        estimate = self.result.estimate
        return {
            "query_duration_ms": self.result.duration_ms,
            "rows_count": len(self.rows),
            "job_id": self.result.job_id,
            "bytes_processed": self.result.bytes_processed,
            "estimated_gb": estimate.display_gb if estimate is not None else None,
        }


@dataclass
class RefreshResult:
    bundles: dict[str, dict[str, Any]]
    degraded: bool = False
    degraded_reason: str | None = None
    failed_families: list[str] = field(default_factory=list)
    persisted: list[str] = field(default_factory=list)
    reports: dict[str, ValidationReport] = field(default_factory=dict)
    skipped_rows: dict[str, list[RowSkipWarning]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "degraded": self.degraded,
            "degraded_reason": self.degraded_reason,
            "failed_families": self.failed_families,
            "persisted": self.persisted,
            "validation": {family: report.to_dict() for family, report in self.reports.items()},
            "data": self.bundles,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BriefService:
    """Composition root for the weekly brief backend."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: Any | None = None,
        store: SnapshotStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.warehouse = WarehouseClient(self.settings.warehouse, client)
        self.builder = QueryBuilder(self.settings)
        self.runner = QueryRunner(self.warehouse, self.settings.cost)
        self.store = store if store is not None else build_store(self.settings)
        self.clock = clock or _utc_now

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        offset = timezone(timedelta(hours=self.settings.reshape.utc_offset_hours))
        return self.now().astimezone(offset).date()

    # ------------------------------------------------------------------ kpi

    def kpi_sql(self, request: QueryRequest) -> str:
        return self.builder.build_kpi_query(request)

    def estimate_kpi(self, request: QueryRequest) -> CostEstimate:
        """Dry run only. nothing is billed and nothing executes."""
        return self.runner.estimator.estimate(self.kpi_sql(request))

    def run_kpi(self, request: QueryRequest, user: str | None = None) -> KpiRun:
        sql = self.kpi_sql(request)
        logger.info(
            "run-kpi %s..%s bu=%s (sql %d chars)",
            request.start_date,
            request.end_date,
            request.category.value,
            len(sql),
        )
        result = self.runner.run(sql, timeout_s=self.settings.cost.kpi_timeout_s, user=user, query_kind="kpi")
        normalizer = RowNormalizer()
        rows = normalizer.normalize_rows(result.rows)
        return KpiRun(rows=rows, result=result, warnings=normalizer.warnings)

    # --------------------------------------------------------------- charts

    def _fetch_family(self, family: str, as_of: date, user: str | None) -> tuple[dict[str, Any], list[RowSkipWarning]]:
        sql = self.builder.build_chart_query(family, as_of)
        result = self.runner.run(
            sql,
            timeout_s=timeout_for(family, self.settings.cost, default_kind="kpi"),
            user=user,
            query_kind=f"chart_{family}",
        )
        rows = RowNormalizer().normalize_rows(result.rows)
        reshaper = SeriesReshaper(
            as_of,
            exclude_sunday=self.settings.reshape.weekly_exclude_sunday,
            weekly_lookback_months=self.settings.reshape.weekly_lookback_months,
            now=self.now(),
        )
        bundle = reshaper.reshape(rows, family)
        bundle["metadata"]["extra"].update(
            {"job_id": result.job_id, "bytes_billed": result.bytes_billed, "duration_ms": result.duration_ms}
        )
        return bundle, reshaper.skipped

    async def refresh_series(self, user: str = "system", persist: bool = True) -> RefreshResult:
        """Refresh every chart family at once.

        the queries are independent so they all go out together, and nothing
        is reshaped or written until every one of them has come back.
        """
        as_of = self.today()
        families = list(self.settings.chart_families)
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self._fetch_family, family, as_of, user) for family in families),
            return_exceptions=True,
        )

        result = RefreshResult(bundles={})
        failures: dict[str, Exception] = {}
        for family, outcome in zip(families, outcomes):
            if isinstance(outcome, Exception):
                failures[family] = outcome
                logger.error("Refresh of %s failed: %s", family, outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.bundles[family], result.skipped_rows[family] = outcome

        if failures:
            reason = "; ".join(f"{family}: {type(e).__name__}" for family, e in failures.items())
            if not self.settings.reshape.allow_degraded:
                first = next(iter(failures.values()))
                raise RefreshFailedError(f"Refresh failed ({reason})") from first
            logger.warning("Serving degraded refresh: %s", reason)
            result.degraded = True
            result.degraded_reason = reason
            result.failed_families = list(failures)
            for family, error in failures.items():
                result.bundles[family] = generate_mock_bundle(
                    family,
                    as_of,
                    reason=type(error).__name__,
                    exclude_sunday=self.settings.reshape.weekly_exclude_sunday,
                    now=self.now(),
                    weekly_lookback_months=self.settings.reshape.weekly_lookback_months,
                )

        expected_years = [str(as_of.year - 1), str(as_of.year)]
        for family in families:
            bundle = result.bundles[family]
            result.reports[family] = ensure_persistable(bundle, expected_years)
            if not persist or bundle["metadata"].get("is_mock_data"):
                continue
            snapshot = make_snapshot(bundle, updated_by=user, version=SERIES_V1, now=self.now())
            await asyncio.to_thread(self.store.set_latest, family, snapshot)
            result.persisted.append(family)

        return result

    # --------------------------------------------------------------- tables

    def _run_table_query(self, name: str, as_of: date, user: str | None) -> list[dict[str, Any]]:
        sql = build_catalog_query(self.builder, name, as_of)
        result = self.runner.run(
            sql, timeout_s=timeout_for(name, self.settings.cost), user=user, query_kind=name.replace("-", "_")
        )
        return RowNormalizer().normalize_rows(result.rows)

    async def fetch_table_data(self, user: str | None = None, persist: bool = False) -> dict[str, Any]:
        as_of = self.today()
        names = ["kpi-table", "naitei-kpi", "channel-overview", "channel-detail"]
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self._run_table_query, name, as_of, user) for name in names),
            return_exceptions=True,
        )
        # any failure fails the whole table - no half-filled tables
        failures = [(name, o) for name, o in zip(names, outcomes) if isinstance(o, BaseException)]
        for name, error in failures[1:]:
            logger.error("Table query %s also failed: %s", name, error)
        if failures:
            raise failures[0][1]
        kpi, naitei, overview, detail = outcomes
        channels = self.settings.channels
        order = channels.overview_order()
        data = {
            "kpi": build_kpi_row(kpi[0] if kpi else None).model_dump(),
            "naitei_kpi": build_kpi_row(naitei[0] if naitei else None).model_dump(),
            "channel_overview": [
                r.model_dump() for r in build_channel_rows(overview, channels.overview_min_base, order)
            ],
            "channel_detail": [
                r.model_dump() for r in build_channel_rows(detail, channels.detail_min_base, order)
            ],
            "as_of": as_of.isoformat(),
        }
        missing = validate_table_data(data, TABLE_KEYS)
        if missing:
            raise WeeklyBriefError("; ".join(missing))
        if persist:
            snapshot = make_snapshot(data, updated_by=user or "system", version=TABLE_V1, now=self.now())
            await asyncio.to_thread(self.store.set_latest, TABLE_FAMILY, snapshot)
        return data

    # ---------------------------------------------------------------- cache

    def get_snapshot(self, family: str) -> CachedSnapshot | None:
        return self.store.get_latest(family)

    def cache_status(self, family: str) -> SnapshotStatus:
        return snapshot_status(family, self.get_snapshot(family), self.now(), self.settings.cache.ttl_hours)

    def read_cache(self, family: str) -> tuple[SnapshotStatus, dict[str, Any] | None]:
        """Status plus payload. the payload is checked against the family's version tag."""
        snapshot = self.get_snapshot(family)
        status = snapshot_status(family, snapshot, self.now(), self.settings.cache.ttl_hours)
        if snapshot is None:
            return status, None
        expected = TABLE_V1 if family == TABLE_FAMILY else SERIES_V1
        return status, read_data(snapshot, expected)

    # ------------------------------------------------------------- plumbing

    def health(self) -> dict[str, str]:
        return {"status": "healthy", "timestamp": self.now().isoformat()}

    def warehouse_health(self) -> bool:
        """Run the SELECT 1 check against the warehouse. never raises."""
        return self.runner.health_check(self.builder.build_health_check_query())

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "BriefService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
