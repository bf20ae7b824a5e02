"""BigQuery execution with a cost gate in front of it.

every query goes through the same two steps:

  1. dry-run it (free) and turn bytes-scanned into GB
  2. only if that's under the ceiling, run it for real with a bytes-billed
     cap and a wall-clock timeout

the executor only accepts an ApprovedQuery, and the only way to get one is
CostEstimator.approve(). so there's no code path that runs sql that wasn't
estimated first - same sql text, same request.

no retries anywhere. a failed query costs money already, running it again
blind could double that.
"""

import concurrent.futures
import json
import re
import threading
import time
from typing import Any

from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigquery
from google.oauth2 import service_account

from weeklybrief.config.loader import CostSettings, WarehouseSettings
from weeklybrief.errors import (
    CostExceededError,
    EstimationFailedError,
    ExecutionError,
)
from weeklybrief.log_utils import get_logger
from weeklybrief.models.query import BYTES_PER_GB, ApprovedQuery, CostEstimate, ExecutionResult

logger = get_logger(__name__)

_LABEL_INVALID = re.compile(r"[^a-z0-9_-]")


class WarehouseClient:
    """Lazily-built, shareable BigQuery client handle.

    owned by the service, not a module global - tests hand in a fake client
    and nothing ever constructs a real one.
    """

    def __init__(self, settings: WarehouseSettings, client: Any | None = None) -> None:
        self.settings = settings
        self._client = client
        self._lock = threading.Lock()

    def initialize(self) -> Any:
        """Build the client if it isn't built yet. safe to call repeatedly."""
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is None:
                self._client = bigquery.Client(
                    project=self.settings.project_id,
                    credentials=self._credentials(),
                    location=self.settings.location,
                )
                logger.info(
                    "BigQuery client initialized for %s (%s)",
                    self.settings.project_id,
                    self.settings.location,
                )
        return self._client

    @property
    def client(self) -> Any:
        return self.initialize()

    @property
    def location(self) -> str:
        return self.settings.location

    def _credentials(self):
        # inline json first (what the functions runtime gets), then a key file,
        # then whatever application default credentials find
        if self.settings.credentials_json:
            info = json.loads(self.settings.credentials_json)
            return service_account.Credentials.from_service_account_info(info)
        if self.settings.credentials_file:
            return service_account.Credentials.from_service_account_file(self.settings.credentials_file)
        return None


class CostEstimator:
    """Dry-runs sql and decides whether it's allowed to run."""

    def __init__(self, warehouse: WarehouseClient, limit_gb: float = 5.0) -> None:
        self.warehouse = warehouse
        self.limit_gb = limit_gb

    def estimate(self, sql: str) -> CostEstimate:
        job_config = bigquery.QueryJobConfig(dry_run=True, use_query_cache=False)
        try:
            job = self.warehouse.client.query(sql, job_config=job_config, location=self.warehouse.location)
        except (GoogleAPICallError, GoogleAuthError) as e:
            logger.error("Dry run failed (sql length %d): %s", len(sql), e)
            raise EstimationFailedError(f"Dry run failed: {e}") from e

        estimate = CostEstimate.from_bytes(int(job.total_bytes_processed or 0), self.limit_gb)
        logger.info(
            "Dry run: %.4fGB of %.1fGB allowed",
            estimate.gigabytes_processed,
            self.limit_gb,
        )
        return estimate

    def approve(self, sql: str) -> ApprovedQuery:
        """Estimate sql and hand back an ApprovedQuery, or raise CostExceededError."""
        estimate = self.estimate(sql)
        if estimate.exceeds_limit:
            # expected outcome, not an application error
            logger.warning(
                "Query blocked by cost ceiling: %.2fGB > %.1fGB",
                estimate.gigabytes_processed,
                self.limit_gb,
            )
            raise CostExceededError(estimate, self.limit_gb)
        return ApprovedQuery(sql=sql, estimate=estimate)


def _label_value(value: str, max_len: int = 63) -> str:
    cleaned = _LABEL_INVALID.sub("_", value.lower())
    return cleaned[:max_len] or "unknown"


def _error_kind(error: GoogleAPICallError) -> str:
    """billing_cap, timeout or query_failed for a job error.

    a job that hits job_timeout_ms on the server side comes back as an api
    error (reason timeout or stopped), not as a client-side TimeoutError.
    """
    reasons = {
        detail.get("reason")
        for detail in getattr(error, "errors", None) or []
        if isinstance(detail, dict)
    }
    message = str(error)
    if "bytesBilledLimitExceeded" in reasons or "bytesBilledLimitExceeded" in message:
        return "billing_cap"
    if reasons & {"timeout", "stopped"} or "timed out" in message.lower():
        return "timeout"
    return "query_failed"


class BoundedExecutor:
    """Runs approved queries with a bytes-billed cap and a timeout."""

    def __init__(self, warehouse: WarehouseClient, cost: CostSettings) -> None:
        self.warehouse = warehouse
        self.cost = cost

    def labels(self, user: str | None, query_kind: str) -> dict[str, str]:
        return {
            "app": _label_value(self.warehouse.settings.app_label),
            "env": _label_value(self.warehouse.settings.environment),
            "user": _label_value(user or "unknown")[:8],
            "query": _label_value(query_kind),
        }

    def execute(
        self,
        approved: ApprovedQuery,
        timeout_s: float,
        user: str | None = None,
        query_kind: str = "kpi",
    ) -> ExecutionResult:
        """Run the query once. timeout_s is per call - kpi and table pulls differ."""
        if not isinstance(approved, ApprovedQuery):
            raise TypeError("BoundedExecutor only runs queries approved by CostEstimator")

        job_config = bigquery.QueryJobConfig(
            use_legacy_sql=False,
            # same ceiling again, in case the data grew between dry run and now
            maximum_bytes_billed=int(self.cost.max_gb * BYTES_PER_GB),
            job_timeout_ms=int(timeout_s * 1000),
            labels=self.labels(user, query_kind),
        )

        start = time.perf_counter()
        job = None
        try:
            job = self.warehouse.client.query(
                approved.sql, job_config=job_config, location=self.warehouse.location
            )
            rows = [dict(row.items()) for row in job.result(timeout=timeout_s)]
        except concurrent.futures.TimeoutError as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            job_id = getattr(job, "job_id", None)
            logger.error("Query timed out after %dms (limit %ss, job %s)", elapsed, timeout_s, job_id)
            raise ExecutionError(f"Query timed out after {timeout_s:g}s", kind="timeout", job_id=job_id) from e
        except GoogleAPICallError as e:
            job_id = getattr(job, "job_id", None)
            kind = _error_kind(e)
            logger.error(
                "Query failed (%s, job %s, sql length %d): %s", kind, job_id, len(approved.sql), e
            )
            raise ExecutionError(f"Query failed: {kind}", kind=kind, job_id=job_id) from e

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        result = ExecutionResult(
            rows=rows,
            job_id=job.job_id,
            bytes_billed=int(job.total_bytes_billed or 0),
            bytes_processed=int(job.total_bytes_processed or 0),
            duration_ms=elapsed_ms,
            estimate=approved.estimate,
        )
        logger.info(
            "Query %s returned %d rows in %dms (%d bytes billed)",
            result.job_id,
            result.row_count,
            elapsed_ms,
            result.bytes_billed,
        )
        return result


class QueryRunner:
    """Estimate-then-execute for one sql string.

    this is the entry point everything else uses. it's strictly sequential
    per query: approve() has to return before execute() is even called.
    """

    def __init__(self, warehouse: WarehouseClient, cost: CostSettings) -> None:
        self.warehouse = warehouse
        self.cost = cost
        self.estimator = CostEstimator(warehouse, cost.max_gb)
        self.executor = BoundedExecutor(warehouse, cost)

    def run(
        self,
        sql: str,
        timeout_s: float,
        user: str | None = None,
        query_kind: str = "kpi",
    ) -> ExecutionResult:
        approved = self.estimator.approve(sql)
        return self.executor.execute(approved, timeout_s=timeout_s, user=user, query_kind=query_kind)

    def health_check(self, sql: str = "SELECT 1 AS health_check") -> bool:
        """Tiny query to prove credentials and region work. never raises."""
        try:
            result = self.run(sql, timeout_s=self.cost.health_timeout_s, user="health", query_kind="health")
        except (CostExceededError, EstimationFailedError, ExecutionError) as e:
            logger.warning("Warehouse health check failed: %s", e)
            return False
        if not result.rows or result.rows[0].get("health_check") != 1:
            logger.warning("Warehouse health check returned %r", result.rows[:1])
            return False
        return True
