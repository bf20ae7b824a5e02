"""Tests for CLI commands."""

from datetime import date
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FROZEN_NOW, FakeBigQueryClient, chart_rows, gb, kpi_rows
from weeklybrief.cache.snapshot import make_snapshot
from weeklybrief.cache.store import MemorySnapshotStore
from weeklybrief.cli import main as cli_main
from weeklybrief.cli.main import app
from weeklybrief.config.loader import Settings
from weeklybrief.models.snapshot import SERIES_V1
from weeklybrief.service import BriefService

runner = CliRunner()


@pytest.fixture
def fake() -> FakeBigQueryClient:
    return FakeBigQueryClient(dry_run_bytes=gb(0.8), rows=kpi_rows(date(2025, 8, 1), 19))


@pytest.fixture
def store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture(autouse=True)
def patched_service(monkeypatch: pytest.MonkeyPatch, fake: FakeBigQueryClient, store: MemorySnapshotStore):
    """Every command gets a service wired to the fake warehouse."""

    def _get_service(config: Path | None = None) -> BriefService:
        return BriefService(Settings(), client=fake, store=store, clock=lambda: FROZEN_NOW)

    monkeypatch.setattr(cli_main, "get_service", _get_service)


class TestCLIList:
    def test_list_queries(self):
        """Lists every named query."""
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "souke" in result.stdout
        assert "latest-date" in result.stdout


class TestCLIShowSQL:
    def test_show_sql(self):
        """Shows generated SQL for a named query."""
        result = runner.invoke(app, ["show-sql", "souke", "--as-of", "2025-08-19"])
        assert result.exit_code == 0
        assert "reentry_exclusions" in result.stdout

    def test_show_sql_unknown_query(self):
        """Reports error for an unknown name."""
        result = runner.invoke(app, ["show-sql", "bogus"])
        assert result.exit_code == 1
        assert "unknown query" in result.stdout.lower()

    def test_bad_as_of(self):
        result = runner.invoke(app, ["show-sql", "souke", "--as-of", "2025-13-01"])
        assert result.exit_code == 1
        assert "invalid --as-of" in result.stdout.lower()

    def test_never_touches_warehouse(self, fake: FakeBigQueryClient):
        runner.invoke(app, ["show-sql", "kpi-table"])
        assert fake.dry_run_calls == []
        assert fake.execute_calls == []


class TestCLICheck:
    def test_check_unknown_query(self):
        result = runner.invoke(app, ["check", "bogus"])
        assert result.exit_code == 1


class TestCLIStats:
    def test_stats(self):
        """Prints a row per query."""
        result = runner.invoke(app, ["stats", "--as-of", "2025-08-19"])
        assert result.exit_code == 0
        assert "channel-detail" in result.stdout


class TestCLIValidate:
    def test_validate_success(self):
        result = runner.invoke(app, ["validate", "2025-08-01", "2025-08-19", "all"])
        assert result.exit_code == 0
        assert "valid" in result.stdout.lower()

    def test_validate_failure(self):
        """Lists every problem, not just the first."""
        result = runner.invoke(app, ["validate", "2025-02-30", "2025-08-19", "HR"])
        assert result.exit_code == 1
        assert "start must be a valid date" in result.stdout
        assert "bu must be one of" in result.stdout


class TestCLIRunKpi:
    def test_dry_run(self, fake: FakeBigQueryClient):
        """Dry run estimates and stops."""
        result = runner.invoke(app, ["run-kpi", "2025-08-01", "2025-08-19", "ALL", "--dry-run"])
        assert result.exit_code == 0
        assert "0.8GB" in result.stdout
        assert "within limit" in result.stdout
        assert len(fake.dry_run_calls) == 1
        assert fake.execute_calls == []

    def test_dry_run_over_limit(self, fake: FakeBigQueryClient):
        fake.dry_run_bytes = gb(7.2)
        result = runner.invoke(app, ["run-kpi", "2024-01-01", "2025-08-19", "ALL", "--dry-run"])
        assert result.exit_code == 1
        assert "over limit" in result.stdout

    def test_run_json(self, fake: FakeBigQueryClient):
        result = runner.invoke(app, ["run-kpi", "2025-08-01", "2025-08-19", "ALL", "-o", "json"])
        assert result.exit_code == 0
        assert '"rows_count": 19' in result.stdout
        assert len(fake.execute_calls) == 1

    def test_run_blocked(self, fake: FakeBigQueryClient):
        fake.dry_run_bytes = gb(7.2)
        result = runner.invoke(app, ["run-kpi", "2024-01-01", "2025-08-19", "ALL"])
        assert result.exit_code == 1
        assert "exceeds maximum scan limit" in result.stdout
        assert fake.execute_calls == []

    def test_invalid_parameters(self, fake: FakeBigQueryClient):
        result = runner.invoke(app, ["run-kpi", "2025-08-19", "2025-08-01", "ALL"])
        assert result.exit_code == 1
        assert fake.dry_run_calls == []


class TestCLIRefresh:
    def test_refresh_persist(self, fake: FakeBigQueryClient, store: MemorySnapshotStore):
        fake.rows = lambda sql: [] if "v_flow_action_joboffer" in sql else chart_rows()
        result = runner.invoke(app, ["refresh", "--persist"])
        assert result.exit_code == 0
        assert "souke" in result.stdout
        assert store.families() == ["naitei", "souke"]

    def test_refresh_defaults_to_no_persist(self, fake: FakeBigQueryClient, store: MemorySnapshotStore):
        fake.rows = []
        result = runner.invoke(app, ["refresh"])
        assert result.exit_code == 0
        assert store.families() == []


class TestCLICacheStatus:
    def test_missing(self):
        result = runner.invoke(app, ["cache-status", "souke"])
        assert result.exit_code == 1
        assert "no snapshot" in result.stdout.lower()

    def test_fresh(self, store: MemorySnapshotStore):
        store.set_latest("souke", make_snapshot({}, "user-1", SERIES_V1, now=FROZEN_NOW))
        result = runner.invoke(app, ["cache-status", "souke"])
        assert result.exit_code == 0
        assert "fresh" in result.stdout


class TestCLIPing:
    def test_ping_ok(self, monkeypatch: pytest.MonkeyPatch, store: MemorySnapshotStore):
        fake = FakeBigQueryClient(rows=[{"health_check": 1}])
        monkeypatch.setattr(
            cli_main,
            "get_service",
            lambda config=None: BriefService(Settings(), client=fake, store=store, clock=lambda: FROZEN_NOW),
        )
        result = runner.invoke(app, ["ping"])
        assert result.exit_code == 0
        assert "ok" in result.stdout

    def test_ping_unavailable(self):
        # the default fake answers with kpi rows, not the health_check value
        result = runner.invoke(app, ["ping"])
        assert result.exit_code == 1
        assert "unavailable" in result.stdout.lower()
