"""CLI for weeklybrief."""

import asyncio
import json
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from weeklybrief.compiler.catalog import QUERY_CATALOG, build_catalog_query
from weeklybrief.compiler.inspect import inspect_query
from weeklybrief.config.loader import load_settings
from weeklybrief.errors import CostExceededError
from weeklybrief.reshape.stats import calculate_data_stats
from weeklybrief.service import BriefService
from weeklybrief.validation.params import build_request, parse_date, validate_parameters

app = typer.Typer(
    name="wb",
    help="Weekly Brief - KPI queries and chart data",
    no_args_is_help=True,
)
console = Console()

ConfigOption = Annotated[Path | None, typer.Option("--config", "-c", help="Settings YAML file")]
AsOfOption = Annotated[str | None, typer.Option("--as-of", help="Treat this date as today (YYYY-MM-DD)")]


def get_service(config: Path | None = None) -> BriefService:
    return BriefService(load_settings(config))


def _load(config: Path | None) -> BriefService:
    try:
        return get_service(config)
    except Exception as e:
        console.print(f"[red]Error loading settings: {e}[/red]")
        raise typer.Exit(1)


def _as_of(service: BriefService, value: str | None) -> date:
    if value is None:
        return service.today()
    parsed = parse_date(value)
    if parsed is None:
        console.print(f"[red]Invalid --as-of date: {value}[/red]")
        raise typer.Exit(1)
    return parsed


@app.command("list")
def list_queries() -> None:
    """List the named queries."""
    table = Table(title="Queries")
    table.add_column("Name", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Charts", style="yellow")
    table.add_column("Description")

    for entry in QUERY_CATALOG.values():
        table.add_row(entry.name, entry.title, ", ".join(entry.charts) or "-", entry.description)

    console.print(table)


@app.command("show-sql")
def show_sql(
    name: Annotated[str, typer.Argument(help="Query name (see `wb list`)")],
    config: ConfigOption = None,
    as_of: AsOfOption = None,
) -> None:
    """Show generated SQL without executing."""
    service = _load(config)
    try:
        sql = build_catalog_query(service.builder, name, _as_of(service, as_of))
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        raise typer.Exit(1)

    syntax = Syntax(sql, "sql", theme="monokai", line_numbers=True)
    console.print(syntax)


@app.command()
def check(
    name: Annotated[str, typer.Argument(help="Query name (see `wb list`)")],
    config: ConfigOption = None,
    as_of: AsOfOption = None,
) -> None:
    """Static checks on a query: tables, CTEs, dates, syntax."""
    service = _load(config)
    try:
        sql = build_catalog_query(service.builder, name, _as_of(service, as_of))
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        raise typer.Exit(1)

    report = inspect_query(sql)
    table = Table(title=f"Checks: {name}")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    for check_name, passed in report.checks.items():
        table.add_row(check_name, "[green]ok[/green]" if passed else "[red]FAIL[/red]")
    console.print(table)

    console.print(f"characters: {report.char_count}, lines: {report.line_count}")
    console.print(f"tables: {', '.join(report.tables) or '-'}")
    console.print(f"CTEs: {', '.join(report.ctes) or '-'}")
    console.print(f"dates: {', '.join(report.date_literals) or '-'}")
    if report.parse_error:
        console.print(f"[red]parse error: {report.parse_error}[/red]")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def stats(config: ConfigOption = None, as_of: AsOfOption = None) -> None:
    """Size and CTE count for every query."""
    service = _load(config)
    day = _as_of(service, as_of)

    table = Table(title="Query stats")
    table.add_column("Name", style="cyan")
    table.add_column("Chars", justify="right")
    table.add_column("Lines", justify="right")
    table.add_column("CTEs", justify="right")
    table.add_column("Parses")
    for name in QUERY_CATALOG:
        report = inspect_query(build_catalog_query(service.builder, name, day))
        table.add_row(
            name,
            str(report.char_count),
            str(report.line_count),
            str(len(report.ctes)),
            "yes" if report.checks["parses"] else "[red]no[/red]",
        )
    console.print(table)


@app.command()
def validate(
    start: Annotated[str, typer.Argument(help="Start date (YYYY-MM-DD)")],
    end: Annotated[str, typer.Argument(help="End date (YYYY-MM-DD)")],
    bu: Annotated[str, typer.Argument(help="Business unit, or ALL")],
) -> None:
    """Validate KPI request parameters."""
    errors = validate_parameters(start, end, bu)
    if errors:
        console.print("[red]Validation failed:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)
    console.print("[green]Parameters are valid[/green]")


@app.command("run-kpi")
def run_kpi(
    start: Annotated[str, typer.Argument(help="Start date (YYYY-MM-DD)")],
    end: Annotated[str, typer.Argument(help="End date (YYYY-MM-DD)")],
    bu: Annotated[str, typer.Argument(help="Business unit, or ALL")],
    config: ConfigOption = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Only estimate the cost")] = False,
    output: Annotated[str, typer.Option("--output", "-o", help="Output format: table, json")] = "table",
) -> None:
    """Run the KPI query (estimate first, always)."""
    errors = validate_parameters(start, end, bu)
    if errors:
        console.print("[red]Validation failed:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    service = _load(config)
    request = build_request(start, end, bu)

    if dry_run:
        try:
            estimate = service.estimate_kpi(request)
        except Exception as e:
            console.print(f"[red]Estimate failed: {e}[/red]")
            raise typer.Exit(1)
        verdict = "[red]over limit[/red]" if estimate.exceeds_limit else "[green]within limit[/green]"
        console.print(f"estimated {estimate.display_gb}GB of {estimate.limit_gb:g}GB: {verdict}")
        if estimate.exceeds_limit:
            raise typer.Exit(1)
        return

    try:
        run = service.run_kpi(request, user="cli")
    except CostExceededError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Query error: {e}[/red]")
        raise typer.Exit(1)

    if output == "json":
        console.print(json.dumps({"data": run.rows, "metadata": run.metadata()}, indent=2, ensure_ascii=False))
        return

    columns = list(run.rows[0]) if run.rows else []
    table = Table(title=f"KPI ({len(run.rows)} rows, {run.result.duration_ms}ms, job {run.result.job_id})")
    for col in columns:
        table.add_column(col)
    for row in run.rows:
        table.add_row(*[str(row.get(c, "")) for c in columns])
    console.print(table)


@app.command()
def refresh(
    config: ConfigOption = None,
    persist: Annotated[bool, typer.Option("--persist/--no-persist", help="Write snapshots")] = False,
) -> None:
    """Refresh the chart series for every family."""
    service = _load(config)
    try:
        result = asyncio.run(service.refresh_series(user="cli", persist=persist))
    except Exception as e:
        console.print(f"[red]Refresh failed: {e}[/red]")
        raise typer.Exit(1)

    if result.degraded:
        console.print(f"[yellow]DEGRADED: {result.degraded_reason}[/yellow]")

    table = Table(title="Refresh")
    table.add_column("Family", style="cyan")
    table.add_column("Year")
    table.add_column("Days", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Weeks", justify="right")
    for family, bundle in result.bundles.items():
        family_stats = calculate_data_stats(bundle)
        for year in sorted(bundle["daily"]):
            daily = family_stats["daily_stats"].get(year, {})
            weekly = family_stats["weekly_stats"].get(year, {})
            table.add_row(
                family,
                year,
                str(daily.get("count", 0)),
                str(daily.get("total", 0)),
                str(weekly.get("count", 0)),
            )
    console.print(table)

    for family, report in result.reports.items():
        for warning in report.warnings:
            console.print(f"[yellow]{family}: {warning}[/yellow]")
    if result.persisted:
        console.print(f"[green]Persisted: {', '.join(result.persisted)}[/green]")


@app.command("cache-status")
def cache_status(
    family: Annotated[str, typer.Argument(help="Snapshot family, e.g. souke")],
    config: ConfigOption = None,
) -> None:
    """Show age and staleness of the latest snapshot."""
    service = _load(config)
    status = service.cache_status(family)
    if not status.exists:
        console.print(f"[yellow]No snapshot for {family}[/yellow]")
        raise typer.Exit(1)

    state = "[red]expired[/red]" if status.is_expired else "[green]fresh[/green]"
    console.print(
        f"{family}: {status.version}, updated {status.updated_at.isoformat()} by {status.updated_by} "
        f"({status.age_minutes} min ago, {state})"
    )


@app.command()
def ping(config: ConfigOption = None) -> None:
    """Run SELECT 1 against the warehouse to check credentials and region."""
    service = _load(config)
    if not service.warehouse_health():
        console.print("[red]Warehouse unavailable[/red]")
        raise typer.Exit(1)
    console.print("[green]Warehouse ok[/green]")


@app.command()
def serve(
    config: ConfigOption = None,
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8080,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from weeklybrief.api.app import create_app
    from weeklybrief.auth import FirebaseTokenVerifier
    from weeklybrief.log_utils import setup_logging

    setup_logging()
    service = _load(config)
    verifier = FirebaseTokenVerifier(service.settings.auth.audience)
    uvicorn.run(create_app(service, verifier), host=host, port=port)


if __name__ == "__main__":
    app()
