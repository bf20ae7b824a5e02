"""Named query catalog.

every query the dashboard runs, keyed by a short name so the cli (and
humans reading logs) can refer to them. the sql itself is still built on
demand by QueryBuilder - the catalog only knows which builder method to call.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from weeklybrief.compiler.sql_builder import QueryBuilder
from weeklybrief.config.loader import CostSettings


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    title: str
    description: str
    charts: list[str] = field(default_factory=list)
    timeout_kind: str = "table"  # "kpi" -> 60s budget, "table" -> 30s


QUERY_CATALOG: dict[str, CatalogEntry] = {
    entry.name: entry
    for entry in [
        CatalogEntry(
            name="souke",
            title="Accepted applications (daily + weekly)",
            description="Daily counts for the current month and the same month last year, "
            "plus weekly totals, in one UNION ALL statement.",
            charts=["souke daily", "souke cumulative", "souke weekly"],
            timeout_kind="kpi",
        ),
        CatalogEntry(
            name="naitei",
            title="Job offers (daily + weekly)",
            description="Same shape as souke, counted from the job offer flow.",
            charts=["naitei daily", "naitei cumulative", "naitei weekly"],
            timeout_kind="kpi",
        ),
        CatalogEntry(
            name="kpi-table",
            title="Accepted applications KPI",
            description="Latest day in the current month vs previous day, week and year.",
            charts=["KPI table"],
        ),
        CatalogEntry(
            name="naitei-kpi",
            title="Job offers KPI",
            description="Latest day vs previous day, week and year for offers.",
            charts=["KPI table"],
        ),
        CatalogEntry(
            name="channel-overview",
            title="Channel overview",
            description="Organic / paid / other split with share and growth.",
            charts=["channel overview table"],
        ),
        CatalogEntry(
            name="channel-detail",
            title="Channel detail",
            description="Middle-category channels with their parent category.",
            charts=["channel detail table"],
        ),
        CatalogEntry(
            name="latest-date",
            title="Latest data date",
            description="Most recent date with data in the current month.",
        ),
        CatalogEntry(
            name="data-health",
            title="Data health",
            description="Row count and date coverage for the current month.",
        ),
    ]
}


def _builders(builder: QueryBuilder) -> dict[str, Callable[[date], str]]:
    kpi = builder.settings.kpi_source
    return {
        "souke": lambda d: builder.build_chart_query("souke", d),
        "naitei": lambda d: builder.build_chart_query("naitei", d),
        "kpi-table": lambda d: builder.build_kpi_table_query(kpi, d),
        "naitei-kpi": lambda d: builder.build_kpi_table_query("naitei", d),
        "channel-overview": lambda d: builder.build_channel_query(d, detail=False),
        "channel-detail": lambda d: builder.build_channel_query(d, detail=True),
        "latest-date": lambda d: builder.build_latest_date_query(kpi, d),
        "data-health": lambda d: builder.build_data_health_query(kpi, d),
    }


def catalog_names() -> list[str]:
    return list(QUERY_CATALOG)


def build_catalog_query(builder: QueryBuilder, name: str, as_of: date) -> str:
    """Build the sql for a catalog entry. raises KeyError for unknown names."""
    if name not in QUERY_CATALOG:
        raise KeyError(f"Unknown query: {name}. Available: {', '.join(QUERY_CATALOG)}")
    return _builders(builder)[name](as_of)


def timeout_for(name: str, cost: CostSettings, default_kind: str = "table") -> float:
    """Per-call timeout for a named query, from its catalog timeout_kind."""
    entry = QUERY_CATALOG.get(name)
    kind = entry.timeout_kind if entry is not None else default_kind
    return cost.kpi_timeout_s if kind == "kpi" else cost.table_timeout_s
