from weeklybrief.compiler.catalog import (
    QUERY_CATALOG,
    CatalogEntry,
    build_catalog_query,
    catalog_names,
    timeout_for,
)
from weeklybrief.compiler.inspect import QueryInspection, inspect_query
from weeklybrief.compiler.sql_builder import QueryBuilder
from weeklybrief.compiler.windows import ChartWindow, DateRange, TableWindow, same_day_last_year

__all__ = [
    "QUERY_CATALOG",
    "CatalogEntry",
    "ChartWindow",
    "DateRange",
    "QueryBuilder",
    "QueryInspection",
    "TableWindow",
    "build_catalog_query",
    "catalog_names",
    "inspect_query",
    "same_day_last_year",
    "timeout_for",
]
