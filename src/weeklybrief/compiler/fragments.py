"""Reusable SQL fragments.

the re-entry exclusion is the one piece every jobseeker query needs, so it
lives here once. rows that a separate dataset flags as re-entries (same
determination date + jobseeker id + branch id) are dropped with an anti-join.
"""

from collections.abc import Sequence

from weeklybrief.compiler.windows import DateRange
from weeklybrief.config.loader import MetricSource, ReentrySettings

# identifier columns the exclusion matches on, besides the date
ID_COLUMNS = ("jobseeker_id", "jobseeker_branch_id")


def table_ref(table: str) -> str:
    """Backtick-quote a project.dataset.table reference."""
    return f"`{table.strip('`')}`"


def date_literal(d) -> str:
    return f"DATE('{d.isoformat()}')"


def range_condition(expr: str, ranges: Sequence[DateRange]) -> str:
    """OR together inclusive BETWEEN checks, deduplicating identical ranges."""
    seen: list[DateRange] = []
    for r in ranges:
        if r not in seen:
            seen.append(r)
    parts = [f"({expr} BETWEEN {date_literal(r.start)} AND {date_literal(r.end)})" for r in seen]
    if len(parts) == 1:
        return parts[0]
    return "(" + " OR ".join(parts) + ")"


def reentry_exclusion_cte(reentry: ReentrySettings) -> str:
    """CTE listing (date, ids) triples to exclude, one row each."""
    return f"""reentry_exclusions AS (
  SELECT
    {reentry.date_column} AS metric_date,
    {", ".join(ID_COLUMNS)},
    1 AS exclude_flg
  FROM {table_ref(reentry.table)}
  WHERE {reentry.entry_type_column} = '{reentry.entry_type}'
    AND {reentry.date_column} >= DATE('{reentry.effective_from}')
  GROUP BY ALL
)"""


def source_rows_cte(
    source: MetricSource,
    ranges: Sequence[DateRange],
    extra_columns: Sequence[str] = (),
    extra_where: Sequence[str] = (),
    name: str = "source_rows",
) -> str:
    """Pull the date/value pairs (plus whatever else is asked for) for a source.

    ids are only selected when the source takes part in the re-entry exclusion.
    """
    columns = [f"{source.date_expr} AS metric_date", f"{source.count_expr} AS metric_value"]
    if source.exclude_reentries:
        columns.extend(ID_COLUMNS)
    columns.extend(extra_columns)

    conditions = [f"{source.date_expr} IS NOT NULL", range_condition(source.date_expr, ranges)]
    conditions.extend(extra_where)

    select_list = ",\n    ".join(columns)
    where = "\n    AND ".join(conditions)
    return f"""{name} AS (
  SELECT
    {select_list}
  FROM {table_ref(source.table)}
  WHERE {where}
)"""


def clean_rows_cte(source: MetricSource, from_cte: str = "source_rows", name: str = "clean_rows") -> str:
    """Apply the exclusion anti-join, or pass rows through untouched."""
    if not source.exclude_reentries:
        return f"""{name} AS (
  SELECT * FROM {from_cte}
)"""
    using = ", ".join(("metric_date",) + ID_COLUMNS)
    return f"""{name} AS (
  SELECT s.*
  FROM {from_cte} AS s
  LEFT JOIN reentry_exclusions AS excl
    USING ({using})
  WHERE excl.exclude_flg IS NULL
)"""


def base_ctes(
    source: MetricSource,
    reentry: ReentrySettings,
    ranges: Sequence[DateRange],
    extra_columns: Sequence[str] = (),
    extra_where: Sequence[str] = (),
) -> list[str]:
    """source_rows + clean_rows, with the exclusion CTE in front when needed."""
    ctes = []
    if source.exclude_reentries:
        ctes.append(reentry_exclusion_cte(reentry))
    ctes.append(source_rows_cte(source, ranges, extra_columns, extra_where))
    ctes.append(clean_rows_cte(source))
    return ctes


def with_clause(ctes: Sequence[str]) -> str:
    return "WITH\n" + ",\n".join(ctes)
