"""SQL builder for the dashboard's BigQuery pulls.

every query the backend runs is assembled here as plain text - nothing in
this module talks to the warehouse. the flow for each query is the same:

  1. work out the date ranges in python (see windows.py)
  2. stack the shared CTEs: re-entry exclusion -> source_rows -> clean_rows
  3. add the query-specific aggregation CTEs and final SELECT
  4. format with sqlglot

literals are embedded directly. that's only ok because every value reaching
this module is either a validated date, a whitelisted category, or config.
"""

from datetime import date

import sqlglot
from sqlglot.errors import SqlglotError

from weeklybrief.compiler.fragments import (
    base_ctes,
    date_literal,
    range_condition,
    table_ref,
    with_clause,
)
from weeklybrief.compiler.windows import ChartWindow, DateRange, TableWindow
from weeklybrief.config.loader import MetricSource, Settings
from weeklybrief.log_utils import get_logger
from weeklybrief.models.query import Category, QueryRequest

logger = get_logger(__name__)


class QueryBuilder:
    """Builds request-scoped SQL strings from validated inputs.

    stateless apart from the settings it was given - safe to share between
    requests and threads.
    """

    def __init__(self, settings: Settings, dialect: str = "bigquery", pretty: bool = True) -> None:
        self.settings = settings
        self.dialect = dialect  # passed to sqlglot for formatting
        self.pretty = pretty

    # ------------------------------------------------------------------ kpi

    def build_kpi_query(self, request: QueryRequest) -> str:
        """Daily KPI counts for an explicit date range and business unit.

        ALL is a sentinel: it means "don't filter", so no category clause at
        all. anything else becomes an upper-cased equality filter.
        """
        source = self.settings.source(self.settings.kpi_source)
        extra_where = []
        category_clause = self._category_clause(source, request.category)
        if category_clause:
            extra_where.append(category_clause)

        ctes = base_ctes(
            source,
            self.settings.reentry,
            [DateRange(request.start_date, request.end_date)],
            extra_where=extra_where,
        )
        ctes.append(
            """daily_kpi AS (
  SELECT
    metric_date,
    SUM(metric_value) AS daily_count,
    COUNT(*) AS total_applications
  FROM clean_rows
  GROUP BY metric_date
)"""
        )
        sql = f"""{with_clause(ctes)}
SELECT
  metric_date,
  daily_count,
  total_applications,
  SUM(daily_count) OVER (ORDER BY metric_date ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW) AS cumulative_count
FROM daily_kpi
ORDER BY metric_date"""
        return self._format_sql(sql)

    def _category_clause(self, source: MetricSource, category: Category) -> str | None:
        if category == Category.ALL:
            return None
        if not source.category_column:
            raise ValueError(f"Source '{source.label}' has no category column to filter on")
        return f"{source.category_column} = '{category.value.upper()}'"

    # --------------------------------------------------------------- charts

    def build_chart_query(self, family: str, as_of: date) -> str:
        """Daily + weekly rows for one metric family in a single statement.

        UNION ALL with a data_type discriminator keeps it to one
        estimate/execute cycle instead of two. cumulative_count is included
        for reference but the reshaper recomputes it.
        """
        source = self.settings.source(family)
        window = ChartWindow.for_date(as_of, self.settings.reshape.weekly_lookback_months)

        ctes = base_ctes(source, self.settings.reentry, window.all_ranges())
        daily_ranges = range_condition("metric_date", [window.daily_current, window.daily_prior])
        weekly_ranges = range_condition("metric_date", [window.weekly_current, window.weekly_prior])

        weekly_where = weekly_ranges
        if self.settings.reshape.weekly_exclude_sunday:
            # DAYOFWEEK is 1 for sunday in bigquery
            weekly_where += "\n    AND EXTRACT(DAYOFWEEK FROM metric_date) != 1"

        ctes.append(
            f"""daily_counts AS (
  SELECT
    metric_date,
    EXTRACT(YEAR FROM metric_date) AS year,
    SUM(metric_value) AS metric_count
  FROM clean_rows
  WHERE {daily_ranges}
  GROUP BY metric_date, year
)"""
        )
        ctes.append(
            f"""weekly_counts AS (
  SELECT
    DATE_TRUNC(metric_date, WEEK(MONDAY)) AS week_start,
    EXTRACT(ISOYEAR FROM metric_date) AS year,
    EXTRACT(ISOWEEK FROM metric_date) AS week_number,
    SUM(metric_value) AS metric_count
  FROM clean_rows
  WHERE {weekly_where}
  GROUP BY week_start, year, week_number
)"""
        )
        sql = f"""{with_clause(ctes)}
SELECT
  'daily' AS data_type,
  year,
  metric_date,
  CAST(NULL AS DATE) AS week_start,
  CAST(NULL AS INT64) AS week_number,
  metric_count,
  SUM(metric_count) OVER (PARTITION BY year ORDER BY metric_date ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW) AS cumulative_count
FROM daily_counts
UNION ALL
SELECT
  'weekly' AS data_type,
  year,
  week_start AS metric_date,
  week_start,
  week_number,
  metric_count,
  CAST(NULL AS INT64) AS cumulative_count
FROM weekly_counts
ORDER BY data_type, metric_date"""
        return self._format_sql(sql)

    # --------------------------------------------------------------- tables

    def build_kpi_table_query(self, family: str, as_of: date) -> str:
        """Latest day vs previous day / week / year for one family.

        always returns exactly one row - the dates CTE drives a LEFT JOIN so an
        empty month still gives a row of zeros.
        """
        source = self.settings.source(family)
        window = TableWindow.for_date(as_of)
        ctes = base_ctes(source, self.settings.reentry, [window.recent, window.prior_year])
        ctes.append(self._comparison_dates_cte(window))

        sql = f"""{with_clause(ctes)}
SELECT
  d.latest_date,
  {self._comparison_sums("c")}
FROM comparison_dates AS d
LEFT JOIN clean_rows AS c
  ON c.metric_date IN (d.latest_date, d.prev_day, d.prev_week_day, d.prev_year_day)
GROUP BY d.latest_date"""
        return self._format_sql(sql)

    def build_channel_query(self, as_of: date, detail: bool = False) -> str:
        """Per-channel latest/prev counts. share and growth are computed in python."""
        channels = self.settings.channels
        source = self.settings.source(channels.source)
        window = TableWindow.for_date(as_of)

        simple_category = f"""CASE
      WHEN {channels.large_column} LIKE '{channels.organic_match}' THEN '{channels.organic_label}'
      WHEN {channels.large_column} LIKE '{channels.paid_match}' THEN '{channels.paid_label}'
      ELSE '{channels.other_label}'
    END AS parent_category"""
        extra_columns = [simple_category]
        group_columns = ["parent_category"]
        select_columns = ["c.parent_category AS channel_category"]

        if detail:
            extra_columns.append(self._detail_category_expr())
            group_columns = ["channel_category", "parent_category"]
            select_columns = ["c.channel_category", "c.parent_category"]

        ctes = base_ctes(
            source,
            self.settings.reentry,
            [window.recent, window.prior_year],
            extra_columns=extra_columns,
        )
        ctes.append(self._comparison_dates_cte(window))

        group_by = ", ".join(f"c.{col}" for col in group_columns)
        sql = f"""{with_clause(ctes)}
SELECT
  {", ".join(select_columns)},
  {self._comparison_sums("c")}
FROM clean_rows AS c
CROSS JOIN comparison_dates AS d
WHERE c.metric_date IN (d.latest_date, d.prev_day, d.prev_week_day, d.prev_year_day)
GROUP BY {group_by}"""
        return self._format_sql(sql)

    def _detail_category_expr(self) -> str:
        channels = self.settings.channels
        whens = "\n      ".join(
            f"WHEN {rule.condition} THEN '{rule.label}'" for rule in channels.detail_rules
        )
        return f"""CASE
      {whens}
      ELSE COALESCE({channels.middle_column}, '{channels.other_label}')
    END AS channel_category"""

    def _comparison_dates_cte(self, window: TableWindow) -> str:
        # prev_year_day is month/day aligned. feb 29 has no counterpart, so NULL
        # there and the comparison sums fall back to 0
        return f"""comparison_dates AS (
  SELECT
    latest_date,
    DATE_SUB(latest_date, INTERVAL 1 DAY) AS prev_day,
    DATE_SUB(latest_date, INTERVAL 7 DAY) AS prev_week_day,
    IF(
      EXTRACT(MONTH FROM latest_date) = 2 AND EXTRACT(DAY FROM latest_date) = 29,
      NULL,
      DATE_SUB(latest_date, INTERVAL 1 YEAR)
    ) AS prev_year_day
  FROM (
    SELECT MAX(metric_date) AS latest_date
    FROM clean_rows
    WHERE metric_date BETWEEN {date_literal(window.as_of.replace(day=1))} AND {date_literal(window.as_of)}
  )
)"""

    def _comparison_sums(self, alias: str) -> str:
        parts = []
        for column, date_col in (
            ("latest", "latest_date"),
            ("prev_day", "prev_day"),
            ("prev_week", "prev_week_day"),
            ("prev_year", "prev_year_day"),
        ):
            parts.append(
                f"COALESCE(SUM(IF({alias}.metric_date = d.{date_col}, {alias}.metric_value, 0)), 0) AS {column}"
            )
        return ",\n  ".join(parts)

    # --------------------------------------------------------------- checks

    def build_latest_date_query(self, family: str, as_of: date) -> str:
        source = self.settings.source(family)
        sql = f"""SELECT MAX({source.date_expr}) AS latest_date
FROM {table_ref(source.table)}
WHERE {source.date_expr} BETWEEN {date_literal(as_of.replace(day=1))} AND {date_literal(as_of)}"""
        return self._format_sql(sql)

    def build_data_health_query(self, family: str, as_of: date) -> str:
        source = self.settings.source(family)
        sql = f"""SELECT
  COUNT(*) AS total_records,
  MIN({source.date_expr}) AS earliest_date,
  MAX({source.date_expr}) AS latest_date,
  COUNT(DISTINCT {source.date_expr}) AS unique_dates
FROM {table_ref(source.table)}
WHERE {source.date_expr} >= {date_literal(as_of.replace(day=1))}"""
        return self._format_sql(sql)

    def build_health_check_query(self) -> str:
        return "SELECT 1 AS health_check"

    # ------------------------------------------------------------ formatting

    def _format_sql(self, sql: str) -> str:
        """Pretty-print with sqlglot, or return the text as-is if it won't parse.

        the unformatted text is still valid bigquery - sqlglot just doesn't
        know every function. the dry-run is the real syntax check anyway.
        """
        if not self.pretty:
            return sql
        try:
            parsed = sqlglot.parse_one(sql, dialect=self.dialect)
            return parsed.sql(dialect=self.dialect, pretty=True)
        except SqlglotError as e:
            logger.debug("sqlglot could not format query, using raw text: %s", e)
            return sql
