"""Static checks on generated SQL.

this is the old "query checker" script turned into a function: parse the
sql with sqlglot and report what it touches, without ever sending it
anywhere.
"""

import re

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError
from pydantic import BaseModel, Field

_DATE_LITERAL = re.compile(r"DATE\s*\(\s*'(\d{4}-\d{2}-\d{2})'\s*\)", re.IGNORECASE)


class QueryInspection(BaseModel):
    char_count: int
    line_count: int
    tables: list[str] = Field(default_factory=list)
    ctes: list[str] = Field(default_factory=list)
    date_literals: list[str] = Field(default_factory=list)
    checks: dict[str, bool] = Field(default_factory=dict)
    parse_error: str | None = None

    @property
    def ok(self) -> bool:
        return all(self.checks.values())


def _balanced(sql: str) -> bool:
    depth = 0
    for ch in sql:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _table_name(table: exp.Table) -> str:
    return ".".join(part for part in (table.catalog, table.db, table.name) if part)


def inspect_query(sql: str, dialect: str = "bigquery") -> QueryInspection:
    upper = sql.upper()
    dates = sorted(set(_DATE_LITERAL.findall(sql)))
    result = QueryInspection(
        char_count=len(sql),
        line_count=sql.count("\n") + 1,
        date_literals=dates,
    )

    tree = None
    try:
        tree = sqlglot.parse_one(sql, dialect=dialect)
    except SqlglotError as e:
        result.parse_error = str(e)

    if tree is not None:
        ctes = [cte.alias for cte in tree.find_all(exp.CTE)]
        result.ctes = ctes
        # references to CTEs show up as tables too, drop those
        seen: list[str] = []
        for table in tree.find_all(exp.Table):
            name = _table_name(table)
            if name and name not in ctes and name not in seen:
                seen.append(name)
        result.tables = seen

    result.checks = {
        "has_with": "WITH" in upper,
        "has_ctes": bool(result.ctes),
        "has_select": "SELECT" in upper,
        "has_from": "FROM" in upper,
        "balanced_parentheses": _balanced(sql),
        "parses": tree is not None,
    }
    return result
