"""Request parameter validation.

returns errors as data. every check runs so the caller sees all problems
at once - the ui shows the whole list under the form.
"""

import re
from datetime import date
from typing import Any

from weeklybrief.models.query import Category, QueryRequest

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: Any) -> date | None:
    """Parse a strict YYYY-MM-DD string, or None if it isn't one.

    the date() constructor rejects 2025-02-30 instead of rolling it over to
    march, which is exactly the check we want.
    """
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return None
    year, month, day = (int(part) for part in value.split("-"))
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_valid_date(value: Any) -> bool:
    return parse_date(value) is not None


def is_valid_category(value: Any) -> bool:
    return isinstance(value, str) and value.upper() in Category.names()


def validate_parameters(start: Any, end: Any, category: Any) -> list[str]:
    """Check a raw (start, end, category) triple. empty list means valid."""
    errors: list[str] = []

    start_date = parse_date(start)
    end_date = parse_date(end)

    if start_date is None:
        errors.append("start must be a valid date in YYYY-MM-DD format")
    if end_date is None:
        errors.append("end must be a valid date in YYYY-MM-DD format")

    # ordering only means something once both dates are real
    if start_date is not None and end_date is not None and start_date > end_date:
        errors.append("start date must be before or equal to end date")

    if not is_valid_category(category):
        errors.append(f"bu must be one of: {', '.join(Category.names())}")

    return errors


def build_request(start: str, end: str, category: str) -> QueryRequest:
    """Turn already-validated raw parameters into a QueryRequest.

    raises ValueError if called with input validate_parameters would reject.
    """
    errors = validate_parameters(start, end, category)
    if errors:
        raise ValueError("; ".join(errors))
    return QueryRequest(
        start_date=parse_date(start),
        end_date=parse_date(end),
        category=Category(category.upper()),
    )
