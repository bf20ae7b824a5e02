"""Parameter validation."""

from weeklybrief.validation.params import (
    build_request,
    is_valid_category,
    is_valid_date,
    parse_date,
    validate_parameters,
)

__all__ = [
    "build_request",
    "is_valid_category",
    "is_valid_date",
    "parse_date",
    "validate_parameters",
]
