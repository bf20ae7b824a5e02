"""Structural checks before a bundle is allowed into the cache.

two severities:
  - errors: missing top-level series keys. the bundle must not be persisted.
  - warnings: daily/cumulative length mismatch, missing or empty years.
    logged and reported, but the write still goes ahead.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from weeklybrief.errors import ShapeValidationError
from weeklybrief.log_utils import get_logger
from weeklybrief.models.series import SERIES_KEYS

logger = get_logger(__name__)


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def validate_bundle(bundle: Any, expected_years: Iterable[str] = ()) -> ValidationReport:
    report = ValidationReport()
    if not isinstance(bundle, Mapping):
        report.errors.append(f"bundle must be a mapping, got {type(bundle).__name__}")
        return report

    for key in SERIES_KEYS:
        if key not in bundle:
            report.errors.append(f"missing required key: {key}")
        elif not isinstance(bundle[key], Mapping):
            report.errors.append(f"{key} must be a mapping of year -> points")
    if report.errors:
        return report

    daily, cumulative, weekly = bundle["daily"], bundle["cumulative"], bundle["weekly"]

    for year in expected_years:
        if year not in daily:
            report.warnings.append(f"no daily data for {year}")
        if year not in weekly:
            report.warnings.append(f"no weekly data for {year}")

    for year, points in daily.items():
        if len(points) == 0:
            report.warnings.append(f"daily data for {year} is empty")
        cumulative_len = len(cumulative.get(year, []))
        if cumulative_len != len(points):
            report.warnings.append(
                f"daily/cumulative length mismatch for {year}: {len(points)} vs {cumulative_len}"
            )

    return report


def ensure_persistable(bundle: Any, expected_years: Iterable[str] = ()) -> ValidationReport:
    """validate_bundle, but raise ShapeValidationError on fatal problems."""
    report = validate_bundle(bundle, expected_years)
    for warning in report.warnings:
        logger.warning("Bundle validation: %s", warning)
    if not report.is_valid:
        logger.error("Bundle rejected: %s", "; ".join(report.errors))
        raise ShapeValidationError(report.errors)
    return report


def validate_table_data(data: Any, required_keys: Iterable[str]) -> list[str]:
    """Missing keys in a table snapshot payload. empty list means ok."""
    if not isinstance(data, Mapping):
        return [f"table data must be a mapping, got {type(data).__name__}"]
    return [f"missing required key: {key}" for key in required_keys if key not in data]
