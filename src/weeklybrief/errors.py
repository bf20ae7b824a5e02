"""Exception and warning types for weeklybrief.

the split matters more than the names: cost-ceiling breaches are an expected
user-facing outcome, estimation/execution failures are real errors, and the
normalization/row-skip warnings are only ever recorded, never raised.
"""

from typing import Any


class WeeklyBriefError(Exception):
    """Base class for everything this package raises on purpose."""


class ConfigError(WeeklyBriefError):
    """Settings file or environment could not be turned into valid Settings."""


class AuthError(WeeklyBriefError):
    """Missing, invalid, expired or wrong-audience credential.

    the message is for logs only - the http layer always answers with a bare
    401 so callers can't tell which check failed.
    """


class CostExceededError(WeeklyBriefError):
    """Dry-run estimate is over the configured ceiling. carries the estimate."""

    def __init__(self, estimate: Any, limit_gb: float) -> None:
        self.estimate = estimate
        self.limit_gb = limit_gb
        super().__init__(
            f"Query exceeds maximum scan limit ({limit_gb:g}GB): "
            f"estimated {estimate.gigabytes_processed:.2f}GB"
        )


class EstimationFailedError(WeeklyBriefError):
    """The dry-run itself failed (bad sql, permissions, credentials)."""


class ExecutionError(WeeklyBriefError):
    """Real execution failed after the estimate passed.

    kind is one of "timeout", "billing_cap" or "query_failed". never retried.
    """

    def __init__(self, message: str, kind: str = "query_failed", job_id: str | None = None) -> None:
        self.kind = kind
        self.job_id = job_id
        super().__init__(message)


class ShapeValidationError(WeeklyBriefError):
    """Reshaped bundle is missing required keys - must not be persisted."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


class RefreshFailedError(WeeklyBriefError):
    """A refresh cycle failed and degraded results were not allowed."""


class SnapshotVersionError(WeeklyBriefError):
    """Cached snapshot carries a version tag this reader doesn't understand."""


class NormalizationWarning(UserWarning):
    """A field couldn't be converted cleanly and was replaced (or stringified)."""

    def __init__(self, path: str, type_name: str, action: str) -> None:
        self.path = path
        self.type_name = type_name
        self.action = action
        super().__init__(f"{path}: {type_name} -> {action}")


class RowSkipWarning(UserWarning):
    """A row was dropped from reshaping because its date couldn't be parsed."""

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"row {index}: {reason}")
