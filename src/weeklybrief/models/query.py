"""Pydantic models for the request -> estimate -> execute path.

a QueryRequest only exists after validation passed, so the builder can trust
it. ApprovedQuery is the only thing the executor accepts - you get one from
the cost gate and nowhere else, which is how "estimate before execute" is
enforced structurally rather than by convention.
"""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

BYTES_PER_GB = 1024**3  # binary GB, matches what the BigQuery console shows


class Category(str, Enum):
    """Business unit whitelist. ALL means "no filter", not a literal value."""

    ALL = "ALL"
    ENGINEER = "ENGINEER"
    SALES = "SALES"
    CORPORATE = "CORPORATE"
    CS = "CS"
    MARKETING = "MARKETING"

    @classmethod
    def names(cls) -> list[str]:
        return [c.value for c in cls]


class QueryRequest(BaseModel):
    """A validated KPI pull request."""

    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date
    category: Category

    @model_validator(mode="after")
    def check_order(self) -> "QueryRequest":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be before or equal to end_date")
        return self


class CostEstimate(BaseModel):
    """Dry-run result for one sql text."""

    model_config = ConfigDict(frozen=True)

    bytes_processed: int
    gigabytes_processed: float
    limit_gb: float
    exceeds_limit: bool

    @classmethod
    def from_bytes(cls, bytes_processed: int, limit_gb: float) -> "CostEstimate":
        gb = bytes_processed / BYTES_PER_GB
        return cls(
            bytes_processed=bytes_processed,
            gigabytes_processed=gb,
            limit_gb=limit_gb,
            exceeds_limit=gb > limit_gb,  # exactly at the limit is fine
        )

    @property
    def display_gb(self) -> float:
        # int byte counts never land exactly on 0.8GB etc, round for humans
        return round(self.gigabytes_processed, 6)


class ApprovedQuery(BaseModel):
    """SQL text that passed the cost gate, plus the estimate that approved it."""

    model_config = ConfigDict(frozen=True)

    sql: str
    estimate: CostEstimate


class ExecutionResult(BaseModel):
    """Raw rows plus job metadata from one bounded execution."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    job_id: str | None = None
    bytes_billed: int = 0
    bytes_processed: int = 0
    duration_ms: int = 0
    estimate: CostEstimate | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)
