"""Snapshot envelope for the "latest" cache documents."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

# the tag is picked by the writer. readers branch on it instead of sniffing keys
SERIES_V1 = "series/1"
TABLE_V1 = "table/1"
KNOWN_VERSIONS = (SERIES_V1, TABLE_V1)


class CachedSnapshot(BaseModel):
    data: dict[str, Any]
    updated_at: datetime
    updated_by: str
    version: str


class SnapshotStatus(BaseModel):
    """Read-time view of a snapshot's age. never stored."""

    exists: bool
    family: str
    updated_at: datetime | None = None
    updated_by: str | None = None
    version: str | None = None
    age_minutes: float | None = None
    is_expired: bool = True
