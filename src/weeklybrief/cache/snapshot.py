"""Snapshot envelope helpers.

the version tag is picked by whoever writes the snapshot. readers branch on
it and refuse anything they don't recognize, instead of guessing the shape
from which keys happen to be there.
"""

from datetime import datetime, timezone
from typing import Any

from weeklybrief.errors import SnapshotVersionError
from weeklybrief.models.snapshot import KNOWN_VERSIONS, CachedSnapshot, SnapshotStatus


def make_snapshot(
    data: dict[str, Any], updated_by: str, version: str, now: datetime | None = None
) -> CachedSnapshot:
    if version not in KNOWN_VERSIONS:
        raise SnapshotVersionError(f"Unknown snapshot version: {version}")
    return CachedSnapshot(
        data=data,
        updated_at=now or datetime.now(timezone.utc),
        updated_by=updated_by,
        version=version,
    )


def _aware(dt: datetime) -> datetime:
    # stores hand back naive utc sometimes
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def snapshot_status(
    family: str,
    snapshot: CachedSnapshot | None,
    now: datetime | None = None,
    ttl_hours: float = 24.0,
) -> SnapshotStatus:
    """Age and staleness, worked out at read time."""
    if snapshot is None:
        return SnapshotStatus(exists=False, family=family)
    now = _aware(now or datetime.now(timezone.utc))
    age_minutes = (now - _aware(snapshot.updated_at)).total_seconds() / 60
    return SnapshotStatus(
        exists=True,
        family=family,
        updated_at=snapshot.updated_at,
        updated_by=snapshot.updated_by,
        version=snapshot.version,
        age_minutes=round(age_minutes, 1),
        is_expired=age_minutes > ttl_hours * 60,
    )


def read_data(snapshot: CachedSnapshot, expected_version: str) -> dict[str, Any]:
    """Payload of a snapshot, checking the tag first."""
    if snapshot.version not in KNOWN_VERSIONS:
        raise SnapshotVersionError(f"Unknown snapshot version: {snapshot.version}")
    if snapshot.version != expected_version:
        raise SnapshotVersionError(f"Expected {expected_version} snapshot, got {snapshot.version}")
    return snapshot.data
