from weeklybrief.cache.snapshot import make_snapshot, read_data, snapshot_status
from weeklybrief.cache.store import (
    DuckDBSnapshotStore,
    FirestoreSnapshotStore,
    MemorySnapshotStore,
    SnapshotStore,
    build_store,
)
from weeklybrief.cache.validate import ValidationReport, ensure_persistable, validate_bundle, validate_table_data

__all__ = [
    "DuckDBSnapshotStore",
    "FirestoreSnapshotStore",
    "MemorySnapshotStore",
    "SnapshotStore",
    "ValidationReport",
    "build_store",
    "ensure_persistable",
    "make_snapshot",
    "read_data",
    "snapshot_status",
    "validate_bundle",
    "validate_table_data",
]
