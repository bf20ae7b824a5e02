"""Where the "latest" snapshots live.

one snapshot per family, last write wins, no history. every store has to
give back exactly what was written - in particular None stays None, it
must never come back as 0.

  - MemorySnapshotStore: tests and one-off cli runs
  - DuckDBSnapshotStore: a local file, for dev without a firebase project
  - FirestoreSnapshotStore: production, `<family>_cache/latest` documents
"""

import json
import threading
from datetime import datetime
from typing import Any

import duckdb
from google.cloud import firestore

from weeklybrief.config.loader import Settings
from weeklybrief.errors import ConfigError
from weeklybrief.log_utils import get_logger
from weeklybrief.models.snapshot import CachedSnapshot

logger = get_logger(__name__)


class SnapshotStore:
    """Interface: get_latest / set_latest, both atomic per document."""

    def get_latest(self, family: str) -> CachedSnapshot | None:
        raise NotImplementedError

    def set_latest(self, family: str, snapshot: CachedSnapshot) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemorySnapshotStore(SnapshotStore):
    def __init__(self) -> None:
        self._docs: dict[str, CachedSnapshot] = {}
        self._lock = threading.Lock()

    def get_latest(self, family: str) -> CachedSnapshot | None:
        with self._lock:
            snapshot = self._docs.get(family)
        return snapshot.model_copy(deep=True) if snapshot is not None else None

    def set_latest(self, family: str, snapshot: CachedSnapshot) -> None:
        with self._lock:
            self._docs[family] = snapshot.model_copy(deep=True)

    def families(self) -> list[str]:
        return sorted(self._docs)


class DuckDBSnapshotStore(SnapshotStore):
    """Snapshots in a duckdb table, payload as a json string.

    duckdb connections aren't safe to share across threads, and the refresh
    fans out to threads, so every call goes through a lock.
    """

    def __init__(self, database_path: str | None = None) -> None:
        self.database_path = database_path
        self._conn: duckdb.DuckDBPyConnection | None = None  # lazy init
        self._lock = threading.Lock()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self._conn = duckdb.connect(self.database_path or ":memory:")
            self._conn.execute(
                """CREATE TABLE IF NOT EXISTS snapshots (
                    family VARCHAR PRIMARY KEY,
                    data VARCHAR NOT NULL,
                    updated_at VARCHAR NOT NULL,
                    updated_by VARCHAR NOT NULL,
                    version VARCHAR NOT NULL
                )"""
            )
        return self._conn

    def get_latest(self, family: str) -> CachedSnapshot | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT data, updated_at, updated_by, version FROM snapshots WHERE family = ?",
                [family],
            ).fetchone()
        if row is None:
            return None
        data, updated_at, updated_by, version = row
        return CachedSnapshot(
            data=json.loads(data),
            updated_at=datetime.fromisoformat(updated_at),
            updated_by=updated_by,
            version=version,
        )

    def set_latest(self, family: str, snapshot: CachedSnapshot) -> None:
        payload = json.dumps(snapshot.data, ensure_ascii=False)
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO snapshots VALUES (?, ?, ?, ?, ?)",
                [family, payload, snapshot.updated_at.isoformat(), snapshot.updated_by, snapshot.version],
            )

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "DuckDBSnapshotStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class FirestoreSnapshotStore(SnapshotStore):
    """`<family><suffix>/latest` documents in firestore.

    field names are camelCase because the dashboard reads these documents
    directly.
    """

    DOCUMENT = "latest"

    def __init__(self, client: Any | None = None, project: str | None = None, suffix: str = "_cache") -> None:
        self._client = client
        self.project = project
        self.suffix = suffix

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = firestore.Client(project=self.project)
        return self._client

    def _doc(self, family: str):
        return self.client.collection(f"{family}{self.suffix}").document(self.DOCUMENT)

    def get_latest(self, family: str) -> CachedSnapshot | None:
        doc = self._doc(family).get()
        if not doc.exists:
            return None
        raw = doc.to_dict()
        return CachedSnapshot(
            data=raw.get("data") or {},
            updated_at=raw["updatedAt"],
            updated_by=raw.get("updatedBy", "unknown"),
            version=raw["version"],
        )

    def set_latest(self, family: str, snapshot: CachedSnapshot) -> None:
        self._doc(family).set(
            {
                "data": snapshot.data,
                "updatedAt": snapshot.updated_at,
                "updatedBy": snapshot.updated_by,
                "version": snapshot.version,
            }
        )
        logger.info("Wrote %s%s/%s", family, self.suffix, self.DOCUMENT)


def build_store(settings: Settings, firestore_client: Any | None = None) -> SnapshotStore:
    backend = settings.cache.backend.lower()
    if backend == "memory":
        return MemorySnapshotStore()
    if backend == "duckdb":
        return DuckDBSnapshotStore(settings.cache.path)
    if backend == "firestore":
        return FirestoreSnapshotStore(
            client=firestore_client,
            project=settings.warehouse.project_id,
            suffix=settings.cache.collection_suffix,
        )
    raise ConfigError(f"Unknown cache backend: {settings.cache.backend}")
