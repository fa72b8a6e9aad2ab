"""
SQLite-backed identifier cache keyed by MAL id.

The cache is the pipeline's checkpoint: stages upsert each resolved identifier as
soon as it is known, and read the identifier maps back at the start of the next
run to skip network work. One connection is shared by every caller and all
statements are serialized behind a lock.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType

from animap.exceptions import CacheStoreError
from animap.models import CacheEntry

logger = logging.getLogger(__name__)

TABLE = "cache_entries"

# Index i holds the statements that bring user_version from i to i + 1.
MIGRATIONS: list[list[str]] = [
    [
        f"""
        CREATE TABLE IF NOT EXISTS {TABLE} (
            mal_id INTEGER PRIMARY KEY,
            anidb_id INTEGER NOT NULL DEFAULT 0,
            tmdb_id INTEGER NOT NULL DEFAULT 0,
            url TEXT NOT NULL DEFAULT '',
            release_date TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL DEFAULT '',
            cached_at TEXT NOT NULL,
            last_used TEXT NOT NULL,
            had_anidb_id INTEGER NOT NULL DEFAULT 0
        )
        """,
    ],
    [
        f"ALTER TABLE {TABLE} ADD COLUMN anidb_checked_at TEXT",
        f"CREATE INDEX IF NOT EXISTS idx_{TABLE}_release_year ON {TABLE} (substr(release_date, 1, 4))",
    ],
]

SCHEMA_VERSION = len(MIGRATIONS)

_COLUMNS = (
    "mal_id",
    "anidb_id",
    "tmdb_id",
    "url",
    "release_date",
    "type",
    "cached_at",
    "last_used",
    "had_anidb_id",
    "anidb_checked_at",
)

# Identifier columns are never reset to zero by a later write.
_MONOTONIC = ("anidb_id", "tmdb_id")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CacheStore:
    """
    Persistent MAL id -> enrichment fields store.

    Args:
        db_path: Path to the SQLite database file. Parent directories are created.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    def open(self) -> "CacheStore":
        """Open the database and apply pending migrations.

        Raises:
            CacheStoreError: If the file cannot be opened or its schema is newer
                than this version supports.
        """
        if self._conn is not None:
            return self
        conn: sqlite3.Connection | None = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA busy_timeout=5000")
        except (OSError, sqlite3.Error) as e:
            if conn is not None:
                conn.close()
            raise CacheStoreError(f"Failed to open cache at {self.db_path}: {e}") from e

        self._conn = conn
        try:
            self._migrate()
        except CacheStoreError:
            self.close()
            raise
        logger.debug(f"Opened cache {self.db_path} (schema v{SCHEMA_VERSION})")
        return self

    def _migrate(self) -> None:
        conn = self._require_conn()
        try:
            current = conn.execute("PRAGMA user_version").fetchone()[0]
        except sqlite3.Error as e:
            raise CacheStoreError(f"Failed to read schema version: {e}") from e

        if current > SCHEMA_VERSION:
            raise CacheStoreError(
                f"Cache schema version {current} is newer than supported version {SCHEMA_VERSION}"
            )

        for version in range(current, SCHEMA_VERSION):
            try:
                conn.execute("BEGIN")
                for statement in MIGRATIONS[version]:
                    conn.execute(statement)
                conn.execute(f"PRAGMA user_version = {version + 1}")
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise CacheStoreError(
                    f"Cache migration to version {version + 1} failed: {e}"
                ) from e
            logger.info(f"Migrated cache schema to version {version + 1}")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "CacheStore":
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheStoreError("Cache store is not open")
        return self._conn

    def upsert(
        self,
        mal_id: int,
        *,
        anidb_id: int | None = None,
        tmdb_id: int | None = None,
        url: str | None = None,
        release_date: str | None = None,
        type: str | None = None,
        anidb_checked: bool = False,
    ) -> None:
        """Create or merge the entry for `mal_id`.

        Only the fields passed explicitly are written; everything else keeps its
        stored value. A zero identifier never replaces a non-zero one.

        Args:
            mal_id: Primary key.
            anidb_id: AniDB id; also records whether one was present.
            tmdb_id: TMDB id.
            url: MAL page URL.
            release_date: Release date as reported by MAL.
            type: MAL media type.
            anidb_checked: Stamp that an AniDB scrape attempt completed.

        Raises:
            CacheStoreError: If the write fails.
        """
        now = _utc_now_iso()
        values: dict[str, object] = {"mal_id": mal_id, "cached_at": now, "last_used": now}
        supplied = {
            "anidb_id": anidb_id,
            "tmdb_id": tmdb_id,
            "url": url,
            "release_date": release_date,
            "type": type,
        }
        values.update({k: v for k, v in supplied.items() if v is not None})
        if anidb_id is not None:
            values["had_anidb_id"] = int(anidb_id > 0)
        if anidb_checked:
            values["anidb_checked_at"] = now

        updates = ["last_used=excluded.last_used"]
        for column in values:
            if column in ("mal_id", "cached_at", "last_used"):
                continue
            if column in _MONOTONIC:
                updates.append(
                    f"{column}=CASE WHEN excluded.{column} > 0 "
                    f"THEN excluded.{column} ELSE {TABLE}.{column} END"
                )
            elif column == "had_anidb_id":
                updates.append(f"had_anidb_id=MAX({TABLE}.had_anidb_id, excluded.had_anidb_id)")
            else:
                updates.append(f"{column}=excluded.{column}")

        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        sql = (
            f"INSERT INTO {TABLE} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT(mal_id) DO UPDATE SET {', '.join(updates)}"
        )
        with self._lock:
            conn = self._require_conn()
            try:
                conn.execute(sql, tuple(values.values()))
            except sqlite3.Error as e:
                raise CacheStoreError(f"Failed to upsert cache entry {mal_id}: {e}") from e

    def get(self, mal_id: int) -> CacheEntry | None:
        rows = self._select(f"SELECT {', '.join(_COLUMNS)} FROM {TABLE} WHERE mal_id = ?", (mal_id,))
        return rows[0] if rows else None

    def anidb_ids(self) -> dict[int, int]:
        """MAL id -> AniDB id for every entry with a known AniDB id."""
        return self._id_map("anidb_id")

    def tmdb_ids(self) -> dict[int, int]:
        """MAL id -> TMDB id for every entry with a known TMDB id."""
        return self._id_map("tmdb_id")

    def anidb_checked_ids(self) -> set[int]:
        """MAL ids whose page was scraped and confirmed to have no AniDB link."""
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(
                    f"SELECT mal_id FROM {TABLE} "
                    "WHERE anidb_id = 0 AND anidb_checked_at IS NOT NULL"
                ).fetchall()
            except sqlite3.Error as e:
                raise CacheStoreError(f"Failed to read checked AniDB ids: {e}") from e
        return {mal_id for (mal_id,) in rows}

    def entries_by_release_year(self, year: int) -> list[CacheEntry]:
        """TV entries released in `year` that still have no AniDB id."""
        return self._select(
            f"SELECT {', '.join(_COLUMNS)} FROM {TABLE} "
            "WHERE type = 'tv' AND release_date != '' "
            "AND substr(release_date, 1, 4) = ? AND anidb_id = 0 "
            "ORDER BY mal_id",
            (f"{year:04d}",),
        )

    def delete(self, mal_id: int) -> bool:
        """Remove an entry. Returns True if one existed."""
        with self._lock:
            conn = self._require_conn()
            try:
                cursor = conn.execute(f"DELETE FROM {TABLE} WHERE mal_id = ?", (mal_id,))
            except sqlite3.Error as e:
                raise CacheStoreError(f"Failed to delete cache entry {mal_id}: {e}") from e
        return cursor.rowcount > 0

    def _id_map(self, column: str) -> dict[int, int]:
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(
                    f"SELECT mal_id, {column} FROM {TABLE} WHERE {column} > 0"
                ).fetchall()
            except sqlite3.Error as e:
                raise CacheStoreError(f"Failed to read {column} map: {e}") from e
        return {mal_id: value for mal_id, value in rows}

    def _select(self, sql: str, params: tuple) -> list[CacheEntry]:
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise CacheStoreError(f"Cache query failed: {e}") from e
        return [CacheEntry(**dict(zip(_COLUMNS, row))) for row in rows]
