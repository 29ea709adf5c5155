"""
Package index storage with TTL-based expiry.

This module provides the persistent index of normalized package records. Each
record is stored as one document keyed by ``{source}:{identifier}`` together
with an absolute expiration time that is reset on every upsert. Expired
documents are never returned and are removed by a background cleanup thread.
"""

import json
import logging
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from modindex.core.exceptions import StoreError, ValidationError
from modindex.core.filters import (
    And, Contains, FilterNode, MatchAll, Or, TextMatch, matches
)
from modindex.core.models import PackageRecord

logger = logging.getLogger(__name__)

SORT_KEYS = ("hotness", "updated")
SORT_ORDERS = ("asc", "desc")


class StoreBackend(Enum):
    """Supported storage backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass
class StoreConfig:
    """Configuration for the package index."""
    backend: StoreBackend = StoreBackend.SQLITE
    database_path: str = "~/.modindex/index.db"
    default_ttl: int = 3600  # 1 hour
    cleanup_interval: int = 60  # seconds, 0 disables the cleanup thread
    enable_stats: bool = True


@dataclass
class StoreStats:
    """Index statistics."""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate fetch hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


@dataclass
class StoredDocument:
    """A serialized record with its expiry metadata."""
    key: str
    document: Dict[str, Any]
    written_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the document has expired at ``now``."""
        return now >= self.expires_at


@dataclass
class QueryResult:
    """One page of matching records plus the total match count."""
    records: List[PackageRecord] = field(default_factory=list)
    total: int = 0


class PackageStorage(ABC):
    """Abstract base class for index storage backends."""

    @abstractmethod
    def get(self, key: str, now: float) -> Optional[StoredDocument]:
        """Get a live document by key."""
        pass

    @abstractmethod
    def put(self, entry: StoredDocument) -> None:
        """Store a document, replacing any previous one with the same key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a document by key."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Delete all documents."""
        pass

    @abstractmethod
    def keys(self, now: float) -> List[str]:
        """Get the keys of all live documents."""
        pass

    @abstractmethod
    def size(self, now: float) -> int:
        """Get the number of live documents."""
        pass

    @abstractmethod
    def cleanup_expired(self, now: float) -> int:
        """Remove expired documents and return how many were removed."""
        pass

    @abstractmethod
    def query(
        self,
        node: FilterNode,
        sort_key: str,
        sort_order: str,
        offset: int,
        limit: int,
        now: float
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of matching live documents and the total match count."""
        pass


class MemoryPackageStorage(PackageStorage):
    """In-memory storage backend."""

    def __init__(self, config: StoreConfig):
        self.config = config
        self._documents: Dict[str, StoredDocument] = {}
        self._lock = threading.RLock()

    def get(self, key: str, now: float) -> Optional[StoredDocument]:
        with self._lock:
            entry = self._documents.get(key)
            if entry and not entry.is_expired(now):
                return entry
            elif entry:
                del self._documents[key]
            return None

    def put(self, entry: StoredDocument) -> None:
        with self._lock:
            self._documents[entry.key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._documents:
                del self._documents[key]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()

    def keys(self, now: float) -> List[str]:
        with self._lock:
            return [key for key, entry in self._documents.items() if not entry.is_expired(now)]

    def size(self, now: float) -> int:
        return len(self.keys(now))

    def cleanup_expired(self, now: float) -> int:
        with self._lock:
            expired_keys = [key for key, entry in self._documents.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._documents[key]
            return len(expired_keys)

    def query(self, node, sort_key, sort_order, offset, limit, now):
        with self._lock:
            live = [entry for entry in self._documents.values() if not entry.is_expired(now)]

        matched = [entry for entry in live if matches(node, entry.document)]
        matched.sort(
            key=lambda entry: (entry.document.get(sort_key), entry.key),
            reverse=(sort_order == "desc")
        )

        page = matched[offset:offset + limit]
        return [entry.document for entry in page], len(matched)


class SQLitePackageStorage(PackageStorage):
    """
    SQLite-based storage backend.

    Text fields, tags and versions are stored as indexed projections next to
    the full JSON document so filters can be evaluated in SQL.
    """

    _ARRAY_COLUMNS = {"tags": "tags", "versions": "versions"}

    def __init__(self, config: StoreConfig):
        self.config = config
        self._lock = threading.RLock()
        self._shared_conn: Optional[sqlite3.Connection] = None

        if config.database_path == ":memory:":
            self.db_path = ":memory:"
            self._shared_conn = sqlite3.connect(":memory:", check_same_thread=False)
        else:
            path = Path(os.path.expanduser(config.database_path))
            path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(path)

        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection under the storage lock, translating backend errors."""
        with self._lock:
            try:
                if self._shared_conn is not None:
                    yield self._shared_conn
                    return

                conn = sqlite3.connect(self.db_path)
                try:
                    yield conn
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StoreError(f"index backend failure: {e}") from e

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS packages (
                    key TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL,
                    author TEXT NOT NULL,
                    tags TEXT NOT NULL,
                    versions TEXT NOT NULL,
                    hotness REAL NOT NULL,
                    updated TEXT NOT NULL,
                    document TEXT NOT NULL,
                    written_at REAL NOT NULL,
                    expires_at REAL NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_hotness ON packages(hotness)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_updated ON packages(updated)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_expires_at ON packages(expires_at)")
            conn.commit()

    def get(self, key: str, now: float) -> Optional[StoredDocument]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT key, document, written_at, expires_at FROM packages WHERE key = ?",
                (key,)
            ).fetchone()

            if not row:
                return None

            entry = StoredDocument(
                key=row[0],
                document=json.loads(row[1]),
                written_at=row[2],
                expires_at=row[3]
            )

            if entry.is_expired(now):
                conn.execute("DELETE FROM packages WHERE key = ?", (key,))
                conn.commit()
                return None

            return entry

    def put(self, entry: StoredDocument) -> None:
        document = entry.document
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO packages
                (key, name, description, author, tags, versions, hotness, updated,
                 document, written_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.key,
                    document.get("name") or "",
                    document.get("description") or "",
                    document.get("author") or "",
                    json.dumps(document.get("tags") or []),
                    json.dumps(document.get("versions") or []),
                    document.get("hotness") or 0,
                    document.get("updated") or "",
                    json.dumps(document, sort_keys=True),
                    entry.written_at,
                    entry.expires_at,
                )
            )
            conn.commit()

    def delete(self, key: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM packages WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def clear(self) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM packages")
            conn.commit()

    def keys(self, now: float) -> List[str]:
        with self._connection() as conn:
            cursor = conn.execute("SELECT key FROM packages WHERE expires_at > ? ORDER BY key", (now,))
            return [row[0] for row in cursor.fetchall()]

    def size(self, now: float) -> int:
        with self._connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) FROM packages WHERE expires_at > ?", (now,))
            return cursor.fetchone()[0]

    def cleanup_expired(self, now: float) -> int:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM packages WHERE expires_at <= ?", (now,))
            conn.commit()
            return cursor.rowcount

    def query(self, node, sort_key, sort_order, offset, limit, now):
        where, params = self._compile(node)
        direction = "DESC" if sort_order == "desc" else "ASC"

        with self._connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM packages WHERE expires_at > ? AND {where}",
                [now, *params]
            ).fetchone()[0]

            cursor = conn.execute(
                f"SELECT document FROM packages WHERE expires_at > ? AND {where} "
                f"ORDER BY {sort_key} {direction}, key {direction} LIMIT ? OFFSET ?",
                [now, *params, limit, offset]
            )
            documents = [json.loads(row[0]) for row in cursor.fetchall()]

        return documents, total

    def _compile(self, node: FilterNode) -> Tuple[str, List[Any]]:
        """Translate a filter tree into a SQL boolean expression and parameters."""
        if isinstance(node, MatchAll):
            return "1", []

        if isinstance(node, TextMatch):
            return f"{node.field} LIKE ? ESCAPE '\\'", [f"%{_escape_like(node.term)}%"]

        if isinstance(node, Contains):
            if node.field == "tags":
                return (
                    "EXISTS (SELECT 1 FROM json_each(packages.tags) WHERE json_each.value = ?)",
                    [node.value]
                )
            attribute = node.field.split(".", 1)[1]
            return (
                "EXISTS (SELECT 1 FROM json_each(packages.versions) "
                f"WHERE json_extract(json_each.value, '$.{attribute}') = ?)",
                [node.value]
            )

        if isinstance(node, (And, Or)):
            if not node.children:
                return ("1", []) if isinstance(node, And) else ("0", [])
            joiner = " AND " if isinstance(node, And) else " OR "
            parts, params = [], []
            for child in node.children:
                sql, child_params = self._compile(child)
                parts.append(sql)
                params.extend(child_params)
            return f"({joiner.join(parts)})", params

        raise TypeError(f"unknown filter node: {node!r}")


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PackageIndex:
    """
    Package index with TTL-based expiry over a pluggable storage backend.

    Writes are last-write-wins per key; the index never merges records.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        clock: Callable[[], float] = time.time,
        storage: Optional[PackageStorage] = None
    ):
        """
        Initialize the package index.

        Args:
            config: Index configuration. If None, uses default configuration.
            clock: Time source returning seconds since the epoch.
            storage: Storage backend to use instead of the configured one.
        """
        self.config = config or StoreConfig()
        self.clock = clock
        self.stats = StoreStats()
        self._storage = storage or self._create_storage()
        self._cleanup_thread: Optional[threading.Thread] = None
        self._shutdown = threading.Event()

        if self.config.cleanup_interval > 0:
            self._start_cleanup_thread()

    def _create_storage(self) -> PackageStorage:
        """Create the appropriate storage backend."""
        if self.config.backend == StoreBackend.MEMORY:
            return MemoryPackageStorage(self.config)
        return SQLitePackageStorage(self.config)

    def _start_cleanup_thread(self) -> None:
        """Start the background expiry thread."""

        def cleanup_worker():
            while not self._shutdown.wait(self.config.cleanup_interval):
                try:
                    self.cleanup_expired()
                except StoreError as e:
                    logger.warning(f"Index cleanup error: {e}")

        self._cleanup_thread = threading.Thread(
            target=cleanup_worker, name="modindex-store-cleanup", daemon=True
        )
        self._cleanup_thread.start()

    def upsert(self, record: PackageRecord, ttl: Optional[int] = None) -> None:
        """
        Write a record and (re)set its expiration.

        Args:
            record: Normalized record to store under ``record.key``.
            ttl: Time to live in seconds. If None, uses the default TTL.
        """
        ttl = self.config.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        now = self.clock()
        self._storage.put(StoredDocument(
            key=record.key,
            document=record.to_dict(),
            written_at=now,
            expires_at=now + ttl
        ))

        if self.config.enable_stats:
            self.stats.writes += 1

        logger.debug(f"Upserted {record.key} (ttl={ttl}s)")

    def fetch(self, key: str) -> Optional[PackageRecord]:
        """
        Get the current record for a key.

        Returns:
            The record, or None if it is absent or expired.
        """
        entry = self._storage.get(key, self.clock())

        if self.config.enable_stats:
            if entry:
                self.stats.hits += 1
            else:
                self.stats.misses += 1

        return PackageRecord.from_dict(entry.document) if entry else None

    def query(
        self,
        node: FilterNode,
        sort_key: str = "hotness",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int = 10
    ) -> QueryResult:
        """
        Return a page of records matching a filter, plus the total match count.

        Raises:
            ValidationError: If the sort key, order or window is invalid.
        """
        if sort_key not in SORT_KEYS:
            raise ValidationError(f"invalid sort key: {sort_key}")
        if sort_order not in SORT_ORDERS:
            raise ValidationError(f"invalid sort order: {sort_order}")
        if offset < 0 or limit < 0:
            raise ValidationError(f"invalid page window: offset={offset} limit={limit}")

        documents, total = self._storage.query(
            node, sort_key, sort_order, offset, limit, self.clock()
        )
        return QueryResult(
            records=[PackageRecord.from_dict(document) for document in documents],
            total=total
        )

    def delete(self, key: str) -> bool:
        return self._storage.delete(key)

    def clear(self) -> None:
        """Delete every record."""
        self._storage.clear()

        if self.config.enable_stats:
            self.stats = StoreStats()

    def keys(self) -> List[str]:
        return self._storage.keys(self.clock())

    def size(self) -> int:
        return self._storage.size(self.clock())

    def cleanup_expired(self) -> int:
        """
        Remove expired records.

        Returns:
            Number of records removed.
        """
        cleaned = self._storage.cleanup_expired(self.clock())

        if cleaned:
            logger.debug(f"Evicted {cleaned} expired records")
        if self.config.enable_stats:
            self.stats.evictions += cleaned

        return cleaned

    def get_stats(self) -> StoreStats:
        if self.config.enable_stats:
            self.stats.size = self.size()
        return self.stats

    def get_info(self) -> Dict[str, Any]:
        """
        Get detailed index information.

        Returns:
            Dictionary with index information.
        """
        stats = self.get_stats()

        return {
            "backend": self.config.backend.value,
            "database_path": self.config.database_path,
            "default_ttl": self.config.default_ttl,
            "cleanup_interval": self.config.cleanup_interval,
            "stats": {
                "hits": stats.hits,
                "misses": stats.misses,
                "hit_rate": stats.hit_rate,
                "writes": stats.writes,
                "evictions": stats.evictions,
                "size": stats.size,
            }
        }

    def shutdown(self) -> None:
        """Stop the cleanup thread."""
        self._shutdown.set()

        if self._cleanup_thread and self._cleanup_thread.is_alive():
            self._cleanup_thread.join(timeout=5.0)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()


def create_package_index(
    backend: Union[str, StoreBackend] = StoreBackend.SQLITE,
    database_path: str = "~/.modindex/index.db",
    default_ttl: int = 3600,
    **kwargs
) -> PackageIndex:
    """
    Create a package index with common configuration.

    Args:
        backend: Storage backend to use.
        database_path: Path of the SQLite database file.
        default_ttl: Default time to live in seconds.
        **kwargs: Additional StoreConfig options, or ``clock``.

    Returns:
        Configured package index.
    """
    if isinstance(backend, str):
        backend = StoreBackend(backend)

    clock = kwargs.pop("clock", time.time)

    config = StoreConfig(
        backend=backend,
        database_path=database_path,
        default_ttl=default_ttl,
        **kwargs
    )

    return PackageIndex(config, clock=clock)
