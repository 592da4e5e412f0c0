"""
Memory storage backend.

Provides SQLite-based persistent storage for memories and their
embeddings. The database holds:

- ``__meta``: string key/value pairs (instance id, schema version)
- ``__objects``: binary blobs with size, hash and MIME metadata
- ``global_memories`` / ``project_memories``: JSON memory documents

Embeddings are stored as little-endian float32 blobs under
``embeddings/{memory_id}``.
"""

import hashlib
import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from ..errors import DatabaseError, ErrorCode, error_message
from .types import BlobMeta, Memory, MemoryScope, embedding_key, now_ms


logger = logging.getLogger(__name__)


EMBEDDING_MIME_TYPE = "application/octet-stream"

# Keys per IN (...) query, below SQLite's default host parameter limit
EMBEDDING_QUERY_CHUNK = 500

COLLECTION_TABLES = {
    MemoryScope.GLOBAL: "global_memories",
    MemoryScope.PROJECT: "project_memories",
}


def encode_embedding(vector: Sequence[float]) -> bytes:
    """Encode an embedding as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def decode_embedding(data: Optional[bytes]) -> List[float]:
    """
    Decode float32 bytes into a list of floats.

    Raises:
        ValueError: If the data is missing, empty or not a whole number
            of float32 values.
    """
    if not data:
        raise ValueError("empty embedding blob")
    if len(data) % 4 != 0:
        raise ValueError(f"embedding blob length {len(data)} is not a multiple of 4")
    return np.frombuffer(data, dtype="<f4").astype(np.float64).tolist()


class MemoryStore:
    """
    SQLite-based memory store.

    Favors one writer with many readers: connections are per thread,
    the database runs in WAL mode with NORMAL synchronous durability,
    and every multi-step write runs inside a single transaction.
    """

    # Schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(self, db_path: str, auto_create: bool = True):
        """
        Initialize the store.

        Args:
            db_path: Path to the database file, or ":memory:" for tests
                that only use one thread.
            auto_create: Whether to create the database if it doesn't exist.
        """
        self.db_path = db_path
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        if auto_create:
            try:
                self._ensure_db_exists()
                self._ensure_schema()
            except sqlite3.Error as e:
                raise DatabaseError(
                    f"Failed to initialize memory database at {db_path}: {e}",
                    code=ErrorCode.DATABASE_INIT_FAILED,
                    operation="init",
                    details={"db_path": db_path},
                    cause=e,
                )

    def _ensure_db_exists(self):
        """Ensure the database directory exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def _conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
            except sqlite3.Error as e:
                raise DatabaseError(
                    f"Could not open memory database: {e}",
                    code=ErrorCode.DATABASE_CONNECTION_FAILED,
                    operation="connect",
                    details={"db_path": self.db_path},
                    cause=e,
                )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA cache_size = 10000")
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database transactions."""
        conn = self._conn
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _ensure_schema(self):
        """Create the database schema if needed."""
        with self._transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS __meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            cursor.execute("SELECT value FROM __meta WHERE key = 'schema_version'")
            row = cursor.fetchone()
            current_version = int(row["value"]) if row else 0

            if current_version > self.SCHEMA_VERSION:
                raise DatabaseError(
                    f"Database schema version {current_version} is newer than "
                    f"supported version {self.SCHEMA_VERSION}",
                    code=ErrorCode.DATABASE_SCHEMA_ERROR,
                    operation="init",
                    details={"db_path": self.db_path},
                )

            if current_version < self.SCHEMA_VERSION:
                self._apply_migrations(cursor, current_version)

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        """Apply schema migrations."""
        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS __objects (
                    key TEXT PRIMARY KEY,
                    data BLOB,
                    mime_type TEXT,
                    size INTEGER,
                    hash TEXT,
                    created_at INTEGER,
                    updated_at INTEGER
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_objects_created
                ON __objects(created_at)
            """)
            for table in COLLECTION_TABLES.values():
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        key TEXT PRIMARY KEY,
                        data TEXT NOT NULL
                    )
                """)

            cursor.executemany(
                "INSERT OR IGNORE INTO __meta (key, value) VALUES (?, ?)",
                [
                    ("instance_id", str(uuid.uuid4())),
                    ("initialized_at", str(now_ms())),
                ],
            )
            cursor.execute(
                "INSERT OR REPLACE INTO __meta (key, value) VALUES ('schema_version', ?)",
                (str(self.SCHEMA_VERSION),),
            )

    def _db_error(self, error: Exception, operation: str, code: ErrorCode, **details) -> DatabaseError:
        if isinstance(error, DatabaseError):
            return error
        return DatabaseError(
            f"Memory database {operation} failed: {error_message(error)}",
            code=code,
            operation=operation,
            details=details,
            cause=error,
        )

    # ========== Meta ==========

    def get_meta(self, key: str) -> Optional[str]:
        """Get a metadata value."""
        try:
            row = self._conn.execute("SELECT value FROM __meta WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise self._db_error(e, "get_meta", ErrorCode.DATABASE_QUERY_FAILED, key=key)
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        """Set a metadata value."""
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    "INSERT OR REPLACE INTO __meta (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise self._db_error(e, "set_meta", ErrorCode.DATABASE_WRITE_FAILED, key=key)

    def instance_id(self) -> str:
        """Get the unique identifier of this database."""
        return self.get_meta("instance_id") or "unknown"

    # ========== Blobs ==========

    def _write_blob(
        self,
        cursor: sqlite3.Cursor,
        key: str,
        data: bytes,
        mime_type: Optional[str],
    ) -> BlobMeta:
        now = now_ms()
        digest = hashlib.sha256(data).hexdigest()
        cursor.execute("SELECT created_at FROM __objects WHERE key = ?", (key,))
        row = cursor.fetchone()
        created_at = row["created_at"] if row else now

        cursor.execute("""
            INSERT OR REPLACE INTO __objects (
                key, data, mime_type, size, hash, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (key, sqlite3.Binary(data), mime_type, len(data), digest, created_at, now))

        return BlobMeta(
            key=key,
            size=len(data),
            hash=digest,
            mime_type=mime_type,
            created_at=created_at,
            updated_at=now,
        )

    def write_blob(self, key: str, data: bytes, mime_type: Optional[str] = None) -> BlobMeta:
        """
        Store a binary blob, replacing any existing blob with the same key.

        The hash and size are recomputed from the bytes on every write.

        Returns:
            Metadata of the stored blob
        """
        try:
            with self._transaction() as cursor:
                meta = self._write_blob(cursor, key, data, mime_type)
        except sqlite3.Error as e:
            raise self._db_error(e, "write_blob", ErrorCode.DATABASE_WRITE_FAILED, key=key)
        return meta

    def read_blob(self, key: str) -> Optional[bytes]:
        """Read a blob, or None if it doesn't exist."""
        try:
            row = self._conn.execute("SELECT data FROM __objects WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise self._db_error(e, "read_blob", ErrorCode.DATABASE_QUERY_FAILED, key=key)
        return bytes(row["data"]) if row and row["data"] is not None else None

    def blob_meta(self, key: str) -> Optional[BlobMeta]:
        """Get blob metadata without reading the bytes."""
        try:
            row = self._conn.execute(
                "SELECT key, size, hash, mime_type, created_at, updated_at "
                "FROM __objects WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise self._db_error(e, "blob_meta", ErrorCode.DATABASE_QUERY_FAILED, key=key)
        if row is None:
            return None
        return BlobMeta(
            key=row["key"],
            size=row["size"],
            hash=row["hash"],
            mime_type=row["mime_type"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def delete_blob(self, key: str) -> bool:
        """Delete a blob. Returns True if it existed."""
        try:
            with self._transaction() as cursor:
                cursor.execute("DELETE FROM __objects WHERE key = ?", (key,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise self._db_error(e, "delete_blob", ErrorCode.DATABASE_WRITE_FAILED, key=key)
        return deleted

    # ========== Memories ==========

    @staticmethod
    def _table(scope) -> str:
        return COLLECTION_TABLES[MemoryScope(scope)]

    @staticmethod
    def _serialize(memory: Memory) -> str:
        document = memory.to_dict()
        document["embeddingKey"] = memory.embedding_key
        return json.dumps(document)

    @staticmethod
    def _deserialize(data: str) -> Memory:
        return Memory.from_dict(json.loads(data))

    def save_memory(self, memory: Memory, embedding: Optional[Sequence[float]] = None) -> Memory:
        """
        Persist a memory and its embedding atomically.

        Args:
            memory: The memory to store (inserted or replaced by id)
            embedding: Its embedding vector, if any

        Returns:
            The stored memory
        """
        table = self._table(memory.scope)
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    f"INSERT OR REPLACE INTO {table} (key, data) VALUES (?, ?)",
                    (memory.id, self._serialize(memory)),
                )
                if embedding is not None:
                    self._write_blob(
                        cursor,
                        memory.embedding_key,
                        encode_embedding(embedding),
                        EMBEDDING_MIME_TYPE,
                    )
        except sqlite3.Error as e:
            raise self._db_error(
                e, "save_memory", ErrorCode.DATABASE_TRANSACTION_FAILED,
                memory_id=memory.id, scope=memory.scope.value,
            )

        logger.debug(f"Stored {memory.scope.value} memory: {memory.id}")
        return memory

    def get_memory(self, memory_id: str, scope) -> Optional[Memory]:
        """Get a memory by id, or None if it doesn't exist."""
        table = self._table(scope)
        try:
            row = self._conn.execute(f"SELECT data FROM {table} WHERE key = ?", (memory_id,)).fetchone()
        except sqlite3.Error as e:
            raise self._db_error(e, "get_memory", ErrorCode.DATABASE_QUERY_FAILED, memory_id=memory_id)
        return self._deserialize(row["data"]) if row else None

    def list_memories(self, scope, project_path: Optional[str] = None) -> List[Memory]:
        """
        List the memories of a scope.

        Args:
            scope: "global" or "project"
            project_path: For project scope, only memories of this project

        Returns:
            Memories ordered by creation time
        """
        table = self._table(scope)
        sql = f"SELECT data FROM {table}"
        params: tuple = ()
        if MemoryScope(scope) == MemoryScope.PROJECT and project_path is not None:
            sql += " WHERE json_extract(data, '$.projectPath') = ?"
            params = (project_path,)
        sql += " ORDER BY json_extract(data, '$.createdAt'), key"

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise self._db_error(e, "list_memories", ErrorCode.DATABASE_QUERY_FAILED, scope=str(scope))

        memories = []
        for row in rows:
            try:
                memories.append(self._deserialize(row["data"]))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable memory document in {table}: {e}")
        return memories

    def count_memories(self, scope) -> int:
        """Count the memories of a scope."""
        table = self._table(scope)
        try:
            row = self._conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
        except sqlite3.Error as e:
            raise self._db_error(e, "count_memories", ErrorCode.DATABASE_QUERY_FAILED, scope=str(scope))
        return row["count"]

    def delete_memory(self, memory_id: str, scope) -> bool:
        """
        Delete a memory and its embedding in one transaction.

        Returns:
            True if the memory existed
        """
        table = self._table(scope)
        try:
            with self._transaction() as cursor:
                cursor.execute(f"DELETE FROM {table} WHERE key = ?", (memory_id,))
                deleted = cursor.rowcount > 0
                cursor.execute("DELETE FROM __objects WHERE key = ?", (embedding_key(memory_id),))
        except sqlite3.Error as e:
            raise self._db_error(
                e, "delete_memory", ErrorCode.DATABASE_TRANSACTION_FAILED,
                memory_id=memory_id, scope=str(scope),
            )

        if deleted:
            logger.debug(f"Deleted memory {memory_id} and its embedding")
        return deleted

    def touch_memory(self, memory_id: str, scope, at: Optional[int] = None) -> bool:
        """
        Increment a memory's access count and set its last access time.

        Returns:
            True if the memory exists
        """
        table = self._table(scope)
        at = at if at is not None else now_ms()
        try:
            with self._transaction() as cursor:
                # Read-modify-write of the document in one statement
                cursor.execute(f"""
                    UPDATE {table} SET data = json_set(
                        data,
                        '$.accessCount', COALESCE(json_extract(data, '$.accessCount'), 0) + 1,
                        '$.lastAccessedAt', ?
                    )
                    WHERE key = ?
                """, (at, memory_id))
                touched = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise self._db_error(e, "touch_memory", ErrorCode.DATABASE_WRITE_FAILED, memory_id=memory_id)
        return touched

    # ========== Embeddings ==========

    def get_embedding(self, memory_id: str) -> Optional[List[float]]:
        """Read and decode one memory's embedding."""
        data = self.read_blob(embedding_key(memory_id))
        if data is None:
            return None
        return decode_embedding(data)

    def get_embeddings(self, scope, project_path: Optional[str] = None) -> Dict[str, List[float]]:
        """
        Read the embeddings of every memory in a scope.

        Missing or corrupt blobs are skipped with a warning rather than
        failing the whole read.

        Returns:
            Memory id to embedding, for every readable embedding
        """
        ids = [m.id for m in self.list_memories(scope, project_path)]
        if not ids:
            return {}

        rows = []
        try:
            for start in range(0, len(ids), EMBEDDING_QUERY_CHUNK):
                keys = [embedding_key(i) for i in ids[start:start + EMBEDDING_QUERY_CHUNK]]
                placeholders = ", ".join("?" * len(keys))
                rows.extend(self._conn.execute(
                    f"SELECT key, data FROM __objects WHERE key IN ({placeholders})",
                    keys,
                ).fetchall())
        except sqlite3.Error as e:
            raise self._db_error(e, "get_embeddings", ErrorCode.DATABASE_QUERY_FAILED, scope=str(scope))

        embeddings: Dict[str, List[float]] = {}
        skipped: List[str] = []

        for row in rows:
            memory_id = row["key"][len("embeddings/"):]
            try:
                embeddings[memory_id] = decode_embedding(row["data"])
            except (ValueError, TypeError) as e:
                skipped.append(memory_id)
                logger.debug(f"Unreadable embedding for {memory_id}: {e}")

        missing = [i for i in ids if i not in embeddings and i not in skipped]
        skipped.extend(missing)
        if skipped:
            logger.warning(
                f"Skipped {len(skipped)} missing or corrupt embeddings in {MemoryScope(scope).value} scope"
            )

        return embeddings

    def close(self):
        """Close all database connections opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing memory database connection: {e}")
            self._connections.clear()
        self._local = threading.local()
