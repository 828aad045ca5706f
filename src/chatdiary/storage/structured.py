"""
Structured local store backed by SQLite.

Each collection is a table of JSON documents keyed by a primary key taken
from the document itself (``id`` for diaries/categories, ``date`` for chats)
or supplied by the caller (settings). The store opens lazily on first use,
tracks its schema version in ``PRAGMA user_version`` and upgrades by
creating missing collections only.

All SQLite calls run on a single dedicated worker thread, so operations
execute one at a time in the order they were awaited.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from loguru import logger

from chatdiary.core.exceptions import QuotaExceededError, StorageError, StorageKeyError

SCHEMA_VERSION = 2


class Collection(StrEnum):
    DIARIES = "diaries"
    CATEGORIES = "categories"
    SETTINGS = "settings"
    CHATS = "chats"


@dataclass(frozen=True)
class CollectionSpec:
    """Declaration of a collection: its key field and the schema version that introduced it."""

    name: str
    key_path: str | None
    since_version: int


COLLECTIONS: dict[str, CollectionSpec] = {
    Collection.DIARIES: CollectionSpec(Collection.DIARIES, "id", 1),
    Collection.CATEGORIES: CollectionSpec(Collection.CATEGORIES, "id", 1),
    Collection.SETTINGS: CollectionSpec(Collection.SETTINGS, None, 2),
    Collection.CHATS: CollectionSpec(Collection.CHATS, "date", 2),
}

# (op, collection, key, value)
_Op = tuple[str, str, str | None, Any]


def _translate_error(e: sqlite3.Error, action: str) -> StorageError:
    if getattr(e, "sqlite_errorcode", None) == sqlite3.SQLITE_FULL or "full" in str(e).lower():
        return QuotaExceededError(f"Storage full while trying to {action}: {e}")
    return StorageError(f"Failed to {action}: {e}")


class StructuredStore:
    """Versioned, transactional document store with named collections.

    Args:
        db_path: SQLite database file, or ``":memory:"`` for a throwaway store.
    """

    def __init__(self, db_path: str | Path = "~/.chatdiary-data/chatdiary.db"):
        self.db_path = str(db_path) if str(db_path) == ":memory:" else str(Path(db_path).expanduser())
        self._conn: sqlite3.Connection | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._open_lock = asyncio.Lock()

    # ── Lifecycle ──────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        """Open (creating or upgrading) the database. Safe to call repeatedly."""
        if self._conn is not None:
            return
        async with self._open_lock:
            if self._conn is not None:
                return
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chatdiary-db")
            loop = asyncio.get_running_loop()
            try:
                self._conn = await loop.run_in_executor(executor, self._open_sync)
            except BaseException:
                executor.shutdown(wait=False)
                raise
            self._executor = executor

    def _open_sync(self) -> sqlite3.Connection:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise _translate_error(e, f"open {self.db_path}") from e

        try:
            self._upgrade(conn)
        except sqlite3.Error as e:
            conn.close()
            raise _translate_error(e, "upgrade schema") from e
        except StorageError:
            conn.close()
            raise
        return conn

    @staticmethod
    def _upgrade(conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise StorageError(f"Database schema version {version} is newer than supported {SCHEMA_VERSION}")

        with conn:
            for spec in COLLECTIONS.values():
                # Tables are only ever created, never altered.
                conn.execute(
                    f'CREATE TABLE IF NOT EXISTS "{spec.name}" (key TEXT PRIMARY KEY, value TEXT NOT NULL)'
                )
            if version < SCHEMA_VERSION:
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
                logger.info(f"Structured store upgraded from schema v{version} to v{SCHEMA_VERSION}")

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, executor = self._conn, self._executor
        self._conn = None
        self._executor = None
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(executor, conn.close)
        executor.shutdown(wait=True)

    async def schema_version(self) -> int:
        return await self._run(lambda conn: conn.execute("PRAGMA user_version").fetchone()[0], "read schema version")

    async def _run(self, fn, action: str):
        await self.open()
        loop = asyncio.get_running_loop()
        conn = self._conn

        def call():
            try:
                return fn(conn)
            except sqlite3.Error as e:
                raise _translate_error(e, action) from e

        return await loop.run_in_executor(self._executor, call)

    # ── Key handling ───────────────────────────────────────────────

    @staticmethod
    def _spec(collection: str) -> CollectionSpec:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise StorageKeyError(f"Unknown collection: {collection}") from None

    def _resolve_key(self, collection: str, value: Any, key: str | None) -> str:
        spec = self._spec(collection)
        if spec.key_path is None:
            if key is None:
                raise StorageKeyError(f"Collection '{collection}' requires an explicit key")
            return str(key)
        if not isinstance(value, dict) or value.get(spec.key_path) in (None, ""):
            raise StorageKeyError(f"Value for '{collection}' is missing its '{spec.key_path}' field")
        return str(value[spec.key_path])

    # ── Reads ──────────────────────────────────────────────────────

    async def get_all(self, collection: str) -> list[Any]:
        """Return every value in insertion order."""
        self._spec(collection)

        def query(conn):
            rows = conn.execute(f'SELECT value FROM "{collection}" ORDER BY rowid').fetchall()
            return [json.loads(row[0]) for row in rows]

        return await self._run(query, f"read {collection}")

    async def get(self, collection: str, key: str) -> Any | None:
        self._spec(collection)

        def query(conn):
            row = conn.execute(f'SELECT value FROM "{collection}" WHERE key = ?', (str(key),)).fetchone()
            return json.loads(row[0]) if row else None

        return await self._run(query, f"read {collection}/{key}")

    async def count(self, collection: str) -> int:
        self._spec(collection)
        return await self._run(
            lambda conn: conn.execute(f'SELECT COUNT(*) FROM "{collection}"').fetchone()[0],
            f"count {collection}",
        )

    # ── Writes ─────────────────────────────────────────────────────

    async def put(self, collection: str, value: Any, key: str | None = None) -> str:
        """Upsert one value. Returns the key it was stored under."""
        resolved = self._resolve_key(collection, value, key)
        await self._execute([("put", collection, resolved, value)], f"write {collection}/{resolved}")
        return resolved

    async def put_all(self, collection: str, values: Iterable[Any]) -> int:
        """Upsert many values in a single transaction. Returns the number written."""
        ops: list[_Op] = [("put", collection, self._resolve_key(collection, v, None), v) for v in values]
        await self._execute(ops, f"write {collection}")
        return len(ops)

    async def delete(self, collection: str, key: str) -> bool:
        """Delete one value. Returns True if it existed."""
        self._spec(collection)

        def delete(conn):
            with conn:
                cur = conn.execute(f'DELETE FROM "{collection}" WHERE key = ?', (str(key),))
            return cur.rowcount > 0

        return await self._run(delete, f"delete {collection}/{key}")

    async def clear(self, collection: str) -> None:
        await self._execute([("clear", collection, None, None)], f"clear {collection}")

    def batch(self) -> StoreBatch:
        """Collect writes across collections and commit them in one transaction.

        Usage::

            async with store.batch() as batch:
                batch.delete("categories", "Old")
                batch.put("categories", new_category)
                batch.put_all("diaries", renamed_entries)
        """
        return StoreBatch(self)

    async def _execute(self, ops: list[_Op], action: str) -> None:
        if not ops:
            return

        def apply(conn):
            with conn:
                for op, collection, key, value in ops:
                    if op == "put":
                        conn.execute(
                            f'INSERT INTO "{collection}" (key, value) VALUES (?, ?) '
                            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                            (key, json.dumps(value, ensure_ascii=False)),
                        )
                    elif op == "delete":
                        conn.execute(f'DELETE FROM "{collection}" WHERE key = ?', (key,))
                    elif op == "clear":
                        conn.execute(f'DELETE FROM "{collection}"')

        await self._run(apply, action)


class StoreBatch:
    """Pending writes committed atomically on exit (or by :meth:`commit`)."""

    def __init__(self, store: StructuredStore):
        self._store = store
        self._ops: list[_Op] = []

    def __len__(self) -> int:
        return len(self._ops)

    def put(self, collection: str, value: Any, key: str | None = None) -> None:
        self._ops.append(("put", collection, self._store._resolve_key(collection, value, key), value))

    def put_all(self, collection: str, values: Iterable[Any]) -> None:
        for value in values:
            self.put(collection, value)

    def delete(self, collection: str, key: str) -> None:
        self._store._spec(collection)
        self._ops.append(("delete", collection, str(key), None))

    def clear(self, collection: str) -> None:
        self._store._spec(collection)
        self._ops.append(("clear", collection, None, None))

    async def commit(self) -> None:
        ops, self._ops = self._ops, []
        touched = sorted({op[1] for op in ops})
        await self._store._execute(ops, f"commit batch on {', '.join(touched)}")

    async def __aenter__(self) -> StoreBatch:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            await self.commit()
        return False
