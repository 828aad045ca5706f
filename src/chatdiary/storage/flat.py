"""
Flat key-value stores.

The flat store is a plain ``key -> string`` mapping with no transactions or
indexes. It holds live configuration (personas, API configs, theme, per-day
drafts and chat transcripts, sync settings) and, for users who have not been
migrated yet, the legacy journal snapshot.

Components depend on the :class:`ConfigPort` protocol rather than a concrete
store. :class:`FileFlatStore` keeps one file per key on disk;
:class:`MemoryFlatStore` is a dict-backed implementation for tests and
ephemeral sessions.
"""

from __future__ import annotations

import errno
import os
import urllib.parse
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiofiles
import aiofiles.os
from loguru import logger

from chatdiary.core.exceptions import QuotaExceededError, StorageError

_VALUE_SUFFIX = ".value"
_TMP_SUFFIX = ".tmp"


@runtime_checkable
class ConfigPort(Protocol):
    """Protocol for the flat ``key -> string`` store."""

    async def get(self, key: str) -> str | None:
        """Return the stored string, or None if the key is absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        """Return all keys starting with ``prefix``, sorted."""
        ...


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryFlatStore:
    """In-memory flat store.

    Args:
        initial: Optional starting contents.
        quota_bytes: Optional cap on total key+value bytes.
    """

    def __init__(self, initial: dict[str, str] | None = None, quota_bytes: int | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self.quota_bytes = quota_bytes

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Flat store values must be strings, got {type(value).__name__}")
        if self.quota_bytes is not None:
            used = sum(_entry_size(k, v) for k, v in self._data.items() if k != key)
            if used + _entry_size(key, value) > self.quota_bytes:
                raise QuotaExceededError(f"Flat store quota of {self.quota_bytes} bytes exceeded writing '{key}'")
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents (for tests and diagnostics)."""
        return dict(self._data)


class FileFlatStore:
    """Flat store persisted as one file per key under ``base_path``.

    Keys are percent-encoded into file names, so any non-empty key is
    accepted. Writes go to a temporary file first and are moved into place,
    so a crash never leaves a half-written value behind.

    Args:
        base_path: Directory holding the value files.
        quota_bytes: Optional cap on total key+value bytes, mirroring the
            fixed quota browsers impose on local storage.
    """

    def __init__(self, base_path: str | Path = "~/.chatdiary-data/local", quota_bytes: int | None = None):
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes

    def _get_full_path(self, key: str) -> Path:
        """Resolve a key to its value file.

        Rejects empty keys and keys containing null bytes.
        """
        if not isinstance(key, str) or not key:
            raise StorageError("Flat store key cannot be empty.")
        if "\x00" in key:
            raise StorageError("Flat store key cannot contain null bytes.")
        return self.base_path / (urllib.parse.quote(key, safe="") + _VALUE_SUFFIX)

    def _usage(self, excluding: str | None = None) -> int:
        total = 0
        for entry in os.scandir(self.base_path):
            if not entry.name.endswith(_VALUE_SUFFIX):
                continue
            key = urllib.parse.unquote(entry.name[: -len(_VALUE_SUFFIX)])
            if key == excluding:
                continue
            total += len(key.encode("utf-8")) + entry.stat().st_size
        return total

    async def get(self, key: str) -> str | None:
        path = self._get_full_path(key)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, encoding="utf-8", newline="") as f:
                return await f.read()
        except OSError as e:
            raise StorageError(f"Cannot read '{key}': {e}") from e

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Flat store values must be strings, got {type(value).__name__}")
        path = self._get_full_path(key)

        if self.quota_bytes is not None:
            if self._usage(excluding=key) + _entry_size(key, value) > self.quota_bytes:
                raise QuotaExceededError(f"Flat store quota of {self.quota_bytes} bytes exceeded writing '{key}'")

        tmp_path = path.with_name(path.name[: -len(_VALUE_SUFFIX)] + _TMP_SUFFIX)
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8", newline="") as f:
                await f.write(value)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            if e.errno in (errno.ENOSPC, errno.EDQUOT):
                raise QuotaExceededError(f"Disk full writing '{key}': {e}") from e
            raise StorageError(f"Cannot write '{key}': {e}") from e

    async def delete(self, key: str) -> bool:
        path = self._get_full_path(key)
        if not path.exists():
            return False
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Cannot delete '{key}': {e}") from e
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        found = []
        for name in os.listdir(self.base_path):
            if not name.endswith(_VALUE_SUFFIX):
                if name.endswith(_TMP_SUFFIX):
                    logger.debug(f"Ignoring leftover temp file in flat store: {name}")
                continue
            key = urllib.parse.unquote(name[: -len(_VALUE_SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return sorted(found)
