"""Snapshot format and the codec that produces and restores it.

A snapshot captures the whole backupable state in one JSON document::

    {
      "version": 2,
      "timestamp": "2025-01-01T09:30:00.000Z",
      "data": {
        "diaries": [...], "categories": [...], "chats": [...],
        "ai_personas": [...], "app_theme": "dark", ...,
        "chat_messages_2025-01-01": [...], "diary_draft_2025-01-01": {...}
      }
    }

Collections appear under their legacy flat-key names. Configuration keys
come from a fixed allow-list plus two dynamic prefixes. Restoring is a full
replacement: every collection and scoped key is cleared first, then only
what the snapshot names is written back.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from chatdiary.core.exceptions import RestoreFormatError
from chatdiary.journal.migration import LEGACY_CATEGORIES_INITIALIZED_KEY, LEGACY_CATEGORIES_KEY, LEGACY_ENTRIES_KEY
from chatdiary.journal.models import Category, ChatTranscript, DiaryEntry, now_iso
from chatdiary.journal.normalize import normalize_category_input
from chatdiary.storage.flat import ConfigPort
from chatdiary.storage.structured import COLLECTIONS, Collection, StructuredStore

SNAPSHOT_VERSION = 2

APP_KEYS: tuple[str, ...] = (
    "user_profile",
    "ai_personas",
    "ai_current_persona_id",
    "ai_api_configs",
    "ai_current_api_config_id",
    "ai_diary_settings",
    "app_theme",
    "i18nextLng",
)

DYNAMIC_KEY_PREFIXES: tuple[str, ...] = (
    "chat_messages_",
    "diary_draft_",
)

# Snapshot key -> structured collection
COLLECTION_KEYS: dict[str, str] = {
    "diaries": Collection.DIARIES,
    "categories": Collection.CATEGORIES,
    "chats": Collection.CHATS,
}

# Version 1 snapshots (pre-migration app) carried the journal in flat keys.
LEGACY_COLLECTION_KEYS: dict[str, str] = {
    LEGACY_ENTRIES_KEY: "diaries",
    LEGACY_CATEGORIES_KEY: "categories",
}

RestoreListener = Callable[["Snapshot"], Awaitable[None]]

BACKUP_FILENAME_PREFIX = "chatdiary-backup"


def backup_filename(now: datetime | None = None) -> str:
    """``chatdiary-backup-YYYY-MM-DD-HHMMSS.json`` in local time."""
    now = now or datetime.now()
    return f"{BACKUP_FILENAME_PREFIX}-{now:%Y-%m-%d}-{now:%H%M%S}.json"


def decode_flat_value(raw: str) -> Any:
    """Decode a stored flat value for a snapshot.

    JSON objects, arrays, numbers, booleans and null are decoded. Everything
    else, JSON strings included, stays as the raw stored text so that
    encoding it again reproduces the original bytes.
    """
    try:
        value = json.loads(raw)
    except ValueError:
        return raw
    return raw if isinstance(value, str) else value


def _canonical(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def encode_flat_value(value: Any, previous: str | None = None) -> str:
    """Inverse of :func:`decode_flat_value`.

    Decoded JSON is written back compactly, so ``{"a": 1}`` becomes
    ``{"a":1}`` and ``1.50`` becomes ``1.5``. When ``previous`` (the text
    stored before a restore) decodes to the same value, it is returned
    unchanged instead.
    """
    if isinstance(value, str):
        return value
    if previous is not None:
        decoded = decode_flat_value(previous)
        if not isinstance(decoded, str) and _canonical(decoded) == _canonical(value):
            return previous
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of all backupable state. Never mutated after creation."""

    version: int
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "timestamp": self.timestamp, "data": self.data}

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_dict(cls, document: Any) -> Snapshot:
        """Validate a decoded backup document.

        Raises:
            RestoreFormatError: if ``data`` is missing or any collection payload is malformed.
        """
        if not isinstance(document, dict):
            raise RestoreFormatError("Invalid backup data format: expected a JSON object")
        data = document.get("data")
        if not isinstance(data, dict):
            raise RestoreFormatError("Invalid backup data format: missing 'data'")

        for key, value in data.items():
            target = COLLECTION_KEYS.get(key)
            if target is None and key in LEGACY_COLLECTION_KEYS:
                target = COLLECTION_KEYS[LEGACY_COLLECTION_KEYS[key]]
            if target is not None:
                _validate_collection_payload(key, target, value)

        version = document.get("version", 1)
        if not isinstance(version, int):
            raise RestoreFormatError(f"Invalid backup version: {version!r}")
        return cls(version=version, timestamp=str(document.get("timestamp", "")), data=data)

    @classmethod
    def from_json(cls, text: str | bytes) -> Snapshot:
        try:
            document = json.loads(text)
        except ValueError as e:
            raise RestoreFormatError(f"Backup is not valid JSON: {e}") from e
        return cls.from_dict(document)


# Records must load through these, or the repository would drop them after a restore.
RECORD_PARSERS: dict[str, Callable[[Any], Any]] = {
    Collection.DIARIES: DiaryEntry.from_dict,
    Collection.CATEGORIES: Category.from_dict,
    Collection.CHATS: ChatTranscript.from_dict,
}


def _validate_collection_payload(key: str, collection: str, value: Any) -> None:
    if not isinstance(value, list):
        raise RestoreFormatError(f"Backup key '{key}' must be a list, got {type(value).__name__}")
    key_path = COLLECTIONS[collection].key_path
    parse = normalize_category_input if key == LEGACY_CATEGORIES_KEY else RECORD_PARSERS[collection]
    for item in value:
        if key != LEGACY_CATEGORIES_KEY and (not isinstance(item, dict) or item.get(key_path) in (None, "")):
            raise RestoreFormatError(f"Backup key '{key}' has a record without '{key_path}': {str(item)[:80]}")
        try:
            parse(item)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RestoreFormatError(f"Backup key '{key}' has an unreadable record {str(item)[:80]}: {e}") from e


@dataclass
class RestoreSummary:
    """What :meth:`BackupCodec.apply_snapshot` wrote."""

    collections: dict[str, int] = field(default_factory=dict)
    keys: list[str] = field(default_factory=list)
    cleared_keys: list[str] = field(default_factory=list)


class BackupCodec:
    """Builds snapshots from local state and applies them back.

    Args:
        store: Structured store with the journal collections.
        flat: Flat store with configuration keys.
        app_keys: Allow-listed configuration keys.
        dynamic_prefixes: Prefixes of per-day keys to include.
    """

    def __init__(
        self,
        store: StructuredStore,
        flat: ConfigPort,
        app_keys: tuple[str, ...] = APP_KEYS,
        dynamic_prefixes: tuple[str, ...] = DYNAMIC_KEY_PREFIXES,
    ):
        self.store = store
        self.flat = flat
        self.app_keys = app_keys
        self.dynamic_prefixes = dynamic_prefixes
        self._listeners: list[RestoreListener] = []

    def add_restore_listener(self, listener: RestoreListener) -> None:
        """Register an async callback run after every successful restore."""
        self._listeners.append(listener)

    def in_scope(self, key: str) -> bool:
        return key in self.app_keys or key.startswith(self.dynamic_prefixes)

    async def scoped_keys(self) -> list[str]:
        """Existing flat keys covered by snapshots."""
        keys = [key for key in self.app_keys if await self.flat.get(key) is not None]
        for prefix in self.dynamic_prefixes:
            keys.extend(await self.flat.keys(prefix))
        return keys

    async def build_snapshot(self) -> Snapshot:
        """Capture collections and scoped configuration keys."""
        data: dict[str, Any] = {}

        for key in await self.scoped_keys():
            raw = await self.flat.get(key)
            if raw is not None:
                data[key] = decode_flat_value(raw)

        for key, collection in COLLECTION_KEYS.items():
            data[key] = await self.store.get_all(collection)

        snapshot = Snapshot(version=SNAPSHOT_VERSION, timestamp=now_iso(), data=data)
        logger.debug(
            f"Built snapshot: {len(data['diaries'])} entries, {len(data['categories'])} categories, {len(data)} keys"
        )
        return snapshot

    async def apply_snapshot(self, snapshot: Snapshot | dict[str, Any]) -> RestoreSummary:
        """Replace local state with ``snapshot``.

        Everything is validated before anything is cleared, so a malformed
        snapshot leaves local state untouched.

        Raises:
            RestoreFormatError: if the snapshot lacks the required structure.
            StorageError: if the local stores cannot be written.
        """
        if not isinstance(snapshot, Snapshot):
            snapshot = Snapshot.from_dict(snapshot)

        collections, flat_values = self._plan(snapshot.data)
        summary = RestoreSummary()

        async with self.store.batch() as batch:
            for collection in COLLECTION_KEYS.values():
                batch.clear(collection)
            for collection, values in collections.items():
                batch.put_all(collection, values)
                summary.collections[collection] = len(values)

        summary.cleared_keys = await self.scoped_keys()
        previous = {key: await self.flat.get(key) for key in summary.cleared_keys}
        for key in summary.cleared_keys:
            await self.flat.delete(key)
        for key, value in flat_values.items():
            await self.flat.set(key, encode_flat_value(value, previous.get(key)))
            summary.keys.append(key)

        logger.info(
            f"Restored snapshot v{snapshot.version} from {snapshot.timestamp or 'unknown time'}: "
            f"{summary.collections}, {len(summary.keys)} keys"
        )
        for listener in self._listeners:
            await listener(snapshot)
        return summary

    def _plan(self, data: dict[str, Any]) -> tuple[dict[str, list[Any]], dict[str, Any]]:
        collections: dict[str, list[Any]] = {}
        flat_values: dict[str, Any] = {}

        for key, value in data.items():
            if key in COLLECTION_KEYS:
                collections[COLLECTION_KEYS[key]] = list(value)
            elif key in LEGACY_COLLECTION_KEYS:
                continue
            elif key == LEGACY_CATEGORIES_INITIALIZED_KEY:
                continue
            else:
                if not self.in_scope(key):
                    logger.debug(f"Restoring key outside backup scope: {key}")
                flat_values[key] = value

        for legacy_key, modern_key in LEGACY_COLLECTION_KEYS.items():
            collection = COLLECTION_KEYS[modern_key]
            if legacy_key not in data or collection in collections:
                continue
            values = data[legacy_key]
            if legacy_key == LEGACY_CATEGORIES_KEY:
                values = [normalize_category_input(item).to_dict() for item in values]
            collections[collection] = list(values)
            logger.info(f"Mapped legacy backup key '{legacy_key}' to collection '{collection}'")

        return collections, flat_values
