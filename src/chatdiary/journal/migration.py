"""One-time migration from the legacy flat snapshot into the structured store.

Decision table, evaluated on every start:

    migration marker set                          -> load the store, drop leftover legacy keys
    store has data, no marker, no legacy keys     -> load the store, set the marker
    legacy entries or categories key present      -> parse, normalize, merge into the store, drop legacy keys
    store empty, nothing legacy                   -> seed built-in entries and categories

Any unexpected failure degrades to the built-in seed set held in memory
only, so bad legacy data can never keep the journal from opening. Legacy
keys are removed only after the structured write and the marker have
committed. Writes made while running on that in-memory fallback leave the
store populated but unmarked; the next start merges the legacy data in
rather than discarding it.

Legacy rows that can't be read as entries or categories are copied under
``chatdairy-unmigrated`` before the legacy keys go away.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any, TypeVar

from loguru import logger

from chatdiary.core.exceptions import MigrationError
from chatdiary.storage.flat import ConfigPort
from chatdiary.storage.structured import Collection, StructuredStore

from .models import Category, DiaryEntry, now_iso
from .normalize import normalize_category_input
from .seed import DEFAULT_CATEGORY_NAMES, default_categories, seed_entries

LEGACY_ENTRIES_KEY = "chatdairy-entries"
LEGACY_CATEGORIES_KEY = "chatdairy-categories"
LEGACY_CATEGORIES_INITIALIZED_KEY = "chatdairy-categories-initialized"
LEGACY_KEYS = (LEGACY_ENTRIES_KEY, LEGACY_CATEGORIES_KEY, LEGACY_CATEGORIES_INITIALIZED_KEY)

# {legacy key: [rows that could not be migrated]}
LEGACY_UNMIGRATED_KEY = "chatdairy-unmigrated"

MIGRATION_MARKER_KEY = "migration_completed"

T = TypeVar("T")


class MigrationOutcome(StrEnum):
    ALREADY_MIGRATED = "already_migrated"
    MIGRATED = "migrated"
    SEEDED = "seeded"
    FALLBACK = "fallback"


@dataclass
class MigrationResult:
    """What the migration found and the state the journal should start with."""

    outcome: MigrationOutcome
    entries: list[DiaryEntry] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    removed_legacy_keys: list[str] = field(default_factory=list)
    unmigrated: dict[str, list[Any]] = field(default_factory=dict)
    error: str | None = None


def _parse_rows(rows: list[Any], factory: Callable[[dict], T], what: str) -> tuple[list[T], list[Any]]:
    loaded: list[T] = []
    rejected: list[Any] = []
    for row in rows:
        try:
            if not isinstance(row, dict):
                raise TypeError(f"expected an object, got {type(row).__name__}")
            loaded.append(factory(row))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable {what} record {str(row)[:80]!r}: {e}")
            rejected.append(row)
    return loaded, rejected


def _load_rows(rows: list[Any], factory: Callable[[dict], T], what: str) -> list[T]:
    return _parse_rows(rows, factory, what)[0]


def dedupe_categories(categories: list[Category]) -> list[Category]:
    """Keep the first category for each name."""
    seen: set[str] = set()
    unique = []
    for category in categories:
        if category.name in seen:
            continue
        seen.add(category.name)
        unique.append(category)
    return unique


def _json_list(raw: str, what: str) -> list[Any]:
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MigrationError(f"Legacy {what} are not valid JSON: {e}") from e
    if not isinstance(parsed, list):
        raise MigrationError(f"Legacy {what} must be a list, got {type(parsed).__name__}")
    return parsed


def parse_legacy_entries(raw: str) -> tuple[list[DiaryEntry], list[Any]]:
    """Parse the legacy entries snapshot (a JSON array of entry objects).

    Returns:
        The readable entries, and the raw rows that could not be read.

    Raises:
        MigrationError: if the snapshot isn't a JSON array.
    """
    return _parse_rows(_json_list(raw, "entries"), DiaryEntry.from_dict, "legacy entry")


def parse_legacy_categories(raw: str | None, initialized: bool = False) -> tuple[list[Category], list[Any]]:
    """Parse and normalize the legacy categories snapshot.

    Bare name strings become full categories with the generic color and
    icon. Unless the legacy store had already been initialized, the
    built-in defaults are prepended when none of them is present.

    Returns:
        The categories, and the raw items that could not be normalized.

    Raises:
        MigrationError: if the snapshot isn't a JSON array.
    """
    items = _json_list(raw, "categories") if raw is not None else []

    categories = []
    rejected = []
    for item in items:
        try:
            categories.append(normalize_category_input(item))
        except (TypeError, ValueError) as e:
            logger.warning(f"Unreadable legacy category {item!r}: {e}")
            rejected.append(item)

    if not initialized and not any(c.name in DEFAULT_CATEGORY_NAMES for c in categories):
        categories = default_categories() + categories

    return dedupe_categories(categories), rejected


class MigrationManager:
    """Moves a user from the legacy flat snapshot to the structured store exactly once.

    Args:
        store: The structured store.
        flat: Flat store holding (possibly) the legacy snapshot.
        today: Anchor date for seed entries (defaults to today).
    """

    def __init__(self, store: StructuredStore, flat: ConfigPort, today: date | None = None):
        self.store = store
        self.flat = flat
        self.today = today

    async def run(self) -> MigrationResult:
        """Run the migration. Never raises."""
        try:
            return await self._run()
        except Exception as e:
            logger.error(f"Migration failed, starting with built-in data: {e}")
            return MigrationResult(
                outcome=MigrationOutcome.FALLBACK,
                entries=seed_entries(self.today),
                categories=default_categories(),
                error=str(e),
            )

    async def _run(self) -> MigrationResult:
        entry_rows = await self.store.get_all(Collection.DIARIES)
        category_rows = await self.store.get_all(Collection.CATEGORIES)
        marker = await self.store.get(Collection.SETTINGS, MIGRATION_MARKER_KEY)
        legacy_entries = await self.flat.get(LEGACY_ENTRIES_KEY)
        legacy_categories = await self.flat.get(LEGACY_CATEGORIES_KEY)
        has_legacy = legacy_entries is not None or legacy_categories is not None

        if marker or ((entry_rows or category_rows) and not has_legacy):
            if not marker:
                await self._write_marker(source="existing")
            removed = await self._remove_legacy_keys()
            logger.info(f"Structured store already populated ({len(entry_rows)} entries, {len(category_rows)} categories)")
            return MigrationResult(
                outcome=MigrationOutcome.ALREADY_MIGRATED,
                entries=_load_rows(entry_rows, DiaryEntry.from_dict, "diary"),
                categories=_load_rows(category_rows, Category.from_dict, "category"),
                removed_legacy_keys=removed,
            )

        if has_legacy:
            return await self._migrate_legacy(legacy_entries, legacy_categories, entry_rows, category_rows)

        entries = seed_entries(self.today)
        categories = default_categories()
        await self._write(entries, categories)
        await self._write_marker(source="seed")
        logger.info("New journal seeded with built-in entries and categories")
        return MigrationResult(outcome=MigrationOutcome.SEEDED, entries=entries, categories=categories)

    async def _migrate_legacy(
        self,
        legacy_entries: str | None,
        legacy_categories: str | None,
        entry_rows: list[Any],
        category_rows: list[Any],
    ) -> MigrationResult:
        existing_entries = _load_rows(entry_rows, DiaryEntry.from_dict, "diary")
        existing_categories = _load_rows(category_rows, Category.from_dict, "category")
        merging = bool(entry_rows or category_rows)
        unmigrated: dict[str, list[Any]] = {}

        entries: list[DiaryEntry] = [] if merging else seed_entries(self.today)
        if legacy_entries is not None:
            try:
                entries, rejected = parse_legacy_entries(legacy_entries)
            except MigrationError as e:
                logger.warning(f"{e}; keeping the raw snapshot under {LEGACY_UNMIGRATED_KEY}")
                rejected = [legacy_entries]
            if rejected:
                unmigrated[LEGACY_ENTRIES_KEY] = rejected

        initialized = (await self.flat.get(LEGACY_CATEGORIES_INITIALIZED_KEY)) == "true"
        try:
            categories, rejected = parse_legacy_categories(legacy_categories, initialized or bool(existing_categories))
        except MigrationError as e:
            logger.warning(f"{e}; keeping the raw snapshot under {LEGACY_UNMIGRATED_KEY}")
            categories = [] if existing_categories else default_categories()
            rejected = [legacy_categories]
        if rejected:
            unmigrated[LEGACY_CATEGORIES_KEY] = rejected

        known_ids = {e.id for e in existing_entries}
        new_entries = [e for e in entries if e.id not in known_ids]
        known_names = {c.name for c in existing_categories}
        new_categories = [c for c in categories if c.name not in known_names]

        await self._write(new_entries, new_categories)
        if unmigrated:
            await self._set_aside(unmigrated)
        await self._write_marker(source="legacy")
        removed = await self._remove_legacy_keys()

        logger.info(
            f"Migrated {len(new_entries)} entries and {len(new_categories)} categories from legacy storage"
            + (f" into {len(existing_entries)} existing entries" if merging else "")
        )
        return MigrationResult(
            outcome=MigrationOutcome.MIGRATED,
            entries=existing_entries + new_entries,
            categories=existing_categories + new_categories,
            removed_legacy_keys=removed,
            unmigrated=unmigrated,
        )

    async def _write(self, entries: list[DiaryEntry], categories: list[Category]) -> None:
        async with self.store.batch() as batch:
            batch.put_all(Collection.DIARIES, [e.to_dict() for e in entries])
            batch.put_all(Collection.CATEGORIES, [c.to_dict() for c in categories])

    async def _write_marker(self, source: str) -> None:
        await self.store.put(Collection.SETTINGS, {"source": source, "at": now_iso()}, key=MIGRATION_MARKER_KEY)

    async def _set_aside(self, unmigrated: dict[str, list[Any]]) -> None:
        kept: dict[str, list[Any]] = {}
        previous = await self.flat.get(LEGACY_UNMIGRATED_KEY)
        if previous is not None:
            try:
                kept = json.loads(previous)
            except ValueError:
                kept = {}
            if not isinstance(kept, dict):
                kept = {"previous": [previous]}
        for key, rows in unmigrated.items():
            bucket = kept.setdefault(key, [])
            bucket.extend(row for row in rows if row not in bucket)
        await self.flat.set(LEGACY_UNMIGRATED_KEY, json.dumps(kept, ensure_ascii=False))
        logger.warning(
            f"Kept {sum(len(rows) for rows in unmigrated.values())} unreadable legacy records under {LEGACY_UNMIGRATED_KEY}"
        )

    async def _remove_legacy_keys(self) -> list[str]:
        removed = [key for key in LEGACY_KEYS if await self.flat.delete(key)]
        if removed:
            logger.info(f"Removed legacy keys: {', '.join(removed)}")
        return removed
