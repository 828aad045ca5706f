"""Tests for chatdiary.journal.migration."""

import json

import pytest

from chatdiary.core.exceptions import MigrationError
from chatdiary.journal.migration import (
    LEGACY_CATEGORIES_INITIALIZED_KEY,
    LEGACY_CATEGORIES_KEY,
    LEGACY_ENTRIES_KEY,
    LEGACY_UNMIGRATED_KEY,
    MIGRATION_MARKER_KEY,
    MigrationManager,
    MigrationOutcome,
    parse_legacy_categories,
    parse_legacy_entries,
)
from chatdiary.journal.seed import DEFAULT_CATEGORY_NAMES
from chatdiary.storage.flat import MemoryFlatStore
from chatdiary.storage.structured import Collection

LEGACY_ENTRIES = [
    {"id": "100", "date": "2024-12-01", "title": "Old one", "content": "x", "mood": "sad", "tags": []},
    {"id": "101", "date": "2024-12-01", "title": "Same day", "content": "y", "mood": "calm", "tags": []},
]


def _legacy_flat(entries=LEGACY_ENTRIES, categories=None, initialized=None):
    data = {LEGACY_ENTRIES_KEY: entries if isinstance(entries, str) else json.dumps(entries)}
    if categories is not None:
        data[LEGACY_CATEGORIES_KEY] = json.dumps(categories)
    if initialized is not None:
        data[LEGACY_CATEGORIES_INITIALIZED_KEY] = initialized
    return MemoryFlatStore(data)


class TestParseLegacy:
    def test_entries(self):
        entries, rejected = parse_legacy_entries(json.dumps(LEGACY_ENTRIES))
        assert [e.id for e in entries] == ["100", "101"]
        assert rejected == []

    def test_entries_not_json(self):
        with pytest.raises(MigrationError):
            parse_legacy_entries("{broken")

    def test_entries_not_a_list(self):
        with pytest.raises(MigrationError):
            parse_legacy_entries('{"id": "1"}')

    def test_bad_rows_are_returned_not_dropped(self):
        bad = {"id": "1", "date": "nope"}
        entries, rejected = parse_legacy_entries(json.dumps([bad, LEGACY_ENTRIES[0], "stray"]))
        assert [e.id for e in entries] == ["100"]
        assert rejected == [bad, "stray"]

    def test_bare_string_categories_get_defaults_prepended(self):
        categories, _ = parse_legacy_categories(json.dumps(["Foo", "Bar"]))
        names = [c.name for c in categories]
        assert names[:3] == ["Daily Life", "Work", "Travel"]
        assert names[3:] == ["Foo", "Bar"]
        assert len({c.id for c in categories}) == len(categories)
        assert all(c.icon_name for c in categories)

    def test_defaults_not_prepended_when_one_exists(self):
        categories, _ = parse_legacy_categories(json.dumps(["Work", "Foo"]))
        assert [c.name for c in categories] == ["Work", "Foo"]

    def test_defaults_not_prepended_when_initialized(self):
        categories, _ = parse_legacy_categories(json.dumps(["Foo"]), initialized=True)
        assert [c.name for c in categories] == ["Foo"]

    def test_mixed_and_duplicate_categories(self):
        raw = json.dumps(["Foo", {"name": "Foo", "color": "x"}, {"name": "Bar", "iconName": "Star"}, 7])
        categories, rejected = parse_legacy_categories(raw, initialized=True)
        assert [c.name for c in categories] == ["Foo", "Bar"]
        assert categories[1].icon_name == "Star"
        assert rejected == [7]

    def test_missing_categories_yield_defaults(self):
        categories, rejected = parse_legacy_categories(None)
        assert {c.name for c in categories} == DEFAULT_CATEGORY_NAMES
        assert rejected == []


class TestMigrationManager:
    async def test_new_user_is_seeded(self, store, flat, today):
        result = await MigrationManager(store, flat, today=today).run()
        assert result.outcome is MigrationOutcome.SEEDED
        assert [e.id for e in result.entries] == ["1", "2", "3"]
        assert result.entries[0].date == today.isoformat()
        assert await store.count(Collection.DIARIES) == 3
        assert await store.count(Collection.CATEGORIES) == 3
        assert await store.get(Collection.SETTINGS, MIGRATION_MARKER_KEY) is not None

    async def test_legacy_data_is_migrated_and_removed(self, store):
        flat = _legacy_flat(categories=["Foo", "Bar"], initialized="true")
        result = await MigrationManager(store, flat).run()

        assert result.outcome is MigrationOutcome.MIGRATED
        assert [e["id"] for e in await store.get_all(Collection.DIARIES)] == ["100", "101"]
        assert [c["name"] for c in await store.get_all(Collection.CATEGORIES)] == ["Foo", "Bar"]
        assert sorted(result.removed_legacy_keys) == sorted(
            [LEGACY_ENTRIES_KEY, LEGACY_CATEGORIES_KEY, LEGACY_CATEGORIES_INITIALIZED_KEY]
        )
        assert await store.get(Collection.SETTINGS, MIGRATION_MARKER_KEY) is not None
        assert flat.snapshot() == {}

    async def test_unparseable_legacy_entries_fall_back_to_seed(self, store, today):
        flat = _legacy_flat(entries="not json at all")
        result = await MigrationManager(store, flat, today=today).run()
        assert result.outcome is MigrationOutcome.MIGRATED
        assert [e.id for e in result.entries] == ["1", "2", "3"]
        assert await flat.get(LEGACY_ENTRIES_KEY) is None
        kept = json.loads(await flat.get(LEGACY_UNMIGRATED_KEY))
        assert kept == {LEGACY_ENTRIES_KEY: ["not json at all"]}

    async def test_unreadable_rows_are_kept_aside(self, store):
        bad = {"id": "999", "date": "someday", "title": "Lost?"}
        flat = _legacy_flat(entries=[*LEGACY_ENTRIES, bad], categories=["Foo", 42], initialized="true")
        result = await MigrationManager(store, flat).run()

        assert result.outcome is MigrationOutcome.MIGRATED
        assert await store.count(Collection.DIARIES) == 2
        assert result.unmigrated == {LEGACY_ENTRIES_KEY: [bad], LEGACY_CATEGORIES_KEY: [42]}
        assert json.loads(await flat.get(LEGACY_UNMIGRATED_KEY)) == result.unmigrated
        assert await flat.get(LEGACY_ENTRIES_KEY) is None

    async def test_second_run_is_a_no_op(self, store):
        flat = _legacy_flat(categories=["Foo"])
        await MigrationManager(store, flat).run()
        second = await MigrationManager(store, flat).run()

        assert second.outcome is MigrationOutcome.ALREADY_MIGRATED
        assert await store.count(Collection.DIARIES) == 2
        assert len(second.categories) == await store.count(Collection.CATEGORIES) == 4

    async def test_leftover_legacy_keys_cleaned_up_after_marker(self, store):
        await store.put(Collection.DIARIES, LEGACY_ENTRIES[0])
        await store.put(Collection.SETTINGS, {"source": "legacy"}, key=MIGRATION_MARKER_KEY)
        flat = _legacy_flat()

        result = await MigrationManager(store, flat).run()
        assert result.outcome is MigrationOutcome.ALREADY_MIGRATED
        assert result.removed_legacy_keys == [LEGACY_ENTRIES_KEY]
        assert await store.count(Collection.DIARIES) == 1

    async def test_unmarked_store_merges_legacy_data(self, store):
        await store.put(Collection.DIARIES, {**LEGACY_ENTRIES[0], "title": "Edited since"})
        await store.put(Collection.DIARIES, {"id": "new", "date": "2025-01-05", "title": "Written later"})
        await store.put(Collection.CATEGORIES, {"id": "Foo", "name": "Foo"})
        flat = _legacy_flat()

        result = await MigrationManager(store, flat).run()
        assert result.outcome is MigrationOutcome.MIGRATED
        ids = sorted(e["id"] for e in await store.get_all(Collection.DIARIES))
        assert ids == ["100", "101", "new"]
        assert (await store.get(Collection.DIARIES, "100"))["title"] == "Edited since"
        assert [c.name for c in result.categories] == ["Foo"]
        assert result.removed_legacy_keys == [LEGACY_ENTRIES_KEY]
        assert await store.get(Collection.SETTINGS, MIGRATION_MARKER_KEY) is not None

    async def test_unmarked_store_without_legacy_gets_marker(self, store, flat):
        await store.put(Collection.DIARIES, LEGACY_ENTRIES[0])
        result = await MigrationManager(store, flat).run()
        assert result.outcome is MigrationOutcome.ALREADY_MIGRATED
        assert await store.get(Collection.SETTINGS, MIGRATION_MARKER_KEY) is not None

    async def test_emptied_journal_is_not_reseeded(self, store, flat):
        await MigrationManager(store, flat).run()
        await store.clear(Collection.DIARIES)
        await store.clear(Collection.CATEGORIES)

        result = await MigrationManager(store, flat).run()
        assert result.outcome is MigrationOutcome.ALREADY_MIGRATED
        assert result.entries == []

    async def test_storage_failure_falls_back_to_seed_in_memory(self, store, flat, monkeypatch, today):
        async def broken(collection):
            raise RuntimeError("store exploded")

        monkeypatch.setattr(store, "get_all", broken)
        result = await MigrationManager(store, flat, today=today).run()
        assert result.outcome is MigrationOutcome.FALLBACK
        assert "exploded" in result.error
        assert len(result.entries) == 3
        assert {c.name for c in result.categories} == DEFAULT_CATEGORY_NAMES

    async def test_failed_migration_keeps_legacy_keys(self, store, monkeypatch):
        flat = _legacy_flat()

        async def broken(collection):
            raise RuntimeError("store exploded")

        monkeypatch.setattr(store, "get_all", broken)
        result = await MigrationManager(store, flat).run()
        assert result.outcome is MigrationOutcome.FALLBACK
        assert await flat.get(LEGACY_ENTRIES_KEY) is not None
