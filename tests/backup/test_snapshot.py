"""Tests for chatdiary.backup.snapshot."""

import json

import pytest

from chatdiary.backup.snapshot import (
    SNAPSHOT_VERSION,
    BackupCodec,
    Snapshot,
    backup_filename,
    decode_flat_value,
    encode_flat_value,
)
from chatdiary.core.exceptions import RestoreFormatError
from chatdiary.storage.structured import Collection


@pytest.fixture
async def codec(repo, store, flat):
    await flat.set("app_theme", "dark")
    await flat.set("ai_personas", '[{"id":"p1","name":"Luna"}]')
    await flat.set("i18nextLng", "zh")
    await flat.set("chat_messages_2025-03-14", '[{"id":1,"text":"hi"}]')
    await flat.set("diary_draft_2025-03-14", '{"title":"draft"}')
    await flat.set("backup_github_token", "secret")
    await flat.set("unrelated_key", "keep me")
    await repo.save_chat_transcript("2025-03-14", [{"id": 1}])
    return BackupCodec(store, flat)


class TestFlatValueEncoding:
    @pytest.mark.parametrize("raw", ['{"a":1}', "[1,2]", "3", "true", "null", "dark", '"quoted"', "{not json"])
    def test_encode_restores_original_text(self, raw):
        assert encode_flat_value(decode_flat_value(raw)) == raw

    def test_structured_values_are_decoded(self):
        assert decode_flat_value('{"a": 1}') == {"a": 1}
        assert decode_flat_value("dark") == "dark"

    def test_changed_values_are_written_compactly(self):
        assert encode_flat_value({"a": 1}) == '{"a":1}'
        assert encode_flat_value(1.5, previous="2") == "1.5"
        assert encode_flat_value(1, previous="true") == "1"

    def test_equal_previous_text_is_kept(self):
        previous = '{"b": [1.50],  "a": 1}'
        assert encode_flat_value({"a": 1, "b": [1.5]}, previous=previous) == previous


class TestBuildSnapshot:
    async def test_contents(self, codec):
        snapshot = await codec.build_snapshot()
        data = snapshot.data
        assert snapshot.version == SNAPSHOT_VERSION
        assert snapshot.timestamp.endswith("Z")
        assert [e["id"] for e in data["diaries"]] == ["1", "2", "3"]
        assert len(data["categories"]) == 3
        assert data["chats"] == [{"date": "2025-03-14", "messages": [{"id": 1}]}]
        assert data["app_theme"] == "dark"
        assert data["ai_personas"] == [{"id": "p1", "name": "Luna"}]
        assert data["chat_messages_2025-03-14"] == [{"id": 1, "text": "hi"}]
        assert data["diary_draft_2025-03-14"] == {"title": "draft"}

    async def test_out_of_scope_keys_excluded(self, codec):
        data = (await codec.build_snapshot()).data
        assert "backup_github_token" not in data
        assert "unrelated_key" not in data
        # absent allow-listed keys are omitted
        assert "user_profile" not in data

    async def test_json_document_shape(self, codec):
        document = json.loads((await codec.build_snapshot()).to_json())
        assert set(document) == {"version", "timestamp", "data"}


class TestApplySnapshot:
    async def test_round_trip_leaves_state_unchanged(self, codec, store, flat):
        before_flat = flat.snapshot()
        before = {c: await store.get_all(c) for c in (Collection.DIARIES, Collection.CATEGORIES, Collection.CHATS)}

        await codec.apply_snapshot(await codec.build_snapshot())

        assert flat.snapshot() == before_flat
        for collection, rows in before.items():
            assert await store.get_all(collection) == rows

    async def test_restore_is_total(self, codec, store, flat):
        snapshot = await codec.build_snapshot()
        await store.put(Collection.CATEGORIES, {"id": "Extra", "name": "Extra"})
        await flat.set("diary_draft_2025-03-15", "{}")
        await flat.set("user_profile", '{"name":"x"}')

        await codec.apply_snapshot(snapshot)

        assert await store.get(Collection.CATEGORIES, "Extra") is None
        assert await flat.get("diary_draft_2025-03-15") is None
        assert await flat.get("user_profile") is None

    async def test_restore_keeps_out_of_scope_keys(self, codec, flat):
        await codec.apply_snapshot({"version": 2, "data": {"diaries": []}})
        assert await flat.get("backup_github_token") == "secret"
        assert await flat.get("unrelated_key") == "keep me"

    async def test_collections_missing_from_snapshot_are_cleared(self, codec, store):
        summary = await codec.apply_snapshot({"version": 2, "data": {"app_theme": "light"}})
        assert await store.count(Collection.DIARIES) == 0
        assert await store.count(Collection.CHATS) == 0
        assert summary.keys == ["app_theme"]

    async def test_missing_data_leaves_state_untouched(self, codec, store, flat):
        before_flat = flat.snapshot()
        with pytest.raises(RestoreFormatError):
            await codec.apply_snapshot({"version": 2, "timestamp": "x"})
        assert flat.snapshot() == before_flat
        assert await store.count(Collection.DIARIES) == 3

    async def test_malformed_collection_leaves_state_untouched(self, codec, store):
        with pytest.raises(RestoreFormatError):
            await codec.apply_snapshot({"data": {"diaries": [{"title": "no id"}]}})
        with pytest.raises(RestoreFormatError):
            await codec.apply_snapshot({"data": {"categories": "Work"}})
        assert await store.count(Collection.DIARIES) == 3

    async def test_round_trip_keeps_stored_text(self, codec, flat):
        await flat.set("ai_diary_settings", '{"tone": "warm",  "length": 1.50}')
        await flat.set("user_profile", "1.50")
        await codec.apply_snapshot(await codec.build_snapshot())
        assert await flat.get("ai_diary_settings") == '{"tone": "warm",  "length": 1.50}'
        assert await flat.get("user_profile") == "1.50"

    @pytest.mark.parametrize(
        "record",
        [
            {"id": "b", "date": "2025-01-01", "chatHistory": [{"id": "m-1", "text": "hi"}]},
            {"id": "b", "date": "01/02/2025"},
            {"id": "b", "date": "2025-01-01", "comments": [{"id": "c", "author": "bot", "text": "x"}]},
            {"id": "b", "date": "2025-01-01", "chatHistory": "not a list"},
        ],
    )
    async def test_unloadable_entry_rejects_snapshot(self, codec, store, record):
        valid = {"id": "a", "date": "2025-01-01"}
        with pytest.raises(RestoreFormatError, match="unreadable record"):
            await codec.apply_snapshot({"version": 2, "data": {"diaries": [valid, record]}})
        assert [e["id"] for e in await store.get_all(Collection.DIARIES)] == ["1", "2", "3"]

    async def test_unloadable_chat_rejects_snapshot(self, codec, store):
        with pytest.raises(RestoreFormatError):
            await codec.apply_snapshot({"version": 2, "data": {"chats": [{"date": "yesterday"}]}})
        assert await store.count(Collection.CHATS) == 1

    async def test_restored_entries_all_reach_the_repository(self, codec, repo, store):
        codec.add_restore_listener(lambda snapshot: repo.reload())
        entries = [
            {"id": "a", "date": "2025-01-01"},
            {"id": "b", "date": "2025-01-02", "chatHistory": [{"id": 1700000000000, "text": "hi", "sender": "ai"}]},
        ]
        await codec.apply_snapshot({"version": 2, "data": {"diaries": entries}})
        durable = sorted(e["id"] for e in await store.get_all(Collection.DIARIES))
        assert durable == sorted(e.id for e in repo.entries) == ["a", "b"]

    async def test_version_1_legacy_keys_are_mapped(self, codec, store, flat):
        legacy = {
            "version": 1,
            "data": {
                "chatdairy-entries": [{"id": "old", "date": "2024-01-01", "title": "legacy"}],
                "chatdairy-categories": ["Foo", {"name": "Bar"}],
                "chatdairy-categories-initialized": "true",
                "app_theme": "light",
            },
        }
        await codec.apply_snapshot(legacy)
        assert [e["id"] for e in await store.get_all(Collection.DIARIES)] == ["old"]
        assert [c["name"] for c in await store.get_all(Collection.CATEGORIES)] == ["Foo", "Bar"]
        assert await flat.get("chatdairy-entries") is None
        assert await flat.get("app_theme") == "light"

    async def test_listeners_notified(self, codec):
        seen = []

        async def listener(snapshot):
            seen.append(snapshot)

        codec.add_restore_listener(listener)
        snapshot = await codec.build_snapshot()
        await codec.apply_snapshot(snapshot)
        assert seen == [snapshot]


class TestSnapshotParsing:
    def test_not_json(self):
        with pytest.raises(RestoreFormatError):
            Snapshot.from_json("{nope")

    def test_not_an_object(self):
        with pytest.raises(RestoreFormatError):
            Snapshot.from_json("[]")

    def test_defaults_version_1(self):
        assert Snapshot.from_json('{"data": {}}').version == 1


def test_backup_filename():
    from datetime import datetime

    assert backup_filename(datetime(2025, 3, 14, 9, 5, 7)) == "chatdiary-backup-2025-03-14-090507.json"
