"""DiaryRepository: CRUD and queries over diary entries and categories.

Reads are served from in-memory mirrors; every mutation updates the mirror
and then persists to the structured store before returning. A failed
write is logged and recorded in ``last_persist_error`` but the in-memory
change stands, so memory and disk can drift until the next successful
write of the same record.

Lifecycle:
    uninitialized -> migrating -> ready

Every operation other than :meth:`initialize` raises :class:`NotReadyError`
until the repository is ready.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable
from dataclasses import fields, replace
from datetime import date
from enum import StrEnum
from typing import Any

from loguru import logger

from chatdiary.core.exceptions import (
    CategoryNotFoundError,
    DuplicateCategoryError,
    EntryNotFoundError,
    NotReadyError,
    QuotaExceededError,
    StorageError,
)
from chatdiary.storage.flat import ConfigPort
from chatdiary.storage.structured import Collection, StructuredStore

from .migration import MigrationManager, MigrationResult
from .models import Category, ChatMessage, ChatTranscript, Comment, DiaryEntry, new_id, normalize_day, now_iso
from .normalize import CategoryInput, CategoryUpdate, normalize_category_input, normalize_category_update

QuotaCallback = Callable[[QuotaExceededError], None]

# Wire names accepted in update_entry() alongside attribute names.
_FIELD_ALIASES = {"chatHistory": "chat_history", "createdAt": "created_at"}
_ENTRY_FIELDS = {f.name for f in fields(DiaryEntry)} - {"extra"}


class LifecycleState(StrEnum):
    UNINITIALIZED = "uninitialized"
    MIGRATING = "migrating"
    READY = "ready"


class DiaryRepository:
    """Journal entries and categories backed by a :class:`StructuredStore`.

    Args:
        store: Structured store holding the ``diaries``, ``categories`` and ``chats`` collections.
        flat: Flat store consulted by the migration for legacy data.
        on_quota_exceeded: Called when a write fails because storage is full.
        today: Anchor date for seed entries (defaults to today).
    """

    def __init__(
        self,
        store: StructuredStore,
        flat: ConfigPort,
        on_quota_exceeded: QuotaCallback | None = None,
        today: date | None = None,
    ):
        self.store = store
        self.flat = flat
        self.on_quota_exceeded = on_quota_exceeded
        self.today = today
        self.state = LifecycleState.UNINITIALIZED
        self.migration_result: MigrationResult | None = None
        self.last_persist_error: StorageError | None = None
        self._entries: list[DiaryEntry] = []
        self._categories: list[Category] = []
        self._init_lock = asyncio.Lock()

    # ── Lifecycle ──────────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self.state is LifecycleState.READY

    async def initialize(self) -> MigrationResult:
        """Run the migration (once) and load the mirrors. Concurrent callers share the first run."""
        async with self._init_lock:
            if self.state is LifecycleState.READY and self.migration_result is not None:
                return self.migration_result
            return await self._load()

    async def reload(self) -> MigrationResult:
        """Re-read everything from the store, e.g. after a backup was restored."""
        async with self._init_lock:
            return await self._load()

    async def _load(self) -> MigrationResult:
        self.state = LifecycleState.MIGRATING
        try:
            result = await MigrationManager(self.store, self.flat, today=self.today).run()
        except BaseException:
            self.state = LifecycleState.UNINITIALIZED
            raise
        self._entries = result.entries
        self._categories = result.categories
        self.migration_result = result
        self.state = LifecycleState.READY
        logger.debug(f"Repository ready ({result.outcome}): {len(self._entries)} entries")
        return result

    def _require_ready(self) -> None:
        if self.state is not LifecycleState.READY:
            raise NotReadyError(f"Repository is {self.state}; call initialize() first")

    async def _persist(self, action: str, write: Callable[[], Awaitable[Any]]) -> bool:
        try:
            await write()
        except QuotaExceededError as e:
            logger.warning(f"Storage full, could not {action}: {e}")
            self.last_persist_error = e
            if self.on_quota_exceeded:
                self.on_quota_exceeded(e)
            return False
        except StorageError as e:
            logger.error(f"Failed to {action}: {e}")
            self.last_persist_error = e
            return False
        return True

    async def _save_entry(self, entry: DiaryEntry, action: str) -> None:
        await self._persist(action, lambda: self.store.put(Collection.DIARIES, entry.to_dict()))

    # ── Entry queries ──────────────────────────────────────────────

    @property
    def entries(self) -> list[DiaryEntry]:
        self._require_ready()
        return copy.deepcopy(self._entries)

    def _find(self, entry_id: str) -> DiaryEntry | None:
        return next((e for e in self._entries if e.id == entry_id), None)

    def _require_entry(self, entry_id: str) -> DiaryEntry:
        entry = self._find(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"No diary entry with id {entry_id!r}")
        return entry

    def get_by_id(self, entry_id: str) -> DiaryEntry | None:
        self._require_ready()
        entry = self._find(entry_id)
        return copy.deepcopy(entry) if entry else None

    def get_by_date(self, day: str | date) -> DiaryEntry | None:
        """First entry written on ``day``."""
        entries = self.get_all_by_date(day)
        return entries[0] if entries else None

    def get_all_by_date(self, day: str | date) -> list[DiaryEntry]:
        self._require_ready()
        key = normalize_day(day)
        return [copy.deepcopy(e) for e in self._entries if e.date == key]

    def get_by_category(self, name: str | None) -> list[DiaryEntry]:
        """Entries in category ``name``; ``None`` selects uncategorized entries.

        An entry is uncategorized when its category is empty or names a
        category that no longer exists.
        """
        self._require_ready()
        if name is not None:
            return [copy.deepcopy(e) for e in self._entries if e.category == name]
        known = {c.name for c in self._categories}
        return [copy.deepcopy(e) for e in self._entries if not e.category or e.category not in known]

    # ── Entry mutations ────────────────────────────────────────────

    async def add_entry(self, entry: DiaryEntry | dict[str, Any]) -> DiaryEntry:
        """Append a new entry, defaulting ``createdAt``, comments and chat history."""
        self._require_ready()
        if isinstance(entry, dict):
            entry = DiaryEntry.from_dict(entry)
        if self._find(entry.id) is not None:
            raise ValueError(f"Diary entry {entry.id!r} already exists")

        entry = replace(
            copy.deepcopy(entry),
            created_at=entry.created_at or now_iso(),
            chat_history=entry.chat_history if entry.chat_history is not None else [],
        )
        self._entries.append(entry)
        await self._save_entry(entry, f"save entry {entry.id}")
        return copy.deepcopy(entry)

    async def update_entry(self, entry_id: str, updates: dict[str, Any]) -> DiaryEntry:
        """Shallow-merge ``updates`` into an entry; unspecified fields are untouched.

        Keys may be attribute names or wire names (``chatHistory``).
        Unknown keys are kept as extra fields.
        """
        self._require_ready()
        current = self._require_entry(entry_id)

        changes: dict[str, Any] = {}
        extra = dict(current.extra)
        for raw_key, value in updates.items():
            key = _FIELD_ALIASES.get(raw_key, raw_key)
            if key == "id":
                if value != entry_id:
                    raise ValueError("Entry id is immutable")
                continue
            if key == "comments":
                value = [c if isinstance(c, Comment) else Comment.from_dict(c) for c in value or []]
            elif key == "chat_history" and value is not None:
                value = [m if isinstance(m, ChatMessage) else ChatMessage.from_dict(m) for m in value]
            elif key == "date":
                value = normalize_day(value)
            if key in _ENTRY_FIELDS:
                changes[key] = value
            else:
                extra[raw_key] = value

        updated = replace(current, extra=extra, **changes)
        self._entries[self._entries.index(current)] = updated
        await self._save_entry(updated, f"update entry {entry_id}")
        return copy.deepcopy(updated)

    async def delete_entry(self, entry_id: str) -> None:
        """Remove an entry together with its comments and chat history."""
        self._require_ready()
        entry = self._require_entry(entry_id)
        self._entries.remove(entry)
        await self._persist(f"delete entry {entry_id}", lambda: self.store.delete(Collection.DIARIES, entry_id))

    async def delete_chat_history(self, entry_id: str) -> DiaryEntry:
        """Drop the ``chatHistory`` field, keeping everything else."""
        self._require_ready()
        current = self._require_entry(entry_id)
        updated = replace(current, chat_history=None)
        self._entries[self._entries.index(current)] = updated
        await self._save_entry(updated, f"remove chat history of {entry_id}")
        return copy.deepcopy(updated)

    async def add_comment(
        self,
        entry_id: str,
        author: str,
        text: str,
        persona_name: str | None = None,
    ) -> Comment:
        self._require_ready()
        current = self._require_entry(entry_id)
        comment = Comment(id=new_id(), author=author, text=text, date=now_iso(), persona_name=persona_name)
        updated = replace(current, comments=[*current.comments, comment])
        self._entries[self._entries.index(current)] = updated
        await self._save_entry(updated, f"add comment to {entry_id}")
        return copy.deepcopy(comment)

    async def delete_comment(self, entry_id: str, comment_id: str) -> bool:
        """Remove one comment. Returns False if the entry had no such comment."""
        self._require_ready()
        current = self._require_entry(entry_id)
        remaining = [c for c in current.comments if c.id != comment_id]
        if len(remaining) == len(current.comments):
            return False
        updated = replace(current, comments=remaining)
        self._entries[self._entries.index(current)] = updated
        await self._save_entry(updated, f"delete comment {comment_id}")
        return True

    # ── Categories ─────────────────────────────────────────────────

    @property
    def categories(self) -> list[Category]:
        self._require_ready()
        return copy.deepcopy(self._categories)

    def get_category(self, name: str) -> Category | None:
        self._require_ready()
        category = next((c for c in self._categories if c.name == name), None)
        return copy.deepcopy(category) if category else None

    async def add_category(self, data: CategoryInput) -> Category:
        """Add a category from a name or a mapping. An existing name is returned unchanged."""
        self._require_ready()
        category = normalize_category_input(data)
        existing = next((c for c in self._categories if c.name == category.name), None)
        if existing is not None:
            logger.debug(f"Category {category.name!r} already exists")
            return copy.deepcopy(existing)

        self._categories.append(category)
        await self._persist(
            f"save category {category.name}",
            lambda: self.store.put(Collection.CATEGORIES, category.to_dict()),
        )
        return copy.deepcopy(category)

    async def update_category(self, old_name: str, updates: str | dict[str, Any] | CategoryUpdate) -> Category:
        """Update a category; a rename is cascaded to every entry in it within one transaction."""
        self._require_ready()
        change = normalize_category_update(updates)
        current = next((c for c in self._categories if c.name == old_name), None)
        if current is None:
            raise CategoryNotFoundError(f"No category named {old_name!r}")

        updated = change.apply(current)
        renamed = updated.name != old_name
        if renamed and any(c.name == updated.name for c in self._categories):
            raise DuplicateCategoryError(f"Category {updated.name!r} already exists")

        self._categories[self._categories.index(current)] = updated
        moved: list[DiaryEntry] = []
        if renamed:
            for i, entry in enumerate(self._entries):
                if entry.category == old_name:
                    self._entries[i] = replace(entry, category=updated.name)
                    moved.append(self._entries[i])

        async def write():
            async with self.store.batch() as batch:
                if renamed:
                    # Rewrite the whole collection so the renamed category keeps its position.
                    batch.clear(Collection.CATEGORIES)
                    batch.put_all(Collection.CATEGORIES, [c.to_dict() for c in self._categories])
                    batch.put_all(Collection.DIARIES, [e.to_dict() for e in moved])
                else:
                    batch.put(Collection.CATEGORIES, updated.to_dict())

        await self._persist(f"update category {old_name}", write)
        if moved:
            logger.info(f"Renamed category {old_name!r} -> {updated.name!r} on {len(moved)} entries")
        return copy.deepcopy(updated)

    async def delete_category(self, name: str) -> bool:
        """Remove a category. Entries keep their category name and read as uncategorized."""
        self._require_ready()
        category = next((c for c in self._categories if c.name == name), None)
        if category is None:
            return False
        self._categories.remove(category)
        await self._persist(f"delete category {name}", lambda: self.store.delete(Collection.CATEGORIES, name))
        return True

    # ── Chat transcripts ───────────────────────────────────────────

    async def save_chat_transcript(self, day: str | date, messages: list[dict[str, Any]]) -> ChatTranscript:
        self._require_ready()
        transcript = ChatTranscript(date=normalize_day(day), messages=list(messages))
        await self._persist(
            f"save chat for {transcript.date}",
            lambda: self.store.put(Collection.CHATS, transcript.to_dict()),
        )
        return transcript

    async def get_chat_transcript(self, day: str | date) -> ChatTranscript | None:
        self._require_ready()
        row = await self.store.get(Collection.CHATS, normalize_day(day))
        return ChatTranscript.from_dict(row) if row else None
