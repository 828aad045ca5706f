"""Core data models for the journal.

Plain dataclasses with ``to_dict``/``from_dict`` converters. The dict form
is the wire/storage shape (camelCase keys, ISO-8601 timestamps) shared by
the structured store and backup snapshots. Fields this version does not
know about are carried in ``extra`` so they survive a load/save cycle.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DEFAULT_CATEGORY_COLOR = "bg-indigo-100 text-indigo-600"
DEFAULT_CATEGORY_ICON = "Layers"


class Mood(StrEnum):
    """Mood tags the app ships with. Entries may carry other tags too."""

    HAPPY = "happy"
    CALM = "calm"
    NEUTRAL = "neutral"
    EXCITED = "excited"
    MELANCHOLIC = "melancholic"
    SAD = "sad"
    ANXIOUS = "anxious"
    ANGRY = "angry"


class CommentAuthor(StrEnum):
    USER = "user"
    AI = "ai"


def now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_day(value: str | date | datetime) -> str:
    """Return a calendar day as ``YYYY-MM-DD``, validating strings."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValueError(f"Date must be YYYY-MM-DD, got {value!r}")
    date.fromisoformat(value)
    return value


def _split_extra(data: dict[str, Any], known: set[str]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


@dataclass
class Comment:
    """A comment attached to exactly one diary entry."""

    id: str
    author: str
    text: str
    date: str = field(default_factory=now_iso)
    persona_name: str | None = None

    _KEYS = {"id", "author", "text", "date", "personaName"}

    def __post_init__(self):
        if self.author not in {a.value for a in CommentAuthor}:
            raise ValueError(f"Comment author must be 'user' or 'ai', got {self.author!r}")

    def to_dict(self) -> dict[str, Any]:
        data = {"id": self.id, "author": self.author, "text": self.text, "date": self.date}
        if self.persona_name is not None:
            data["personaName"] = self.persona_name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(
            id=str(data.get("id") or new_id()),
            author=data.get("author", CommentAuthor.USER.value),
            text=data.get("text", ""),
            date=data.get("date") or now_iso(),
            persona_name=data.get("personaName"),
        )


@dataclass
class ChatMessage:
    """Frozen copy of one chat message, attached to a saved entry.

    ``id`` is a millisecond counter and doubles as ordering key.
    """

    id: int
    text: str
    sender: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "sender": self.sender, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            id=int(data.get("id", 0)),
            text=data.get("text", ""),
            sender=data.get("sender", CommentAuthor.USER.value),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class DiaryEntry:
    """A journal entry. Several entries may share one ``date``.

    Attributes:
        id: Unique, immutable identifier.
        date: Calendar day, ``YYYY-MM-DD``.
        content: Rich text stored as a markup string.
        category: Name of a :class:`Category`, or empty.
        chat_history: Conversation snapshot; ``None`` means the field is absent.
        created_at: Set once when the entry is first added.
        extra: Unrecognized fields, preserved verbatim.
    """

    id: str
    date: str
    title: str = ""
    content: str = ""
    mood: str = Mood.NEUTRAL.value
    tags: list[str] = field(default_factory=list)
    category: str = ""
    comments: list[Comment] = field(default_factory=list)
    chat_history: list[ChatMessage] | None = None
    created_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = {
        "id",
        "date",
        "title",
        "content",
        "mood",
        "tags",
        "category",
        "comments",
        "chatHistory",
        "createdAt",
    }

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise ValueError("Entry id must be a non-empty string")
        self.date = normalize_day(self.date)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "date": self.date,
                "title": self.title,
                "content": self.content,
                "mood": self.mood,
                "tags": list(self.tags),
                "category": self.category,
                "comments": [c.to_dict() for c in self.comments],
            }
        )
        if self.chat_history is not None:
            data["chatHistory"] = [m.to_dict() for m in self.chat_history]
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiaryEntry:
        history = data.get("chatHistory")
        return cls(
            id=str(data.get("id") or new_id()),
            date=data["date"],
            title=data.get("title") or "",
            content=data.get("content") or "",
            mood=data.get("mood") or Mood.NEUTRAL.value,
            tags=list(data.get("tags") or []),
            category=data.get("category") or "",
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            chat_history=[ChatMessage.from_dict(m) for m in history] if history is not None else None,
            created_at=data.get("createdAt"),
            extra=_split_extra(data, cls._KEYS),
        )


@dataclass
class Category:
    """A named grouping for entries. ``id`` always equals ``name``."""

    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    icon_name: str = DEFAULT_CATEGORY_ICON
    cover_image: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = {"id", "name", "color", "iconName", "coverImage"}

    def __post_init__(self):
        if not self.name or not isinstance(self.name, str):
            raise ValueError("Category name must be a non-empty string")

    @property
    def id(self) -> str:
        return self.name

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "color": self.color,
                "coverImage": self.cover_image,
                "iconName": self.icon_name,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Category:
        return cls(
            name=data.get("name") or data.get("id") or "",
            color=data.get("color") or DEFAULT_CATEGORY_COLOR,
            icon_name=data.get("iconName") or DEFAULT_CATEGORY_ICON,
            cover_image=data.get("coverImage"),
            extra=_split_extra(data, cls._KEYS),
        )


@dataclass
class ChatTranscript:
    """Archived chat for one day, stored in the ``chats`` collection keyed by date."""

    date: str
    messages: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        self.date = normalize_day(self.date)

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "messages": list(self.messages)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatTranscript:
        return cls(date=data["date"], messages=list(data.get("messages") or []))
