"""Built-in seed data for new users and for recovering from unreadable legacy data."""

from __future__ import annotations

from datetime import date, timedelta

from .models import Category, Comment, DiaryEntry, now_iso

DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    # (name, icon, color)
    ("Daily Life", "Coffee", "bg-orange-100 text-orange-600"),
    ("Work", "Briefcase", "bg-blue-100 text-blue-600"),
    ("Travel", "Plane", "bg-green-100 text-green-600"),
)

DEFAULT_CATEGORY_NAMES = frozenset(name for name, _icon, _color in DEFAULT_CATEGORIES)


def default_categories() -> list[Category]:
    return [Category(name=name, icon_name=icon, color=color) for name, icon, color in DEFAULT_CATEGORIES]


def seed_entries(today: date | None = None) -> list[DiaryEntry]:
    """Demo entries dated today, yesterday and three days ago."""
    today = today or date.today()
    created = now_iso()
    return [
        DiaryEntry(
            id="1",
            date=today.isoformat(),
            title="Start of a new journey",
            content=(
                "Today I decided to start keeping a diary with this AI app. "
                "The interface is so calming and beautiful."
            ),
            mood="happy",
            comments=[
                Comment(
                    id="c1",
                    author="ai",
                    text="I am so glad you like it! Let us make many memories together.",
                    date=created,
                )
            ],
            chat_history=[],
            created_at=created,
        ),
        DiaryEntry(
            id="2",
            date=(today - timedelta(days=1)).isoformat(),
            title="A quiet afternoon",
            content="Spent the afternoon reading in a coffee shop. The smell of roasted beans was everywhere.",
            mood="calm",
            chat_history=[],
            created_at=created,
        ),
        DiaryEntry(
            id="3",
            date=(today - timedelta(days=3)).isoformat(),
            title="Rainy mood",
            content="It rained all day. Perfect weather for coding and listening to lo-fi beats.",
            mood="melancholic",
            chat_history=[],
            created_at=created,
        ),
    ]
