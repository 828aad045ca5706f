"""Journal domain: entry/category models, legacy migration and the repository."""

from .migration import MigrationManager, MigrationOutcome, MigrationResult
from .models import Category, ChatMessage, ChatTranscript, Comment, CommentAuthor, DiaryEntry, Mood
from .normalize import CategoryUpdate, normalize_category_input, normalize_category_update
from .repository import DiaryRepository, LifecycleState

__all__ = [
    "Category",
    "CategoryUpdate",
    "ChatMessage",
    "ChatTranscript",
    "Comment",
    "CommentAuthor",
    "DiaryEntry",
    "DiaryRepository",
    "LifecycleState",
    "MigrationManager",
    "MigrationOutcome",
    "MigrationResult",
    "Mood",
    "normalize_category_input",
    "normalize_category_update",
]
