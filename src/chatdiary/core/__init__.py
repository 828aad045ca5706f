"""Core infrastructure: configuration, exceptions, logging."""

from .config import Config
from .exceptions import (
    CategoryNotFoundError,
    ChatDiaryError,
    ConfigurationError,
    DuplicateCategoryError,
    EntryNotFoundError,
    MigrationError,
    NotReadyError,
    QuotaExceededError,
    RestoreFormatError,
    StorageError,
    StorageKeyError,
    SyncAuthError,
    SyncError,
    SyncNetworkError,
)

__all__ = [
    "CategoryNotFoundError",
    "ChatDiaryError",
    "Config",
    "ConfigurationError",
    "DuplicateCategoryError",
    "EntryNotFoundError",
    "MigrationError",
    "NotReadyError",
    "QuotaExceededError",
    "RestoreFormatError",
    "StorageError",
    "StorageKeyError",
    "SyncAuthError",
    "SyncError",
    "SyncNetworkError",
]
