"""
chatdiary exception hierarchy.

All chatdiary exceptions inherit from ChatDiaryError, making it easy for callers
to catch library-level errors while still distinguishing specific failure modes.
"""


class ChatDiaryError(Exception):
    """Base exception class for all chatdiary errors."""


class ConfigurationError(ChatDiaryError):
    """Raised for configuration errors (missing keys, invalid values)."""


class StorageError(ChatDiaryError):
    """Raised when the local store is unavailable or a write failed."""


class StorageKeyError(StorageError, KeyError):
    """Raised for unknown collections or values missing their key field."""


class QuotaExceededError(StorageError):
    """Raised when persistent storage is full."""


class MigrationError(ChatDiaryError):
    """Raised when legacy data cannot be parsed. Never escapes the migration manager."""


class NotReadyError(ChatDiaryError):
    """Raised when the repository is used before initialization completed."""


class EntryNotFoundError(ChatDiaryError, KeyError):
    """Raised when a diary entry id doesn't exist."""


class DuplicateCategoryError(ChatDiaryError, ValueError):
    """Raised when a category would collide with an existing name."""


class RestoreFormatError(ChatDiaryError):
    """Raised when a backup document lacks the required structure."""


class SyncError(ChatDiaryError):
    """Raised when a remote backup provider rejects a request.

    The message is the provider's own error text; ``status`` is the HTTP
    status when there was a response.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SyncAuthError(SyncError):
    """Raised for missing or rejected sync credentials."""


class SyncNetworkError(SyncError):
    """Raised for transport-level failures talking to a sync provider."""


class CategoryNotFoundError(ChatDiaryError, KeyError):
    """Raised when a category name doesn't exist."""
