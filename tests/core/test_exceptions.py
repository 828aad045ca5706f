"""Tests for chatdiary.core.exceptions."""

from chatdiary.core.exceptions import (
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


def test_hierarchy():
    """All exceptions should inherit from ChatDiaryError."""
    for exc_cls in [
        ConfigurationError,
        StorageError,
        MigrationError,
        NotReadyError,
        RestoreFormatError,
        SyncError,
        EntryNotFoundError,
        CategoryNotFoundError,
        DuplicateCategoryError,
    ]:
        assert issubclass(exc_cls, ChatDiaryError)


def test_storage_subtypes():
    assert issubclass(QuotaExceededError, StorageError)
    assert issubclass(StorageKeyError, StorageError)
    assert issubclass(StorageKeyError, KeyError)


def test_sync_subtypes():
    assert issubclass(SyncAuthError, SyncError)
    assert issubclass(SyncNetworkError, SyncError)


def test_sync_error_keeps_status():
    err = SyncError("Not Found", status=404)
    assert str(err) == "Not Found"
    assert err.status == 404
    assert SyncAuthError("Bad credentials").status is None


def test_lookup_errors_are_key_errors():
    assert issubclass(EntryNotFoundError, KeyError)
    assert issubclass(CategoryNotFoundError, KeyError)
    assert issubclass(DuplicateCategoryError, ValueError)


def test_catch_base():
    """Catching ChatDiaryError should catch all subtypes."""
    try:
        raise QuotaExceededError("disk full")
    except ChatDiaryError as e:
        assert "disk full" in str(e)
