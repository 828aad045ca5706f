"""Backup snapshots and the transports that store and restore them."""

from .drive import DriveTransport
from .gist import GistSyncResult, GistTransport
from .local_file import LocalFileTransport
from .scheduler import AutoSyncScheduler
from .snapshot import APP_KEYS, DYNAMIC_KEY_PREFIXES, SNAPSHOT_VERSION, BackupCodec, RestoreSummary, Snapshot

__all__ = [
    "APP_KEYS",
    "DYNAMIC_KEY_PREFIXES",
    "SNAPSHOT_VERSION",
    "AutoSyncScheduler",
    "BackupCodec",
    "DriveTransport",
    "GistSyncResult",
    "GistTransport",
    "LocalFileTransport",
    "RestoreSummary",
    "Snapshot",
]
