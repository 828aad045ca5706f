"""Application wiring: builds the stores, repository and backup services from config."""

from __future__ import annotations

from loguru import logger

from chatdiary.backup.drive import DriveTransport
from chatdiary.backup.gist import GistTransport, SyncSettings
from chatdiary.backup.local_file import LocalFileTransport
from chatdiary.backup.scheduler import AutoSyncScheduler
from chatdiary.backup.snapshot import BackupCodec, Snapshot
from chatdiary.core.config import Config
from chatdiary.core.exceptions import QuotaExceededError
from chatdiary.journal.migration import MigrationResult
from chatdiary.journal.repository import DiaryRepository, QuotaCallback
from chatdiary.storage.flat import ConfigPort, FileFlatStore
from chatdiary.storage.structured import StructuredStore


def _log_quota(error: QuotaExceededError) -> None:
    logger.error(f"Local storage is full, changes may not be saved: {error}")


class DiaryApp:
    """Owns one set of stores and the services built on top of them.

    Use :meth:`from_config` for the on-disk layout, or pass stores directly
    (tests use an in-memory flat store and a temp database).
    """

    def __init__(
        self,
        store: StructuredStore,
        flat: ConfigPort,
        config: Config | None = None,
        on_quota_exceeded: QuotaCallback | None = None,
    ):
        config = config or Config(env_prefix="")
        settings = config.validated()

        self.config = config
        self.store = store
        self.flat = flat
        self.repository = DiaryRepository(store, flat, on_quota_exceeded=on_quota_exceeded or _log_quota)
        self.codec = BackupCodec(store, flat)
        self.codec.add_restore_listener(self._on_restore)

        self.local_backup = LocalFileTransport(self.codec, settings.paths.resolved_backup_dir())
        self.gist = GistTransport(
            self.codec,
            flat,
            timeout=settings.sync.timeout,
            api_base=settings.gist.api_base,
        )
        self.drive = DriveTransport(self.codec)
        self.scheduler = AutoSyncScheduler(
            self.gist,
            flat,
            interval_minutes=settings.sync.interval_minutes,
            min_age_minutes=settings.sync.min_age_minutes,
        )

    @classmethod
    def from_config(cls, config: Config) -> DiaryApp:
        settings = config.validated()
        config.ensure_directories()
        store = StructuredStore(settings.paths.resolved_db_path())
        flat = FileFlatStore(settings.paths.resolved_flat_store_dir(), quota_bytes=settings.storage.quota_bytes)
        return cls(store, flat, config=config)

    async def start(self, auto_sync: bool = False) -> MigrationResult:
        """Open storage, run migration and load the journal.

        With ``auto_sync`` the Gist auto-sync scheduler is started too; this
        needs a running event loop that stays alive.
        """
        await self.store.open()
        result = await self.repository.initialize()
        if auto_sync:
            self.scheduler.start()
        return result

    async def close(self) -> None:
        self.scheduler.shutdown()
        await self.store.close()

    async def sync_settings(self) -> SyncSettings:
        return await SyncSettings.load(self.flat)

    async def _on_restore(self, snapshot: Snapshot) -> None:
        if self.repository.is_ready:
            await self.repository.reload()

    async def __aenter__(self) -> DiaryApp:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
