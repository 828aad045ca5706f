"""Local file backups: export a snapshot to a JSON document and import one back."""

from __future__ import annotations

from pathlib import Path

import aiofiles
from loguru import logger

from chatdiary.core.exceptions import RestoreFormatError, StorageError

from .snapshot import BackupCodec, RestoreSummary, Snapshot, backup_filename


class LocalFileTransport:
    """Writes snapshots as ``chatdiary-backup-<date>-<time>.json`` files.

    Args:
        codec: Snapshot codec bound to the local stores.
        directory: Default export directory.
    """

    def __init__(self, codec: BackupCodec, directory: str | Path = "~/.chatdiary-data/backups"):
        self.codec = codec
        self.directory = Path(directory).expanduser()

    async def export_text(self) -> str:
        """Current state as a pretty-printed backup document."""
        snapshot = await self.codec.build_snapshot()
        return snapshot.to_json(indent=2)

    async def export(self, directory: str | Path | None = None) -> Path:
        """Write a new backup file and return its path."""
        target_dir = Path(directory).expanduser() if directory else self.directory
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / backup_filename()

        text = await self.export_text()
        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(text)
        except OSError as e:
            raise StorageError(f"Failed to write backup file {path}: {e}") from e

        logger.info(f"Exported backup to {path}")
        return path

    async def import_contents(self, text: str | bytes) -> RestoreSummary:
        """Restore from the contents of a backup document.

        Raises:
            RestoreFormatError: if the document isn't a valid backup. Local
                state is untouched in that case.
        """
        snapshot = Snapshot.from_json(text)
        return await self.codec.apply_snapshot(snapshot)

    async def import_file(self, path: str | Path) -> RestoreSummary:
        path = Path(path).expanduser()
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                text = await f.read()
        except UnicodeDecodeError as e:
            raise RestoreFormatError(f"Backup file is not UTF-8 text: {path}") from e

        logger.info(f"Importing backup from {path}")
        return await self.import_contents(text)
