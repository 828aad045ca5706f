"""Backup to a private GitHub Gist.

The whole snapshot lives in a single gist file. The first sync creates the
gist and remembers its id in the flat store; later syncs update that gist in
place. Syncs are serialized so two overlapping calls can't both create a gist.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from chatdiary.core.exceptions import RestoreFormatError, SyncAuthError, SyncError
from chatdiary.integrations.github_gist import DEFAULT_API_BASE, GistClient
from chatdiary.journal.models import now_iso
from chatdiary.storage.flat import ConfigPort

from .snapshot import BackupCodec, RestoreSummary, Snapshot

GIST_FILENAME = "chatdairy-backup.json"
GIST_DESCRIPTION = "ChatDairy Backup"

TOKEN_KEY = "backup_github_token"
GIST_ID_KEY = "backup_github_gist_id"
AUTO_SYNC_KEY = "backup_auto_enabled"
LAST_SYNC_KEY = "backup_last_sync"
DRIVE_TOKEN_KEY = "backup_gdrive_token"

SYNC_KEYS = (TOKEN_KEY, GIST_ID_KEY, AUTO_SYNC_KEY, LAST_SYNC_KEY, DRIVE_TOKEN_KEY)

ClientFactory = Callable[[str], GistClient]


@dataclass
class SyncSettings:
    """Sync credentials and bookkeeping kept in the flat store."""

    token: str | None = None
    gist_id: str | None = None
    auto_enabled: bool = False
    last_sync: str | None = None
    drive_token: str | None = None

    @classmethod
    async def load(cls, flat: ConfigPort) -> SyncSettings:
        return cls(
            token=await flat.get(TOKEN_KEY) or None,
            gist_id=await flat.get(GIST_ID_KEY) or None,
            auto_enabled=await flat.get(AUTO_SYNC_KEY) == "true",
            last_sync=await flat.get(LAST_SYNC_KEY) or None,
            drive_token=await flat.get(DRIVE_TOKEN_KEY) or None,
        )

    async def save(self, flat: ConfigPort) -> None:
        values = {
            TOKEN_KEY: self.token,
            GIST_ID_KEY: self.gist_id,
            LAST_SYNC_KEY: self.last_sync,
            DRIVE_TOKEN_KEY: self.drive_token,
        }
        for key, value in values.items():
            if value:
                await flat.set(key, value)
            else:
                await flat.delete(key)
        await flat.set(AUTO_SYNC_KEY, "true" if self.auto_enabled else "false")


@dataclass
class GistSyncResult:
    gist_id: str
    created: bool
    synced_at: str
    html_url: str | None = None


def select_backup_file(gist: dict[str, Any]) -> dict[str, Any] | None:
    """Pick the backup file from a gist: by name, else the first JSON file."""
    files = gist.get("files") or {}
    if GIST_FILENAME in files:
        return files[GIST_FILENAME]
    for info in files.values():
        if isinstance(info, dict) and info.get("language") == "JSON":
            return info
    return None


class GistTransport:
    """Syncs snapshots to and restores them from a GitHub Gist.

    Args:
        codec: Snapshot codec bound to the local stores.
        flat: Flat store holding the gist id and last-sync time.
        client_factory: Builds a :class:`GistClient` for a token.
        timeout: HTTP timeout in seconds.
        api_base: GitHub API root.
    """

    def __init__(
        self,
        codec: BackupCodec,
        flat: ConfigPort,
        client_factory: ClientFactory | None = None,
        timeout: int = 30,
        api_base: str = DEFAULT_API_BASE,
    ):
        self.codec = codec
        self.flat = flat
        self._client_factory = client_factory or (
            lambda token: GistClient(token, timeout=timeout, api_base=api_base)
        )
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def sync(self, token: str | None, gist_id: str | None = None) -> GistSyncResult:
        """Upload the current snapshot.

        Updates ``gist_id`` (or the remembered gist) when there is one,
        otherwise creates a new private gist. On success the gist id and
        sync time are recorded.

        Raises:
            SyncAuthError: if no token is given or GitHub rejects it.
            SyncError: for any other provider failure (message is GitHub's).
        """
        if not token:
            raise SyncAuthError("GitHub token is required")

        async with self._lock:
            gist_id = gist_id or await self.flat.get(GIST_ID_KEY) or None
            client = self._client_factory(token)
            snapshot = await self.codec.build_snapshot()
            files = {GIST_FILENAME: snapshot.to_json(indent=2)}

            if gist_id:
                response = await self._call(client.update_gist, gist_id, files, description=GIST_DESCRIPTION)
            else:
                response = await self._call(client.create_gist, files, description=GIST_DESCRIPTION, public=False)

            new_id = response.get("id") or gist_id
            if not new_id:
                raise SyncError("GitHub response did not include a gist id")

            synced_at = now_iso()
            await self.flat.set(GIST_ID_KEY, new_id)
            await self.flat.set(LAST_SYNC_KEY, synced_at)

        created = not gist_id
        logger.info(f"{'Created' if created else 'Updated'} backup gist {new_id}")
        return GistSyncResult(gist_id=new_id, created=created, synced_at=synced_at, html_url=response.get("html_url"))

    async def restore(self, token: str | None, gist_id: str | None) -> RestoreSummary:
        """Fetch the backup from ``gist_id`` and apply it locally.

        Raises:
            SyncAuthError: if the token or gist id is missing, or GitHub rejects the token.
            RestoreFormatError: if the gist has no usable backup file.
        """
        if not token or not gist_id:
            raise SyncAuthError("Token and Gist ID are required")

        async with self._lock:
            client = self._client_factory(token)
            gist = await self._call(client.get_gist, gist_id)

            file_info = select_backup_file(gist)
            if file_info is None:
                raise RestoreFormatError("No backup file found in this Gist")

            content = file_info.get("content")
            if file_info.get("truncated") or content is None:
                raw_url = file_info.get("raw_url")
                if not raw_url:
                    raise RestoreFormatError("Backup file in this Gist has no content")
                logger.debug(f"Gist file truncated, fetching {raw_url}")
                content = await self._call(client.fetch_raw, raw_url)

            snapshot = Snapshot.from_json(content)
            summary = await self.codec.apply_snapshot(snapshot)

        logger.info(f"Restored backup from gist {gist_id}")
        return summary
