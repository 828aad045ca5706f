"""Upload-only backups to Google Drive."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from loguru import logger

from chatdiary.core.exceptions import ConfigurationError, SyncAuthError, SyncError, SyncNetworkError
from chatdiary.integrations.google_drive import GoogleDriveClient

from .snapshot import BackupCodec, backup_filename

DRIVE_MIME_TYPE = "application/json"


def _http_error_message(error: Any) -> str:
    content = getattr(error, "content", b"") or b""
    try:
        payload = json.loads(content.decode("utf-8", errors="ignore"))
        message = payload["error"]["message"]
        if message:
            return str(message)
    except (ValueError, KeyError, TypeError):
        pass
    return getattr(error, "reason", None) or "Upload failed"


class DriveTransport:
    """Uploads a new timestamped snapshot file on every call.

    There is no restore path; previous uploads are never touched.
    """

    def __init__(self, codec: BackupCodec, client_factory: Callable[[str], GoogleDriveClient] = GoogleDriveClient):
        self.codec = codec
        self._client_factory = client_factory

    async def upload(self, token: str | None) -> dict[str, Any]:
        """Upload the current snapshot with ``token`` as the OAuth bearer token.

        Returns:
            Drive file metadata (``id``, ``name``).

        Raises:
            SyncAuthError: if no token is given or Drive rejects it.
            SyncError: for other Drive API failures.
            ConfigurationError: if the google extra is not installed.
        """
        if not token:
            raise SyncAuthError("Google Drive access token is required")

        try:
            from googleapiclient.errors import HttpError
            from httplib2 import HttpLib2Error
        except ImportError as e:
            raise ConfigurationError("Google Drive support is not installed. Install with: pip install chatdiary[google]") from e

        snapshot = await self.codec.build_snapshot()
        name = backup_filename()
        data = snapshot.to_json(indent=2).encode("utf-8")
        client = self._client_factory(token)

        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, client.upload_bytes, name, data, DRIVE_MIME_TYPE)
        except HttpError as e:
            status = int(e.resp.status) if getattr(e, "resp", None) is not None else None
            message = _http_error_message(e)
            if status in (401, 403):
                raise SyncAuthError(message, status=status) from e
            raise SyncError(message, status=status) from e
        except (HttpLib2Error, OSError) as e:
            raise SyncNetworkError(f"Google Drive upload failed: {e}") from e

        logger.info(f"Uploaded backup to Google Drive as {result.get('name', name)} ({result.get('id')})")
        return result
