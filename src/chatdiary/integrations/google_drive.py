"""Google Drive client.

Uploads in-memory documents to Drive via the v3 API, authenticated with a
caller-supplied OAuth access token (the user obtains it through their own
consent flow; this client never refreshes it).

Requires ``chatdiary[google]``.
"""

from __future__ import annotations

import io
from typing import Any


class GoogleDriveClient:
    """Google Drive v3 API wrapper.

    Args:
        access_token: OAuth 2.0 bearer token with a Drive file scope.
    """

    def __init__(self, access_token: str):
        self.access_token = access_token
        self._service = None

    @property
    def service(self):
        if self._service is None:
            try:
                from google.oauth2.credentials import Credentials
                from googleapiclient.discovery import build
            except ImportError:
                raise ImportError("Install with: pip install chatdiary[google]")

            credentials = Credentials(token=self.access_token)
            self._service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    def upload_bytes(
        self,
        name: str,
        data: bytes,
        mime_type: str = "application/json",
        parent_folder_id: str | None = None,
    ) -> dict[str, Any]:
        """Upload ``data`` as a new file in a single multipart request.

        Returns:
            File metadata dict (includes ``id`` and ``name``).
        """
        try:
            from googleapiclient.http import MediaIoBaseUpload
        except ImportError:
            raise ImportError("Install with: pip install chatdiary[google]")

        file_metadata: dict[str, Any] = {"name": name, "mimeType": mime_type}
        if parent_folder_id:
            file_metadata["parents"] = [parent_folder_id]

        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        return self.service.files().create(body=file_metadata, media_body=media, fields="id,name").execute()
