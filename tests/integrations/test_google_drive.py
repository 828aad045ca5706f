"""Tests for chatdiary.integrations.google_drive."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from chatdiary.integrations.google_drive import GoogleDriveClient


class TestGoogleDriveClient:
    @patch("googleapiclient.discovery.build")
    def test_lazy_service_init_uses_access_token(self, mock_build):
        client = GoogleDriveClient("ya29.token")
        assert client._service is None

        _ = client.service
        _ = client.service
        mock_build.assert_called_once()
        args, kwargs = mock_build.call_args
        assert args[:2] == ("drive", "v3")
        assert kwargs["credentials"].token == "ya29.token"

    @patch("googleapiclient.http.MediaIoBaseUpload")
    def test_upload_bytes(self, mock_upload_cls):
        mock_service = MagicMock()
        mock_service.files().create().execute.return_value = {"id": "new123", "name": "b.json"}

        client = GoogleDriveClient("tok")
        client._service = mock_service  # bypass lazy init
        result = client.upload_bytes("b.json", b"{}", parent_folder_id="folder")

        assert result["id"] == "new123"
        _, kwargs = mock_service.files().create.call_args
        assert kwargs["body"] == {"name": "b.json", "mimeType": "application/json", "parents": ["folder"]}
        assert kwargs["media_body"] is mock_upload_cls.return_value
        assert mock_upload_cls.call_args.kwargs == {"mimetype": "application/json", "resumable": False}
