"""GitHub Gist REST client.

Thin wrapper around the Gists API with personal-access-token auth.
No external dependencies beyond the standard library.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from chatdiary.core.exceptions import SyncAuthError, SyncError, SyncNetworkError

DEFAULT_API_BASE = "https://api.github.com"
GITHUB_ACCEPT = "application/vnd.github.v3+json"


def _error_message(body: bytes, fallback: str) -> str:
    try:
        payload = json.loads(body.decode("utf-8", errors="ignore"))
    except ValueError:
        return fallback
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return fallback


class GistClient:
    """Minimal client for creating, updating and reading gists."""

    def __init__(self, token: str, timeout: int = 30, api_base: str = DEFAULT_API_BASE):
        if not token:
            raise SyncAuthError("GitHub token is required")
        self.token = token
        self.timeout = timeout
        self.api_base = api_base.rstrip("/")

    def _open(self, req: urllib.request.Request, failure: str) -> bytes:
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            body = e.read() if hasattr(e, "read") else b""
            message = _error_message(body or b"", failure)
            if e.code in (401, 403):
                raise SyncAuthError(message, status=e.code) from e
            raise SyncError(message, status=e.code) from e
        except urllib.error.URLError as e:
            raise SyncNetworkError(f"{failure}: {e.reason}") from e
        except (TimeoutError, OSError) as e:
            raise SyncNetworkError(f"{failure}: {e}") from e

    def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        failure: str = "GitHub request failed",
    ) -> dict[str, Any]:
        url = f"{self.api_base}/{path.lstrip('/')}"
        headers = {"Authorization": f"token {self.token}", "Accept": GITHUB_ACCEPT}
        data = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(payload).encode("utf-8")

        req = urllib.request.Request(url=url, data=data, method=method.upper(), headers=headers)
        raw = self._open(req, failure)
        if not raw:
            return {}
        try:
            result = json.loads(raw.decode("utf-8", errors="ignore"))
        except json.JSONDecodeError as e:
            raise SyncError(f"{failure}: response was not JSON") from e
        return result if isinstance(result, dict) else {}

    # Gists
    def create_gist(self, files: dict[str, str], description: str = "", public: bool = False) -> dict[str, Any]:
        payload = {
            "description": description,
            "public": public,
            "files": {name: {"content": content} for name, content in files.items()},
        }
        return self._request("POST", "/gists", payload=payload, failure="GitHub Sync Failed")

    def update_gist(self, gist_id: str, files: dict[str, str], description: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"files": {name: {"content": content} for name, content in files.items()}}
        if description is not None:
            payload["description"] = description
        return self._request(
            "PATCH", f"/gists/{urllib.parse.quote(gist_id)}", payload=payload, failure="GitHub Sync Failed"
        )

    def get_gist(self, gist_id: str) -> dict[str, Any]:
        return self._request("GET", f"/gists/{urllib.parse.quote(gist_id)}", failure="Failed to fetch Gist")

    def fetch_raw(self, raw_url: str) -> str:
        """Download a gist file's full content (used when the API truncated it)."""
        headers = {}
        if urllib.parse.urlparse(raw_url).hostname == urllib.parse.urlparse(self.api_base).hostname:
            headers["Authorization"] = f"token {self.token}"
        req = urllib.request.Request(url=raw_url, method="GET", headers=headers)
        return self._open(req, "Failed to fetch raw Gist content").decode("utf-8")
