"""Remote services used as backup destinations (GitHub Gists, Google Drive).

Google Drive requires the optional extra: ``chatdiary[google]``.
"""

from .github_gist import GistClient
from .google_drive import GoogleDriveClient

__all__ = [
    "GistClient",
    "GoogleDriveClient",
]
