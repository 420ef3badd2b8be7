"""
Local filesystem storage provider for development.
Saves files to a local directory instead of Azure Blob Storage.
"""
from pathlib import Path
from urllib.parse import quote

from ..config import settings
from .provider import BlobStore


class LocalStorageProvider(BlobStore):
    """Local filesystem storage provider for development."""

    def __init__(self, base_dir: str = "var/storage", base_url: str = None):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or settings.public_base_url).rstrip("/")

    def _get_path(self, key: str) -> Path:
        # Remove leading slash and sanitize
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / clean_key

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return f"{self.base_url}/files/local/{quote(key.lstrip('/'))}"
