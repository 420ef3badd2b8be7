import uuid
from datetime import datetime, timezone

import structlog
from slugify import slugify

logger = structlog.get_logger(__name__)

ERROR_MARKER = "ERROR: "


def is_error_marker(value: str) -> bool:
    return isinstance(value, str) and value.startswith(ERROR_MARKER)


def object_key(file_name: str, folder: str = "uploads") -> str:
    """Dated, collision-free key such as `uploads/2026/10/ab12cd34-patrol-photo.jpg`."""
    stem, dot, ext = file_name.rpartition(".")
    if not dot:
        stem, ext = file_name, ""
    now = datetime.now(timezone.utc)
    name = slugify(stem) or "file"
    suffix = f".{ext.lower()}" if ext else ""
    return f"{folder}/{now.year:04d}/{now.month:02d}/{uuid.uuid4().hex[:8]}-{name}{suffix}"


class BlobStore:
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return a public URL."""
        raise NotImplementedError

    def upload(self, data: bytes, mime_type: str, file_name: str) -> str:
        """
        Store bytes and return a public URL.

        Never raises: failures are logged and returned as an `ERROR: ...` marker
        so the caller can record them alongside the data they belong to.
        """
        try:
            return self.put(object_key(file_name), data, mime_type)
        except Exception as exc:
            logger.warning("blob_upload_failed", file_name=file_name, error=str(exc))
            return f"{ERROR_MARKER}{exc}"
