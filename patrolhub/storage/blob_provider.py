from azure.storage.blob import BlobServiceClient, ContentSettings

from ..config import settings
from .provider import BlobStore


class BlobStorageProvider(BlobStore):
    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self._container = settings.azure_blob_container

    def put(self, key: str, data: bytes, content_type: str) -> str:
        client = self._service.get_blob_client(self._container, key.lstrip("/"))
        client.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
        return client.url
