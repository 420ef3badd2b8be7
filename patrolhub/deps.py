import weakref
from functools import lru_cache

import structlog
from fastapi import Depends

from .config import settings
from .services.site_config import SiteDirectory
from .sheets.provider import TabularStore
from .storage.provider import BlobStore

logger = structlog.get_logger(__name__)

_directories: "weakref.WeakKeyDictionary[TabularStore, SiteDirectory]" = weakref.WeakKeyDictionary()


@lru_cache(maxsize=1)
def get_store() -> TabularStore:
    if settings.store_provider == "memory":
        from .sheets.memory_provider import InMemoryTabularStore
        return InMemoryTabularStore()
    from .sheets.sql_provider import SqlTabularStore
    return SqlTabularStore()


def get_directory(store: TabularStore = Depends(get_store)) -> SiteDirectory:
    directory = _directories.get(store)
    if directory is None:
        directory = SiteDirectory(store)
        _directories[store] = directory
    return directory


def uses_blob_storage() -> bool:
    """Blob storage is selected and its connection settings are present."""
    if settings.storage_provider != "blob":
        return False
    return bool(settings.azure_blob_connection and settings.azure_blob_container)


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    if uses_blob_storage():
        from .storage.blob_provider import BlobStorageProvider
        return BlobStorageProvider()
    if settings.storage_provider == "blob":
        logger.warning("blob_storage_unconfigured", fallback="local")
    from .storage.local_provider import LocalStorageProvider
    return LocalStorageProvider(settings.local_storage_dir)
