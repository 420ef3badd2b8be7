from fastapi import APIRouter, Depends

from ..deps import get_blob_store, get_directory, get_store
from ..schemas.scans import ScanRequest, ScanResponse
from ..services.scan_processor import ScanProcessor
from ..services.site_config import SiteDirectory
from ..sheets.provider import TabularStore
from ..storage.provider import BlobStore


router = APIRouter(prefix="/scans", tags=["scans"])


@router.post("", response_model=ScanResponse, response_model_exclude_none=True)
def submit_scan(
    payload: ScanRequest,
    store: TabularStore = Depends(get_store),
    directory: SiteDirectory = Depends(get_directory),
    blob: BlobStore = Depends(get_blob_store),
):
    """Check in, record a patrol checkpoint, or check out."""
    return ScanProcessor(store, blob, directory).process(payload)
