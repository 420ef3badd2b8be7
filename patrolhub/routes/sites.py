from typing import List

from fastapi import APIRouter, Depends, Query

from ..deps import get_blob_store, get_directory, get_store
from ..schemas.reports import SiteAggregate
from ..schemas.sites import (
    CheckpointQrCreate,
    CheckpointQrResponse,
    EffectiveSiteConfig,
    HandoverCreate,
    SiteConfigUpdate,
    SiteResolution,
)
from ..services import handover
from ..services.errors import SiteNotFoundError
from ..services.qr_codes import generate_checkpoint_qr
from ..services.site_aggregator import SiteAggregator
from ..services.site_config import SiteDirectory, get_site_config, save_site_config
from ..services.site_resolver import resolve, resolve_site
from ..sheets.provider import TabularStore
from ..storage.provider import BlobStore


router = APIRouter(prefix="/sites", tags=["sites"])


@router.get("/aggregate", response_model=List[SiteAggregate])
def aggregate_sites(days: int = Query(30, ge=1, le=365), store: TabularStore = Depends(get_store)):
    return SiteAggregator(store).aggregate(days)


@router.get("/resolve", response_model=SiteResolution)
def resolve_reference(ref: str = Query(...), directory: SiteDirectory = Depends(get_directory)):
    sites = directory.sites()
    return SiteResolution(reference=ref, canonical_site_id=resolve(ref, sites), resolved=resolve_site(ref, sites) is not None)


@router.get("/{ref}/config", response_model=EffectiveSiteConfig)
def read_site_config(ref: str, directory: SiteDirectory = Depends(get_directory)):
    return get_site_config(directory, ref)


@router.put("/{ref}/config", response_model=EffectiveSiteConfig)
def update_site_config(ref: str, payload: SiteConfigUpdate, directory: SiteDirectory = Depends(get_directory)):
    return save_site_config(directory, ref, payload)


@router.post("/{ref}/checkpoints/{checkpoint_id}/qr", response_model=CheckpointQrResponse)
def create_checkpoint_qr(
    ref: str,
    checkpoint_id: str,
    payload: CheckpointQrCreate,
    directory: SiteDirectory = Depends(get_directory),
    blob: BlobStore = Depends(get_blob_store),
):
    return generate_checkpoint_qr(directory, blob, ref, checkpoint_id, payload.checkpoint_name)


@router.post("/{ref}/handover")
def create_handover(ref: str, payload: HandoverCreate, directory: SiteDirectory = Depends(get_directory)):
    site = resolve_site(ref, directory.sites())
    if site is None:
        raise SiteNotFoundError(ref)
    record = handover.save_handover(directory.store, site.display_name or site.canonical_code, payload.guard_name, payload.comment)
    return {"success": True, "id": record["id"]}
