"""
Checkpoint QR codes.
Builds the structured guard-app URL for a checkpoint and renders it as a PNG.
"""
import io
from typing import Optional
from urllib.parse import quote, urlencode

import qrcode
import structlog

from ..config import settings
from ..schemas.sites import CheckpointQrResponse
from ..storage.provider import BlobStore, is_error_marker
from .errors import BlobUploadError, SiteNotFoundError
from .site_config import SiteDirectory
from .site_resolver import resolve_site

logger = structlog.get_logger(__name__)


def checkpoint_payload(location_id: str, checkpoint_name: str, site_id: str,
                       route: Optional[str] = None, base_url: Optional[str] = None) -> str:
    query = urlencode(
        {
            "type": "info",
            "locId": location_id,
            "cpName": checkpoint_name,
            "siteId": site_id,
            "route": route or "",
        },
        quote_via=quote,
    )
    return f"{(base_url or settings.guard_app_url).rstrip('/')}?{query}"


def render_png(payload: str, box_size: int = 10, border: int = 4) -> bytes:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def generate_checkpoint_qr(directory: SiteDirectory, blob: BlobStore, reference: str,
                           checkpoint_id: str, checkpoint_name: str) -> CheckpointQrResponse:
    site = resolve_site(reference, directory.sites())
    if site is None or not site.canonical_code:
        raise SiteNotFoundError(reference)

    payload = checkpoint_payload(checkpoint_id, checkpoint_name, site.canonical_code, site.route)
    file_name = f"QR_{site.canonical_code}_{checkpoint_id}.png"
    url = blob.upload(render_png(payload), "image/png", file_name)
    if is_error_marker(url):
        raise BlobUploadError(f"QR upload failed for {checkpoint_id}")

    logger.info("checkpoint_qr_generated", site=site.canonical_code, checkpoint=checkpoint_id)
    return CheckpointQrResponse(payload=payload, url=url, file_name=file_name)
