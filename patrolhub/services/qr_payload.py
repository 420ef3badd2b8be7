"""
QR payload parsing.

Two payload shapes are printed on checkpoints:
  structured URL: https://.../guard?type=info&siteId=VKS-A-001&locId=CP-7&cpName=Gate
  legacy:         VKS|<site>|<point>
"""
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from ..schemas.scans import QrReference
from .errors import ScanValidationError

LEGACY_PREFIX = "VKS"


def _first(query: dict, key: str) -> Optional[str]:
    values = query.get(key) or []
    value = values[0].strip() if values else ""
    return value or None


def parse_qr_payload(payload: Optional[str]) -> QrReference:
    """
    Extract site token, location id and checkpoint name from a scanned payload.

    Raises:
        ScanValidationError: empty payload, wrong legacy prefix, or an
        unrecognized shape. Nothing is written when this is raised.
    """
    text = (payload or "").strip()
    if not text:
        raise ScanValidationError("QR code is empty")

    if "|" in text:
        parts = [p.strip() for p in text.split("|")]
        if parts[0].upper() != LEGACY_PREFIX:
            raise ScanValidationError("Invalid QR code: not a patrol checkpoint")
        if len(parts) < 2 or not parts[1]:
            raise ScanValidationError("Invalid QR code: missing site")
        point = parts[2] if len(parts) > 2 and parts[2] else None
        return QrReference(site_token=parts[1], location_id=point, checkpoint_name=point, legacy=True)

    if "?" in text:
        query = parse_qs(urlsplit(text).query)
        site = _first(query, "siteId")
        if not site:
            raise ScanValidationError("Invalid QR code: missing site")
        return QrReference(
            site_token=site,
            location_id=_first(query, "locId"),
            checkpoint_name=_first(query, "cpName"),
            route=_first(query, "route"),
        )

    raise ScanValidationError("Invalid QR code format")
