"""
Scan event processing.

Turns a guard's QR scan into a Scans row:
  parse payload -> resolve site -> effective config -> geofence -> write.

All writes happen inside the store-wide lock. Photo upload runs after the
lock is released and patches the row it belongs to.
"""
import base64
import binascii
import re
import uuid
from datetime import datetime
from typing import Callable, Optional, Tuple

import structlog

from ..schemas.scans import GeofenceResult, GuardProfile, QrReference, ScanRequest, ScanResponse, ScanType
from ..schemas.sites import EffectiveSiteConfig, Site, positive_int
from ..sheets.provider import Record, TabularStore
from ..sheets.tables import SCANS, TABLE_COLUMNS
from ..storage.provider import ERROR_MARKER, BlobStore
from . import geofence, signals
from .errors import ScanValidationError, StoreBusyError
from .guards import upsert_guard
from .handover import save_handover
from .qr_payload import parse_qr_payload
from .shift_rules import coerce_datetime, current_shift, is_same_day
from .site_config import SiteDirectory, find_site, resolve_config
from .site_resolver import resolve

logger = structlog.get_logger(__name__)

PHOTO_PENDING = "PENDING_UPLOAD"
_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,", re.IGNORECASE)
_PHOTO_EXT = {"image/png": "png", "image/webp": "webp", "image/heic": "heic"}


def decode_photo(encoded: str) -> Tuple[bytes, str]:
    """Decode raw base64 or a `data:<mime>;base64,` URL into (bytes, mime type)."""
    mime = "image/jpeg"
    match = _DATA_URL.match(encoded)
    if match:
        mime = match.group("mime").lower()
        encoded = encoded[match.end():]
    try:
        data = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("photo is not valid base64") from exc
    if not data:
        raise ValueError("photo is empty")
    return data, mime


class ScanProcessor:
    def __init__(
        self,
        store: TabularStore,
        blob: BlobStore,
        directory: Optional[SiteDirectory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.blob = blob
        self.directory = directory or SiteDirectory(store)
        self.clock = clock or store.clock

    def process(self, request: ScanRequest) -> ScanResponse:
        qr = parse_qr_payload(request.qr_payload)
        guard_id = request.guard_id
        if not guard_id:
            raise ScanValidationError("Guard identifier is required")

        sites = self.directory.sites()
        canonical = resolve(qr.site_token, sites)
        site = find_site(canonical, [s for s in sites if s.is_active])
        if site is None:
            logger.warning("scan_unknown_site", reference=qr.site_token, guard=guard_id)
            raise ScanValidationError(f"Unknown site: {qr.site_token}")

        config = resolve_config(canonical, sites, self.directory.config_rows())
        fence = self._check_geofence(request, config, guard_id)

        self.store.ensure_table_exists(SCANS, TABLE_COLUMNS[SCANS])
        if request.scan_type == ScanType.CHECKIN:
            response = self._checkin(request, site, config, guard_id)
        elif request.scan_type == ScanType.PATROL:
            response = self._patrol(request, qr, config, guard_id)
        else:
            response = self._checkout(request, site, config, guard_id)

        if not fence.skipped:
            response.geofence = fence
        return response

    def _check_geofence(self, request: ScanRequest, config: EffectiveSiteConfig, guard_id: str) -> GeofenceResult:
        meta = request.meta
        result = geofence.validate((meta.lat, meta.lng), (config.lat, config.lng))
        if not result.valid:
            logger.warning("geofence_rejected", site=config.site_id, guard=guard_id, distance_m=result.distance_m)
            raise ScanValidationError(result.message or "Outside site geofence")
        if result.message:
            logger.warning("geofence_out_of_range", site=config.site_id, guard=guard_id, distance_m=result.distance_m)
        return result

    def _record(self, request: ScanRequest, guard_id: str, site_id: str, status: ScanType, **fields) -> Record:
        meta = request.meta
        record = {
            "id": uuid.uuid4().hex,
            "guardId": guard_id,
            "checkpointId": "",
            "siteId": site_id,
            "lat": meta.lat if meta.lat is not None else "",
            "lng": meta.lng if meta.lng is not None else "",
            "accuracy": meta.accuracy if meta.accuracy is not None else "",
            "status": status.value,
            "round": "",
        }
        record.update(fields)
        return record

    def _checkin(self, request: ScanRequest, site: Site, config: EffectiveSiteConfig, guard_id: str) -> ScanResponse:
        now = self.clock()
        shift = current_shift(now, config.shift_type, config.shift_start)
        with self.store.lock():
            if isinstance(request.guard_identifier, GuardProfile):
                upsert_guard(self.store, request.guard_identifier, config.site_id)
            row = self.store.append_row(SCANS, self._record(request, guard_id, config.site_id, ScanType.CHECKIN))
            signals.mark_changed(self.store, "scan")

        logger.info("scan_checkin", site=config.site_id, guard=guard_id, shift=shift.shift_number)
        return ScanResponse(
            message=f"Checked in at {site.display_name or config.site_id} ({shift.timing})",
            action="CHECKIN",
            scan_id=row["id"],
            canonical_site_id=config.site_id,
            shift_number=shift.shift_number,
            shift_timing=shift.timing,
            checkpoint_target=config.checkpoints,
            rounds_target=config.rounds,
        )

    def _is_duplicate(self, row: Record, guard_id: str, checkpoint: str, round_number: int, now: datetime) -> bool:
        if str(row.get("guardId") or "") != guard_id:
            return False
        if str(row.get("checkpointId") or "") != checkpoint:
            return False
        if row.get("status") != ScanType.PATROL.value or positive_int(row.get("roundNumber")) != round_number:
            return False
        ts = coerce_datetime(row.get("timestamp"))
        return ts is not None and is_same_day(ts, now)

    def _patrol(self, request: ScanRequest, qr: QrReference, config: EffectiveSiteConfig, guard_id: str) -> ScanResponse:
        meta = request.meta
        checkpoint = (request.explicit_location_id or "").strip() or qr.location_id or qr.checkpoint_name
        if not checkpoint:
            raise ScanValidationError("Checkpoint is missing from the QR code")

        now = self.clock()
        common = dict(
            canonical_site_id=config.site_id,
            checkpoint_target=config.checkpoints,
            rounds_target=config.rounds,
        )
        with self.store.lock():
            for row in self.store.read_all(SCANS):
                if self._is_duplicate(row, guard_id, checkpoint, meta.round_number, now):
                    logger.info("scan_duplicate", site=config.site_id, guard=guard_id, checkpoint=checkpoint)
                    return ScanResponse(
                        message=f"Checkpoint {checkpoint} already saved for round {meta.round_number}",
                        action="ALREADY_SAVED",
                        scan_id=row.get("id") or None,
                        **common,
                    )
            row = self.store.append_row(SCANS, self._record(
                request, guard_id, config.site_id, ScanType.PATROL,
                checkpointId=checkpoint,
                assessment=meta.assessment or "",
                note=meta.note or "",
                photo=PHOTO_PENDING if meta.photo_base64 else "",
                roundNumber=meta.round_number,
                pointInRound=meta.point_in_round if meta.point_in_round is not None else "",
                isOvertime=meta.is_overtime,
            ))
            signals.mark_changed(self.store, "scan")

        photo_url = None
        if meta.photo_base64:
            photo_url = self._attach_photo(row["id"], meta.photo_base64, config.site_id, checkpoint)

        logger.info(
            "scan_patrol", site=config.site_id, guard=guard_id, checkpoint=checkpoint,
            round=meta.round_number, route=qr.route, qr_format="legacy" if qr.legacy else "url",
        )
        return ScanResponse(
            message=f"Checkpoint {checkpoint} saved",
            action="PATROL_SAVED",
            scan_id=row["id"],
            photo_url=photo_url,
            **common,
        )

    def _attach_photo(self, scan_id: str, encoded: str, site_id: str, checkpoint: str) -> str:
        try:
            data, mime = decode_photo(encoded)
        except ValueError as exc:
            url = f"{ERROR_MARKER}{exc}"
        else:
            name = f"patrol_{site_id}_{checkpoint}.{_PHOTO_EXT.get(mime, 'jpg')}"
            url = self.blob.upload(data, mime, name)

        patch = {"photo": url}
        try:
            with self.store.lock():
                self.store.find_and_update_row(SCANS, lambda r: r.get("id") == scan_id, patch)
        except StoreBusyError:
            # Single-row patch of the only mutable column; the row is already committed
            logger.warning("scan_photo_patch_unlocked", scan_id=scan_id)
            self.store.find_and_update_row(SCANS, lambda r: r.get("id") == scan_id, patch)
        if url.startswith(ERROR_MARKER):
            logger.warning("scan_photo_failed", scan_id=scan_id, error=url)
        return url

    def _completed_rounds(self, guard_id: str, site_id: str, now: datetime) -> int:
        rounds = set()
        for row in self.store.read_all(SCANS):
            if row.get("status") != ScanType.PATROL.value:
                continue
            if str(row.get("guardId") or "") != guard_id or str(row.get("siteId") or "") != site_id:
                continue
            ts = coerce_datetime(row.get("timestamp"))
            number = positive_int(row.get("roundNumber"))
            if ts is not None and number is not None and is_same_day(ts, now):
                rounds.add(number)
        return len(rounds)

    def _checkout(self, request: ScanRequest, site: Site, config: EffectiveSiteConfig, guard_id: str) -> ScanResponse:
        meta = request.meta
        total = meta.total_rounds or config.rounds
        with self.store.lock():
            completed = meta.completed_rounds
            if completed is None:
                completed = self._completed_rounds(guard_id, config.site_id, self.clock())
            row = self.store.append_row(SCANS, self._record(
                request, guard_id, config.site_id, ScanType.CHECKOUT, round=f"{completed}/{total}",
            ))
            signals.mark_changed(self.store, "scan")

        if meta.handover_note and meta.handover_note.strip():
            guard = request.guard_identifier
            guard_name = f"{guard.name} {guard.surname}".strip() if isinstance(guard, GuardProfile) else guard_id
            try:
                save_handover(self.store, site.display_name or config.site_id, guard_name or guard_id, meta.handover_note)
            except Exception as exc:
                logger.warning("handover_save_failed", site=config.site_id, error=str(exc))

        logger.info("scan_checkout", site=config.site_id, guard=guard_id, round=row["round"])
        return ScanResponse(
            message=f"Checked out: {completed}/{total} rounds",
            action="CHECKOUT",
            scan_id=row["id"],
            canonical_site_id=config.site_id,
            checkpoint_target=config.checkpoints,
            rounds_target=config.rounds,
        )
