"""
Effective per-site patrol configuration.

Each field is taken from the first layer that defines it:
Site_Config row -> Sites row -> defaults.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..config import settings
from ..schemas.sites import EffectiveSiteConfig, Site, SiteConfigRow, SiteConfigUpdate
from ..sheets.provider import TabularStore, parse_rows
from ..sheets.tables import SITE_CONFIG, SITES, TABLE_COLUMNS
from . import signals
from .errors import SiteDirectoryUnavailable, SiteNotFoundError, TableNotFoundError
from .site_resolver import resolve_site

logger = structlog.get_logger(__name__)

Layer = Dict[str, Any]


class SiteDirectory:
    """
    Cached view of the Sites and Site_Config tables.

    Reads are served from a short-lived cache (CONFIG_CACHE_TTL_SECONDS).
    Writers call `invalidate()` after changing either table.
    """

    def __init__(self, store: TabularStore, ttl_s: Optional[int] = None) -> None:
        self.store = store
        self.ttl = timedelta(seconds=settings.config_cache_ttl_s if ttl_s is None else ttl_s)
        self._cache: Dict[str, Dict[str, Any]] = {}

    def _get_cached(self, table: str):
        entry = self._cache.get(table)
        if not entry:
            return None
        if datetime.now(timezone.utc) - entry["ts"] > self.ttl:
            self._cache.pop(table, None)
            return None
        return entry["data"]

    def _set_cached(self, table: str, data) -> None:
        self._cache[table] = {"data": data, "ts": datetime.now(timezone.utc)}

    def invalidate(self) -> None:
        self._cache.clear()

    def sites(self) -> List[Site]:
        cached = self._get_cached(SITES)
        if cached is not None:
            return cached
        try:
            rows = self.store.read_all(SITES)
        except TableNotFoundError as exc:
            raise SiteDirectoryUnavailable() from exc
        data = parse_rows(Site, rows, SITES)
        self._set_cached(SITES, data)
        return data

    def config_rows(self) -> List[SiteConfigRow]:
        cached = self._get_cached(SITE_CONFIG)
        if cached is not None:
            return cached
        try:
            rows = self.store.read_all(SITE_CONFIG)
        except TableNotFoundError:
            rows = []
        data = parse_rows(SiteConfigRow, rows, SITE_CONFIG)
        self._set_cached(SITE_CONFIG, data)
        return data


def find_site(code: str, sites: List[Site]) -> Optional[Site]:
    key = code.strip().lower()
    for site in sites:
        if (site.code or "").lower() == key or (site.id or "").lower() == key:
            return site
    return None


def find_config_row(code: str, site: Optional[Site], rows: List[SiteConfigRow]) -> Optional[SiteConfigRow]:
    keys = {code.strip().lower()}
    if site is not None:
        keys.update(k.lower() for k in (site.id, site.code) if k)
    for row in rows:
        if (row.code or "").lower() in keys or (row.site_id or "").lower() in keys:
            return row
    names = {n.lower() for n in (site.name_en, site.name_lo) if n} if site is not None else set()
    for row in rows:
        if row.name and row.name.lower() in names:
            return row
    return None


def _location(lat: Optional[float], lng: Optional[float]) -> Optional[Tuple[float, float]]:
    if lat is None or lng is None or (lat == 0 and lng == 0):
        return None
    return lat, lng


def config_layer(row: Optional[SiteConfigRow]) -> Layer:
    if row is None:
        return {}
    return {
        "checkpoints": row.checkpoints,
        "rounds": row.rounds,
        "shift_type": row.shift_type,
        "shift_start": row.shift_start,
        "shift_end": row.shift_end,
        "location": _location(row.lat, row.lng),
    }


def site_layer(site: Optional[Site]) -> Layer:
    if site is None:
        return {}
    return {
        "checkpoints": site.checkpoint_target,
        "rounds": site.rounds_target,
        "shift_type": site.shift_type,
        "shift_start": site.shift_start,
        "shift_end": site.shift_end,
        "location": _location(site.lat, site.lng),
    }


def default_layer() -> Layer:
    return {"checkpoints": settings.default_checkpoints, "rounds": settings.default_rounds}


def _first(field: str, layers: List[Layer]) -> Any:
    for layer in layers:
        value = layer.get(field)
        if value is not None:
            return value
    return None


def resolve_config(canonical_code: str, sites: List[Site], config_rows: List[SiteConfigRow]) -> EffectiveSiteConfig:
    """
    Merge the override row, the site row and defaults into one configuration.

    Args:
        canonical_code: Resolved site code
        sites: Site directory
        config_rows: Site_Config override rows

    Returns:
        EffectiveSiteConfig with positive counts and a non-empty shift timing
    """
    site = find_site(canonical_code, sites)
    row = find_config_row(canonical_code, site, config_rows)
    layers = [config_layer(row), site_layer(site), default_layer()]

    start = _first("shift_start", layers)
    end = _first("shift_end", layers)
    timing = f"{start}-{end}" if start and end else settings.default_shift_timing
    location = _first("location", layers)

    return EffectiveSiteConfig(
        site_id=canonical_code,
        checkpoints=_first("checkpoints", layers),
        rounds=_first("rounds", layers),
        shift_type=_first("shift_type", layers),
        shift_start=start,
        shift_end=end,
        shift_timing=timing,
        lat=location[0] if location else None,
        lng=location[1] if location else None,
    )


def get_site_config(directory: SiteDirectory, reference: str) -> EffectiveSiteConfig:
    sites = directory.sites()
    site = resolve_site(reference, sites)
    if site is None or not site.canonical_code:
        raise SiteNotFoundError(reference)
    return resolve_config(site.canonical_code, sites, directory.config_rows())


def _row_matcher(field: str, value: Optional[str]):
    key = (value or "").strip().lower()

    def matches(record: Dict[str, Any]) -> bool:
        return bool(key) and str(record.get(field) or "").strip().lower() == key

    return matches


def save_site_config(directory: SiteDirectory, reference: str, update: SiteConfigUpdate) -> EffectiveSiteConfig:
    """
    Create or update the Site_Config row of a site.

    The row is matched by site code first, then by name. An 8h shift without
    explicit times starts at 06:00 and ends at 14:00.
    """
    store = directory.store
    site = resolve_site(reference, directory.sites())
    if site is None or not site.canonical_code:
        raise SiteNotFoundError(reference)
    code = site.canonical_code

    shift_start, shift_end = update.shift_start, update.shift_end
    if (update.shift_type or "").lower() == "8h":
        shift_start = shift_start or "06:00"
        shift_end = shift_end or "14:00"

    patch: Dict[str, Any] = {
        "siteId": site.id or code,
        "code": code,
        "name": site.display_name or "",
        "rounds": update.rounds,
        "checkpoints": update.checkpoints,
        "shiftType": update.shift_type,
        "shiftStart": shift_start,
        "shiftEnd": shift_end,
        "updatedAt": store.clock().isoformat(),
    }
    patch = {k: v for k, v in patch.items() if v is not None}

    store.ensure_table_exists(SITE_CONFIG, TABLE_COLUMNS[SITE_CONFIG])
    with store.lock():
        updated = store.find_and_update_row(SITE_CONFIG, _row_matcher("code", code), patch)
        if updated is None:
            updated = store.find_and_update_row(SITE_CONFIG, _row_matcher("name", site.display_name), patch)
        if updated is None:
            store.append_row(SITE_CONFIG, patch)
        signals.mark_changed(store, "sites")
    directory.invalidate()
    logger.info("site_config_saved", site=code, created=updated is None)
    return resolve_config(code, directory.sites(), directory.config_rows())
