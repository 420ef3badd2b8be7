"""Shift handover notes left by guards for the next shift and supervisors."""
from datetime import datetime, timedelta
from typing import Dict, List, Optional
import uuid

import structlog

from ..config import settings
from ..sheets.provider import Record, TabularStore
from ..sheets.tables import HANDOVER_RECORDS, TABLE_COLUMNS
from .shift_rules import coerce_datetime

logger = structlog.get_logger(__name__)

COMMENT_PREVIEW_CHARS = 150


def save_handover(store: TabularStore, site_name: str, guard_name: str, comment: str) -> Record:
    store.ensure_table_exists(HANDOVER_RECORDS, TABLE_COLUMNS[HANDOVER_RECORDS])
    with store.lock():
        record = store.append_row(HANDOVER_RECORDS, {
            "id": uuid.uuid4().hex,
            "siteName": site_name.strip(),
            "guardName": guard_name.strip(),
            "comment": comment.strip(),
        })
    logger.info("handover_saved", site=site_name, guard=guard_name)
    return record


def latest_by_site(rows: List[Record], now: datetime, freshness_hours: Optional[int] = None) -> Dict[str, dict]:
    """
    Most recent handover note per site name within the freshness window.

    Args:
        rows: HandoverRecords rows
        now: Reference time
        freshness_hours: Window length (default HANDOVER_FRESHNESS_HOURS)

    Returns:
        {site name: {comment, guard, timestamp}} with comments cut to 150 chars
    """
    hours = settings.handover_freshness_hours if freshness_hours is None else freshness_hours
    cutoff = now - timedelta(hours=hours)
    latest: Dict[str, dict] = {}
    for row in rows:
        ts = coerce_datetime(row.get("timestamp"))
        site = str(row.get("siteName") or "").strip()
        comment = str(row.get("comment") or "").strip()
        if ts is None or not site or not comment or ts < cutoff:
            continue
        current = latest.get(site)
        if current is None or ts > current["timestamp"]:
            latest[site] = {
                "comment": comment[:COMMENT_PREVIEW_CHARS],
                "guard": str(row.get("guardName") or "").strip(),
                "timestamp": ts,
            }
    return latest
