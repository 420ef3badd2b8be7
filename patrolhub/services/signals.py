"""
Update signals.
A timestamped marker per data kind that dashboards poll to know when to refresh.
"""
from typing import Optional

import structlog

from ..sheets.provider import TabularStore
from ..sheets.tables import SIGNALS, TABLE_COLUMNS

logger = structlog.get_logger(__name__)

SIGNAL_KEYS = {
    "scan": "LAST_SCAN_SIGNAL",
    "sites": "LAST_SITE_SIGNAL",
    "guards": "LAST_GUARD_SIGNAL",
}


def mark_changed(store: TabularStore, kind: str) -> Optional[str]:
    """Record that `kind` data changed. The caller holds the store lock; failures are only logged."""
    key = SIGNAL_KEYS[kind]
    now = store.clock()
    value = str(int(now.timestamp() * 1000))
    patch = {"value": value, "updatedAt": now.isoformat()}
    try:
        store.ensure_table_exists(SIGNALS, TABLE_COLUMNS[SIGNALS])
        updated = store.find_and_update_row(SIGNALS, lambda r: r.get("key") == key, patch)
        if updated is None:
            store.append_row(SIGNALS, {"key": key, **patch})
    except Exception as exc:
        logger.warning("signal_write_failed", key=key, error=str(exc))
        return None
    return value


def read_signal(store: TabularStore, kind: str) -> dict:
    key = SIGNAL_KEYS[kind]
    store.ensure_table_exists(SIGNALS, TABLE_COLUMNS[SIGNALS])
    for row in store.read_all(SIGNALS):
        if row.get("key") == key:
            return {"key": key, "value": str(row.get("value") or ""), "updatedAt": row.get("updatedAt") or None}
    return {"key": key, "value": "", "updatedAt": None}
