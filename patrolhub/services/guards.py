from typing import Optional, Tuple
import uuid

import structlog

from ..schemas.scans import GuardProfile
from ..sheets.provider import Record, TabularStore
from ..sheets.tables import GUARDS, TABLE_COLUMNS
from . import signals

logger = structlog.get_logger(__name__)


def find_guard(store: TabularStore, emp_id: str) -> Optional[Record]:
    key = emp_id.strip().lower()
    for row in store.read_all(GUARDS):
        if str(row.get("empId") or "").strip().lower() == key:
            return row
    return None


def upsert_guard(store: TabularStore, profile: GuardProfile, site_id: str) -> Tuple[Record, bool]:
    """
    Register a guard on first scan. The caller holds the store lock.

    Returns:
        (guard record, created)
    """
    store.ensure_table_exists(GUARDS, TABLE_COLUMNS[GUARDS])
    existing = find_guard(store, profile.emp_id)
    if existing is not None:
        return existing, False

    now = store.clock()
    record = store.append_row(GUARDS, {
        "id": f"GRD-{uuid.uuid4().hex[:8].upper()}",
        "name": profile.name,
        "surname": profile.surname,
        "empId": profile.emp_id.strip(),
        "phone": profile.phone or "",
        "email": profile.email or "",
        "siteId": site_id,
        "status": "active",
        "startDate": now.date().isoformat(),
        "createdAt": now.isoformat(),
        "updatedAt": now.isoformat(),
    })
    signals.mark_changed(store, "guards")
    logger.info("guard_registered", emp_id=record["empId"], site=site_id)
    return record, True
