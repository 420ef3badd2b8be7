"""Table names and header columns of the patrol workbook."""
from typing import Dict, List

SITES = "Sites"
SITE_CONFIG = "Site_Config"
GUARDS = "Guards"
SCANS = "Scans"
INSPECTION_LOGS = "InspectionLogs"
LEGACY_LOGS = "Logs"
HANDOVER_RECORDS = "HandoverRecords"
SIGNALS = "Signals"

_INSPECTION_COLUMNS = [
    "timestamp", "patrolName", "route", "siteName", "guardName", "shift",
    "startTime", "finishTime", "duration", "score", "status",
    "flashlight", "uniform", "defenseTools", "logbook",
    "gates", "lighting", "fireSafety", "gps",
    "patrolLogs", "details", "issues", "handoverComment", "syncedAt",
]

TABLE_COLUMNS: Dict[str, List[str]] = {
    SITES: [
        "id", "code", "nameEN", "nameLO", "type", "route", "address", "district",
        "province", "lat", "lng", "contactName", "contactPhone", "contactEmail",
        "status", "notes", "checkpointTarget", "roundsTarget", "patrolConditions",
        "shiftType", "shiftStart", "shiftEnd", "createdAt", "updatedAt",
    ],
    SITE_CONFIG: [
        "siteId", "code", "name", "rounds", "checkpoints", "shiftType",
        "shiftStart", "shiftEnd", "lat", "lng", "updatedAt",
    ],
    GUARDS: [
        "id", "name", "surname", "empId", "phone", "email", "siteId", "status",
        "photo", "startDate", "createdAt", "updatedAt",
    ],
    SCANS: [
        "id", "guardId", "checkpointId", "siteId", "timestamp", "lat", "lng",
        "accuracy", "status", "round", "assessment", "note", "photo",
        "roundNumber", "pointInRound", "isOvertime",
    ],
    INSPECTION_LOGS: list(_INSPECTION_COLUMNS),
    LEGACY_LOGS: list(_INSPECTION_COLUMNS),
    HANDOVER_RECORDS: ["id", "timestamp", "siteName", "guardName", "comment", "syncedAt"],
    SIGNALS: ["key", "value", "updatedAt"],
}


def ensure_all_tables(store) -> None:
    for name, columns in TABLE_COLUMNS.items():
        store.ensure_table_exists(name, columns)
