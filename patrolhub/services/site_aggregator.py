"""
Site compliance aggregation.

Joins the site directory with inspection visits over a trailing window and
produces per-site compliance rates, incident counts and a status badge for
the supervisor dashboard.
"""
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from ..config import settings
from ..schemas.reports import (
    BehaviorTally,
    CategoryTally,
    HandoverNote,
    InspectionLog,
    LastVisit,
    RecentActivity,
    SiteAggregate,
    SiteStats,
)
from ..schemas.sites import Site
from ..sheets.provider import Record, TabularStore, parse_rows
from ..sheets.tables import HANDOVER_RECORDS, INSPECTION_LOGS, LEGACY_LOGS, SITES
from . import handover
from .errors import SiteDirectoryUnavailable, TableNotFoundError
from .shift_rules import operational_date

logger = structlog.get_logger(__name__)

EQUIPMENT_FIELDS = {
    "uniform": "uniform",
    "flashlight": "flashlight",
    "defenseTools": "defense_tools",
    "logbook": "logbook",
}
SECURITY_FIELDS = {
    "gates": "gates",
    "lighting": "lighting",
    "fireSafety": "fire_safety",
}

OK_EXACT = {"✓", "yes", "ok", "ດີ", "ຄົບ"}
OK_CONTAINS = ("ດີ", "ok", "yes", "ຖືກຕ້ອງ")
SLEEP_TOKENS = ("ນອນຫຼັບ", "😴", "sleep")
OFF_POSITION_TOKENS = ("ບໍ່ຢູ່ຈຸດ", "❌", "off position")
CAMERA_TOKENS = ("ກ້ອງ", "camera")

RECENT_ACTIVITY_LIMIT = 5
COMPLIANCE_THRESHOLD = 80


def is_check_ok(value: str) -> bool:
    v = (value or "").strip().lower()
    if not v:
        return False
    return v in OK_EXACT or any(token in v for token in OK_CONTAINS)


def _has_any(text: str, tokens) -> bool:
    return any(token in text for token in tokens)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _rate(good: int, total: int) -> int:
    return _round_half_up(good / total * 100) if total > 0 else 100


def _mean(values: List[int]) -> int:
    return _round_half_up(sum(values) / len(values)) if values else 100


def time_ago(then: Optional[datetime], now: datetime) -> str:
    if then is None:
        return "Never"
    hours = int((now - then).total_seconds() // 3600)
    days = hours // 24
    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    return "Just now"


def classify(stats: SiteStats, equipment: int, security: int, discipline: int, days: int):
    """Status badge as (status, label, reason); the first matching rule wins."""
    if stats.sleep > 2:
        return "alert", "Alert", f"Multiple sleeping incidents ({stats.sleep} in {days} days)"
    if stats.issues > 3:
        return "alert", "Alert", f"High issue count ({stats.issues} issues in {days} days)"
    if stats.patrols == 0:
        return "idle", "No Recent Patrols", f"No patrol data in last {days} days"
    if equipment < COMPLIANCE_THRESHOLD:
        return "warning", "Equipment Issue", f"Equipment compliance below 80% ({equipment}%)"
    if security < COMPLIANCE_THRESHOLD:
        return "warning", "Security Issue", f"Security compliance below 80% ({security}%)"
    if discipline < COMPLIANCE_THRESHOLD:
        return "warning", "Discipline Issue", f"Discipline compliance below 80% ({discipline}%)"
    return "active", "Active", ""


class _SiteAccumulator:
    def __init__(self, site: Site) -> None:
        self.site = site
        self.patrols = 0
        self.sleep = 0
        self.issues = 0
        self.score_sum = 0.0
        self.score_count = 0
        self.duration_sum = 0.0
        self.last: Optional[InspectionLog] = None
        self.equipment = {key: [0, 0] for key in EQUIPMENT_FIELDS}
        self.security = {key: [0, 0] for key in list(SECURITY_FIELDS) + ["camera"]}
        self.sleeping = [0, 0]
        self.off_position = [0, 0]
        self.visits: List[InspectionLog] = []

    @staticmethod
    def _tally(bucket: List[int], value: str) -> None:
        if not value:
            return
        bucket[0 if is_check_ok(value) else 1] += 1

    def add(self, log: InspectionLog) -> None:
        self.patrols += 1
        if log.score is not None:
            self.score_sum += log.score
            self.score_count += 1
        self.duration_sum += log.duration or 0
        if self.last is None or log.timestamp > self.last.timestamp:
            self.last = log

        for key, attr in EQUIPMENT_FIELDS.items():
            self._tally(self.equipment[key], getattr(log, attr))
        for key, attr in SECURITY_FIELDS.items():
            self._tally(self.security[key], getattr(log, attr))

        issues = log.issues.lower()
        self.sleeping[0] += 1
        self.off_position[0] += 1
        if _has_any(issues, SLEEP_TOKENS):
            self.sleeping[1] += 1
            self.sleep += 1
        if _has_any(issues, OFF_POSITION_TOKENS):
            self.off_position[1] += 1
        self.security["camera"][1 if _has_any(issues, CAMERA_TOKENS) else 0] += 1

        status = log.status.lower()
        if "issue" in status or "incident" in status or len(issues) > 5:
            self.issues += 1
        self.visits.append(log)

    def finalize(self, now: datetime, days: int, note: Optional[dict]) -> SiteAggregate:
        stats = SiteStats(
            patrols=self.patrols,
            sleep=self.sleep,
            issues=self.issues,
            avg_score=round(self.score_sum / self.score_count, 1) if self.score_count else 0,
            avg_duration=_round_half_up(self.duration_sum / self.patrols) if self.patrols else 0,
        )
        equipment = {k: CategoryTally(ok=ok, issues=bad, rate=_rate(ok, ok + bad)) for k, (ok, bad) in self.equipment.items()}
        security = {k: CategoryTally(ok=ok, issues=bad, rate=_rate(ok, ok + bad)) for k, (ok, bad) in self.security.items()}
        behavior = {
            "sleeping": BehaviorTally(total=self.sleeping[0], incidents=self.sleeping[1],
                                      rate=_rate(self.sleeping[0] - self.sleeping[1], self.sleeping[0])),
            "offPosition": BehaviorTally(total=self.off_position[0], incidents=self.off_position[1],
                                         rate=_rate(self.off_position[0] - self.off_position[1], self.off_position[0])),
        }
        equipment_rate = _mean([t.rate for t in equipment.values()])
        security_rate = _mean([t.rate for t in security.values()])
        discipline_rate = _round_half_up((behavior["sleeping"].rate + behavior["offPosition"].rate) / 2)
        status, label, reason = classify(stats, equipment_rate, security_rate, discipline_rate, days)

        last_visit = LastVisit()
        if self.last is not None:
            last_visit = LastVisit(
                timestamp=self.last.timestamp,
                time_ago=time_ago(self.last.timestamp, now),
                inspector=self.last.patrol_name or "Unknown",
                score=self.last.score or None,
            )

        recent = sorted(self.visits, key=lambda v: v.timestamp, reverse=True)[:RECENT_ACTIVITY_LIMIT]
        return SiteAggregate(
            id=self.site.id or self.site.code,
            name=self.site.display_name,
            address=self.site.address or "",
            lat=self.site.lat,
            lng=self.site.lng,
            status=status,
            status_label=label,
            status_reason=reason,
            stats=stats,
            last_visit=last_visit,
            equipment=equipment,
            behavior=behavior,
            security=security,
            recent_activity=[_snapshot(v) for v in recent],
            last_handover=HandoverNote(**note) if note else None,
            overall_equipment_rate=equipment_rate,
            overall_discipline_rate=discipline_rate,
            overall_security_rate=security_rate,
        )


def _snapshot(log: InspectionLog) -> RecentActivity:
    return RecentActivity(
        timestamp=log.timestamp,
        inspector=log.patrol_name or "Unknown",
        score=log.score or 0,
        duration=log.duration or 0,
        guard_name=log.guard_name or "N/A",
        shift=log.shift or "N/A",
        start_time=log.start_time,
        finish_time=log.finish_time,
        status=log.status or "N/A",
        flashlight=log.flashlight or "N/A",
        uniform=log.uniform or "N/A",
        defense_tools=log.defense_tools or "N/A",
        logbook=log.logbook or "N/A",
        gates=log.gates or "N/A",
        lighting=log.lighting or "N/A",
        fire_safety=log.fire_safety or "N/A",
        details=log.details,
        issues=log.issues,
    )


class SiteAggregator:
    def __init__(self, store: TabularStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.clock = clock or store.clock

    def _read_optional(self, table: str) -> List[Record]:
        try:
            return self.store.read_all(table)
        except Exception as exc:
            logger.warning("aggregate_source_unavailable", table=table, error=str(exc))
            return []

    def _sites(self) -> List[Site]:
        try:
            rows = self.store.read_all(SITES)
        except TableNotFoundError as exc:
            logger.error("aggregate_sites_unavailable", error=exc.message)
            raise SiteDirectoryUnavailable() from exc
        return parse_rows(Site, rows, SITES)

    def _logs(self) -> List[InspectionLog]:
        rows = self._read_optional(INSPECTION_LOGS)
        if not rows:
            rows = self._read_optional(LEGACY_LOGS)
        logs = []
        for row in rows:
            try:
                logs.append(InspectionLog.model_validate(row))
            except ValueError:
                continue
        return logs

    def seed(self) -> Dict[str, _SiteAccumulator]:
        """Accumulators for active sites with a name and non-zero coordinates, keyed by name."""
        seeded: Dict[str, _SiteAccumulator] = {}
        for site in self._sites():
            name = site.display_name
            if not site.is_active or not name:
                continue
            if site.lat is None or site.lng is None or site.lat == 0 or site.lng == 0:
                continue
            seeded[name] = _SiteAccumulator(site)
        return seeded

    def aggregate(self, trailing_window_days: Optional[int] = None) -> List[SiteAggregate]:
        days = trailing_window_days or settings.aggregate_days_default
        now = self.clock()
        cutoff = now - timedelta(days=days)

        accumulators = self.seed()
        for log in self._logs():
            acc = accumulators.get(log.site_name)
            if acc is not None and log.timestamp >= cutoff:
                acc.add(log)

        notes = handover.latest_by_site(self._read_optional(HANDOVER_RECORDS), now)
        result = [acc.finalize(now, days, notes.get(name)) for name, acc in accumulators.items()]
        result.sort(key=lambda s: s.stats.issues, reverse=True)
        logger.info("sites_aggregated", sites=len(result), days=days)
        return result

    def daily_visits(self, trailing_window_days: Optional[int] = None) -> Dict[str, Dict[str, int]]:
        """Visit counts per site per operational date (entries before 05:30 count for the previous day)."""
        days = trailing_window_days or settings.aggregate_days_default
        cutoff = self.clock() - timedelta(days=days)
        counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for log in self._logs():
            if log.site_name and log.timestamp >= cutoff:
                counts[log.site_name][operational_date(log.timestamp).isoformat()] += 1
        return {site: dict(sorted(by_day.items())) for site, by_day in sorted(counts.items())}
