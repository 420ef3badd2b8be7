from datetime import timedelta

import pytest

from patrolhub.services.errors import SiteDirectoryUnavailable
from patrolhub.services.site_aggregator import SiteAggregator, is_check_ok, time_ago
from patrolhub.sheets.memory_provider import InMemoryTabularStore
from patrolhub.sheets.tables import HANDOVER_RECORDS, INSPECTION_LOGS, LEGACY_LOGS, SITES

from conftest import SITE_ROWS, local

PLAZA = "Central Plaza VKS25-001"
TOWER = "Landmark Tower"


def visit(ts, site=PLAZA, **fields):
    row = {"timestamp": ts, "siteName": site, "patrolName": "Inspector Vong", "guardName": "Noy", "score": 90, "duration": 30}
    row.update(fields)
    return row


def by_name(results):
    return {r.name: r for r in results}


def test_only_active_sites_with_coordinates_are_reported(store):
    names = [r.name for r in SiteAggregator(store).aggregate(30)]
    assert sorted(names) == [PLAZA, TOWER]


def test_single_visit_checklist_rates(store, clock):
    store.seed(INSPECTION_LOGS, [visit(clock() - timedelta(days=1), uniform="✓", gates="No")])
    plaza = by_name(SiteAggregator(store).aggregate(30))[PLAZA]
    assert plaza.equipment["uniform"].rate == 100
    assert plaza.security["gates"].rate == 0
    assert plaza.overall_equipment_rate == 100
    assert plaza.overall_security_rate == 75
    assert plaza.status == "warning"
    assert plaza.status_label == "Security Issue"
    assert plaza.stats.patrols == 1
    assert plaza.stats.avg_score == 90
    assert plaza.last_visit.time_ago == "1d ago"
    assert plaza.last_visit.inspector == "Inspector Vong"


def test_sleeping_alert_outranks_equipment_warning(store, clock):
    logs = [visit(clock() - timedelta(hours=h), uniform="No", issues="sleep") for h in (2, 5, 9)]
    store.seed(INSPECTION_LOGS, logs)
    plaza = by_name(SiteAggregator(store).aggregate(30))[PLAZA]
    assert plaza.overall_equipment_rate < 80
    assert plaza.stats.sleep == 3
    assert plaza.status == "alert"
    assert plaza.status_reason == "Multiple sleeping incidents (3 in 30 days)"
    assert plaza.behavior["sleeping"].rate == 0
    assert plaza.overall_discipline_rate == 50


def test_issue_count_alert_and_sorting(store, clock):
    logs = [visit(clock() - timedelta(hours=h), site=TOWER, status="Issue found") for h in range(1, 5)]
    logs.append(visit(clock() - timedelta(hours=1), uniform="ok"))
    store.seed(INSPECTION_LOGS, logs)
    results = SiteAggregator(store).aggregate(30)
    assert results[0].name == TOWER
    assert results[0].stats.issues == 4
    assert results[0].status == "alert"
    assert results[1].status == "active"


def test_site_without_visits_is_idle(store):
    plaza = by_name(SiteAggregator(store).aggregate(30))[PLAZA]
    assert plaza.status == "idle"
    assert plaza.last_visit.time_ago == "Never"
    assert plaza.overall_security_rate == 100


def test_window_and_malformed_rows(store, clock):
    store.seed(INSPECTION_LOGS, [
        visit(clock() - timedelta(days=40)),
        visit("not a date"),
        visit(clock() - timedelta(days=2), score="", duration="abc"),
    ])
    plaza = by_name(SiteAggregator(store).aggregate(30))[PLAZA]
    assert plaza.stats.patrols == 1
    assert plaza.stats.avg_score == 0
    assert plaza.stats.avg_duration == 0


def test_offline_camera_and_off_position_tokens(store, clock):
    store.seed(INSPECTION_LOGS, [
        visit(clock() - timedelta(hours=3), issues="ກ້ອງ ເສຍ, ບໍ່ຢູ່ຈຸດ"),
        visit(clock() - timedelta(hours=4), issues=""),
    ])
    plaza = by_name(SiteAggregator(store).aggregate(30))[PLAZA]
    assert plaza.security["camera"].issues == 1
    assert plaza.security["camera"].rate == 50
    assert plaza.behavior["offPosition"].incidents == 1
    assert plaza.stats.issues == 1


def test_recent_activity_keeps_five_newest(store, clock):
    store.seed(INSPECTION_LOGS, [visit(clock() - timedelta(hours=h), guardName=f"G{h}") for h in range(1, 8)])
    plaza = by_name(SiteAggregator(store).aggregate(30))[PLAZA]
    assert [a.guard_name for a in plaza.recent_activity] == ["G1", "G2", "G3", "G4", "G5"]
    assert plaza.last_visit.timestamp == clock() - timedelta(hours=1)


def test_latest_fresh_handover_is_attached(store, clock):
    store.seed(HANDOVER_RECORDS, [
        {"timestamp": clock() - timedelta(hours=60), "siteName": PLAZA, "guardName": "Old", "comment": "stale note"},
        {"timestamp": clock() - timedelta(hours=5), "siteName": PLAZA, "guardName": "Noy", "comment": "x" * 200},
        {"timestamp": clock() - timedelta(hours=8), "siteName": PLAZA, "guardName": "Kham", "comment": "older"},
    ])
    results = by_name(SiteAggregator(store).aggregate(30))
    note = results[PLAZA].last_handover
    assert note.guard == "Noy"
    assert len(note.comment) == 150
    assert results[TOWER].last_handover is None


def test_stale_handover_is_ignored(store, clock):
    store.seed(HANDOVER_RECORDS, [
        {"timestamp": clock() - timedelta(hours=49), "siteName": PLAZA, "guardName": "Old", "comment": "stale"},
    ])
    assert by_name(SiteAggregator(store).aggregate(30))[PLAZA].last_handover is None


def test_legacy_logs_used_when_inspection_logs_empty(store, clock):
    store.seed(LEGACY_LOGS, [visit(clock() - timedelta(days=1))])
    assert by_name(SiteAggregator(store).aggregate(30))[PLAZA].stats.patrols == 1


def test_missing_secondary_sources_degrade(clock):
    s = InMemoryTabularStore(clock=clock)
    s.seed(SITES, SITE_ROWS)
    results = SiteAggregator(s).aggregate(30)
    assert {r.status for r in results} == {"idle"}


def test_missing_site_directory_is_fatal(clock):
    with pytest.raises(SiteDirectoryUnavailable):
        SiteAggregator(InMemoryTabularStore(clock=clock)).aggregate(30)


def test_daily_visits_use_operational_date(store):
    store.seed(INSPECTION_LOGS, [
        visit(local(2026, 3, 9, 3, 0)),
        visit(local(2026, 3, 8, 22, 0)),
        visit(local(2026, 3, 9, 8, 0), site=TOWER),
    ])
    daily = SiteAggregator(store).daily_visits(30)
    assert daily[PLAZA] == {"2026-03-08": 2}
    assert daily[TOWER] == {"2026-03-09": 1}


@pytest.mark.parametrize("value,expected", [("✓", True), ("OK ", True), ("ດີຫຼາຍ", True), ("ຖືກຕ້ອງ", True), ("No", False), ("", False)])
def test_is_check_ok(value, expected):
    assert is_check_ok(value) is expected


def test_time_ago_buckets():
    now = local(2026, 3, 10, 12, 0)
    assert time_ago(None, now) == "Never"
    assert time_ago(now - timedelta(minutes=59), now) == "Just now"
    assert time_ago(now - timedelta(hours=5), now) == "5h ago"
    assert time_ago(now - timedelta(days=3, hours=2), now) == "3d ago"
