from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from patrolhub.config import settings
from patrolhub.deps import get_blob_store, get_store
from patrolhub.main import app
from patrolhub.sheets.tables import INSPECTION_LOGS, SCANS


@pytest.fixture
def client(store, blob):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_blob_store] = lambda: blob
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_scan(client, qr, scan_type, guard="E001", **meta):
    return client.post("/scans", json={"qrPayload": qr, "guardIdentifier": guard, "scanType": scan_type, "meta": meta})


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_checkin(client):
    resp = post_scan(client, "VKS|VKS-A-001|", "CHECKIN", guard={"empId": "E001", "name": "Noy"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["action"] == "CHECKIN"
    assert body["canonicalSiteId"] == "VKS-A-001"
    assert body["checkpointTarget"] == 6
    assert body["roundsTarget"] == 8
    assert body["shiftTiming"] == "06:00-14:00"
    assert resp.headers["X-Request-ID"]


def test_duplicate_patrol_is_success(client, store):
    first = post_scan(client, "VKS|VKS-A-001|3", "PATROL", roundNumber=1)
    second = post_scan(client, "VKS|VKS-A-001|3", "PATROL", roundNumber=1)
    assert first.json()["action"] == "PATROL_SAVED"
    assert second.status_code == 200
    assert second.json()["action"] == "ALREADY_SAVED"
    assert len(store.read_all(SCANS)) == 1


def test_invalid_qr_is_400_with_message(client):
    resp = post_scan(client, "", "CHECKIN")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "QR code is empty", "retryable": False}


def test_busy_store_is_503_retryable(client, store, monkeypatch):
    monkeypatch.setattr(settings, "store_lock_timeout_s", 0.05)
    with store.lock():
        resp = post_scan(client, "VKS|VKS-A-001|", "CHECKIN")
    assert resp.status_code == 503
    assert resp.json()["retryable"] is True
    assert resp.json()["message"] == "System busy, please try again"


def test_bad_scan_type_is_422(client):
    assert post_scan(client, "VKS|VKS-A-001|", "LUNCH").status_code == 422


def test_aggregate(client, store, clock):
    store.seed(INSPECTION_LOGS, [{
        "timestamp": clock() - timedelta(days=1), "siteName": "Central Plaza VKS25-001",
        "patrolName": "Vong", "uniform": "✓", "gates": "No", "score": 80,
    }])
    resp = client.get("/sites/aggregate", params={"days": 30})
    assert resp.status_code == 200
    sites = {s["name"]: s for s in resp.json()}
    plaza = sites["Central Plaza VKS25-001"]
    assert plaza["status"] == "warning"
    assert plaza["overallEquipmentRate"] == 100
    assert plaza["security"]["gates"]["rate"] == 0
    assert plaza["lastVisit"]["timeAgo"] == "1d ago"


def test_resolve(client):
    body = client.get("/sites/resolve", params={"ref": "landmark"}).json()
    assert body == {"reference": "landmark", "canonicalSiteId": "VKS-A-002", "resolved": True}
    body = client.get("/sites/resolve", params={"ref": "Nowhere"}).json()
    assert body["canonicalSiteId"] == "Nowhere"
    assert body["resolved"] is False


def test_site_config_read_and_update(client):
    resp = client.get("/sites/VKS-A-001/config")
    assert resp.status_code == 200
    assert resp.json()["checkpoints"] == 6

    resp = client.put("/sites/VKS-A-001/config", json={"checkpoints": 3, "shiftType": "8h"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["checkpoints"] == 3
    assert body["shiftTiming"] == "06:00-14:00"
    assert client.get("/signals/sites").json()["value"]


def test_site_config_validation(client):
    assert client.put("/sites/VKS-A-001/config", json={"rounds": 0}).status_code == 422
    assert client.put("/sites/VKS-A-001/config", json={"shiftStart": "9am"}).status_code == 422


def test_unknown_site_config_is_404(client):
    resp = client.get("/sites/Nowhere/config")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_checkpoint_qr(client, blob):
    resp = client.post("/sites/VKS-A-001/checkpoints/CP-2/qr", json={"checkpointName": "Parking Gate"})
    assert resp.status_code == 200
    body = resp.json()
    assert "locId=CP-2" in body["payload"]
    assert body["url"].startswith("https://blob.test/")
    assert len(blob.uploads) == 1


def test_handover(client, store):
    resp = client.post("/sites/Landmark/handover", json={"guardName": "Kham", "comment": "Lift 2 out of order"})
    assert resp.status_code == 200
    tower = {s["name"]: s for s in client.get("/sites/aggregate").json()}["Landmark Tower"]
    assert tower["lastHandover"]["comment"] == "Lift 2 out of order"


def test_daily_report(client, store):
    from conftest import local
    store.seed(INSPECTION_LOGS, [{"timestamp": local(2026, 3, 10, 2, 0), "siteName": "Landmark Tower"}])
    assert client.get("/reports/inspections/daily").json() == {"Landmark Tower": {"2026-03-09": 1}}


def test_signals(client):
    assert client.get("/signals/scan").json()["value"] == ""
    post_scan(client, "VKS|VKS-A-001|", "CHECKIN")
    assert client.get("/signals/scan").json()["value"]
    assert client.get("/signals/bogus").status_code == 404
