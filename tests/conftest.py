from datetime import datetime, timedelta

import pytest
import pytz

from patrolhub.sheets.memory_provider import InMemoryTabularStore
from patrolhub.sheets.tables import SITES, ensure_all_tables
from patrolhub.storage.provider import BlobStore

TZ = pytz.timezone("Asia/Vientiane")


def local(*args) -> datetime:
    return TZ.localize(datetime(*args))


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeBlobStore(BlobStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads = []

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise RuntimeError("blob service offline")
        self.uploads.append({"key": key, "data": data, "content_type": content_type})
        return f"https://blob.test/{key}"


SITE_ROWS = [
    {
        "id": "SITE-001", "code": "VKS-A-001", "nameEN": "Central Plaza VKS25-001", "nameLO": "ຊັນທຣັລ ພາຊາ",
        "route": "A", "address": "Kaysone Road", "lat": 17.9757, "lng": 102.6331, "status": "active",
        "checkpointTarget": 6, "roundsTarget": 8,
    },
    {
        "id": "SITE-002", "code": "VKS-A-002", "nameEN": "Landmark Tower", "route": "A",
        "lat": "17.9637", "lng": "102.6140", "status": "Active",
        "checkpointTarget": 5, "roundsTarget": "", "shiftType": "8h", "shiftStart": "6:00", "shiftEnd": "14:00",
    },
    {
        "id": "SITE-003", "code": "VKS-B-003", "nameEN": "Old Warehouse", "route": "B",
        "lat": 17.95, "lng": 102.60, "status": "inactive",
    },
    {
        "id": "SITE-004", "code": "VKS-B-004", "nameEN": "Riverside Office", "route": "B",
        "lat": "", "lng": "", "status": "",
    },
]


@pytest.fixture
def clock():
    return FixedClock(local(2026, 3, 10, 9, 15))


@pytest.fixture
def store(clock):
    s = InMemoryTabularStore(clock=clock)
    ensure_all_tables(s)
    s.seed(SITES, SITE_ROWS)
    return s


@pytest.fixture
def blob():
    return FakeBlobStore()
