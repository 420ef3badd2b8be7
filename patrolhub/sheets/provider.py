import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

import structlog
from pydantic import ValidationError

from ..config import settings
from ..services.errors import StoreBusyError

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TabularStore:
    """
    Header-row tables of records plus one store-wide lock.

    Writers hold `lock()` around read-check-append sequences. Reads are unlocked.
    A `timestamp` column left empty by the caller is filled at write time.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.clock = clock or utc_now
        self._lock = threading.Lock()

    def read_all(self, table: str) -> List[Record]:
        raise NotImplementedError

    def append_row(self, table: str, record: Record) -> Record:
        raise NotImplementedError

    def find_and_update_row(self, table: str, predicate: Predicate, patch: Record) -> Optional[Record]:
        raise NotImplementedError

    def ensure_table_exists(self, table: str, columns: List[str]) -> None:
        raise NotImplementedError

    @contextmanager
    def lock(self, timeout_s: Optional[float] = None) -> Iterator["TabularStore"]:
        wait = settings.store_lock_timeout_s if timeout_s is None else timeout_s
        if not self._lock.acquire(timeout=wait):
            raise StoreBusyError()
        try:
            yield self
        finally:
            self._lock.release()

    def _shape(self, columns: List[str], record: Record) -> Record:
        row = {col: record.get(col, "") for col in columns}
        if "timestamp" in row and row["timestamp"] in ("", None):
            row["timestamp"] = self.clock()
        return row


def parse_rows(model, records: List[Record], table: str) -> list:
    """Validate raw records into `model`; rows that fail validation are skipped."""
    parsed = []
    for index, record in enumerate(records):
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as exc:
            logger.warning("row_skipped", table=table, row=index + 2, errors=exc.error_count())
    return parsed
