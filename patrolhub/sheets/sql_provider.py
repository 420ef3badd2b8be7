"""
SQLAlchemy-backed tabular store.
Each sheet is a `SheetTable` header plus `SheetRow` records holding JSON cells.
"""
from datetime import date, datetime, time
from typing import Any, List, Optional

import structlog
from sqlalchemy import select

from ..db import SessionLocal
from ..models.models import SheetRow, SheetTable
from ..services.errors import TableNotFoundError
from .provider import Predicate, Record, TabularStore

logger = structlog.get_logger(__name__)


def _cell(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


class SqlTabularStore(TabularStore):
    def __init__(self, session_factory=SessionLocal, clock=None) -> None:
        super().__init__(clock)
        self._session_factory = session_factory

    def _header(self, db, table: str) -> SheetTable:
        header = db.get(SheetTable, table)
        if header is None:
            raise TableNotFoundError(table)
        return header

    def read_all(self, table: str) -> List[Record]:
        db = self._session_factory()
        try:
            header = self._header(db, table)
            rows = db.execute(
                select(SheetRow).where(SheetRow.table_name == table).order_by(SheetRow.id)
            ).scalars().all()
            return [{col: (r.data or {}).get(col, "") for col in header.columns} for r in rows]
        finally:
            db.close()

    def append_row(self, table: str, record: Record) -> Record:
        db = self._session_factory()
        try:
            header = self._header(db, table)
            row = self._shape(header.columns, record)
            db.add(SheetRow(table_name=table, data={k: _cell(v) for k, v in row.items()}))
            db.commit()
            return row
        finally:
            db.close()

    def find_and_update_row(self, table: str, predicate: Predicate, patch: Record) -> Optional[Record]:
        db = self._session_factory()
        try:
            header = self._header(db, table)
            rows = db.execute(
                select(SheetRow).where(SheetRow.table_name == table).order_by(SheetRow.id)
            ).scalars().all()
            for r in rows:
                current = {col: (r.data or {}).get(col, "") for col in header.columns}
                if not predicate(current):
                    continue
                current.update({k: _cell(v) for k, v in patch.items() if k in header.columns})
                # Reassign so the JSON column is flagged dirty
                r.data = dict(current)
                db.commit()
                return current
            return None
        finally:
            db.close()

    def ensure_table_exists(self, table: str, columns: List[str]) -> None:
        db = self._session_factory()
        try:
            header = db.get(SheetTable, table)
            if header is None:
                db.add(SheetTable(name=table, columns=list(columns)))
                db.commit()
                logger.info("sheet_table_created", table=table, columns=len(columns))
                return
            missing = [c for c in columns if c not in header.columns]
            if missing:
                header.columns = list(header.columns) + missing
                db.commit()
                logger.info("sheet_table_extended", table=table, added=missing)
        finally:
            db.close()
