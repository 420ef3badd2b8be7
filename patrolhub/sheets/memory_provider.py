"""
In-memory tabular store.
Used for ephemeral runs and for tests; rows live in plain dicts.
"""
import copy
from typing import Dict, List, Optional

from ..services.errors import TableNotFoundError
from .provider import Predicate, Record, TabularStore


class InMemoryTabularStore(TabularStore):
    def __init__(self, clock=None) -> None:
        super().__init__(clock)
        self._columns: Dict[str, List[str]] = {}
        self._rows: Dict[str, List[Record]] = {}

    def _table(self, table: str) -> List[Record]:
        if table not in self._rows:
            raise TableNotFoundError(table)
        return self._rows[table]

    def read_all(self, table: str) -> List[Record]:
        return copy.deepcopy(self._table(table))

    def append_row(self, table: str, record: Record) -> Record:
        rows = self._table(table)
        row = self._shape(self._columns[table], record)
        rows.append(row)
        return dict(row)

    def find_and_update_row(self, table: str, predicate: Predicate, patch: Record) -> Optional[Record]:
        for row in self._table(table):
            if predicate(dict(row)):
                row.update({k: v for k, v in patch.items() if k in self._columns[table]})
                return dict(row)
        return None

    def ensure_table_exists(self, table: str, columns: List[str]) -> None:
        if table not in self._rows:
            self._columns[table] = list(columns)
            self._rows[table] = []
            return
        known = self._columns[table]
        for col in columns:
            if col not in known:
                known.append(col)
                for row in self._rows[table]:
                    row.setdefault(col, "")

    def seed(self, table: str, records: List[Record]) -> None:
        """Bulk-load rows as they would appear in an existing sheet."""
        columns = self._columns.get(table)
        if columns is None:
            columns = []
            for rec in records:
                for key in rec:
                    if key not in columns:
                        columns.append(key)
            self.ensure_table_exists(table, columns)
        for rec in records:
            self._rows[table].append({col: rec.get(col, "") for col in self._columns[table]})
