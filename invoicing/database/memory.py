"""In-memory database backend.

Keeps tables as lists of JSON-compatible dicts inside the process. Used for
local development and tests; data is lost on restart.
"""

import copy
import logging
import threading
from typing import Any

from invoicing.database.base import Repository, Row
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


def _matches(row: Row, filters: dict[str, Any]) -> bool:
    for column, expected in filters.items():
        value = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class MemoryRepository(Repository):
    """Thread-safe dict-backed tables."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._tables: dict[str, list[Row]] = {}
        self._lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True

    def _table(self, table: str) -> list[Row]:
        return self._tables.setdefault(table, [])

    def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        **filters: Any,
    ) -> list[Row]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._table(table) if _matches(r, filters)]

        if order_by:
            # None sorts first ascending, last descending
            rows.sort(
                key=lambda r: (r.get(order_by) is not None, r.get(order_by)),
                reverse=descending,
            )
        return rows

    def insert(self, table: str, row: Row) -> Row:
        stored = copy.deepcopy(row)
        with self._lock:
            self._table(table).append(stored)
        logger.debug(f"Inserted row into {table}")
        return copy.deepcopy(stored)

    def update_where(self, table: str, changes: Row, **filters: Any) -> list[Row]:
        updated = []
        with self._lock:
            for row in self._table(table):
                if _matches(row, filters):
                    row.update(copy.deepcopy(changes))
                    updated.append(copy.deepcopy(row))
        return updated

    def delete_where(self, table: str, **filters: Any) -> int:
        with self._lock:
            rows = self._table(table)
            kept = [r for r in rows if not _matches(r, filters)]
            removed = len(rows) - len(kept)
            self._tables[table] = kept
        return removed

    def upsert(self, table: str, row: Row, on_conflict: str = "id") -> Row:
        key = row.get(on_conflict)
        with self._lock:
            for existing in self._table(table):
                if key is not None and existing.get(on_conflict) == key:
                    existing.update(copy.deepcopy(row))
                    return copy.deepcopy(existing)
            stored = copy.deepcopy(row)
            self._table(table).append(stored)
            return copy.deepcopy(stored)
