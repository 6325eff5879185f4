"""Abstract base class for database backends.

The interface follows the table-oriented shape of the hosted-database SDK
(select / insert / update / delete with equality filters) so services read
the same whether they run against Supabase or the in-memory backend.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

Filter semantics shared by every backend:
- ``column=value`` matches rows whose column equals value
- ``column=[a, b]`` (list/tuple/set) matches rows whose column is one of the values
- ``column=None`` matches rows where the column is null
"""

from abc import ABC, abstractmethod
from typing import Any

from invoicing.shared.config import Settings
from invoicing.shared.errors import InvoicingError

Row = dict[str, Any]


class RepositoryError(InvoicingError):
    """Database backend failed or returned an unexpected response."""

    status_code = 503


class Repository(ABC):
    """Abstract base class for database backends.

    Example implementations:
    - MemoryRepository: process-local tables (development, tests)
    - SupabaseRepository: hosted Postgres through the PostgREST API
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize backend with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        **filters: Any,
    ) -> list[Row]:
        """Return rows of ``table`` matching all filters.

        Args:
            table: Table name
            order_by: Column to sort by
            descending: Sort direction
            **filters: Column filters

        Returns:
            Matching rows
        """
        pass

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored."""
        pass

    @abstractmethod
    def update_where(self, table: str, changes: Row, **filters: Any) -> list[Row]:
        """Apply ``changes`` to all matching rows and return the updated rows."""
        pass

    @abstractmethod
    def delete_where(self, table: str, **filters: Any) -> int:
        """Delete matching rows and return how many were removed."""
        pass

    @abstractmethod
    def upsert(self, table: str, row: Row, on_conflict: str = "id") -> Row:
        """Insert a row, or merge it into the row with the same ``on_conflict`` value."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the backend is configured and reachable.

        Returns:
            True if backend can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get backend name for logging/metrics."""
        pass

    def get(self, table: str, row_id: str) -> Row | None:
        rows = self.select(table, id=row_id)
        return rows[0] if rows else None

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        return [self.insert(table, row) for row in rows]

    def update(self, table: str, row_id: str, changes: Row) -> Row | None:
        rows = self.update_where(table, changes, id=row_id)
        return rows[0] if rows else None

    def delete(self, table: str, row_id: str) -> bool:
        return self.delete_where(table, id=row_id) > 0

    def count(self, table: str, **filters: Any) -> int:
        return len(self.select(table, **filters))
