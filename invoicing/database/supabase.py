"""Supabase database backend over the PostgREST HTTP API.

Uses the service-role key, so row ownership is enforced by the services
(every query filters on ``user_id``) rather than by row-level security.

PostgREST reference:
https://postgrest.org/en/stable/references/api/tables_views.html
"""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoicing.database.base import Repository, RepositoryError, Row
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filters(filters: dict[str, Any]) -> dict[str, str]:
    """Translate keyword filters into PostgREST query parameters.

    Example:
        >>> build_filters({"user_id": "u1", "status": ["sent", "pending"], "email_id": None})
        {'user_id': 'eq.u1', 'status': 'in.("sent","pending")', 'email_id': 'is.null'}
    """
    params: dict[str, str] = {}
    for column, value in filters.items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, (list, tuple, set, frozenset)):
            quoted = ",".join(f'"{_format_value(v)}"' for v in value)
            params[column] = f"in.({quoted})"
        else:
            params[column] = f"eq.{_format_value(value)}"
    return params


class SupabaseRepository(Repository):
    """PostgREST client for a Supabase project."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        """Initialize Supabase backend.

        Args:
            settings: Application settings with supabase_url and supabase_service_key
            client: Optional preconfigured HTTP client (tests inject a mock transport)
        """
        super().__init__(settings)
        self._base_url = f"{settings.supabase_url.rstrip('/')}/rest/v1"
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "supabase"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        key = self.settings.supabase_service_key
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def is_available(self) -> bool:
        if not (self.settings.supabase_url and self.settings.supabase_service_key):
            return False
        try:
            response = self._client.get(f"{self._base_url}/", headers=self._headers())
            return response.status_code < 500
        except httpx.HTTPError:
            return False

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Send a PostgREST request, retrying transport errors.

        Raises:
            RepositoryError: If the server answers with an error status
        """
        response = self._client.request(
            method,
            f"{self._base_url}/{table}",
            params=params,
            json=json,
            headers=self._headers(prefer),
        )
        if response.status_code >= 400:
            logger.error(
                f"Supabase {method} {table} failed: {response.status_code} {response.text}"
            )
            raise RepositoryError(f"Database error on {table}: {response.status_code}")

        if not response.content:
            return []
        return response.json()

    def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        **filters: Any,
    ) -> list[Row]:
        params = {"select": "*", **build_filters(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        return list(self._request("GET", table, params=params))

    def insert(self, table: str, row: Row) -> Row:
        rows = self._request("POST", table, json=row, prefer="return=representation")
        if not rows:
            raise RepositoryError(f"Insert into {table} returned no row")
        return rows[0]

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        return list(self._request("POST", table, json=rows, prefer="return=representation"))

    def update_where(self, table: str, changes: Row, **filters: Any) -> list[Row]:
        if not filters:
            raise RepositoryError("Refusing to update without filters")
        return list(
            self._request(
                "PATCH",
                table,
                params=build_filters(filters),
                json=changes,
                prefer="return=representation",
            )
        )

    def delete_where(self, table: str, **filters: Any) -> int:
        if not filters:
            raise RepositoryError("Refusing to delete without filters")
        deleted = self._request(
            "DELETE", table, params=build_filters(filters), prefer="return=representation"
        )
        return len(deleted)

    def upsert(self, table: str, row: Row, on_conflict: str = "id") -> Row:
        rows = self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not rows:
            raise RepositoryError(f"Upsert into {table} returned no row")
        return rows[0]
