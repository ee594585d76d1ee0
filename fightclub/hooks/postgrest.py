"""Thin async client for Supabase's PostgREST interface.

One shared httpx.AsyncClient per process, created at startup and closed on
shutdown. Every call maps transport failures and non-2xx responses onto
the domain error taxonomy:

- 409 (unique violation)        → ConflictError
- any other 4xx/5xx, timeouts   → RepositoryError (cause chained)

Filters are equality-only (``column=eq.value``), which is all the
repositories need.

Usage:
    client = PostgrestClient(settings.supabase_url, settings.supabase_key)
    rows = await client.select("evaluations", filters={"user_id": "u1"})
    await client.aclose()
"""

import logging
from typing import Any

import httpx

from fightclub.errors import ConflictError, RepositoryError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0


def _eq_filters(filters: dict[str, Any] | None) -> dict[str, str]:
    if not filters:
        return {}
    return {column: f"eq.{value}" for column, value in filters.items()}


def _error_detail(response: httpx.Response) -> str:
    """Extracts PostgREST's error message without failing on non-JSON bodies."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("details") or body)
    return str(body)[:200]


class PostgrestClient:
    """Equality-filtered CRUD against Supabase tables.

    Args:
        base_url: Supabase project URL, e.g. "https://xyz.supabase.co".
        api_key: Service role key. Sent as both apikey and bearer token.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def select(
        self,
        table: str,
        *,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Returns matching rows. ``order`` uses PostgREST syntax ("col.desc")."""
        params: dict[str, str] = {"select": columns, **_eq_filters(filters)}
        if order is not None:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        response = await self._request("GET", table, "select", params=params)
        return response.json()

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Inserts one row and returns it as stored.

        Raises:
            ConflictError: On a unique constraint violation.
        """
        response = await self._request(
            "POST",
            table,
            "insert",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return response.json()[0]

    async def upsert(
        self, table: str, row: dict[str, Any], *, on_conflict: str = "id"
    ) -> dict[str, Any]:
        """Inserts or merges one row on the given conflict column."""
        response = await self._request(
            "POST",
            table,
            "upsert",
            json=row,
            params={"on_conflict": on_conflict},
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return response.json()[0]

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Updates matching rows and returns them. Empty list if none matched."""
        response = await self._request(
            "PATCH",
            table,
            "update",
            json=values,
            params=_eq_filters(filters),
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, table: str, operation: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as exc:
            raise RepositoryError(
                f"Supabase {operation} failed", table=table
            ) from exc

        if response.status_code == 409:
            raise ConflictError(
                f"Supabase {operation} conflict",
                table=table,
                detail=_error_detail(response),
            )
        if response.is_error:
            logger.warning(
                "Supabase %s on %s returned %d", operation, table, response.status_code
            )
            raise RepositoryError(
                f"Supabase {operation} failed",
                table=table,
                status_code=response.status_code,
                detail=_error_detail(response),
            )
        return response
