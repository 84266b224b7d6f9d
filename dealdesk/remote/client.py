"""
REST Client - async wrapper for the auto-generated REST query layer.

Speaks the PostgREST dialect: one resource per table, horizontal filters as
query parameters (`job_id=eq.42`, `id=in.(1,2)`, `vendor_id=is.null`),
vertical filtering and relationship embedding via `select=`.

Every failure is raised as a typed RemoteStoreError subclass (see
dealdesk.remote.errors); transport failures become RemoteConnectionError.
Timeouts belong to the httpx transport.
"""

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import httpx

from dealdesk.config import DealDeskConfig, require_rest_credentials
from dealdesk.exceptions import RemoteConnectionError, RemoteStoreError, ValidationError
from dealdesk.remote.errors import build_store_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

Filter = tuple[str, str]
Row = dict[str, Any]


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: Any) -> str:
    text = _format_value(value)
    if any(ch in text for ch in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def eq(column: str, value: Any) -> Filter:
    return (column, f"eq.{_format_value(value)}")


def in_(column: str, values: Iterable[Any]) -> Filter:
    return (column, f"in.({','.join(_quote(v) for v in values)})")


def is_null(column: str) -> Filter:
    return (column, "is.null")


class RestClient:
    """
    Async client for the remote store.

    Usage:
        async with RestClient(url, api_key, access_token=jwt) as client:
            rows = await client.select("job_parts", "id, vendor:vendors(id, name)",
                                       filters=[in_("job_id", job_ids)])
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize REST client.

        Args:
            base_url: REST root, e.g. https://<project>.example.co/rest/v1
            api_key: Project API key sent as `apikey`
            access_token: User JWT; defaults to the API key
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.request_count = 0

    @classmethod
    def from_config(cls, config: DealDeskConfig) -> "RestClient":
        url, api_key = require_rest_credentials(config)
        return cls(
            url,
            api_key,
            access_token=config.access_token or None,
            timeout=config.request_timeout,
        )

    async def __aenter__(self) -> "RestClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        filters: Sequence[Filter] = (),
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        params: list[tuple[str, str]] = [("select", columns), *filters]
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        return await self._request("GET", table, params)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        return await self._request(
            "POST", table, [], json=list(rows), prefer="return=representation"
        )

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: str,
    ) -> list[Row]:
        return await self._request(
            "POST",
            table,
            [("on_conflict", on_conflict)],
            json=list(rows),
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Sequence[Filter],
    ) -> list[Row]:
        if not filters:
            raise ValidationError(f"Refusing unfiltered update on {table}")
        return await self._request(
            "PATCH", table, list(filters), json=dict(values), prefer="return=representation"
        )

    async def delete(self, table: str, *, filters: Sequence[Filter]) -> list[Row]:
        if not filters:
            raise ValidationError(f"Refusing unfiltered delete on {table}")
        return await self._request("DELETE", table, list(filters), prefer="return=minimal")

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]],
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        start = time.time()
        self.request_count += 1

        try:
            response = await self._client.request(
                method, f"/{path}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise RemoteConnectionError(
                f"{method} /{path} failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        latency_ms = int((time.time() - start) * 1000)
        logger.debug(f"{method} /{path} -> {response.status_code} in {latency_ms}ms")

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = {"message": response.text}
            if not isinstance(payload, dict):
                payload = {"message": str(payload)}
            raise build_store_error(payload, status=response.status_code)

        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteStoreError(
                f"{method} /{path} returned a body that is not JSON",
                status=response.status_code,
                details={"body": response.text[:200]},
            ) from e
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise RemoteStoreError(
                f"{method} /{path} returned {type(data).__name__}, expected rows",
                status=response.status_code,
            )
        return data
