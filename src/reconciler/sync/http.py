"""Async HTTP clients for the portal deal store and the CRM opportunity API.

Both clients use httpx.AsyncClient with a per-call client and a configurable
timeout. Transport-level and non-2xx failures are translated to the engine's
error types (FetchError for reads, UpdateError for portal writes). There is
no retry: a failed call surfaces to the caller as-is.

An optional ``transport`` lets tests plug in ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.reconciler.sync.adapter import PortalStore, RemoteCRM
from src.reconciler.sync.errors import FetchError, UpdateError

logger = structlog.get_logger(__name__)

# Keys the portal may wrap its record list in
_PORTAL_LIST_KEYS = ("deals", "records", "data")


def _error_text(response: httpx.Response) -> str:
    """Extract the upstream error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("error", "message", "msg"):
            if body.get(key):
                return str(body[key])

    return f"HTTP {response.status_code}"


class PortalAPIClient(PortalStore):
    """PortalStore backed by the portal's REST API.

    Args:
        base_url: Portal API root, e.g. ``https://portal.example.com/api``.
        token: Bearer token for an admin session.
        records_path: Path returning every deal record.
        record_path: Path template for one record; ``{record_id}`` is substituted.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport override.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        records_path: str = "/admin/deals/raw",
        record_path: str = "/deals/{record_id}",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._records_path = records_path
        self._record_path = record_path
        self._timeout = timeout
        self._transport = transport
        self._headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def list_records(self) -> list[dict[str, Any]]:
        url = f"{self._base_url}{self._records_path}"
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                "portal", _error_text(exc.response), exc.response.status_code
            ) from exc
        except httpx.RequestError as exc:
            raise FetchError("portal", str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise FetchError("portal", f"response is not JSON: {exc}") from exc

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in _PORTAL_LIST_KEYS:
                if isinstance(payload.get(key), list):
                    return payload[key]

        raise FetchError("portal", "response does not contain a record list")

    async def update_record(self, record_id: str, fields: dict[str, Any]) -> None:
        path = self._record_path.format(record_id=quote(str(record_id), safe=""))
        url = f"{self._base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.put(url, json=fields)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpdateError(
                record_id, _error_text(exc.response), exc.response.status_code
            ) from exc
        except httpx.RequestError as exc:
            raise UpdateError(record_id, str(exc) or type(exc).__name__) from exc

        logger.info("portal.record_updated", record_id=record_id, fields=list(fields))


class CRMClient(RemoteCRM):
    """RemoteCRM backed by the CRM's pipeline opportunities endpoint.

    Follows ``meta.nextPageUrl`` until the CRM stops returning one, so the
    full pipeline is returned in fetch order.

    Args:
        base_url: CRM API root, e.g. ``https://rest.gohighlevel.com/v1``.
        api_key: Bearer API key.
        api_version: Value for the ``Version`` header.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport override.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_version: str = "2021-07-28",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Version": api_version,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def list_opportunities(self, pipeline_id: str) -> list[dict[str, Any]]:
        if not pipeline_id:
            raise FetchError("crm", "pipeline id is required")

        url: str | None = f"{self._base_url}/pipelines/{pipeline_id}/opportunities/"
        seen_urls: set[str] = set()
        opportunities: list[dict[str, Any]] = []

        try:
            async with self._client() as client:
                while url and url not in seen_urls:
                    seen_urls.add(url)
                    response = await client.get(url)
                    response.raise_for_status()
                    payload = response.json()

                    page = payload.get("opportunities") if isinstance(payload, dict) else None
                    if not isinstance(page, list):
                        raise FetchError("crm", "response does not contain an opportunity list")
                    opportunities.extend(page)

                    meta = payload.get("meta")
                    next_url = meta.get("nextPageUrl") if isinstance(meta, dict) else None
                    url = next_url if page and isinstance(next_url, str) else None
        except httpx.HTTPStatusError as exc:
            raise FetchError("crm", _error_text(exc.response), exc.response.status_code) from exc
        except httpx.RequestError as exc:
            raise FetchError("crm", str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise FetchError("crm", f"response is not JSON: {exc}") from exc

        logger.debug(
            "crm.opportunities_listed",
            pipeline_id=pipeline_id,
            count=len(opportunities),
            pages=len(seen_urls),
        )
        return opportunities
