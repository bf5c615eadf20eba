"""HTTP transport between the admin client and the approval backend.

Dependencies: errors
Wired in: service.py → ApprovalService, cli.py
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from scriptapproval.errors import ApprovalRequestError, AuthorizationLapseError

_log = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


class ApprovalTransport(Protocol):
    """Minimal request surface the service needs from a backend."""

    async def get(self, path: str) -> Any: ...

    async def post(self, path: str, body: dict[str, Any] | None = None) -> Any: ...


class HttpTransport:
    """``httpx`` transport that maps failures onto the approval error taxonomy."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def connect(
        cls,
        base_url: str,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HttpTransport:
        headers = {API_KEY_HEADER: api_key} if api_key else {}
        client = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport)
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str) -> Any:
        return await self._send("GET", path)

    async def post(self, path: str, body: dict[str, Any] | None = None) -> Any:
        return await self._send("POST", path, body)

    async def _send(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            _log.warning("%s %s failed: %s", method, path, exc)
            raise ApprovalRequestError(f"{method} {path} failed: {exc}") from exc
        if response.status_code == httpx.codes.FORBIDDEN:
            _log.warning("%s %s rejected as unauthorized", method, path)
            raise AuthorizationLapseError()
        if response.is_error:
            _log.warning("%s %s returned HTTP %d", method, path, response.status_code)
            raise ApprovalRequestError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApprovalRequestError(f"{method} {path} returned a non-JSON body") from exc
