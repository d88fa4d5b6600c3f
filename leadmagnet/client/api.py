# leadmagnet/client/api.py
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol

import aiohttp


class LeadMagnetApiError(Exception):
    def __init__(self, code: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


class LeadMagnetApi(Protocol):
    """The three lead-magnet endpoints as seen from the page."""

    async def resolve_known(self, token: str, firstname: Optional[str] = None) -> Dict[str, Any]: ...

    async def capture(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def track_download(self, payload: Dict[str, Any]) -> None: ...


class HttpLeadMagnetApi:
    """
    aiohttp implementation of :class:`LeadMagnetApi`.

    Endpoint error responses still carry a JSON body (``ok: false``) and are
    returned as-is; only transport failures and non-JSON bodies raise.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "/api",
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        beacon_timeout: float = 2.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix.rstrip("/")
        self._session = session
        self._timeout = timeout
        self._beacon_timeout = beacon_timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}/lead-magnet{path}"

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._timeout)
        try:
            if self._session is not None:
                return await self._send(self._session, method, path, params, payload, client_timeout)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, method, path, params, payload, client_timeout)
        except asyncio.TimeoutError:
            raise LeadMagnetApiError("timeout", "Request timeout")
        except aiohttp.ClientError as e:
            raise LeadMagnetApiError("client_error", f"Client error: {str(e)[:200]}")

    async def _send(self, session, method, path, params, payload, timeout) -> Dict[str, Any]:
        async with session.request(
            method, self._url(path), params=params, json=payload, timeout=timeout
        ) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                raise LeadMagnetApiError(
                    "invalid_response", f"Non-JSON response ({response.status})", response.status
                )
            if not isinstance(body, dict):
                raise LeadMagnetApiError("invalid_response", "Response is not an object", response.status)
            return body

    async def resolve_known(self, token: str, firstname: Optional[str] = None) -> Dict[str, Any]:
        params = {"token": token}
        if firstname:
            params["firstname"] = firstname
        return await self._call("GET", "/resolve-known", params=params)

    async def capture(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call("POST", "/capture", payload=payload)

    async def track_download(self, payload: Dict[str, Any]) -> None:
        # beacon semantics: short deadline, response body ignored
        await self._call("POST", "/download", payload=payload, timeout=self._beacon_timeout)
