"""HTTP transport for the REST and auth endpoints of the backend."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import aiohttp

from parksafe._constants import AUTH_PREFIX, REST_PREFIX, SESSION_EXPIRED_CODES, USER_AGENT
from parksafe._query import Query
from parksafe._redact import redact_for_log
from parksafe.config import ParkSafeConfig
from parksafe.exceptions import (
    ParkSafeApiError,
    ParkSafeAuthenticationError,
    ParkSafeError,
    ParkSafeNotFoundError,
    ParkSafePermissionError,
    ParkSafeSessionExpiredError,
    ParkSafeTransportError,
)

_logger = logging.getLogger(__name__)

_AUTH_FAILURE_CODES = frozenset(
    {
        "invalid_grant",
        "invalid_credentials",
        "email_not_confirmed",
        "user_not_found",
        "refresh_token_not_found",
        "refresh_token_already_used",
    }
)
_PERMISSION_CODES = frozenset({"42501", "not_admin", "forbidden"})


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestTransport`) concrete.
    """

    def set_access_token(self, token: str | None) -> None: ...

    async def select(self, query: Query) -> list[dict[str, Any]]: ...

    async def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        returning: Query | None = None,
    ) -> list[dict[str, Any]]: ...

    async def update(self, query: Query, values: Mapping[str, Any]) -> list[dict[str, Any]]: ...

    async def delete(self, query: Query) -> list[dict[str, Any]]: ...

    async def auth(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]: ...


def map_error(endpoint: str, status: int, body: Any) -> ParkSafeError:
    """Translate an error response into the exception hierarchy.

    Understands both the REST error shape (``code``/``message``) and the
    auth error shapes (``error``/``error_description`` and
    ``error_code``/``msg``).
    """
    data: dict[str, Any] = body if isinstance(body, dict) else {}
    code = str(data.get("error_code") or data.get("code") or data.get("error") or status)
    message = str(
        data.get("message") or data.get("msg") or data.get("error_description") or data.get("error") or body or ""
    )
    detail = f"{endpoint} failed: HTTP {status} code={code} message={message}"

    if code in SESSION_EXPIRED_CODES or (status == 401 and "expired" in message.lower()):
        return ParkSafeSessionExpiredError(detail, code=code, endpoint=endpoint)
    if code in _AUTH_FAILURE_CODES or (status == 401 and endpoint.startswith(AUTH_PREFIX)):
        return ParkSafeAuthenticationError(detail, code=code, endpoint=endpoint)
    if status in (401, 403) or code in _PERMISSION_CODES:
        return ParkSafePermissionError(detail, code=code, endpoint=endpoint)
    if code == "PGRST116":
        return ParkSafeNotFoundError(detail, code=code, endpoint=endpoint)
    return ParkSafeApiError(detail, code=code, endpoint=endpoint)


class RestTransport:
    """aiohttp transport for the REST (PostgREST dialect) and auth endpoints."""

    def __init__(self, config: ParkSafeConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._access_token: str | None = None

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers: dict[str, str] = {
            "apikey": self._config.anon_key,
            "authorization": f"Bearer {self._access_token or self._config.anon_key}",
            "content-type": "application/json",
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Sequence[tuple[str, str]] | Mapping[str, str] | None = None,
        payload: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        url = f"{self._config.url}{endpoint}"
        body = json.dumps(payload) if payload is not None else None
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        _logger.debug(
            "%s %s params=%s payload=%s",
            method,
            url,
            redact_for_log(dict(params) if isinstance(params, Mapping) else params),
            redact_for_log(payload),
        )

        try:
            async with self._http.request(
                method,
                url,
                params=params,
                data=body,
                headers=self._headers(headers),
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except TimeoutError as exc:
            raise ParkSafeTransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise ParkSafeTransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc

        parsed: Any = None
        if text.strip():
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as exc:
                if status < 400:
                    raise ParkSafeTransportError(
                        f"Invalid JSON from {endpoint}: {text[:200]}",
                        status_code=status,
                        endpoint=endpoint,
                    ) from exc
                parsed = text[:200]

        if status >= 400:
            raise map_error(endpoint, status, parsed)
        return parsed

    @staticmethod
    def _rows(result: Any) -> list[dict[str, Any]]:
        if isinstance(result, list):
            return [row for row in result if isinstance(row, dict)]
        if isinstance(result, dict):
            return [result]
        return []

    async def select(self, query: Query) -> list[dict[str, Any]]:
        endpoint = f"{REST_PREFIX}/{query.table}"
        return self._rows(await self._request("GET", endpoint, params=query.to_params()))

    async def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        returning: Query | None = None,
    ) -> list[dict[str, Any]]:
        endpoint = f"{REST_PREFIX}/{table}"
        params = [("select", returning.select_param())] if returning is not None else None
        prefer = "return=representation" if returning is not None else "return=minimal"
        result = await self._request(
            "POST",
            endpoint,
            params=params,
            payload=[dict(row) for row in rows],
            headers={"prefer": prefer},
        )
        return self._rows(result)

    async def update(self, query: Query, values: Mapping[str, Any]) -> list[dict[str, Any]]:
        endpoint = f"{REST_PREFIX}/{query.table}"
        result = await self._request(
            "PATCH",
            endpoint,
            params=query.to_params(include_select=False),
            payload=dict(values),
            headers={"prefer": "return=representation"},
        )
        return self._rows(result)

    async def delete(self, query: Query) -> list[dict[str, Any]]:
        endpoint = f"{REST_PREFIX}/{query.table}"
        result = await self._request(
            "DELETE",
            endpoint,
            params=query.to_params(include_select=False),
            headers={"prefer": "return=representation"},
        )
        return self._rows(result)

    async def auth(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        result = await self._request(
            method,
            f"{AUTH_PREFIX}{endpoint}",
            params=params,
            payload=dict(payload) if payload is not None else None,
        )
        return result if isinstance(result, dict) else {}
