from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from ..core.constants import DEFAULT_API_TIMEOUT_SECONDS
from ..core.exceptions import AuthenticationRequired, ServerError
from .errors import error_from_response, error_from_transport

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Session token source owned by the external auth collaborator."""

    async def get_token(self) -> Optional[str]:
        raise NotImplementedError

    async def refresh(self) -> Optional[str]:
        raise NotImplementedError


class StaticTokenProvider(TokenProvider):
    def __init__(self, token: Optional[str]):
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token

    async def refresh(self) -> Optional[str]:
        return None


class ApiClient:
    """Thin JSON client over httpx.AsyncClient.

    Every failure leaves this class as a DomainError: HTTP statuses are mapped
    by error_from_response, transport failures (including timeouts) become
    NetworkError. A 401 is retried once after a token refresh, nothing else is.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_API_TIMEOUT_SECONDS,
        tokens: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._tokens = tokens
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _headers(self, token: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _send(self, method: str, path: str, *, json: Any = None, params: Optional[dict] = None, timeout: Optional[float] = None) -> httpx.Response:
        token = await self._tokens.get_token() if self._tokens else None
        kwargs: dict[str, Any] = {"json": json, "params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.request(method, path, headers=await self._headers(token), **kwargs)
            if response.status_code == 401 and self._tokens is not None:
                fresh = await self._tokens.refresh()
                if fresh:
                    logger.info("Retrying %s %s after token refresh", method, path)
                    response = await self._client.request(method, path, headers=await self._headers(fresh), **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise error_from_transport(exc) from exc
        return response

    async def request(self, method: str, path: str, *, json: Any = None, params: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        response = await self._send(method, path, json=json, params=params, timeout=timeout)
        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                raise ServerError("Malformed response from server.", status_code=response.status_code)

        error = error_from_response(response)
        if isinstance(error, AuthenticationRequired):
            logger.warning("%s %s rejected: session expired", method, path)
        else:
            logger.warning("%s %s failed with %s: %s", method, path, response.status_code, error.message)
        raise error

    async def get(self, path: str, *, params: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        return await self.request("GET", path, params=params, timeout=timeout)

    async def post(self, path: str, json: Any = None, *, timeout: Optional[float] = None) -> Any:
        return await self.request("POST", path, json=json, timeout=timeout)

    async def delete(self, path: str, *, timeout: Optional[float] = None) -> Any:
        return await self.request("DELETE", path, timeout=timeout)
