"""
Request gateway

Performs authenticated calls against the commerce API. The bearer token is
chosen from the request path, and a 401 triggers at most one
refresh-and-retry per logical request. Concurrent 401s for the same token
kind share one in-flight refresh.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Protocol

import httpx

from storefront.domain.entities.token import Token, TokenKind
from storefront.infrastructure.logging.logging_config import (
    PerformanceLog,
    get_structured_logger,
    log_performance,
)
from storefront.infrastructure.utilities.constants import ApiPaths, HttpSettings
from storefront.infrastructure.utilities.exceptions import (
    AuthError,
    AuthFailure,
    StorefrontError,
    TransportError,
    TransportFailure,
)

logger = logging.getLogger(__name__)
events = get_structured_logger("storefront.gateway")


class TokenSource(Protocol):
    """What the gateway needs from TokenService"""

    async def token_for(self, kind: TokenKind) -> Optional[str]:
        ...

    def peek_token(self, kind: TokenKind) -> Optional[str]:
        ...

    async def refresh(self, kind: TokenKind) -> Optional[Token]:
        ...


def infer_token_kind(path: str) -> TokenKind:
    """Customer endpoints live under /carts/mine and /customers/me"""
    for prefix in ApiPaths.CUSTOMER_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return TokenKind.CUSTOMER
    return TokenKind.ADMIN


class RequestGateway:
    """Authenticated HTTP access with single-retry token recovery"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        tokens: TokenSource,
        max_auth_retries: int = HttpSettings.MAX_AUTH_RETRIES,
    ):
        self._client = client
        self._tokens = tokens
        self._max_auth_retries = max_auth_retries
        # Absent key means idle; a present future is the refresh in flight
        self._refreshing: Dict[TokenKind, asyncio.Future] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        kind: Optional[TokenKind] = None,
    ) -> Any:
        """
        Issue a request and return the decoded JSON body (None when empty).

        Raises:
            TransportError: network failure or error status. After a failed
                recovery attempt the error of the first 401 is raised.
        """
        kind = kind or infer_token_kind(path)
        try:
            token = await self._tokens.token_for(kind)
        except AuthError as e:
            if e.reason is not AuthFailure.SERVICE_UNAVAILABLE:
                raise
            # Token endpoint unreachable counts as a transport failure of this request
            raise TransportError(
                TransportFailure.NETWORK, f"{method} {path}: no {kind.value} token available: {e}"
            ) from e
        return await self._dispatch(method, path, kind, token, json, params, attempt=0)

    async def _dispatch(
        self,
        method: str,
        path: str,
        kind: TokenKind,
        token: Optional[str],
        json: Any,
        params: Optional[Dict[str, Any]],
        attempt: int,
    ) -> Any:
        response = await self._send(method, path, token, json, params)
        if response.status_code != 401:
            return self._decode(response)

        error = TransportError.from_response(response)
        if attempt >= self._max_auth_retries:
            raise error

        fresh = await self._fresh_token(kind, stale=token)
        if not fresh:
            events.warning("auth_recovery_unavailable", method=method, path=path, kind=kind.value)
            raise error

        events.info("auth_retry", method=method, path=path, kind=kind.value, attempt=attempt + 1)
        try:
            return await self._dispatch(method, path, kind, fresh, json, params, attempt + 1)
        except TransportError as retry_error:
            self._logger.warning(
                "Retry of %s %s failed (%s); surfacing the original 401", method, path, retry_error
            )
            raise error from retry_error

    async def _fresh_token(self, kind: TokenKind, stale: Optional[str]) -> Optional[str]:
        """Token to retry with, sharing a single refresh among concurrent callers"""
        current = self._tokens.peek_token(kind)
        if current and current != stale:
            # Someone already rotated the token after our request went out
            return current

        inflight = self._refreshing.get(kind)
        if inflight is None:
            inflight = asyncio.ensure_future(self._tokens.refresh(kind))
            self._refreshing[kind] = inflight

            def _settle(future: asyncio.Future, settled_kind: TokenKind = kind) -> None:
                if self._refreshing.get(settled_kind) is future:
                    del self._refreshing[settled_kind]

            inflight.add_done_callback(_settle)

        try:
            token = await asyncio.shield(inflight)
        except StorefrontError as e:
            self._logger.warning("Token refresh for %s failed: %s", kind.value, e)
            return None
        return token.value if token else None

    async def _send(
        self,
        method: str,
        path: str,
        token: Optional[str],
        json: Any,
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        started = time.perf_counter()
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.RequestError as e:
            log_performance(PerformanceLog(
                method=method,
                endpoint=path,
                response_time=time.perf_counter() - started,
                status="network_error",
            ))
            raise TransportError(
                TransportFailure.NETWORK, f"{method} {path} failed: {e}"
            ) from e

        log_performance(PerformanceLog(
            method=method,
            endpoint=path,
            response_time=time.perf_counter() - started,
            status="success" if response.is_success else "error",
            status_code=response.status_code,
        ))
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code >= 400:
            raise TransportError.from_response(response)
        if not response.content:
            return None
        return response.json()
