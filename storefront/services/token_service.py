"""
Token service

Owns the bearer-token lifecycle: the single admin-token acquisition path,
customer login/logout and on-demand refresh. Implements the TokenSource
protocol consumed by RequestGateway.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

import httpx
from pydantic import SecretStr

from storefront.domain.entities.identity import UserProfile
from storefront.domain.entities.token import Token, TokenKind
from storefront.infrastructure.utilities.constants import ApiPaths, CacheSettings, HttpSettings
from storefront.infrastructure.utilities.exceptions import AuthError, AuthFailure
from storefront.session_context import SessionContext

logger = logging.getLogger(__name__)


class TokenService:
    """Service for token acquisition, login and refresh"""

    def __init__(self, context: SessionContext):
        self._context = context
        self._store = context.token_store
        self._client = context.http_client
        self._settings = context.settings
        self._admin_acquisition: Optional[asyncio.Future] = None
        # Last successful login, kept in memory only for customer refresh
        self._credentials: Optional[Tuple[str, SecretStr]] = None
        self._session_end_listeners: List[Callable[[], None]] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_authenticated(self) -> bool:
        return self._context.is_authenticated

    def peek_token(self, kind: TokenKind) -> Optional[str]:
        token = self._store.get_token(kind)
        return token.value if token else None

    async def token_for(self, kind: TokenKind) -> Optional[str]:
        """Token to attach for a request of the given kind"""
        if kind is TokenKind.ADMIN:
            return (await self.get_admin_token()).value
        return self.peek_token(TokenKind.CUSTOMER)

    # ------------------------------------------------------------------
    # Admin token
    # ------------------------------------------------------------------

    async def get_admin_token(self) -> Token:
        """Return the stored admin token, acquiring one if none is cached"""
        stored = self._store.get_token(TokenKind.ADMIN)
        if stored:
            return stored
        return await self._acquire_admin_token()

    async def _acquire_admin_token(self) -> Token:
        # Concurrent callers share one token request
        if self._admin_acquisition is None:
            self._admin_acquisition = asyncio.ensure_future(self._request_admin_token())
            self._admin_acquisition.add_done_callback(self._clear_admin_acquisition)
        return await asyncio.shield(self._admin_acquisition)

    def _clear_admin_acquisition(self, future: asyncio.Future) -> None:
        if self._admin_acquisition is future:
            self._admin_acquisition = None

    async def _request_admin_token(self) -> Token:
        self._logger.info("🔑 ADMIN TOKEN: requesting a new service token")
        value = await self._post_for_token(
            ApiPaths.ADMIN_TOKEN, self._settings.admin_username, self._settings.admin_password
        )
        token = Token(value=value, kind=TokenKind.ADMIN)
        self._store.set_token(token)

        # Reads cached under the previous admin token are no longer trusted
        dropped = self._context.cache_manager.invalidate_scope(CacheSettings.ADMIN_SCOPE)
        self._logger.info("✅ ADMIN TOKEN: stored, %d cached entries invalidated", dropped)
        return token

    # ------------------------------------------------------------------
    # Customer session
    # ------------------------------------------------------------------

    async def login(self, identifier: str, secret: str) -> Token:
        """
        Authenticate a customer and store token and profile.

        Stored state is untouched unless both the token and the profile
        were obtained.

        Raises:
            AuthError: INVALID_CREDENTIALS on 401/422, SERVICE_UNAVAILABLE
                on network failure or any other error status.
        """
        self._logger.info("🔐 LOGIN: authenticating %s", identifier)
        value = await self._post_for_token(ApiPaths.CUSTOMER_TOKEN, identifier, secret)
        profile = await self.fetch_profile(value)

        token = Token(value=value, kind=TokenKind.CUSTOMER)
        self._store.set_token(token)
        self._store.set_profile(profile)
        self._credentials = (identifier, SecretStr(secret))
        self._context.become_customer(token, profile)
        self._logger.info("✅ LOGIN: customer %s authenticated", profile.id)
        return token

    async def fetch_profile(self, token_value: str) -> UserProfile:
        """Fetch /customers/me with an explicit customer token"""
        try:
            response = await self._client.get(
                ApiPaths.CUSTOMER_ME, headers={"Authorization": f"Bearer {token_value}"}
            )
        except httpx.RequestError as e:
            raise AuthError(AuthFailure.SERVICE_UNAVAILABLE, f"Profile fetch failed: {e}") from e

        if response.status_code in HttpSettings.INVALID_CREDENTIAL_STATUSES:
            raise AuthError(AuthFailure.INVALID_CREDENTIALS, "Customer token rejected by /customers/me")
        if response.is_error:
            raise AuthError(
                AuthFailure.SERVICE_UNAVAILABLE,
                f"Profile fetch failed with status {response.status_code}",
            )
        try:
            return UserProfile.from_api(response.json())
        except (KeyError, TypeError, ValueError) as e:
            raise AuthError(AuthFailure.SERVICE_UNAVAILABLE, f"Malformed profile: {e}") from e

    async def logout(self) -> None:
        """
        Clear every token and the profile, then tell the server.

        Local logout always succeeds; the server call is best-effort.
        """
        token = self._store.get_token(TokenKind.CUSTOMER)
        self._clear_local_session()
        self._logger.info("👋 LOGOUT: local session cleared")

        if token is None:
            return
        try:
            response = await self._client.post(
                ApiPaths.CUSTOMER_LOGOUT, headers={"Authorization": token.authorization_header}
            )
            if response.is_error:
                self._logger.warning("Server logout answered %s", response.status_code)
        except httpx.RequestError as e:
            self._logger.warning("Server logout unreachable: %s", e)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, kind: TokenKind) -> Optional[Token]:
        """
        Re-acquire a token of the given kind.

        Returns None when there is nothing to refresh from (no service
        credentials, no customer session or no in-memory credentials).

        Raises:
            AuthError: the token endpoint was unreachable, or the service
                credentials were rejected.
        """
        if kind is TokenKind.ADMIN:
            if not self._settings.admin_username:
                self._logger.warning("Cannot refresh admin token: no service credentials configured")
                return None
            self._store.clear_token(TokenKind.ADMIN)
            return await self._acquire_admin_token()

        if not self._context.is_authenticated:
            self._logger.warning("Cannot refresh customer token: no customer signed in")
            return None
        if self._credentials is None:
            self._logger.warning("Customer token expired and cannot be renewed; ending the session")
            self._end_customer_session()
            return None

        epoch = self._context.epoch
        identifier, secret = self._credentials
        try:
            value = await self._post_for_token(
                ApiPaths.CUSTOMER_TOKEN, identifier, secret.get_secret_value()
            )
        except AuthError as e:
            if e.reason is AuthFailure.INVALID_CREDENTIALS:
                self._logger.warning("Customer credentials no longer accepted; ending the session")
                if self._context.epoch == epoch:
                    self._end_customer_session()
                return None
            raise

        if self._context.epoch != epoch:
            self._logger.info("Identity changed during customer refresh; discarding new token")
            return None

        token = Token(value=value, kind=TokenKind.CUSTOMER)
        self._store.set_token(token)
        self._context.rotate_customer_token(token)
        self._logger.info("🔄 CUSTOMER TOKEN: refreshed")
        return token

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _post_for_token(self, path: str, username: str, password: str) -> str:
        try:
            response = await self._client.post(path, json={"username": username, "password": password})
        except httpx.RequestError as e:
            self._logger.error("💥 TOKEN REQUEST FAILED: %s %s", path, e)
            raise AuthError(AuthFailure.SERVICE_UNAVAILABLE, f"{path} unreachable: {e}") from e

        if response.status_code in HttpSettings.INVALID_CREDENTIAL_STATUSES:
            raise AuthError(AuthFailure.INVALID_CREDENTIALS, f"{path} rejected the credentials")
        if response.is_error:
            raise AuthError(
                AuthFailure.SERVICE_UNAVAILABLE, f"{path} answered {response.status_code}"
            )

        try:
            value = response.json()
        except ValueError as e:
            raise AuthError(AuthFailure.SERVICE_UNAVAILABLE, f"{path} returned no token") from e
        if not isinstance(value, str) or not value:
            raise AuthError(AuthFailure.SERVICE_UNAVAILABLE, f"{path} returned no token")
        return value

    # ------------------------------------------------------------------
    # Session teardown
    # ------------------------------------------------------------------

    def on_session_ended(self, listener: Callable[[], None]) -> None:
        """Register a callback run when a customer session ends without logout"""
        self._session_end_listeners.append(listener)

    def _clear_local_session(self) -> None:
        self._credentials = None
        self._store.clear()
        self._context.become_guest()

    def _end_customer_session(self) -> None:
        self._clear_local_session()
        for listener in list(self._session_end_listeners):
            try:
                listener()
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Session end listener %r failed", listener)
        self._logger.info("🔒 SESSION ENDED: customer token could not be renewed")
