"""
Session context

Process-wide shopper session: the current identity, the shared stores and
the HTTP client. Services receive it by injection. ``epoch`` increases on
every identity switch (login, logout) so in-flight operations can tell
that the identity they started under is gone.
"""

import logging
from typing import Optional

import httpx

from storefront.config import Settings
from storefront.domain.entities.identity import (
    CustomerIdentity,
    GuestIdentity,
    Identity,
    UserProfile,
)
from storefront.domain.entities.token import Token, TokenKind
from storefront.infrastructure.cache.cache_manager import CacheManager
from storefront.infrastructure.storage.cart_store import CartStore
from storefront.infrastructure.storage.token_store import TokenStore

logger = logging.getLogger(__name__)


class SessionContext:
    """Identity plus the shared resources of one shopper session"""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        token_store: TokenStore,
        cart_store: CartStore,
        cache_manager: CacheManager,
    ):
        self.settings = settings
        self.http_client = http_client
        self.token_store = token_store
        self.cart_store = cart_store
        self.cache_manager = cache_manager
        self.epoch = 0
        self._customer: Optional[CustomerIdentity] = None
        self._disposed = False

    async def init(self) -> Identity:
        """Restore the identity persisted by a previous run"""
        token = self.token_store.get_token(TokenKind.CUSTOMER)
        profile = self.token_store.get_profile()
        if token and profile:
            self._customer = CustomerIdentity(token=token.value, profile=profile)
        else:
            self._customer = None
        identity = self.identity
        logger.info("Session initialised as %s", identity.kind.value)
        return identity

    async def dispose(self) -> None:
        """Close the HTTP client and release storage handles"""
        if self._disposed:
            return
        self._disposed = True
        await self.http_client.aclose()
        self.token_store.close()
        self.cart_store.close()
        logger.info("Session disposed")

    @property
    def identity(self) -> Identity:
        if self._customer is not None:
            return self._customer
        return GuestIdentity(cart_id=self.cart_store.guest_cart_id)

    @property
    def is_authenticated(self) -> bool:
        return self._customer is not None

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._customer.profile if self._customer else None

    def become_customer(self, token: Token, profile: UserProfile) -> None:
        self._customer = CustomerIdentity(token=token.value, profile=profile)
        self.epoch += 1

    def rotate_customer_token(self, token: Token) -> None:
        """Same customer, new token; in-flight work stays valid"""
        if self._customer is not None:
            self._customer = CustomerIdentity(token=token.value, profile=self._customer.profile)

    def become_guest(self) -> None:
        self._customer = None
        self.epoch += 1
