"""
Shopper session use case

The boundary a view talks to: it reads the cart, subscribes to changes and
triggers the login/logout transitions. Views own no session state.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Optional

from storefront.domain.entities.cart_entity import Cart, Totals, item_count, subtotal
from storefront.domain.entities.identity import UserProfile
from storefront.infrastructure.utilities.exceptions import SessionStateError, StorefrontError
from storefront.services.cart_refresher import CartRefresher
from storefront.services.cart_service import CartService
from storefront.services.token_service import TokenService
from storefront.session_context import SessionContext

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    """Outcome of a login, including how the guest cart merge went"""

    profile: UserProfile
    cart: Cart
    merge_failures: Dict[str, str] = field(default_factory=dict)

    @property
    def merged_cleanly(self) -> bool:
        return not self.merge_failures


class ShopperSessionUseCase:
    """
    Use case for a shopper's session

    Handles:
    1. Restoring the session at startup
    2. Login with guest cart merge, and logout
    3. Cart mutations, coupons and totals
    4. Cart change notification for views
    """

    def __init__(
        self,
        context: SessionContext,
        token_service: TokenService,
        cart_service: CartService,
        refresher: CartRefresher,
    ):
        self._context = context
        self._token_service = token_service
        self._cart_service = cart_service
        self._refresher = refresher
        self._logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> Optional[Cart]:
        """Restore identity and cart from durable storage"""
        identity = await self._context.init()
        cart = None
        if self._context.is_authenticated:
            cart = await self._load_cart()
            if self._context.is_authenticated:
                self._refresher.start()
        elif identity.cart_id:
            cart = await self._load_cart()
        else:
            self._logger.info("Fresh guest session; cart will be created on first add")
        return cart

    async def shutdown(self) -> None:
        await self._refresher.stop()

    async def _load_cart(self) -> Optional[Cart]:
        try:
            return await self._cart_service.get_cart()
        except StorefrontError as e:
            self._logger.warning("Could not restore cart: %s", e)
            return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def on_cart_changed(self, listener: Callable[[Cart], None]) -> Callable[[], None]:
        return self._context.cart_store.subscribe(listener)

    def current_cart(self) -> Cart:
        return self._context.cart_store.current or Cart.empty()

    def item_count(self) -> int:
        return item_count(self._context.cart_store.current)

    def subtotal(self) -> Decimal:
        return subtotal(self._context.cart_store.current)

    def is_authenticated(self) -> bool:
        return self._token_service.is_authenticated()

    def current_profile(self) -> Optional[UserProfile]:
        return self._context.profile

    # ------------------------------------------------------------------
    # Identity transitions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        """
        Sign in and merge the guest cart before returning.

        A failed merge is logged; the login itself still stands and the
        customer cart is loaded as it is on the server.

        Raises:
            AuthError: the credentials were rejected or the service is down.
            SessionStateError: the session was signed out while merging.
        """
        await self._token_service.login(email, password)

        cart: Optional[Cart] = None
        failures: Dict[str, str] = {}
        try:
            outcome = await self._cart_service.merge_guest_cart()
            cart = outcome.cart
            failures = outcome.failed
        except StorefrontError as e:
            self._logger.error("💥 MERGE FAILED: %s", e)

        if not self._context.is_authenticated:
            raise SessionStateError("Signed out before the login completed")
        if cart is None:
            cart = await self._load_cart() or Cart.empty()

        self._refresher.start()
        return LoginResult(profile=self._context.profile, cart=cart, merge_failures=failures)

    async def logout(self) -> None:
        """Stop background work, drop tokens and clear the cart"""
        await self._refresher.stop()
        await self._token_service.logout()
        self._cart_service.clear()

    # ------------------------------------------------------------------
    # Cart operations
    # ------------------------------------------------------------------

    async def add_item(self, sku: str, qty: int = 1) -> Cart:
        """Add to cart, opening a guest cart first when there is none"""
        if not self._context.is_authenticated and not self._context.cart_store.guest_cart_id:
            await self._cart_service.create_cart()
        return await self._cart_service.add_item(sku, qty)

    async def update_item_qty(self, item_id: int, qty: int) -> Cart:
        return await self._cart_service.update_item_qty(item_id, qty)

    async def remove_item(self, item_id: int) -> Cart:
        return await self._cart_service.remove_item(item_id)

    async def apply_coupon(self, code: str) -> Cart:
        return await self._cart_service.apply_coupon(code)

    async def remove_coupon(self) -> Cart:
        return await self._cart_service.remove_coupon()

    async def get_totals(self) -> Totals:
        return await self._cart_service.get_totals()
