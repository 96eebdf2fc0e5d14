"""
Cart service

Reconciles the session cart with the commerce API. Every mutation is
followed by a full re-fetch (read-after-write) and mutations on the same
cart are serialized. Responses that arrive after the identity changed are
dropped instead of applied.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from storefront.domain.entities.cart_entity import Cart, CartHandle, Totals
from storefront.domain.entities.identity import IdentityKind
from storefront.infrastructure.http.request_gateway import RequestGateway
from storefront.infrastructure.utilities.constants import ApiPaths, HttpSettings
from storefront.infrastructure.utilities.exceptions import (
    CartError,
    CartFailure,
    SessionStateError,
    StorefrontError,
    TransportError,
    TransportFailure,
    ValidationError,
)
from storefront.session_context import SessionContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartScope:
    """Where a cart operation is addressed"""

    kind: IdentityKind
    base_path: str
    cart_id: Optional[str] = None

    @property
    def lock_key(self) -> str:
        if self.kind is IdentityKind.CUSTOMER:
            return "mine"
        return f"guest:{self.cart_id}"


@dataclass(frozen=True)
class MergeOutcome:
    """Result of folding the guest cart into the customer cart"""

    cart: Cart
    merged: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class CartService:
    """Service for cart operations under the current identity"""

    def __init__(self, context: SessionContext, gateway: RequestGateway):
        self._context = context
        self._gateway = gateway
        self._store = context.cart_store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Cart lifecycle
    # ------------------------------------------------------------------

    async def create_cart(self) -> CartHandle:
        """
        Resolve "my cart" for a customer, or open a new guest cart.

        The customer call is idempotent server-side. A new guest cart id is
        persisted so later operations can address it.
        """
        epoch = self._context.epoch
        if self._context.is_authenticated:
            quote_id = await self._gateway.post(ApiPaths.CUSTOMER_CART)
            self._logger.info("🛒 CART: customer cart resolved (%s)", quote_id)
            return CartHandle(IdentityKind.CUSTOMER, str(quote_id) if quote_id is not None else None)

        cart_id = await self._gateway.post(ApiPaths.GUEST_CARTS)
        if not cart_id:
            raise CartError(CartFailure.UNAVAILABLE, "Guest cart creation returned no id")
        cart_id = str(cart_id)
        if self._is_current(epoch):
            self._store.set_guest_cart_id(cart_id)
        self._logger.info("🛒 CART: guest cart %s created", cart_id)
        return CartHandle(IdentityKind.GUEST, cart_id)

    async def get_cart(self, cart_id: Optional[str] = None) -> Cart:
        """
        Fetch the authoritative cart and replace the in-memory copy.

        Falls back to the last durable snapshot when the API cannot be
        reached.

        Raises:
            CartError: MISSING_GUEST_ID for a guest without a cart id,
                UNAVAILABLE when the fetch failed and no snapshot exists.
        """
        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            return await self._fetch(scope, epoch)

    def clear(self) -> None:
        """Drop the in-memory cart and every durable cart record"""
        self._store.clear()
        self._logger.info("🧹 CART: session cart cleared")

    # ------------------------------------------------------------------
    # Line mutations
    # ------------------------------------------------------------------

    async def add_item(self, sku: str, qty: int = 1, cart_id: Optional[str] = None) -> Cart:
        """Add a SKU (the server merges repeated SKUs) and re-fetch"""
        if not sku:
            raise ValidationError("SKU is required", field="sku")
        if qty < 1:
            raise ValidationError("Quantity must be at least 1", field="qty")

        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            await self._post_line(scope, sku, qty)
            self._logger.info("➕ CART: added %s x%d", sku, qty)
            return await self._fetch(scope, epoch)

    async def update_item_qty(self, item_id: int, qty: int, cart_id: Optional[str] = None) -> Cart:
        """Set a line's quantity; zero or less removes the line"""
        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            self._require_item(scope, item_id)
            if qty <= 0:
                await self._gateway.delete(f"{scope.base_path}/items/{item_id}")
                self._logger.info("➖ CART: removed item %s (qty %d)", item_id, qty)
            else:
                payload = {"cartItem": self._line_payload(scope, item_id=item_id, qty=qty)}
                await self._gateway.put(f"{scope.base_path}/items/{item_id}", json=payload)
                self._logger.info("✏️ CART: item %s set to qty %d", item_id, qty)
            return await self._fetch(scope, epoch)

    async def remove_item(self, item_id: int, cart_id: Optional[str] = None) -> Cart:
        """Delete a line and re-fetch"""
        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            self._require_item(scope, item_id)
            await self._gateway.delete(f"{scope.base_path}/items/{item_id}")
            self._logger.info("➖ CART: removed item %s", item_id)
            return await self._fetch(scope, epoch)

    # ------------------------------------------------------------------
    # Coupons and totals
    # ------------------------------------------------------------------

    async def apply_coupon(self, code: str, cart_id: Optional[str] = None) -> Cart:
        """
        Apply a coupon code and re-fetch.

        Raises:
            CartError: INVALID_COUPON when the API rejects the code.
            TransportError: any other failure.
        """
        code = (code or "").strip()
        if not code:
            raise ValidationError("Coupon code is required", field="code")

        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            try:
                await self._gateway.put(f"{scope.base_path}/coupons/{quote(code, safe='')}")
            except TransportError as e:
                if e.kind is TransportFailure.SERVER_FAULT and e.status in HttpSettings.INVALID_COUPON_STATUSES:
                    self._logger.info("🏷️ CART: coupon %s rejected", code)
                    raise CartError(CartFailure.INVALID_COUPON, f"Coupon {code!r} rejected: {e}") from e
                raise
            self._logger.info("🏷️ CART: coupon %s applied", code)
            return await self._fetch(scope, epoch)

    async def remove_coupon(self, cart_id: Optional[str] = None) -> Cart:
        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            await self._gateway.delete(f"{scope.base_path}/coupons")
            return await self._fetch(scope, epoch)

    async def get_totals(self, cart_id: Optional[str] = None) -> Totals:
        """Server-computed totals, memoised on the in-memory cart until it changes"""
        epoch = self._context.epoch
        scope = self._resolve_scope(cart_id)
        async with self._lock_for(scope):
            self._ensure_same_identity(epoch)
            current = self._store.current
            if current is not None and current.totals is not None and self._store.current_kind is scope.kind:
                return current.totals

            payload = await self._gateway.get(f"{scope.base_path}/totals")
            totals = Totals.from_api(payload or {})
            if totals.currency is None:
                totals = replace(totals, currency=self._context.settings.currency)
            if self._is_current(epoch) and self._store.current_kind is scope.kind:
                self._store.set_totals(totals)
            return totals

    # ------------------------------------------------------------------
    # Login transition
    # ------------------------------------------------------------------

    async def merge_guest_cart(self) -> MergeOutcome:
        """
        Fold the guest cart into the customer cart.

        The guest lines are read from the server once pending guest
        mutations have finished, falling back to the guest snapshot. The
        customer cart is resolved next, then every guest line is
        re-added (the server merges repeated SKUs). A failing line is
        logged and skipped. The guest records are cleared and the merged
        cart is fetched and returned.

        Raises:
            SessionStateError: no customer is signed in, or the identity
                changed while merging.
        """
        if not self._context.is_authenticated:
            raise SessionStateError("Guest cart can only be merged into a signed-in customer's cart")

        epoch = self._context.epoch
        guest_cart = await self._guest_cart_for_merge()
        self._ensure_same_identity(epoch)
        handle = await self.create_cart()
        scope = CartScope(IdentityKind.CUSTOMER, ApiPaths.CUSTOMER_CART, handle.cart_id)

        merged: List[str] = []
        failed: Dict[str, str] = {}
        async with self._lock_for(scope):
            for item in guest_cart.items if guest_cart else []:
                self._ensure_same_identity(epoch)
                try:
                    await self._post_line(scope, item.sku, item.qty)
                    merged.append(item.sku)
                except StorefrontError as e:
                    self._logger.warning("⚠️ MERGE: could not carry over %s x%d: %s", item.sku, item.qty, e)
                    failed[item.sku] = str(e)

            self._ensure_same_identity(epoch)
            self._store.clear_guest()
            cart = await self._fetch(scope, epoch)

        self._logger.info(
            "🔀 MERGE: %d guest lines merged, %d failed, cart now has %d lines",
            len(merged),
            len(failed),
            len(cart.items),
        )
        return MergeOutcome(cart=cart, merged=merged, failed=failed)

    async def _guest_cart_for_merge(self) -> Optional[Cart]:
        guest_id = self._store.guest_cart_id
        if not guest_id:
            return self._store.snapshot(IdentityKind.GUEST)

        scope = CartScope(IdentityKind.GUEST, f"{ApiPaths.GUEST_CARTS}/{guest_id}", guest_id)
        async with self._lock_for(scope):
            try:
                payload = await self._gateway.get(scope.base_path)
            except TransportError as e:
                self._logger.warning("⚠️ MERGE: guest cart unreadable (%s); using last saved copy", e)
                return self._store.snapshot(IdentityKind.GUEST)
        return Cart.from_api(payload or {})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_scope(self, cart_id: Optional[str]) -> CartScope:
        if self._context.is_authenticated:
            current = self._store.current
            known_id = current.id if current and self._store.current_kind is IdentityKind.CUSTOMER else None
            return CartScope(IdentityKind.CUSTOMER, ApiPaths.CUSTOMER_CART, known_id)

        cart_id = cart_id or self._store.guest_cart_id
        if not cart_id:
            raise CartError(CartFailure.MISSING_GUEST_ID, "Guest has no cart id yet")
        return CartScope(IdentityKind.GUEST, f"{ApiPaths.GUEST_CARTS}/{cart_id}", cart_id)

    def _lock_for(self, scope: CartScope) -> asyncio.Lock:
        return self._locks.setdefault(scope.lock_key, asyncio.Lock())

    def _is_current(self, epoch: int) -> bool:
        return self._context.epoch == epoch

    def _ensure_same_identity(self, epoch: int) -> None:
        if not self._is_current(epoch):
            raise SessionStateError("Identity changed while the cart operation was pending")

    def _require_item(self, scope: CartScope, item_id: int) -> None:
        current = self._store.current
        if current is None or self._store.current_kind is not scope.kind or current.find_item(item_id) is None:
            raise CartError(CartFailure.ITEM_NOT_FOUND, f"Item {item_id} is not in the cart")

    @staticmethod
    def _line_payload(scope: CartScope, **fields: Any) -> Dict[str, Any]:
        payload = dict(fields)
        if scope.cart_id is not None:
            payload["quote_id"] = scope.cart_id
        return payload

    async def _post_line(self, scope: CartScope, sku: str, qty: int) -> None:
        payload = {"cartItem": self._line_payload(scope, sku=sku, qty=qty)}
        await self._gateway.post(f"{scope.base_path}/items", json=payload)

    async def _fetch(self, scope: CartScope, epoch: int) -> Cart:
        """Read the cart; caller holds the scope lock"""
        try:
            payload = await self._gateway.get(scope.base_path)
        except TransportError as e:
            snapshot = self._store.snapshot(scope.kind)
            if snapshot is None:
                raise CartError(CartFailure.UNAVAILABLE, f"Cart fetch failed: {e}") from e
            self._logger.warning("📦 CART: fetch failed (%s); showing last saved %s cart", e, scope.kind.value)
            if self._is_current(epoch):
                self._store.restore(snapshot, scope.kind)
            return snapshot

        cart = Cart.from_api(payload or {})
        if cart.id is None and scope.cart_id is not None:
            cart = replace(cart, id=scope.cart_id)

        if not self._is_current(epoch):
            self._logger.info("Discarding cart response for a previous identity")
            return cart
        self._store.replace(cart, scope.kind)
        return cart
