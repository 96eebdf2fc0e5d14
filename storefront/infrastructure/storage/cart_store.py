"""
Cart store

Holds the in-memory cart and mirrors it to durable storage keyed by
identity kind: the guest snapshot goes to session-scoped storage, the
customer snapshot and the guest cart id to persistent storage. Only
CartService writes here.
"""

import logging
from typing import Callable, List, Optional

from storefront.domain.entities.cart_entity import Cart, Totals
from storefront.domain.entities.identity import IdentityKind
from storefront.domain.repositories.key_value_repository import KeyValueRepository
from storefront.infrastructure.utilities.constants import StorageKeys

logger = logging.getLogger(__name__)

CartListener = Callable[[Cart], None]


class CartStore:
    """Single owner of the session cart"""

    def __init__(self, persistent: KeyValueRepository, session: KeyValueRepository):
        self._persistent = persistent
        self._session = session
        self._cart: Optional[Cart] = None
        self._kind: Optional[IdentityKind] = None
        self._listeners: List[CartListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def current(self) -> Optional[Cart]:
        return self._cart

    @property
    def current_kind(self) -> Optional[IdentityKind]:
        return self._kind

    @property
    def guest_cart_id(self) -> Optional[str]:
        return self._persistent.get(StorageKeys.GUEST_CART_ID)

    def snapshot(self, kind: IdentityKind) -> Optional[Cart]:
        """Last mirrored durable copy for an identity kind"""
        storage, key = self._snapshot_location(kind)
        try:
            data = storage.get_json(key)
            return Cart.from_dict(data) if data else None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable %s cart snapshot: %s", kind.value, e)
            storage.delete(key)
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_guest_cart_id(self, cart_id: str) -> None:
        self._persistent.set(StorageKeys.GUEST_CART_ID, cart_id)

    def replace(self, cart: Cart, kind: IdentityKind) -> None:
        """Replace the in-memory cart with fresh server state and mirror it"""
        self._cart = cart
        self._kind = kind
        storage, key = self._snapshot_location(kind)
        storage.set_json(key, cart.to_dict())
        self._notify()

    def restore(self, cart: Cart, kind: IdentityKind) -> None:
        """Show a durable snapshot without re-mirroring it"""
        self._cart = cart
        self._kind = kind
        self._notify()

    def set_totals(self, totals: Totals) -> None:
        if self._cart is None:
            return
        self._cart = self._cart.with_totals(totals)
        self._notify()

    def clear_guest(self) -> None:
        """Forget the guest cart id and the guest snapshot"""
        self._persistent.delete(StorageKeys.GUEST_CART_ID)
        self._session.delete(StorageKeys.GUEST_CART_SNAPSHOT)
        if self._kind is IdentityKind.GUEST:
            self._cart = None
            self._kind = None

    def clear(self) -> None:
        """Drop the in-memory cart and every cart key"""
        self._cart = None
        self._kind = None
        self._persistent.delete(StorageKeys.CUSTOMER_CART_SNAPSHOT)
        self.clear_guest()
        self._notify()

    def close(self) -> None:
        self._persistent.close()
        self._session.close()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a change callback; returns a function that unregisters it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        cart = self._cart or Cart.empty()
        for listener in list(self._listeners):
            try:
                listener(cart)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Cart listener %r failed", listener)

    def _snapshot_location(self, kind: IdentityKind) -> tuple[KeyValueRepository, str]:
        if kind is IdentityKind.CUSTOMER:
            return self._persistent, StorageKeys.CUSTOMER_CART_SNAPSHOT
        return self._session, StorageKeys.GUEST_CART_SNAPSHOT
