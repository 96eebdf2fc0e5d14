"""
Tests for CartService - read-after-write, serialization and failure handling
"""

import asyncio
from decimal import Decimal

import pytest

from storefront.domain.entities import IdentityKind
from storefront.infrastructure.utilities.constants import StorageKeys
from storefront.infrastructure.utilities.exceptions import (
    CartError,
    CartFailure,
    SessionStateError,
    TransportError,
    ValidationError,
)


@pytest.fixture
def cart_service(container):
    return container.cart_service


@pytest.fixture
def cart_store(container):
    return container.context.cart_store


async def _guest_cart(cart_service, *lines):
    handle = await cart_service.create_cart()
    for sku, qty in lines:
        await cart_service.add_item(sku, qty)
    return handle


class TestGuestCart:
    """Test guest cart lifecycle"""

    @pytest.mark.asyncio
    async def test_missing_guest_id_is_an_error(self, cart_service):
        with pytest.raises(CartError) as exc_info:
            await cart_service.get_cart()

        assert exc_info.value.reason is CartFailure.MISSING_GUEST_ID

        with pytest.raises(CartError):
            await cart_service.add_item("A")

    @pytest.mark.asyncio
    async def test_create_cart_stores_guest_id(self, cart_service, cart_store, persistent_store):
        handle = await cart_service.create_cart()

        assert handle.kind is IdentityKind.GUEST
        assert cart_store.guest_cart_id == handle.cart_id
        assert persistent_store.get(StorageKeys.GUEST_CART_ID) == handle.cart_id

    @pytest.mark.asyncio
    async def test_add_item_reads_after_write(self, cart_service, cart_store, backend):
        handle = await _guest_cart(cart_service)

        cart = await cart_service.add_item("A", 2)

        assert cart.id == handle.cart_id
        assert [(item.sku, item.qty) for item in cart.items] == [("A", 2)]
        assert cart_store.current == cart
        assert cart_store.snapshot(IdentityKind.GUEST) == cart
        assert backend.requests[-2:] == [
            ("POST", f"/guest-carts/{handle.cart_id}/items"),
            ("GET", f"/guest-carts/{handle.cart_id}"),
        ]

    @pytest.mark.asyncio
    async def test_same_sku_merges_into_one_line(self, cart_service):
        await _guest_cart(cart_service, ("A", 1))

        cart = await cart_service.add_item("A", 2)

        assert len(cart.items) == 1
        assert cart.items[0].qty == 3

    @pytest.mark.asyncio
    async def test_explicit_cart_id(self, cart_service):
        handle = await cart_service.create_cart()
        cart_service._store.clear_guest()

        cart = await cart_service.add_item("B", 1, cart_id=handle.cart_id)

        assert cart.items[0].sku == "B"

    @pytest.mark.asyncio
    async def test_non_positive_quantity_rejected(self, cart_service):
        await _guest_cart(cart_service)

        with pytest.raises(ValidationError) as exc_info:
            await cart_service.add_item("A", 0)

        assert exc_info.value.field == "qty"


class TestSerialization:
    """Test per-cart mutation ordering"""

    @pytest.mark.asyncio
    async def test_concurrent_adds_do_not_overlap(self, cart_service, backend):
        await _guest_cart(cart_service)
        backend.latency = 0.01
        backend.max_in_flight = 0

        results = await asyncio.gather(
            cart_service.add_item("A", 1),
            cart_service.add_item("B", 1),
            cart_service.add_item("C", 1),
        )

        assert backend.max_in_flight == 1
        assert [len(cart.items) for cart in results] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_refresh_waits_for_mutation(self, cart_service, backend, cart_store):
        await _guest_cart(cart_service)
        backend.latency = 0.01
        backend.max_in_flight = 0

        _, fetched = await asyncio.gather(cart_service.add_item("A", 1), cart_service.get_cart())

        assert backend.max_in_flight == 1
        assert len(fetched.items) == 1
        assert cart_store.current.items[0].sku == "A"


class TestLineUpdates:
    """Test quantity updates and removal"""

    @pytest.mark.asyncio
    async def test_update_quantity(self, cart_service):
        await _guest_cart(cart_service, ("A", 1))
        item_id = cart_service._store.current.items[0].item_id

        cart = await cart_service.update_item_qty(item_id, 5)

        assert cart.items[0].qty == 5

    @pytest.mark.asyncio
    async def test_zero_quantity_removes_line(self, cart_service, backend):
        handle = await _guest_cart(cart_service, ("A", 1), ("B", 1))
        item_id = cart_service._store.current.find_by_sku("A").item_id

        cart = await cart_service.update_item_qty(item_id, 0)

        assert [item.sku for item in cart.items] == ["B"]
        assert ("DELETE", f"/guest-carts/{handle.cart_id}/items/{item_id}") in backend.requests

    @pytest.mark.asyncio
    async def test_remove_item(self, cart_service):
        await _guest_cart(cart_service, ("A", 1))
        item_id = cart_service._store.current.items[0].item_id

        cart = await cart_service.remove_item(item_id)

        assert cart.items == []

    @pytest.mark.asyncio
    async def test_unknown_item(self, cart_service, backend):
        await _guest_cart(cart_service, ("A", 1))
        sent = len(backend.requests)

        with pytest.raises(CartError) as exc_info:
            await cart_service.update_item_qty(999, 2)
        assert exc_info.value.reason is CartFailure.ITEM_NOT_FOUND

        with pytest.raises(CartError):
            await cart_service.remove_item(999)
        assert len(backend.requests) == sent


class TestReadFallback:
    """Test snapshot fallback on failed reads"""

    @pytest.mark.asyncio
    async def test_network_failure_shows_last_snapshot(self, cart_service, cart_store, backend):
        await _guest_cart(cart_service, ("A", 2))
        backend.network_down = True

        cart = await cart_service.get_cart()

        assert [(item.sku, item.qty) for item in cart.items] == [("A", 2)]
        assert cart_store.current == cart

    @pytest.mark.asyncio
    async def test_no_snapshot_means_unavailable(self, cart_service, backend):
        await cart_service.create_cart()
        backend.network_down = True

        with pytest.raises(CartError) as exc_info:
            await cart_service.get_cart()

        assert exc_info.value.reason is CartFailure.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_guest_read_falls_back_when_admin_token_unobtainable(self, cart_service, backend):
        await _guest_cart(cart_service, ("A", 2))
        backend.expire_tokens()
        backend.fail_next("POST", "/integration/admin/token", 503)

        first = await cart_service.get_cart()
        backend.network_down = True
        second = await cart_service.get_cart()

        assert [(item.sku, item.qty) for item in first.items] == [("A", 2)]
        assert second == first

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, cart_service, backend):
        handle = await _guest_cart(cart_service, ("A", 1))
        backend.fail_next("POST", f"/guest-carts/{handle.cart_id}/items", 500)

        with pytest.raises(TransportError) as exc_info:
            await cart_service.add_item("B", 1)

        assert exc_info.value.status == 500


class TestCouponsAndTotals:
    """Test coupon operations and totals"""

    @pytest.mark.asyncio
    async def test_apply_coupon_and_totals(self, cart_service):
        await _guest_cart(cart_service, ("A", 2))

        await cart_service.apply_coupon("SAVE10")
        totals = await cart_service.get_totals()

        assert totals.subtotal == Decimal("20")
        assert totals.discount == Decimal("2")
        assert totals.grand_total == Decimal("18")
        assert totals.coupon_code == "SAVE10"

    @pytest.mark.asyncio
    async def test_invalid_coupon(self, cart_service):
        await _guest_cart(cart_service, ("A", 1))

        with pytest.raises(CartError) as exc_info:
            await cart_service.apply_coupon("BOGUS")

        assert exc_info.value.reason is CartFailure.INVALID_COUPON
        assert exc_info.value.user_message == "This coupon code is not valid."

    @pytest.mark.asyncio
    async def test_coupon_server_fault_is_transport_error(self, cart_service, backend):
        handle = await _guest_cart(cart_service, ("A", 1))
        backend.fail_next("PUT", f"/guest-carts/{handle.cart_id}/coupons/SAVE10", 503)

        with pytest.raises(TransportError):
            await cart_service.apply_coupon("SAVE10")

    @pytest.mark.asyncio
    async def test_remove_coupon(self, cart_service):
        await _guest_cart(cart_service, ("A", 1))
        await cart_service.apply_coupon("SAVE10")

        await cart_service.remove_coupon()
        totals = await cart_service.get_totals()

        assert totals.coupon_code is None
        assert totals.discount == Decimal("0")

    @pytest.mark.asyncio
    async def test_totals_memoised_until_mutation(self, cart_service, cart_store, backend):
        handle = await _guest_cart(cart_service, ("A", 1))
        totals_path = ("GET", f"/guest-carts/{handle.cart_id}/totals")

        await cart_service.get_totals()
        await cart_service.get_totals()
        assert backend.requests.count(totals_path) == 1
        assert cart_store.current.totals is not None

        await cart_service.add_item("B", 1)
        assert cart_store.current.totals is None
        totals = await cart_service.get_totals()

        assert backend.requests.count(totals_path) == 2
        assert totals.subtotal == Decimal("14.5")
        assert totals.currency == "USD"


class TestCustomerCart:
    """Test the customer cart and identity changes"""

    @pytest.mark.asyncio
    async def test_customer_cart_uses_mine(self, container, cart_service, backend, customer_credentials):
        await container.token_service.login(*customer_credentials)
        handle = await cart_service.create_cart()
        again = await cart_service.create_cart()

        cart = await cart_service.add_item("A", 1)

        assert handle.kind is IdentityKind.CUSTOMER
        assert handle.cart_id == again.cart_id
        assert cart.id == handle.cart_id
        assert ("POST", "/carts/mine/items") in backend.requests
        assert container.context.cart_store.snapshot(IdentityKind.CUSTOMER) == cart

    @pytest.mark.asyncio
    async def test_late_response_after_logout_is_discarded(self, container, cart_service, cart_store, backend, customer_credentials):
        await container.token_service.login(*customer_credentials)
        await cart_service.create_cart()
        backend.latency = 0.02

        pending = asyncio.ensure_future(cart_service.add_item("A", 1))
        await asyncio.sleep(0.01)
        container.context.become_guest()
        cart_service.clear()
        late = await pending

        assert late.items[0].sku == "A"
        assert cart_store.current is None
        assert cart_store.snapshot(IdentityKind.CUSTOMER) is None

    @pytest.mark.asyncio
    async def test_merge_requires_customer(self, cart_service):
        with pytest.raises(SessionStateError):
            await cart_service.merge_guest_cart()
