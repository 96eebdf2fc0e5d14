"""
Test configuration and fixtures for the storefront session core
"""

import asyncio
import itertools
import json
import os
import re
from typing import Any, Dict, List, Optional, Set, Tuple
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

from storefront.config import Settings, reset_config
from storefront.container import Container
from storefront.infrastructure.logging.logging_config import performance_logger
from storefront.infrastructure.storage.key_value_store import InMemoryKeyValueStore

API_URL = "http://commerce.test/rest/V1"
ADMIN_USER = "integration"
ADMIN_PASSWORD = "integration-secret"
CUSTOMER_EMAIL = "jane@example.com"
CUSTOMER_PASSWORD = "hunter22"

_GUEST_CART = re.compile(r"^/guest-carts/([^/]+)(/.*)?$")
_CUSTOMER_CART = re.compile(r"^/carts/mine(/.*)?$")


class FakeCommerceBackend:
    """
    In-process stand-in for the commerce REST API.

    Served through httpx.MockTransport. Supports merge-by-SKU carts,
    coupons, totals, token expiry, failure and latency injection, and
    tracks how many cart requests overlap.
    """

    BASE_PATH = "/rest/V1"

    def __init__(self):
        self.customers: Dict[str, Dict[str, Any]] = {
            CUSTOMER_EMAIL: {
                "password": CUSTOMER_PASSWORD,
                "profile": {"id": 7, "email": CUSTOMER_EMAIL, "firstname": "Jane", "lastname": "Doe"},
            }
        }
        self.products: Dict[str, Dict[str, Any]] = {
            "A": {"sku": "A", "name": "Apple crate", "price": 10.0},
            "B": {"sku": "B", "name": "Banana bunch", "price": 4.5},
            "C": {"sku": "C", "name": "Cherry box", "price": 2.0},
        }
        self.coupons: Dict[str, float] = {"SAVE10": 0.10}
        self.admin_tokens: Set[str] = set()
        self.customer_tokens: Dict[str, str] = {}
        self.customer_carts: Dict[str, Dict[str, Any]] = {}
        self.guest_carts: Dict[str, Dict[str, Any]] = {}

        self.requests: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], List[int]] = {}
        self.reject_skus: Set[str] = set()
        self.network_down = False
        self.latency = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._ids = itertools.count(1)

    # -- test controls --------------------------------------------------

    def fail_next(self, method: str, path: str, status: int, times: int = 1) -> None:
        self.failures.setdefault((method, path), []).extend([status] * times)

    def expire_tokens(self, admin: bool = True, customer: bool = True) -> None:
        if admin:
            self.admin_tokens.clear()
        if customer:
            self.customer_tokens.clear()

    def seed_customer_cart(self, email: str, lines: Dict[str, int]) -> None:
        cart = self._customer_cart(email, create=True)
        for sku, qty in lines.items():
            self._add_line(cart, sku, qty)

    def count(self, method: str, path: str) -> int:
        return sum(1 for entry in self.requests if entry == (method, path))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    # -- request handling -----------------------------------------------

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith(self.BASE_PATH):
            path = path[len(self.BASE_PATH):]
        method = request.method
        self.requests.append((method, path))

        if self.network_down:
            raise httpx.ConnectError("Connection refused", request=request)

        is_cart = path.startswith("/carts") or path.startswith("/guest-carts")
        if is_cart:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            injected = self.failures.get((method, path))
            if injected:
                return httpx.Response(injected.pop(0), json={"message": "Injected failure"})
            return self._route(method, path, request)
        finally:
            if is_cart:
                self.in_flight -= 1

    def _route(self, method: str, path: str, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        bearer = request.headers.get("Authorization", "").removeprefix("Bearer ")

        if method == "POST" and path == "/integration/admin/token":
            if (body.get("username"), body.get("password")) != (ADMIN_USER, ADMIN_PASSWORD):
                return _error(401, "The account sign-in was incorrect.")
            token = f"admin-{next(self._ids)}"
            self.admin_tokens.add(token)
            return httpx.Response(200, json=token)

        if method == "POST" and path == "/integration/customer/token":
            customer = self.customers.get(body.get("username"))
            if customer is None or customer["password"] != body.get("password"):
                return _error(401, "The account sign-in was incorrect.")
            token = f"customer-{next(self._ids)}"
            self.customer_tokens[token] = body["username"]
            return httpx.Response(200, json=token)

        if path.startswith("/customers") or path.startswith("/carts/mine"):
            email = self.customer_tokens.get(bearer)
            if email is None:
                return _error(401, "The consumer isn't authorized to access %resources.")
            if path == "/customers/me" and method == "GET":
                return httpx.Response(200, json=self.customers[email]["profile"])
            if path == "/customers/logout" and method == "POST":
                self.customer_tokens.pop(bearer, None)
                return httpx.Response(200, json=True)
            match = _CUSTOMER_CART.match(path)
            if match:
                if method == "POST" and match.group(1) is None:
                    return httpx.Response(200, json=self._customer_cart(email, create=True)["id"])
                cart = self._customer_cart(email)
                if cart is None:
                    return _error(404, "No such entity with customerId = 7")
                return self._cart_route(cart, method, match.group(1) or "", body)
            return _error(404, "Request does not match any route.")

        if bearer not in self.admin_tokens:
            return _error(401, "The consumer isn't authorized to access %resources.")

        if method == "POST" and path == "/guest-carts":
            cart_id = f"guest-{next(self._ids)}"
            self.guest_carts[cart_id] = {"id": cart_id, "items": [], "coupon_code": None}
            return httpx.Response(200, json=cart_id)

        match = _GUEST_CART.match(path)
        if match:
            cart = self.guest_carts.get(match.group(1))
            if cart is None:
                return _error(404, f"No such entity with cartId = {match.group(1)}")
            return self._cart_route(cart, method, match.group(2) or "", body)

        if method == "GET" and path == "/categories":
            return httpx.Response(200, json={
                "id": 2,
                "name": "Default Category",
                "children_data": [{"id": 3, "name": "Fruit", "children_data": []}],
            })
        if method == "GET" and path.startswith("/products/"):
            product = self.products.get(path[len("/products/"):])
            if product is None:
                return _error(404, "The product that was requested doesn't exist.")
            return httpx.Response(200, json=product)
        if method == "GET" and path == "/products":
            items = list(self.products.values())
            return httpx.Response(200, json={"items": items, "total_count": len(items)})

        return _error(404, "Request does not match any route.")

    def _cart_route(self, cart: Dict[str, Any], method: str, rest: str, body: Dict[str, Any]) -> httpx.Response:
        if rest == "" and method == "GET":
            return httpx.Response(200, json={"id": cart["id"], "items": cart["items"]})

        if rest == "/items" and method == "POST":
            line = body["cartItem"]
            if line["sku"] in self.reject_skus or line["sku"] not in self.products:
                return _error(400, "Product that you are trying to add is not available.")
            return httpx.Response(200, json=self._add_line(cart, line["sku"], int(line["qty"])))

        item_match = re.match(r"^/items/(\d+)$", rest)
        if item_match:
            item = next((i for i in cart["items"] if i["item_id"] == int(item_match.group(1))), None)
            if item is None:
                return _error(404, "The cart doesn't contain the item")
            if method == "PUT":
                item["qty"] = int(body["cartItem"]["qty"])
                return httpx.Response(200, json=item)
            if method == "DELETE":
                cart["items"].remove(item)
                return httpx.Response(200, json=True)

        if rest.startswith("/coupons/") and method == "PUT":
            code = rest[len("/coupons/"):]
            if code not in self.coupons:
                return _error(404, f'The coupon code "{code}" is not valid. Verify the code and try again.')
            cart["coupon_code"] = code
            return httpx.Response(200, json=True)
        if rest == "/coupons" and method == "DELETE":
            cart["coupon_code"] = None
            return httpx.Response(200, json=True)

        if rest == "/totals" and method == "GET":
            subtotal = sum(i["price"] * i["qty"] for i in cart["items"])
            discount = round(subtotal * self.coupons.get(cart["coupon_code"], 0), 2)
            return httpx.Response(200, json={
                "subtotal": subtotal,
                "discount_amount": discount,
                "grand_total": round(subtotal - discount, 2),
                "coupon_code": cart["coupon_code"],
                "quote_currency_code": "USD",
            })

        return _error(404, "Request does not match any route.")

    # -- state helpers --------------------------------------------------

    def _customer_cart(self, email: str, create: bool = False) -> Optional[Dict[str, Any]]:
        if email not in self.customer_carts and create:
            self.customer_carts[email] = {"id": next(self._ids), "items": [], "coupon_code": None}
        return self.customer_carts.get(email)

    def _add_line(self, cart: Dict[str, Any], sku: str, qty: int) -> Dict[str, Any]:
        for item in cart["items"]:
            if item["sku"] == sku:
                item["qty"] += qty
                return item
        product = self.products[sku]
        item = {
            "item_id": next(self._ids),
            "sku": sku,
            "qty": qty,
            "name": product["name"],
            "price": product["price"],
            "quote_id": str(cart["id"]),
            "extension_attributes": {"image_url": f"https://img.commerce.test/{sku}.jpg"},
        }
        cart["items"].append(item)
        return item


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"message": message})


# Mock environment variables for testing
@pytest.fixture(autouse=True)
def mock_env():
    """Isolate tests from the real environment and cached settings"""
    test_env = {
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, test_env, clear=True):
        reset_config()
        performance_logger.reset()
        yield test_env
    reset_config()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        commerce_api_url=API_URL,
        admin_username=ADMIN_USER,
        admin_password=ADMIN_PASSWORD,
        storage_url="sqlite:///:memory:",
        cart_refresh_interval_seconds=300,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def backend() -> FakeCommerceBackend:
    return FakeCommerceBackend()


@pytest.fixture
def persistent_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest_asyncio.fixture
async def container(settings, backend, persistent_store):
    """Fully wired, initialised session talking to the fake backend"""
    container = Container(
        settings,
        persistent_store=persistent_store,
        transport=backend.transport(),
    )
    await container.init()
    yield container
    await container.dispose()


@pytest.fixture
def customer_credentials() -> Tuple[str, str]:
    return CUSTOMER_EMAIL, CUSTOMER_PASSWORD
