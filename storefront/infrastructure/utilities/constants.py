"""
Application constants for the storefront session core

Centralizes storage keys, API paths and timing values.
"""

from typing import Final


class StorageKeys:
    """Keys of the durable key/value layout"""

    ADMIN_TOKEN: Final[str] = "auth.token.admin"
    CUSTOMER_TOKEN: Final[str] = "auth.token.customer"
    PROFILE: Final[str] = "auth.profile"
    CUSTOMER_CART_SNAPSHOT: Final[str] = "cart.customer.snapshot"
    GUEST_CART_ID: Final[str] = "cart.guest.id"
    GUEST_CART_SNAPSHOT: Final[str] = "cart.guest.snapshot"


class ApiPaths:
    """Commerce API endpoints, relative to the configured base URL"""

    ADMIN_TOKEN: Final[str] = "/integration/admin/token"
    CUSTOMER_TOKEN: Final[str] = "/integration/customer/token"
    CUSTOMER_ME: Final[str] = "/customers/me"
    CUSTOMER_LOGOUT: Final[str] = "/customers/logout"
    CUSTOMER_CART: Final[str] = "/carts/mine"
    GUEST_CARTS: Final[str] = "/guest-carts"
    CATEGORIES: Final[str] = "/categories"
    PRODUCTS: Final[str] = "/products"

    # Paths under these prefixes are authorised with the customer token
    CUSTOMER_PREFIXES: Final[tuple[str, ...]] = (CUSTOMER_CART, CUSTOMER_ME)


class HttpSettings:
    """Request handling"""

    MAX_AUTH_RETRIES: Final[int] = 1
    INVALID_CREDENTIAL_STATUSES: Final[tuple[int, ...]] = (401, 422)
    INVALID_COUPON_STATUSES: Final[tuple[int, ...]] = (400, 404)
    SLOW_REQUEST_SECONDS: Final[float] = 2.0


class CacheSettings:
    """Cache scopes and defaults"""

    ADMIN_SCOPE: Final[str] = "admin"
    DEFAULT_TTL_SECONDS: Final[int] = 300  # 5 minutes
