"""
Custom exceptions for the storefront session core
"""

from enum import Enum
from typing import Optional

import httpx


class StorefrontError(Exception):
    """Base exception for the storefront session core"""

    def __init__(self, message: str, user_message: str = None, error_code: str = None):
        super().__init__(message)
        self.user_message = user_message or "An error occurred. Please try again."
        self.error_code = error_code or "GENERAL_ERROR"


class AuthFailure(Enum):
    """Why an authentication attempt failed"""

    INVALID_CREDENTIALS = "invalid_credentials"
    SERVICE_UNAVAILABLE = "service_unavailable"


class AuthError(StorefrontError):
    """Token acquisition or login failed"""

    _USER_MESSAGES = {
        AuthFailure.INVALID_CREDENTIALS: "The email or password you entered is incorrect.",
        AuthFailure.SERVICE_UNAVAILABLE: "We can't sign you in right now. Please try again shortly.",
    }

    def __init__(self, reason: AuthFailure, message: str = None):
        super().__init__(
            message or f"Authentication failed: {reason.value}",
            self._USER_MESSAGES[reason],
            f"AUTH_{reason.name}",
        )
        self.reason = reason


class CartFailure(Enum):
    """Why a cart operation failed"""

    MISSING_GUEST_ID = "missing_guest_id"
    UNAVAILABLE = "unavailable"
    ITEM_NOT_FOUND = "item_not_found"
    INVALID_COUPON = "invalid_coupon"


class CartError(StorefrontError):
    """Cart operation failed"""

    _USER_MESSAGES = {
        CartFailure.MISSING_GUEST_ID: "Your cart could not be found. Please add an item to start a new one.",
        CartFailure.UNAVAILABLE: "Your cart is unavailable right now. Please try again.",
        CartFailure.ITEM_NOT_FOUND: "That item is no longer in your cart.",
        CartFailure.INVALID_COUPON: "This coupon code is not valid.",
    }

    def __init__(self, reason: CartFailure, message: str = None):
        super().__init__(
            message or f"Cart operation failed: {reason.value}",
            self._USER_MESSAGES[reason],
            f"CART_{reason.name}",
        )
        self.reason = reason


class TransportFailure(Enum):
    """Transport-level failure kinds"""

    NETWORK = "network"
    SERVER_FAULT = "server_fault"


class TransportError(StorefrontError):
    """The commerce API could not be reached or answered with an error status"""

    def __init__(self, kind: TransportFailure, message: str, status: Optional[int] = None):
        super().__init__(
            message,
            "Something went wrong talking to the store. Please try again.",
            f"TRANSPORT_{kind.name}",
        )
        self.kind = kind
        self.status = status

    @classmethod
    def from_response(cls, response: httpx.Response) -> "TransportError":
        """Build a server fault from an error response"""
        detail = response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            detail = body["message"]
        return cls(
            TransportFailure.SERVER_FAULT,
            f"{response.request.method} {response.request.url.path} -> {response.status_code}: {detail}",
            status=response.status_code,
        )


class ValidationError(StorefrontError):
    """Input validation errors"""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message, message, "VALIDATION_ERROR"  # Validation errors are user-friendly
        )
        self.field = field


class SessionStateError(StorefrontError):
    """Operation is not valid for the current identity"""

    def __init__(self, message: str):
        super().__init__(message, "Please sign in and try again.", "SESSION_STATE_ERROR")


def validate_and_raise(condition: bool, error_class: type, *args, **kwargs):
    """Helper function to validate condition and raise specific error"""
    if not condition:
        raise error_class(*args, **kwargs)
