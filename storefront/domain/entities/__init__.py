"""
Domain entities package

Cart, identity and token models shared by the services.
"""

from .cart_entity import Cart, CartHandle, CartItem, Totals, item_count, subtotal
from .identity import CustomerIdentity, GuestIdentity, Identity, IdentityKind, UserProfile
from .token import Token, TokenKind

__all__ = [
    "Cart",
    "CartHandle",
    "CartItem",
    "Totals",
    "item_count",
    "subtotal",
    "CustomerIdentity",
    "GuestIdentity",
    "Identity",
    "IdentityKind",
    "UserProfile",
    "Token",
    "TokenKind",
]
