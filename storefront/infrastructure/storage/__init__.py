"""
Storage infrastructure

Durable key/value backends and the token/cart stores built on them.
"""

from .cart_store import CartStore
from .key_value_store import InMemoryKeyValueStore, SQLAlchemyKeyValueStore
from .token_store import TokenStore

__all__ = [
    "CartStore",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "TokenStore",
]
