"""
Domain repositories package

Storage contracts the services depend on.
"""

from .key_value_repository import KeyValueRepository

__all__ = ["KeyValueRepository"]
