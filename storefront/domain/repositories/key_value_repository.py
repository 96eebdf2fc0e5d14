"""
Key/value repository interface

Defines the contract for the durable storage behind TokenStore and
CartStore. Access is synchronous: storage is never a suspension point.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional


class KeyValueRepository(ABC):
    """Repository interface for string key/value persistence"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None"""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one"""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key; returns whether it existed"""

    def close(self) -> None:
        """Release any underlying resources"""

    def get_json(self, key: str) -> Optional[Any]:
        raw = self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))
