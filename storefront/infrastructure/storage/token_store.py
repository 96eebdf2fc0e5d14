"""
Token store

Durable storage of bearer tokens and the cached customer profile. Only
TokenService writes here; anyone may read.
"""

import logging
from typing import Optional

from storefront.domain.entities.identity import UserProfile
from storefront.domain.entities.token import Token, TokenKind
from storefront.domain.repositories.key_value_repository import KeyValueRepository
from storefront.infrastructure.utilities.constants import StorageKeys

logger = logging.getLogger(__name__)

_TOKEN_KEYS = {
    TokenKind.ADMIN: StorageKeys.ADMIN_TOKEN,
    TokenKind.CUSTOMER: StorageKeys.CUSTOMER_TOKEN,
}


class TokenStore:
    """At most one live token per kind, plus the customer profile"""

    def __init__(self, storage: KeyValueRepository):
        self._storage = storage

    def get_token(self, kind: TokenKind) -> Optional[Token]:
        try:
            data = self._storage.get_json(_TOKEN_KEYS[kind])
            return Token.from_dict(data) if data else None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable %s token: %s", kind.value, e)
            self._storage.delete(_TOKEN_KEYS[kind])
            return None

    def set_token(self, token: Token) -> None:
        """Store a token, superseding the previous one of the same kind"""
        self._storage.set_json(_TOKEN_KEYS[token.kind], token.to_dict())

    def clear_token(self, kind: TokenKind) -> None:
        self._storage.delete(_TOKEN_KEYS[kind])

    def get_profile(self) -> Optional[UserProfile]:
        try:
            data = self._storage.get_json(StorageKeys.PROFILE)
            return UserProfile.from_api(data) if data else None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable profile: %s", e)
            self._storage.delete(StorageKeys.PROFILE)
            return None

    def set_profile(self, profile: UserProfile) -> None:
        self._storage.set_json(StorageKeys.PROFILE, profile.to_dict())

    def clear(self) -> None:
        """Remove every token and the profile"""
        for key in (*_TOKEN_KEYS.values(), StorageKeys.PROFILE):
            self._storage.delete(key)

    def close(self) -> None:
        self._storage.close()
