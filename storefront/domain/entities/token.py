"""Bearer token value object"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class TokenKind(str, Enum):
    """Scope a token is valid for"""

    ADMIN = "admin"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class Token:
    """
    Opaque bearer token.

    Expiry is unknown client-side; a 401 from the API is the only signal
    that a token went stale.
    """

    value: str
    kind: TokenKind
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.value:
            raise ValueError("Token value cannot be empty")

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "kind": self.kind.value, "issued_at": self.issued_at.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            value=data["value"],
            kind=TokenKind(data["kind"]),
            issued_at=datetime.fromisoformat(data["issued_at"]),
        )

    def __repr__(self) -> str:
        return f"Token(kind={self.kind.value}, issued_at={self.issued_at.isoformat()})"
