"""
Shopper identity

A session holds exactly one identity: a guest (optionally owning a
server-issued guest cart id) or an authenticated customer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class IdentityKind(str, Enum):
    """Identity variants, also used to key cart snapshots"""

    GUEST = "guest"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class UserProfile:
    """Customer profile as returned by /customers/me"""

    id: int
    email: str
    firstname: str = ""
    lastname: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def full_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=int(payload["id"]),
            email=payload.get("email", ""),
            firstname=payload.get("firstname", ""),
            lastname=payload.get("lastname", ""),
            raw=dict(payload),
        )

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw) if self.raw else {
            "id": self.id,
            "email": self.email,
            "firstname": self.firstname,
            "lastname": self.lastname,
        }


@dataclass(frozen=True)
class GuestIdentity:
    """Anonymous shopper; cart_id is None until a guest cart is created"""

    cart_id: Optional[str] = None
    kind: IdentityKind = field(default=IdentityKind.GUEST, init=False)


@dataclass(frozen=True)
class CustomerIdentity:
    """Authenticated shopper whose cart is addressed as the implicit "mine" cart"""

    token: str = field(repr=False)
    profile: UserProfile
    kind: IdentityKind = field(default=IdentityKind.CUSTOMER, init=False)


Identity = Union[GuestIdentity, CustomerIdentity]
