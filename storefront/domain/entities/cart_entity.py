"""
Cart Entity

In-memory representation of a guest or customer cart as last reported by
the commerce API. Carts are replaced wholesale after every fetch; nothing
here performs I/O.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .identity import IdentityKind


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0))


@dataclass(frozen=True)
class CartItem:
    """A cart line, unique by SKU within its cart"""

    sku: str
    qty: int
    item_id: Optional[int] = None
    price: Decimal = Decimal("0")
    name: str = ""
    image_url: str = ""

    def __post_init__(self):
        if not self.sku:
            raise ValueError("Cart item SKU cannot be empty")
        if self.qty < 1:
            raise ValueError("Cart item quantity must be at least 1")
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", _decimal(self.price))

    @property
    def row_total(self) -> Decimal:
        return self.price * self.qty

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "CartItem":
        extension = payload.get("extension_attributes") or {}
        return cls(
            sku=payload["sku"],
            qty=int(payload["qty"]),
            item_id=payload.get("item_id"),
            price=_decimal(payload.get("price")),
            name=payload.get("name", ""),
            image_url=extension.get("image_url", "") or payload.get("image_url", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "qty": self.qty,
            "item_id": self.item_id,
            "price": str(self.price),
            "name": self.name,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class Totals:
    """Server-computed cart totals"""

    subtotal: Decimal
    grand_total: Decimal
    discount: Decimal = Decimal("0")
    coupon_code: Optional[str] = None
    currency: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Totals":
        return cls(
            subtotal=_decimal(payload.get("subtotal")),
            grand_total=_decimal(payload.get("grand_total")),
            discount=_decimal(payload.get("discount_amount")),
            coupon_code=payload.get("coupon_code"),
            currency=payload.get("quote_currency_code") or payload.get("base_currency_code"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "grand_total": str(self.grand_total),
            "discount_amount": str(self.discount),
            "coupon_code": self.coupon_code,
            "quote_currency_code": self.currency,
        }


@dataclass(frozen=True)
class Cart:
    """
    Cart snapshot.

    ``id`` is the guest cart id for guests and the server quote id (when
    reported) for customers, who otherwise address the cart as "mine".
    ``totals`` is filled lazily and dropped whenever the cart is replaced.
    """

    id: Optional[str] = None
    items: List[CartItem] = field(default_factory=list)
    totals: Optional[Totals] = None

    @classmethod
    def empty(cls) -> "Cart":
        return cls()

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Cart":
        """Parse a cart payload; lines with a non-positive quantity are dropped"""
        items = [
            CartItem.from_api(item)
            for item in payload.get("items") or []
            if item.get("qty") is not None and float(item["qty"]) >= 1
        ]
        cart_id = payload.get("id")
        return cls(id=str(cart_id) if cart_id is not None else None, items=items)

    def find_item(self, item_id: int) -> Optional[CartItem]:
        for item in self.items:
            if item.item_id is not None and str(item.item_id) == str(item_id):
                return item
        return None

    def find_by_sku(self, sku: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.sku == sku), None)

    def with_totals(self, totals: Optional[Totals]) -> "Cart":
        return replace(self, totals=totals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items],
            "totals": self.totals.to_dict() if self.totals else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cart":
        totals = data.get("totals")
        return cls(
            id=data.get("id"),
            items=[CartItem(**{**item, "price": Decimal(item["price"])}) for item in data.get("items", [])],
            totals=Totals.from_api(totals) if totals else None,
        )


@dataclass(frozen=True)
class CartHandle:
    """Result of creating or resolving a cart on the server"""

    kind: IdentityKind
    cart_id: Optional[str]


def item_count(cart: Optional[Cart]) -> int:
    """Total quantity across all lines"""
    if cart is None:
        return 0
    return sum(item.qty for item in cart.items)


def subtotal(cart: Optional[Cart]) -> Decimal:
    """Sum of price times quantity across all lines"""
    if cart is None:
        return Decimal("0")
    return sum((item.row_total for item in cart.items), Decimal("0"))
