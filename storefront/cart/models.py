"""Cart models with Decimal-based pricing."""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from storefront.services.models import Product, ProductVariant
from storefront.services.money import ZERO, add, multiply, percent, round_money, to_decimal, to_float
from .constants import FLAT_SHIPPING, FREE_SHIPPING_THRESHOLD, TAX_RATE_PERCENT


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ==================== IDENTITY ====================

@dataclass(frozen=True)
class Anonymous:
    """Device-scoped shopper with no durable identifier."""


@dataclass(frozen=True)
class Identified:
    """Signed-in shopper."""
    user_id: str


Identity = Union[Anonymous, Identified]

ANONYMOUS = Anonymous()


def identity_from_user_id(user_id: Optional[str]) -> Identity:
    """Map a nullable auth user id onto the identity variant."""
    return Identified(user_id) if user_id else ANONYMOUS


class CartState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


# ==================== LINE ITEMS ====================

def variant_key(selected_variants: Optional[Dict[str, str]]) -> Tuple[Tuple[str, str], ...]:
    """Order-independent form of a variant selection, used for matching."""
    return tuple(sorted((selected_variants or {}).items()))


def clamp_quantity(requested: int, available_stock: int) -> int:
    """Clamp a quantity into [1, available_stock]."""
    return max(1, min(requested, available_stock))


@dataclass
class ProductSnapshot:
    """Product fields stored with a line item so it renders without a lookup."""
    id: str
    name: str
    price: Decimal
    image: Optional[str] = None
    stock: int = 0
    variants: List[ProductVariant] = field(default_factory=list)

    def __post_init__(self):
        self.price = to_decimal(self.price)

    @classmethod
    def from_product(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            price=product.price,
            image=product.image,
            stock=product.stock,
            variants=list(product.product_variants),
        )

    def selected(self, selected_variants: Dict[str, str]) -> List[ProductVariant]:
        """Variants matching the (axis, value) pairs of a selection."""
        return [
            v for v in self.variants
            if selected_variants.get(v.name) == v.value
        ]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "image": self.image,
            "stock": self.stock,
            "product_variants": [v.model_dump(mode="json") for v in self.variants],
        }


def available_stock_for(product: ProductSnapshot, selected_variants: Dict[str, str]) -> int:
    """Stock of the resolved product/variant combination."""
    stocks = [product.stock] + [v.stock for v in product.selected(selected_variants)]
    return max(0, min(stocks))


@dataclass
class LineItem:
    """One product/variant combination in a cart."""
    id: str
    product_id: str
    quantity: int
    product: ProductSnapshot
    selected_variants: Dict[str, str] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    # Ids of duplicate rows folded into this item; never serialized
    duplicate_ids: List[str] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self):
        now = _now()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = now
        self.selected_variants = dict(self.selected_variants or {})

    @property
    def variant_key(self) -> Tuple[Tuple[str, str], ...]:
        return variant_key(self.selected_variants)

    def matches(self, product_id: str, selected_variants: Optional[Dict[str, str]] = None) -> bool:
        return self.product_id == product_id and self.variant_key == variant_key(selected_variants)

    @property
    def price_modifier(self) -> Decimal:
        """Sum of price modifiers of the selected variants."""
        return sum((v.price_modifier for v in self.product.selected(self.selected_variants)), ZERO)

    @property
    def unit_price(self) -> Decimal:
        """Price for a single unit including variant modifiers."""
        return round_money(add(self.product.price, self.price_modifier))

    @property
    def available_stock(self) -> int:
        return available_stock_for(self.product, self.selected_variants)

    @property
    def total_price(self) -> Decimal:
        """Total price for all units."""
        return round_money(multiply(self.unit_price, self.quantity))

    def to_dict(self) -> dict:
        """Serialize in the same shape as a joined cart_items row."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "selected_variants": dict(self.selected_variants),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "products": self.product.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        """Create from a serialized item or a cart_items row with products joined in."""
        product = Product(**data["products"])
        return cls(
            id=str(data["id"]),
            product_id=str(data.get("product_id") or product.id),
            quantity=int(data["quantity"]),
            product=ProductSnapshot.from_product(product),
            selected_variants=data.get("selected_variants") or {},
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )


# ==================== CART ====================

@dataclass
class CheckoutSummary:
    """Order totals shown at checkout."""
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    @classmethod
    def for_subtotal(cls, subtotal: Decimal) -> "CheckoutSummary":
        subtotal = round_money(subtotal)
        tax = round_money(percent(subtotal, TAX_RATE_PERCENT))
        shipping = round_money(ZERO) if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING
        return cls(
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=round_money(subtotal + tax + shipping),
        )

    @property
    def free_shipping(self) -> bool:
        return self.shipping == ZERO

    def to_dict(self) -> dict:
        return {
            "subtotal": to_float(self.subtotal),
            "tax": to_float(self.tax),
            "shipping": to_float(self.shipping),
            "total": to_float(self.total),
            "free_shipping": self.free_shipping,
        }


@dataclass
class Cart:
    """A single owner's line items; aggregates are always recomputed from items."""
    owner: Identity
    items: List[LineItem] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        """Total number of units in cart."""
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        """Sum of unit price (with variant modifiers) times quantity."""
        return round_money(sum((item.total_price for item in self.items), ZERO))

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, product_id: str, selected_variants: Optional[Dict[str, str]] = None) -> Optional[LineItem]:
        return next((item for item in self.items if item.matches(product_id, selected_variants)), None)

    def get(self, item_id: str) -> Optional[LineItem]:
        return next((item for item in self.items if item.id == item_id), None)

    def checkout_summary(self) -> CheckoutSummary:
        return CheckoutSummary.for_subtotal(self.subtotal)

    def to_dict(self) -> dict:
        """Blob stored in local persistence."""
        return {"items": [item.to_dict() for item in self.items]}

    @classmethod
    def from_dict(cls, data, owner: Identity = ANONYMOUS) -> "Cart":
        """Create from a stored blob; a bare list of items is accepted too."""
        raw_items = data.get("items", []) if isinstance(data, dict) else data
        if not isinstance(raw_items, list):
            raise TypeError("cart items must be a list")
        cart = cls(owner=owner)
        for raw in raw_items:
            if not raw.get("products"):
                # Product row deleted since the item was added
                continue
            item = LineItem.from_dict(raw)
            if item.quantity < 1:
                continue
            existing = cart.find(item.product_id, item.selected_variants)
            if existing:
                # Duplicate rows left by concurrent writers; the manager folds them remotely
                existing.quantity += item.quantity
                existing.duplicate_ids.append(item.id)
            else:
                cart.items.append(item)
        for item in cart.items:
            item.quantity = clamp_quantity(item.quantity, item.available_stock)
        return cart
