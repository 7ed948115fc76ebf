"""Cart package: models, storage, and manager."""
from .models import (
    ANONYMOUS,
    Anonymous,
    Cart,
    CartState,
    CheckoutSummary,
    Identified,
    Identity,
    LineItem,
    ProductSnapshot,
    identity_from_user_id,
)
from .service import CartManager, MergePolicy, create_cart_manager
from .storage import LocalStore, MemoryLocalStore, RedisLocalStore

__all__ = [
    "ANONYMOUS",
    "Anonymous",
    "Cart",
    "CartState",
    "CheckoutSummary",
    "Identified",
    "Identity",
    "LineItem",
    "ProductSnapshot",
    "identity_from_user_id",
    "CartManager",
    "MergePolicy",
    "create_cart_manager",
    "LocalStore",
    "MemoryLocalStore",
    "RedisLocalStore",
]
