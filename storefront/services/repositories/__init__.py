"""
Repository Pattern for Database Operations

- CartRepository: cart_items rows for signed-in shoppers
- ProductRepository: read-only product lookups
"""
from .cart_repo import CartRepository
from .product_repo import ProductRepository

__all__ = [
    "CartRepository",
    "ProductRepository",
]
