"""
Common Error Constants and Exceptions

Centralized error messages to avoid string duplication.
"""

# Cart errors
ERROR_CART_EMPTY = "Cart is empty"
ERROR_CART_NOT_READY = "Cart is still loading"
ERROR_CART_STORE_UNAVAILABLE = "Cart store unavailable"

# Product errors
ERROR_PRODUCT_NOT_FOUND = "Product not found"
ERROR_PRODUCT_OUT_OF_STOCK = "Product out of stock"


class StorefrontError(Exception):
    """Base class for storefront errors."""


class RemoteCartStoreError(StorefrontError):
    """A Supabase cart_items call failed."""

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = type(cause).__name__ if cause is not None else "unknown error"
        super().__init__(f"{ERROR_CART_STORE_UNAVAILABLE}: {operation} failed ({detail})")


class EmptyCartError(StorefrontError):
    """Checkout attempted with nothing in the cart."""

    def __init__(self) -> None:
        super().__init__(ERROR_CART_EMPTY)
