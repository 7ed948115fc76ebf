"""Database Models - Pydantic models for catalog rows."""
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, field_validator

from storefront.services.money import to_decimal as _to_decimal


class Category(BaseModel):
    """Category model."""
    id: str
    name: str
    slug: str

    class Config:
        extra = "ignore"


class ProductVariant(BaseModel):
    """One option value on a variant axis (e.g. name="Size", value="XL")."""
    id: str
    product_id: str
    name: str
    value: str
    price_modifier: Decimal = Decimal("0")
    stock: int = 0

    class Config:
        extra = "ignore"

    @field_validator("price_modifier", mode="before")
    @classmethod
    def convert_modifier_to_decimal(cls, v):
        return _to_decimal(v)


class Product(BaseModel):
    """Product model with its category and variants joined in."""
    id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    image: Optional[str] = None
    category_id: Optional[str] = None
    stock: int = 0
    featured: bool = False
    categories: Optional[Category] = None
    product_variants: list[ProductVariant] = []

    class Config:
        extra = "ignore"

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    @field_validator("stock", mode="before")
    @classmethod
    def default_stock(cls, v):
        return v if v is not None else 0

    @field_validator("product_variants", mode="before")
    @classmethod
    def default_variants(cls, v):
        return v or []
