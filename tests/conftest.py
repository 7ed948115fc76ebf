"""Pytest configuration and fixtures"""
import asyncio
import os
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test_key")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")

from storefront.cart import CartManager, MemoryLocalStore, MergePolicy  # noqa: E402
from storefront.cart.models import variant_key  # noqa: E402
from storefront.errors import RemoteCartStoreError  # noqa: E402
from storefront.identity import StaticIdentityProvider  # noqa: E402
from storefront.services.models import Product  # noqa: E402


PRODUCT_A = {
    "id": "prod-a",
    "name": "Alpha Tee",
    "description": "Cotton tee",
    "price": 10.0,
    "image": "/images/alpha.png",
    "category_id": "cat-1",
    "stock": 10,
    "featured": True,
    "categories": {"id": "cat-1", "name": "Apparel", "slug": "apparel"},
    "product_variants": [
        {"id": "var-s", "product_id": "prod-a", "name": "Size", "value": "S", "price_modifier": 0, "stock": 5},
        {"id": "var-xl", "product_id": "prod-a", "name": "Size", "value": "XL", "price_modifier": 2.5, "stock": 3},
        {"id": "var-red", "product_id": "prod-a", "name": "Color", "value": "Red", "price_modifier": 1, "stock": 4},
    ],
}

PRODUCT_B = {
    "id": "prod-b",
    "name": "Beta Mug",
    "description": None,
    "price": 5.0,
    "image": None,
    "category_id": None,
    "stock": 10,
    "featured": False,
    "categories": None,
    "product_variants": [],
}

PRODUCT_C = {
    "id": "prod-c",
    "name": "Gamma Lamp",
    "description": "Sold out",
    "price": 20.0,
    "image": None,
    "category_id": None,
    "stock": 0,
    "featured": False,
    "categories": None,
    "product_variants": [],
}

ALL_PRODUCTS = [PRODUCT_A, PRODUCT_B, PRODUCT_C]


class FakeCartRepository:
    """In-memory stand-in for the cart_items table."""

    def __init__(self, products: List[dict]):
        self.products = {p["id"]: p for p in products}
        self.rows: Dict[str, dict] = {}
        self.fail: set = set()
        self.calls: List[str] = []
        # When set, the next list() call waits for it before reading rows
        self.gate: Optional[asyncio.Event] = None
        self._next_id = 1

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail:
            raise RemoteCartStoreError(operation, ConnectionError("network down"))

    def seed(self, user_id: str, product_id: str, quantity: int, selected_variants: Optional[dict] = None) -> str:
        row_id = f"row-{self._next_id}"
        self._next_id += 1
        self.rows[row_id] = {
            "id": row_id,
            "user_id": user_id,
            "product_id": product_id,
            "quantity": quantity,
            "selected_variants": dict(selected_variants or {}),
            "created_at": f"2025-01-01T00:00:{self._next_id:02d}+00:00",
            "updated_at": f"2025-01-01T00:00:{self._next_id:02d}+00:00",
        }
        return row_id

    def user_rows(self, user_id: str) -> List[dict]:
        return [row for row in self.rows.values() if row["user_id"] == user_id]

    async def list(self, user_id: str) -> List[dict]:
        gate, self.gate = self.gate, None
        if gate is not None:
            await gate.wait()
        self._check("list")
        return [{**row, "products": self.products[row["product_id"]]} for row in self.user_rows(user_id)]

    async def find(self, user_id: str, product_id: str, selected_variants: Optional[dict] = None):
        self._check("find")
        for row in self.user_rows(user_id):
            if row["product_id"] == product_id and variant_key(row["selected_variants"]) == variant_key(selected_variants):
                return dict(row)
        return None

    async def insert(self, user_id: str, product_id: str, quantity: int, selected_variants: Optional[dict] = None):
        self._check("insert")
        self.seed(user_id, product_id, quantity, selected_variants)

    async def update_quantity(self, line_item_id: str, quantity: int):
        self._check("update_quantity")
        if line_item_id in self.rows:
            self.rows[line_item_id]["quantity"] = quantity

    async def delete(self, line_item_id: str):
        self._check("delete")
        self.rows.pop(line_item_id, None)

    async def delete_all(self, user_id: str):
        self._check("delete_all")
        for row in self.user_rows(user_id):
            del self.rows[row["id"]]


class FakeProductLookup:
    def __init__(self, products: List[dict]):
        self.products = {p["id"]: p for p in products}

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        data = self.products.get(product_id)
        return Product(**data) if data else None


@pytest.fixture
def product_a() -> Product:
    return Product(**PRODUCT_A)


@pytest.fixture
def product_b() -> Product:
    return Product(**PRODUCT_B)


@pytest.fixture
def product_c() -> Product:
    return Product(**PRODUCT_C)


@pytest.fixture
def remote() -> FakeCartRepository:
    return FakeCartRepository(ALL_PRODUCTS)


@pytest.fixture
def local() -> MemoryLocalStore:
    return MemoryLocalStore()


@pytest.fixture
def products() -> FakeProductLookup:
    return FakeProductLookup(ALL_PRODUCTS)


@pytest.fixture
def identity_provider() -> StaticIdentityProvider:
    return StaticIdentityProvider()


@pytest.fixture
def make_manager(remote, local, products, identity_provider):
    """Build a CartManager over the fakes; call start() in the test."""
    def _make(merge_policy: MergePolicy = MergePolicy.DISCARD) -> CartManager:
        return CartManager(
            remote=remote,
            local=local,
            products=products,
            identity_provider=identity_provider,
            merge_policy=merge_policy,
        )
    return _make


@pytest.fixture
def mock_supabase_client():
    """Mock async Supabase client"""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.update.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.order.return_value = table_mock
    table_mock.execute = AsyncMock(return_value=Mock(data=[]))

    client.table.return_value = table_mock

    return client
