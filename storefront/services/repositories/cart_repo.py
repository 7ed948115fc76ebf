"""Cart Repository - cart_items rows for signed-in shoppers."""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from storefront.errors import RemoteCartStoreError
from storefront.logging import get_logger, sanitize_id_for_logging
from .base import BaseRepository

logger = get_logger(__name__)

CART_TABLE = "cart_items"

# Line items carry the full product so the cart renders without a second lookup
CART_SELECT = (
    "*, products!cart_items_product_id_fkey("
    "*, categories!products_category_id_fkey(id, name, slug), product_variants(*))"
)


class CartRepository(BaseRepository):
    """cart_items database operations.

    Every method raises RemoteCartStoreError when the Supabase call fails.
    """

    async def list(self, user_id: str) -> List[Dict[str, Any]]:
        """All of a user's rows with product and category joined in."""
        try:
            result = (
                await self.client.table(CART_TABLE)
                .select(CART_SELECT)
                .eq("user_id", user_id)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            raise self._fail("list", user_id, e) from e
        return result.data or []

    async def find(
        self,
        user_id: str,
        product_id: str,
        selected_variants: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Row for the exact (product, variant selection) pair, if any."""
        try:
            result = (
                await self.client.table(CART_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .eq("product_id", product_id)
                .eq("selected_variants", json.dumps(selected_variants or {}, sort_keys=True))
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise self._fail("find", user_id, e) from e
        return result.data[0] if result.data else None

    async def insert(
        self,
        user_id: str,
        product_id: str,
        quantity: int,
        selected_variants: Optional[Dict[str, str]] = None,
    ) -> None:
        try:
            await (
                self.client.table(CART_TABLE)
                .insert({
                    "user_id": user_id,
                    "product_id": product_id,
                    "quantity": quantity,
                    "selected_variants": selected_variants or {},
                })
                .execute()
            )
        except Exception as e:
            raise self._fail("insert", user_id, e) from e

    async def update_quantity(self, line_item_id: str, quantity: int) -> None:
        try:
            await (
                self.client.table(CART_TABLE)
                .update({
                    "quantity": quantity,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                })
                .eq("id", line_item_id)
                .execute()
            )
        except Exception as e:
            raise self._fail("update_quantity", line_item_id, e) from e

    async def delete(self, line_item_id: str) -> None:
        try:
            await self.client.table(CART_TABLE).delete().eq("id", line_item_id).execute()
        except Exception as e:
            raise self._fail("delete", line_item_id, e) from e

    async def delete_all(self, user_id: str) -> None:
        try:
            await self.client.table(CART_TABLE).delete().eq("user_id", user_id).execute()
        except Exception as e:
            raise self._fail("delete_all", user_id, e) from e

    @staticmethod
    def _fail(operation: str, ref: str, error: Exception) -> RemoteCartStoreError:
        logger.warning(
            "cart_items %s failed for %s: %s",
            operation,
            sanitize_id_for_logging(ref),
            type(error).__name__,
        )
        return RemoteCartStoreError(operation, error)
