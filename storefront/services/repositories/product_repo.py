"""Product Repository - read-only product lookups."""
from typing import Optional

from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.services.models import Product
from .base import BaseRepository

logger = get_logger(__name__)

PRODUCT_SELECT = "*, categories!products_category_id_fkey(id, name, slug), product_variants(*)"


class ProductRepository(BaseRepository):
    """Product database operations."""

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        """Get product by ID with its category and variants."""
        try:
            result = (
                await self.client.table("products")
                .select(PRODUCT_SELECT)
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "Failed to fetch product %s: %s",
                sanitize_id_for_logging(product_id),
                type(e).__name__,
                exc_info=True,
            )
            return None

        if not result.data:
            return None
        return Product(**result.data[0])
