# erp_persistence/repositories/variants.py
"""
Product variants with their attributes and images.
"""
from __future__ import annotations
import logging
import uuid
from typing import List, Optional, Sequence

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.filters import VariantFilter
from erp_persistence.models import ProductVariant, VariantAttribute, VariantImage
from erp_persistence.query_builder import VARIANT_COLUMNS
from erp_persistence.repositories.base import BaseRepository, insert_sql, values_of

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in VARIANT_COLUMNS.split(","))
_SELECT = f"SELECT {VARIANT_COLUMNS} FROM product_variants"


class ProductVariantRepository(BaseRepository):
    entity = "variant"
    record = ProductVariant

    # =========================================================================
    # Variants
    # =========================================================================

    async def create(self, variant: ProductVariant) -> ProductVariant:
        await self.db.exec(insert_sql("product_variants", _FIELDS), values_of(variant, _FIELDS),
                           context="create product variant")
        return variant

    async def get_by_id(self, variant_id: uuid.UUID) -> ProductVariant:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (variant_id,), variant_id,
                                     context="get variant by id")

    async def get_by_sku(self, sku: str) -> ProductVariant:
        return await self._fetch_one(f"{_SELECT} WHERE sku = $1", (sku,), sku,
                                     context="get variant by sku")

    async def get_by_product(self, product_id: uuid.UUID, active_only: bool = False) -> List[ProductVariant]:
        sql = f"{_SELECT} WHERE product_id = $1"
        if active_only:
            sql += " AND is_active = true"
        return await self._fetch_many(sql + " ORDER BY sort_order, name", (product_id,),
                                      context="get variants by product")

    async def list(self, filter: Optional[VariantFilter] = None) -> List[ProductVariant]:
        return await self._list(filter)

    async def count(self, filter: Optional[VariantFilter] = None) -> int:
        return await self._count(filter)

    async def adjust_stock(self, variant_id: uuid.UUID, adjustment: int) -> None:
        await self._affect_one(
            "UPDATE product_variants SET stock_quantity = stock_quantity + $2, updated_at = NOW() WHERE id = $1",
            (variant_id, adjustment), variant_id, context="adjust variant stock",
        )

    async def bulk_delete(self, variant_ids: Sequence[uuid.UUID]) -> int:
        if not variant_ids:
            return 0
        deleted = await self.db.exec(
            "DELETE FROM product_variants WHERE id = ANY($1::uuid[])", (list(variant_ids),),
            context="bulk delete variants",
        )
        logger.info(f"Deleted {deleted} variants")
        return deleted

    # =========================================================================
    # Attributes
    # =========================================================================

    async def add_attribute(self, attribute: VariantAttribute) -> VariantAttribute:
        await self.db.exec(
            """
            INSERT INTO variant_attributes (id, variant_id, name, value, type, sort_order, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, NOW())
            """,
            (attribute.id, attribute.variant_id, attribute.name, attribute.value,
             attribute.type, attribute.sort_order),
            context="create variant attribute",
        )
        return attribute

    async def get_attributes(self, variant_id: uuid.UUID) -> List[VariantAttribute]:
        return await self._fetch_many(
            "SELECT id, variant_id, name, value, type, sort_order FROM variant_attributes "
            "WHERE variant_id = $1 ORDER BY sort_order, name",
            (variant_id,), context="get variant attributes", record=VariantAttribute,
        )

    # =========================================================================
    # Images
    # =========================================================================

    async def add_image(self, image: VariantImage) -> VariantImage:
        await self.db.exec(
            """
            INSERT INTO variant_images (id, variant_id, image_url, alt_text, sort_order, is_main, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, NOW())
            """,
            (image.id, image.variant_id, image.image_url, image.alt_text, image.sort_order, image.is_main),
            context="create variant image",
        )
        return image

    async def get_images(self, variant_id: uuid.UUID) -> List[VariantImage]:
        return await self._fetch_many(
            "SELECT id, variant_id, image_url, alt_text, sort_order, is_main FROM variant_images "
            "WHERE variant_id = $1 ORDER BY is_main DESC, sort_order",
            (variant_id,), context="get variant images", record=VariantImage,
        )

    async def set_main_image(self, variant_id: uuid.UUID, image_id: uuid.UUID) -> None:
        """Make ``image_id`` the only main image of the variant."""
        async with self.db.begin() as tx:
            await tx.exec("UPDATE variant_images SET is_main = false WHERE variant_id = $1",
                          (variant_id,), context="unset main images")
            affected = await tx.exec(
                "UPDATE variant_images SET is_main = true WHERE id = $1 AND variant_id = $2",
                (image_id, variant_id), context="set main image",
            )
            if affected == 0:
                raise EntityNotFoundError("variant image", image_id)
