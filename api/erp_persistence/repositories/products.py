# erp_persistence/repositories/products.py
"""
Product repository: CRUD, catalog lookups, stock predicates and statistics.
"""
from __future__ import annotations
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Sequence

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.filters import ProductFilter, ProductStatsFilter
from erp_persistence.models import Product, ProductStats
from erp_persistence.query_builder import (
    OVERSTOCK_PREDICATE,
    OUT_OF_STOCK_PREDICATE,
    PRODUCT_COLUMNS,
    BuildMode,
    build,
)
from erp_persistence.repositories.base import BaseRepository, insert_sql, update_sql, values_of

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in PRODUCT_COLUMNS.split(","))
# every column except the key and the timestamps
_UPDATABLE = tuple(c for c in _FIELDS if c not in ("id", "created_at", "updated_at"))
_SELECT = f"SELECT {PRODUCT_COLUMNS} FROM products"


class ProductRepository(BaseRepository):
    entity = "product"
    record = Product

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, product: Product) -> Product:
        await self.db.exec(insert_sql("products", _FIELDS), values_of(product, _FIELDS), context="create product")
        return product

    async def get_by_id(self, product_id: uuid.UUID) -> Product:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (product_id,), product_id,
                                     context="get product by id")

    async def get_by_sku(self, sku: str) -> Product:
        return await self._fetch_one(f"{_SELECT} WHERE sku = $1", (sku,), sku,
                                     context="get product by sku")

    async def update(self, product: Product) -> None:
        await self._affect_one(
            update_sql("products", _UPDATABLE),
            [product.id, *values_of(product, _UPDATABLE)], product.id,
            context="update product",
        )

    async def delete(self, product_id: uuid.UUID) -> None:
        await self._affect_one("DELETE FROM products WHERE id = $1", (product_id,), product_id,
                               context="delete product")

    async def list(self, filter: Optional[ProductFilter] = None) -> List[Product]:
        return await self._list(filter)

    async def count(self, filter: Optional[ProductFilter] = None) -> int:
        return await self._count(filter)

    async def search(self, query: str, limit: int = 20) -> List[Product]:
        """Active products matching ``query``; name hits rank before sku hits."""
        return await self._fetch_many(
            f"""
            {_SELECT}
            WHERE (
                name ILIKE $1 OR
                description ILIKE $1 OR
                short_description ILIKE $1 OR
                sku ILIKE $1 OR
                barcode ILIKE $1
            ) AND is_active = true
            ORDER BY
                CASE WHEN name ILIKE $1 THEN 1 ELSE 2 END,
                CASE WHEN sku ILIKE $1 THEN 1 ELSE 2 END,
                name
            LIMIT $2
            """,
            (f"%{query}%", limit), context="search products",
        )

    # =========================================================================
    # Catalog lookups
    # =========================================================================

    async def get_by_category(self, category_id: uuid.UUID) -> List[Product]:
        return await self._fetch_many(
            f"{_SELECT} WHERE category_id = $1 AND is_active = true ORDER BY name",
            (category_id,), context="get products by category",
        )

    async def get_by_categories(self, category_ids: Sequence[uuid.UUID]) -> List[Product]:
        if not category_ids:
            return []
        return await self._fetch_many(
            f"{_SELECT} WHERE category_id = ANY($1::uuid[]) AND is_active = true ORDER BY name",
            (list(category_ids),), context="get products by categories",
        )

    async def get_featured(self, limit: int = 10) -> List[Product]:
        return await self._fetch_many(
            f"{_SELECT} WHERE is_featured = true AND is_active = true ORDER BY name LIMIT $1",
            (limit,), context="get featured products",
        )

    async def get_active(self, limit: int = 100) -> List[Product]:
        return await self._fetch_many(
            f"{_SELECT} WHERE is_active = true ORDER BY name LIMIT $1",
            (limit,), context="get active products",
        )

    # =========================================================================
    # Stock predicates
    # =========================================================================

    async def get_low_stock(self, threshold: int) -> List[Product]:
        """
        Active tracked products with 0 < stock <= min_stock_level.

        ``threshold`` stands in for rows without a min_stock_level. Out of
        stock products are not low stock.
        """
        return await self._fetch_many(
            f"""
            {_SELECT}
            WHERE track_inventory = true
              AND stock_quantity <= COALESCE(min_stock_level, $1)
              AND stock_quantity > 0
              AND is_active = true
            ORDER BY stock_quantity ASC
            """,
            (threshold,), context="get low stock products",
        )

    async def get_out_of_stock(self) -> List[Product]:
        return await self._fetch_many(
            f"{_SELECT} WHERE {OUT_OF_STOCK_PREDICATE} AND is_active = true ORDER BY name",
            (), context="get out of stock products",
        )

    async def get_overstock(self) -> List[Product]:
        return await self._fetch_many(
            f"{_SELECT} WHERE {OVERSTOCK_PREDICATE} AND is_active = true "
            "ORDER BY stock_quantity - max_stock_level DESC",
            (), context="get overstock products",
        )

    # =========================================================================
    # Field updates
    # =========================================================================

    async def exists_by_sku(self, sku: str) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM products WHERE sku = $1)", (sku,),
                                  context="check product exists by sku")

    async def exists_by_id(self, product_id: uuid.UUID) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM products WHERE id = $1)", (product_id,),
                                  context="check product exists by id")

    async def update_stock(self, product_id: uuid.UUID, quantity: int) -> None:
        await self._affect_one(
            "UPDATE products SET stock_quantity = $2, updated_at = NOW() WHERE id = $1",
            (product_id, quantity), product_id, context="update product stock",
        )

    async def adjust_stock(self, product_id: uuid.UUID, adjustment: int) -> None:
        await self._affect_one(
            "UPDATE products SET stock_quantity = stock_quantity + $2, updated_at = NOW() WHERE id = $1",
            (product_id, adjustment), product_id, context="adjust product stock",
        )

    async def get_price(self, product_id: uuid.UUID) -> Decimal:
        row = await self.db.query_one("SELECT price FROM products WHERE id = $1", (product_id,),
                                      context="get product price")
        if row is None:
            raise EntityNotFoundError("product", product_id)
        return Decimal(row["price"])

    async def update_price(self, product_id: uuid.UUID, price: Decimal) -> None:
        await self._affect_one(
            "UPDATE products SET price = $2, updated_at = NOW() WHERE id = $1",
            (product_id, price), product_id, context="update product price",
        )

    async def bulk_update_status(self, product_ids: Sequence[uuid.UUID], is_active: bool) -> int:
        if not product_ids:
            return 0
        updated = await self.db.exec(
            "UPDATE products SET is_active = $1, updated_at = NOW() WHERE id = ANY($2::uuid[])",
            (is_active, list(product_ids)), context="bulk update product status",
        )
        logger.info(f"Set is_active={is_active} on {updated} products")
        return updated

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_stats(self, filter: Optional[ProductStatsFilter] = None) -> ProductStats:
        list_filter = (filter or ProductStatsFilter()).to_list_filter()
        sql, params = build("product", list_filter, BuildMode.stats)
        row = await self.db.query_one(sql, params, context="get product stats")
        return ProductStats.from_row(row) if row is not None else ProductStats()
