# erp_persistence/repositories/order_lines.py
"""
Order line items and order addresses.
"""
from __future__ import annotations
import logging
import uuid
from typing import List, Sequence

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.models import OrderAddress, OrderItem
from erp_persistence.repositories.base import BaseRepository, insert_sql, values_of

logger = logging.getLogger(__name__)

ITEM_COLUMNS = (
    "id, order_id, product_id, product_sku, product_name, quantity, unit_price, "
    "discount_amount, tax_rate, tax_amount, total_price, notes, status, "
    "quantity_shipped, quantity_returned, created_at, updated_at"
)
ADDRESS_COLUMNS = (
    "id, customer_id, order_id, type, first_name, last_name, company, "
    "address_line_1, address_line_2, city, state, postal_code, country, "
    "phone, email, instructions, is_default, created_at, updated_at"
)

_ITEM_FIELDS = tuple(c.strip() for c in ITEM_COLUMNS.split(","))
_ADDRESS_FIELDS = tuple(c.strip() for c in ADDRESS_COLUMNS.split(","))


class OrderItemRepository(BaseRepository):
    entity = "order_item"
    record = OrderItem

    async def create(self, item: OrderItem) -> OrderItem:
        await self.db.exec(insert_sql("order_items", _ITEM_FIELDS), values_of(item, _ITEM_FIELDS),
                           context="create order item")
        return item

    async def bulk_create(self, items: Sequence[OrderItem]) -> None:
        """Insert all items or none."""
        if not items:
            return
        sql = insert_sql("order_items", _ITEM_FIELDS)
        async with self.db.begin() as tx:
            for item in items:
                await tx.exec(sql, values_of(item, _ITEM_FIELDS), context="bulk create order items")
        logger.info(f"Created {len(items)} order items")

    async def get_by_order(self, order_id: uuid.UUID) -> List[OrderItem]:
        return await self._fetch_many(
            f"SELECT {ITEM_COLUMNS} FROM order_items WHERE order_id = $1 ORDER BY created_at ASC",
            (order_id,), context="get order items",
        )

    async def update_shipped_quantity(self, item_id: uuid.UUID, quantity: int) -> None:
        await self._affect_one(
            "UPDATE order_items SET quantity_shipped = $2, updated_at = NOW() WHERE id = $1",
            (item_id, quantity), item_id, context="update shipped quantity",
        )

    async def get_product_order_history(self, product_id: uuid.UUID, limit: int = 50) -> List[OrderItem]:
        """Most recent lines for a product, newest order first."""
        columns = ", ".join(f"oi.{c}" for c in _ITEM_FIELDS)
        return await self._fetch_many(
            f"""
            SELECT {columns}
            FROM order_items oi
            INNER JOIN orders o ON oi.order_id = o.id
            WHERE oi.product_id = $1
            ORDER BY o.order_date DESC
            LIMIT $2
            """,
            (product_id, limit), context="get product order history",
        )

    async def delete_by_order(self, order_id: uuid.UUID) -> int:
        return await self.db.exec("DELETE FROM order_items WHERE order_id = $1", (order_id,),
                                  context="delete order items")


class OrderAddressRepository(BaseRepository):
    entity = "order_address"
    record = OrderAddress

    async def create(self, address: OrderAddress) -> OrderAddress:
        await self.db.exec(insert_sql("order_addresses", _ADDRESS_FIELDS), values_of(address, _ADDRESS_FIELDS),
                           context="create order address")
        return address

    async def get_by_order(self, order_id: uuid.UUID) -> List[OrderAddress]:
        return await self._fetch_many(
            f"SELECT {ADDRESS_COLUMNS} FROM order_addresses WHERE order_id = $1 ORDER BY type ASC",
            (order_id,), context="get order addresses",
        )

    async def get_default_address(self, customer_id: uuid.UUID, address_type: str) -> OrderAddress:
        row = await self.db.query_one(
            f"""
            SELECT {ADDRESS_COLUMNS} FROM order_addresses
            WHERE customer_id = $1 AND type = $2 AND is_default = true
            LIMIT 1
            """,
            (customer_id, address_type), context="get default address",
        )
        if row is None:
            raise EntityNotFoundError("order_address", f"{customer_id}/{address_type}")
        return OrderAddress.from_row(row)
