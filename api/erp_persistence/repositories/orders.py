# erp_persistence/repositories/orders.py
"""
Order headers: CRUD, status and payment transitions, work queues.

Status only moves through ``update_status``/``bulk_update_status``, which
copy the current status into previous_status in the same statement.
``update`` writes every other mutable column and leaves both untouched.
"""
from __future__ import annotations
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Sequence

from erp_persistence.filters import OrderFilter
from erp_persistence.models import Order
from erp_persistence.query_builder import ORDER_COLUMNS
from erp_persistence.repositories.base import BaseRepository, insert_sql, update_sql, values_of
from erp_persistence.repositories.order_numbers import generate_unique_order_number

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in ORDER_COLUMNS.split(","))
# identity, creation and status columns are fixed once written
_UPDATABLE = tuple(
    c for c in _FIELDS
    if c not in ("id", "order_number", "status", "previous_status", "order_date",
                 "created_by", "created_at", "updated_at")
)
_SELECT = f"SELECT {ORDER_COLUMNS} FROM orders"

_CLOSED_STATUSES = "('CANCELLED', 'DELIVERED', 'REFUNDED')"
_UNPAID_STATUSES = "('PENDING', 'PARTIALLY_PAID', 'OVERDUE')"

PENDING_QUEUE_LIMIT = 1000


class OrderRepository(BaseRepository):
    entity = "order"
    record = Order

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, order: Order) -> Order:
        await self.db.exec(insert_sql("orders", _FIELDS), values_of(order, _FIELDS), context="create order")
        logger.info(f"Created order {order.order_number} for customer {order.customer_id}")
        return order

    async def get_by_id(self, order_id: uuid.UUID) -> Order:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (order_id,), order_id,
                                     context="get order by id")

    async def get_by_order_number(self, order_number: str) -> Order:
        return await self._fetch_one(f"{_SELECT} WHERE order_number = $1", (order_number,), order_number,
                                     context="get order by number")

    async def update(self, order: Order) -> None:
        await self._affect_one(
            update_sql("orders", _UPDATABLE),
            [order.id, *values_of(order, _UPDATABLE)], order.id,
            context="update order",
        )

    async def delete(self, order_id: uuid.UUID) -> None:
        await self._affect_one("DELETE FROM orders WHERE id = $1", (order_id,), order_id,
                               context="delete order")

    async def list(self, filter: Optional[OrderFilter] = None) -> List[Order]:
        return await self._list(filter)

    async def count(self, filter: Optional[OrderFilter] = None) -> int:
        return await self._count(filter)

    async def search(self, query: str, filter: Optional[OrderFilter] = None) -> List[Order]:
        f = (filter or OrderFilter()).model_copy(update={"search": query})
        return await self._list(f)

    # =========================================================================
    # Status and payment
    # =========================================================================

    async def update_status(self, order_id: uuid.UUID, status: str) -> None:
        await self._affect_one(
            "UPDATE orders SET previous_status = status, status = $2, updated_at = NOW() WHERE id = $1",
            (order_id, status), order_id, context="update order status",
        )
        logger.info(f"Order {order_id} moved to {status}")

    async def bulk_update_status(self, order_ids: Sequence[uuid.UUID], status: str) -> int:
        if not order_ids:
            return 0
        updated = await self.db.exec(
            """
            UPDATE orders
            SET previous_status = status, status = $1, updated_at = NOW()
            WHERE id = ANY($2::uuid[])
            """,
            (status, list(order_ids)), context="bulk update order status",
        )
        logger.info(f"Moved {updated} of {len(order_ids)} orders to {status}")
        return updated

    async def update_payment_status(self, order_id: uuid.UUID, payment_status: str, paid_amount: Decimal) -> None:
        await self._affect_one(
            "UPDATE orders SET payment_status = $2, paid_amount = $3, updated_at = NOW() WHERE id = $1",
            (order_id, payment_status, paid_amount), order_id, context="update order payment status",
        )

    # =========================================================================
    # Work queues
    # =========================================================================

    async def get_overdue(self) -> List[Order]:
        """Open, not fully paid orders whose required date has passed."""
        return await self._fetch_many(
            f"""
            {_SELECT}
            WHERE payment_status <> 'PAID'
              AND required_date < CURRENT_DATE
              AND status NOT IN {_CLOSED_STATUSES}
            ORDER BY required_date ASC
            """,
            (), context="get overdue orders",
        )

    async def get_pending(self) -> List[Order]:
        return await self._list(OrderFilter(status=["PENDING"], limit=PENDING_QUEUE_LIMIT))

    async def get_unpaid(self) -> List[Order]:
        return await self._fetch_many(
            f"""
            {_SELECT}
            WHERE payment_status IN {_UNPAID_STATUSES}
              AND status NOT IN ('CANCELLED', 'REFUNDED')
            ORDER BY order_date ASC
            """,
            (), context="get unpaid orders",
        )

    # =========================================================================
    # Order numbers
    # =========================================================================

    async def exists_by_order_number(self, order_number: str) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM orders WHERE order_number = $1)",
                                  (order_number,), context="check order number exists")

    async def generate_unique_order_number(self) -> str:
        return await generate_unique_order_number(self.exists_by_order_number)
