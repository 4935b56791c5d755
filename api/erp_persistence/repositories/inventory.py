# erp_persistence/repositories/inventory.py
"""
Inventory repository: per (product, warehouse) stock rows.

Every stock mutation is one UPDATE whose WHERE clause carries the
precondition, so concurrent callers are serialised by the row lock and a
failed precondition shows up as zero affected rows:

- reserve:  quantity_reserved += n  WHERE on_hand - reserved >= n
- release:  quantity_reserved -= n  WHERE reserved >= n
- adjust:   quantity_on_hand += delta  (no lower bound, corrections may go negative)
- update:   quantity_on_hand := absolute

Bulk variants run the same statements inside one transaction; the first
failure rolls the whole batch back.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from erp_persistence.errors import (
    EntityNotFoundError,
    InsufficientReservedError,
    InsufficientStockError,
    InvalidArgumentError,
)
from erp_persistence.filters import InventoryFilter
from erp_persistence.models import InventoryRow, InventoryValue, StockAdjustment, StockReservation
from erp_persistence.query_builder import INVENTORY_COLUMNS, INVENTORY_SOURCE, BuildMode, build
from erp_persistence.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_SELECT = f"SELECT {INVENTORY_COLUMNS} FROM {INVENTORY_SOURCE}"

_UPSERT = """
    INSERT INTO inventory (id, product_id, warehouse_id, quantity_on_hand, quantity_reserved,
                           reorder_level, max_stock, min_stock, average_cost, last_count_date,
                           last_counted_by, updated_at, updated_by)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
    ON CONFLICT (product_id, warehouse_id) DO UPDATE SET
        quantity_on_hand = EXCLUDED.quantity_on_hand,
        quantity_reserved = EXCLUDED.quantity_reserved,
        reorder_level = EXCLUDED.reorder_level,
        max_stock = EXCLUDED.max_stock,
        min_stock = EXCLUDED.min_stock,
        average_cost = EXCLUDED.average_cost,
        last_count_date = EXCLUDED.last_count_date,
        last_counted_by = EXCLUDED.last_counted_by,
        updated_at = EXCLUDED.updated_at,
        updated_by = EXCLUDED.updated_by
    RETURNING id
"""

_ADJUST = """
    UPDATE inventory
    SET quantity_on_hand = quantity_on_hand + $3, updated_at = NOW(), updated_by = $4
    WHERE product_id = $1 AND warehouse_id = $2
"""

_RESERVE = """
    UPDATE inventory
    SET quantity_reserved = quantity_reserved + $3, updated_at = NOW()
    WHERE product_id = $1 AND warehouse_id = $2
      AND quantity_on_hand - quantity_reserved >= $3
"""

_RELEASE = """
    UPDATE inventory
    SET quantity_reserved = quantity_reserved - $3, updated_at = NOW()
    WHERE product_id = $1 AND warehouse_id = $2
      AND quantity_reserved >= $3
"""


def _positive(quantity: int, action: str) -> None:
    if quantity <= 0:
        raise InvalidArgumentError(f"{action} quantity must be positive, got {quantity}")


class InventoryRepository(BaseRepository):
    entity = "inventory"
    record = InventoryRow

    # =========================================================================
    # Rows
    # =========================================================================

    async def create(self, row: InventoryRow) -> InventoryRow:
        """Insert, or overwrite the existing row for the same product and warehouse."""
        stored_id = await self.db.query_scalar(
            _UPSERT,
            (row.id, row.product_id, row.warehouse_id, row.quantity_on_hand,
             row.quantity_reserved, row.reorder_level, row.max_stock, row.min_stock,
             row.average_cost, row.last_count_date, row.last_counted_by,
             row.updated_at, row.updated_by),
            context="create inventory",
        )
        if stored_id is not None:
            row.id = stored_id
        return row

    async def get_by_id(self, inventory_id: uuid.UUID) -> InventoryRow:
        return await self._fetch_one(f"{_SELECT} WHERE i.id = $1", (inventory_id,), inventory_id,
                                     context="get inventory by id")

    async def get(self, product_id: uuid.UUID, warehouse_id: uuid.UUID) -> InventoryRow:
        return await self._fetch_one(
            f"{_SELECT} WHERE i.product_id = $1 AND i.warehouse_id = $2",
            (product_id, warehouse_id), (product_id, warehouse_id),
            context="get inventory by product and warehouse",
        )

    async def list(self, filter: Optional[InventoryFilter] = None) -> List[InventoryRow]:
        return await self._list(filter)

    async def count(self, filter: Optional[InventoryFilter] = None) -> int:
        return await self._count(filter)

    async def search(self, query: str, limit: int = 0) -> List[InventoryRow]:
        sql = (
            f"{_SELECT} WHERE (p.name ILIKE $1 OR p.sku ILIKE $1 OR w.name ILIKE $1 OR w.code ILIKE $1) "
            "ORDER BY p.name ASC, w.name ASC"
        )
        args: list = [f"%{query}%"]
        if limit > 0:
            sql += " LIMIT $2"
            args.append(limit)
        return await self._fetch_many(sql, args, context="search inventory")

    async def get_stats(self, filter: Optional[InventoryFilter] = None) -> dict:
        sql, params = build("inventory", filter, BuildMode.stats)
        row = await self.db.query_one(sql, params, context="get inventory stats")
        return dict(row) if row is not None else {}

    # =========================================================================
    # Atomic stock mutations
    # =========================================================================

    async def adjust_stock(self, product_id: uuid.UUID, warehouse_id: uuid.UUID, delta: int,
                           updated_by: Optional[uuid.UUID] = None) -> None:
        """Add ``delta`` (may be negative) to quantity_on_hand."""
        if await self.db.exec(_ADJUST, (product_id, warehouse_id, delta, updated_by),
                              context="adjust stock") == 0:
            raise EntityNotFoundError("inventory", (product_id, warehouse_id))

    async def reserve_stock(self, product_id: uuid.UUID, warehouse_id: uuid.UUID, quantity: int) -> None:
        """Reserve ``quantity`` units if that many are available; otherwise InsufficientStockError."""
        _positive(quantity, "reserve")
        if await self.db.exec(_RESERVE, (product_id, warehouse_id, quantity), context="reserve stock") == 0:
            logger.warning(f"Insufficient stock to reserve {quantity} of {product_id} in {warehouse_id}")
            raise InsufficientStockError(
                f"insufficient available stock for product {product_id} in warehouse {warehouse_id}"
            )

    async def release_stock(self, product_id: uuid.UUID, warehouse_id: uuid.UUID, quantity: int) -> None:
        """Release ``quantity`` reserved units; InsufficientReservedError if fewer are reserved."""
        _positive(quantity, "release")
        if await self.db.exec(_RELEASE, (product_id, warehouse_id, quantity), context="release stock") == 0:
            logger.warning(f"Insufficient reserved stock to release {quantity} of {product_id} in {warehouse_id}")
            raise InsufficientReservedError(
                f"insufficient reserved stock for product {product_id} in warehouse {warehouse_id}"
            )

    async def update_stock(self, product_id: uuid.UUID, warehouse_id: uuid.UUID, quantity: int) -> None:
        """Set quantity_on_hand to an absolute value."""
        affected = await self.db.exec(
            """
            UPDATE inventory
            SET quantity_on_hand = $3, updated_at = NOW()
            WHERE product_id = $1 AND warehouse_id = $2
            """,
            (product_id, warehouse_id, quantity), context="update stock",
        )
        if affected == 0:
            raise EntityNotFoundError("inventory", (product_id, warehouse_id))

    async def get_available_stock(self, product_id: uuid.UUID, warehouse_id: uuid.UUID) -> int:
        row = await self.db.query_one(
            "SELECT quantity_on_hand - quantity_reserved AS available FROM inventory "
            "WHERE product_id = $1 AND warehouse_id = $2",
            (product_id, warehouse_id), context="get available stock",
        )
        if row is None:
            raise EntityNotFoundError("inventory", (product_id, warehouse_id))
        return int(row["available"])

    # =========================================================================
    # Bulk (all or nothing)
    # =========================================================================

    async def bulk_adjust_stock(self, adjustments: Sequence[StockAdjustment]) -> None:
        if not adjustments:
            return
        async with self.db.begin() as tx:
            for a in adjustments:
                affected = await tx.exec(
                    _ADJUST, (a.product_id, a.warehouse_id, a.adjustment, a.updated_by),
                    context="bulk adjust stock",
                )
                if affected == 0:
                    raise EntityNotFoundError("inventory", (a.product_id, a.warehouse_id))
        logger.info(f"Adjusted stock on {len(adjustments)} inventory rows")

    async def bulk_reserve_stock(self, reservations: Sequence[StockReservation]) -> None:
        if not reservations:
            return
        for r in reservations:
            _positive(r.quantity, "reserve")
        async with self.db.begin() as tx:
            for r in reservations:
                affected = await tx.exec(
                    _RESERVE, (r.product_id, r.warehouse_id, r.quantity), context="bulk reserve stock",
                )
                if affected == 0:
                    logger.warning(
                        f"Bulk reservation rolled back: insufficient stock for {r.product_id} in {r.warehouse_id}"
                    )
                    raise InsufficientStockError(
                        f"insufficient available stock for product {r.product_id} in warehouse {r.warehouse_id}"
                    )
        logger.info(f"Reserved stock on {len(reservations)} inventory rows")

    # =========================================================================
    # Stock level queries
    # =========================================================================

    async def get_low_stock_items(self, warehouse_id: Optional[uuid.UUID] = None) -> List[InventoryRow]:
        """Rows at or below their reorder level but not empty, most urgent first."""
        return await self._by_warehouse(
            "i.quantity_on_hand <= i.reorder_level AND i.quantity_on_hand > 0",
            "(i.quantity_on_hand - i.reorder_level) ASC",
            warehouse_id, context="get low stock items",
        )

    async def get_out_of_stock_items(self, warehouse_id: Optional[uuid.UUID] = None) -> List[InventoryRow]:
        return await self._by_warehouse(
            "i.quantity_on_hand = 0", "p.name ASC", warehouse_id, context="get out of stock items",
        )

    async def get_overstock_items(self, warehouse_id: Optional[uuid.UUID] = None) -> List[InventoryRow]:
        return await self._by_warehouse(
            "i.max_stock IS NOT NULL AND i.quantity_on_hand > i.max_stock",
            "(i.quantity_on_hand - i.max_stock) DESC",
            warehouse_id, context="get overstock items",
        )

    async def _by_warehouse(self, predicate: str, order: str, warehouse_id: Optional[uuid.UUID],
                            context: str) -> List[InventoryRow]:
        if warehouse_id is None:
            return await self._fetch_many(f"{_SELECT} WHERE {predicate} ORDER BY {order}", (), context=context)
        return await self._fetch_many(
            f"{_SELECT} WHERE i.warehouse_id = $1 AND {predicate} ORDER BY {order}",
            (warehouse_id,), context=context,
        )

    async def get_inventory_value(self, warehouse_id: Optional[uuid.UUID] = None) -> InventoryValue:
        sql = (
            "SELECT COUNT(*) AS total_items, "
            "COALESCE(SUM(quantity_on_hand), 0) AS total_quantity, "
            "COALESCE(SUM(quantity_on_hand * average_cost), 0) AS total_value "
            "FROM inventory"
        )
        args: tuple = ()
        if warehouse_id is not None:
            sql += " WHERE warehouse_id = $1"
            args = (warehouse_id,)
        row = await self.db.query_one(sql, args, context="get inventory value")
        value = InventoryValue.from_row(row) if row is not None else InventoryValue()
        value.warehouse_id = warehouse_id
        return value

    # =========================================================================
    # Cycle counting and reconciliation
    # =========================================================================

    async def get_items_for_cycle_count(self, warehouse_id: uuid.UUID, limit: int = 0) -> List[InventoryRow]:
        """Never-counted rows first, then oldest count, then closest to reorder level."""
        sql = (
            f"{_SELECT} WHERE i.warehouse_id = $1 ORDER BY "
            "CASE WHEN i.last_count_date IS NULL THEN 0 ELSE 1 END, "
            "i.last_count_date ASC, "
            "(i.quantity_on_hand - i.reorder_level) ASC"
        )
        args: list = [warehouse_id]
        if limit > 0:
            sql += " LIMIT $2"
            args.append(limit)
        return await self._fetch_many(sql, args, context="get items for cycle count")

    async def update_cycle_count(self, inventory_id: uuid.UUID, counted_quantity: int,
                                 counted_by: uuid.UUID) -> None:
        await self._affect_one(
            """
            UPDATE inventory
            SET quantity_on_hand = $2, last_count_date = NOW(), last_counted_by = $3, updated_at = NOW()
            WHERE id = $1
            """,
            (inventory_id, counted_quantity, counted_by), inventory_id, context="update cycle count",
        )

    async def get_last_cycle_count_date(self, inventory_id: uuid.UUID) -> Optional[datetime]:
        row = await self.db.query_one("SELECT last_count_date FROM inventory WHERE id = $1",
                                      (inventory_id,), context="get last cycle count date")
        if row is None:
            raise EntityNotFoundError("inventory", inventory_id)
        return row["last_count_date"]

    async def reconcile_stock(self, inventory_id: uuid.UUID, system_quantity: int, physical_quantity: int,
                              reason: str, reconciled_by: uuid.UUID) -> None:
        """Overwrite on-hand with the physical count."""
        async with self.db.begin() as tx:
            affected = await tx.exec(
                "UPDATE inventory SET quantity_on_hand = $2, updated_at = NOW(), updated_by = $3 WHERE id = $1",
                (inventory_id, physical_quantity, reconciled_by), context="reconcile stock",
            )
            if affected == 0:
                raise EntityNotFoundError("inventory", inventory_id)
        logger.info(
            f"Reconciled inventory {inventory_id}: system={system_quantity} "
            f"physical={physical_quantity} reason={reason!r}"
        )
