# erp_persistence/repositories/warehouses.py
"""
Warehouse repository and per-warehouse stock statistics.
"""
from __future__ import annotations
import logging
import uuid
from typing import List, Optional, Sequence

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.filters import WarehouseFilter
from erp_persistence.models import Warehouse, WarehouseStats
from erp_persistence.query_builder import WAREHOUSE_COLUMNS
from erp_persistence.repositories.base import BaseRepository, insert_sql, values_of

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in WAREHOUSE_COLUMNS.split(","))
_SELECT = f"SELECT {WAREHOUSE_COLUMNS} FROM warehouses"

_STATS = """
    SELECT
        w.id AS warehouse_id,
        w.name AS warehouse_name,
        w.code AS warehouse_code,
        COUNT(DISTINCT i.product_id) AS total_products,
        COALESCE(SUM(i.quantity_on_hand), 0) AS total_quantity,
        COALESCE(SUM(i.quantity_on_hand * i.average_cost), 0) AS total_value,
        COUNT(CASE WHEN i.quantity_on_hand <= i.reorder_level THEN 1 END) AS low_stock_products,
        COUNT(CASE WHEN i.quantity_on_hand = 0 THEN 1 END) AS out_of_stock_products,
        GREATEST(w.updated_at, COALESCE(MAX(i.updated_at), w.updated_at)) AS last_updated
    FROM warehouses w
    LEFT JOIN inventory i ON w.id = i.warehouse_id
"""


class WarehouseRepository(BaseRepository):
    entity = "warehouse"
    record = Warehouse

    async def create(self, warehouse: Warehouse) -> Warehouse:
        await self.db.exec(insert_sql("warehouses", _FIELDS), values_of(warehouse, _FIELDS),
                           context="create warehouse")
        return warehouse

    async def get_by_id(self, warehouse_id: uuid.UUID) -> Warehouse:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (warehouse_id,), warehouse_id,
                                     context="get warehouse by id")

    async def get_by_code(self, code: str) -> Warehouse:
        return await self._fetch_one(f"{_SELECT} WHERE code = $1", (code,), code,
                                     context="get warehouse by code")

    async def list(self, filter: Optional[WarehouseFilter] = None) -> List[Warehouse]:
        return await self._list(filter)

    async def count(self, filter: Optional[WarehouseFilter] = None) -> int:
        return await self._count(filter)

    async def exists_by_code(self, code: str) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM warehouses WHERE code = $1)", (code,),
                                  context="check warehouse exists by code")

    async def bulk_update_status(self, warehouse_ids: Sequence[uuid.UUID], is_active: bool) -> int:
        if not warehouse_ids:
            return 0
        updated = await self.db.exec(
            "UPDATE warehouses SET is_active = $1, updated_at = NOW() WHERE id = ANY($2::uuid[])",
            (is_active, list(warehouse_ids)), context="bulk update warehouse status",
        )
        logger.info(f"Set is_active={is_active} on {updated} warehouses")
        return updated

    async def get_stats(self, warehouse_id: uuid.UUID) -> WarehouseStats:
        row = await self.db.query_one(
            _STATS + " WHERE w.id = $1 GROUP BY w.id, w.name, w.code, w.updated_at",
            (warehouse_id,), context="get warehouse stats",
        )
        if row is None:
            raise EntityNotFoundError("warehouse", warehouse_id)
        return WarehouseStats.from_row(row)

    async def get_all_stats(self) -> List[WarehouseStats]:
        return await self._fetch_many(
            _STATS + " GROUP BY w.id, w.name, w.code, w.updated_at ORDER BY w.name ASC",
            (), context="get all warehouse stats", record=WarehouseStats,
        )
