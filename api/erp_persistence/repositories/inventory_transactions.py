# erp_persistence/repositories/inventory_transactions.py
"""
Inventory transaction ledger and its approval workflow.

A transaction is pending while approved_at is NULL. Approval and rejection
are single UPDATEs guarded by ``approved_at IS NULL``; concurrent callers
race for the row lock and exactly one of them sees an affected row.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from erp_persistence.errors import NotFoundOrAlreadyApprovedError
from erp_persistence.filters import InventoryTransactionFilter
from erp_persistence.models import InventoryTransaction, TransactionSummary, TransactionTypeSummary
from erp_persistence.query_builder import TRANSACTION_COLUMNS, BuildMode, build, filtered
from erp_persistence.repositories.base import BaseRepository, insert_sql, values_of
from erp_persistence.settings import settings

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in TRANSACTION_COLUMNS.split(","))
_SELECT = f"SELECT {TRANSACTION_COLUMNS} FROM inventory_transactions"

# stock leaving through sales or consumption
_COGS_TYPES = "('SALE', 'CONSUMPTION')"


class InventoryTransactionRepository(BaseRepository):
    entity = "inventory_transaction"
    record = InventoryTransaction

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, transaction: InventoryTransaction) -> InventoryTransaction:
        await self.db.exec(
            insert_sql("inventory_transactions", _FIELDS), values_of(transaction, _FIELDS),
            context="create inventory transaction",
        )
        return transaction

    async def get_by_id(self, transaction_id: uuid.UUID) -> InventoryTransaction:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (transaction_id,), transaction_id,
                                     context="get inventory transaction by id")

    async def list(self, filter: Optional[InventoryTransactionFilter] = None) -> List[InventoryTransaction]:
        return await self._list(filter)

    async def count(self, filter: Optional[InventoryTransactionFilter] = None) -> int:
        return await self._count(filter)

    # =========================================================================
    # Approval workflow
    # =========================================================================

    async def approve(self, transaction_id: uuid.UUID, user_id: uuid.UUID) -> None:
        affected = await self.db.exec(
            """
            UPDATE inventory_transactions
            SET approved_at = NOW(), approved_by = $2
            WHERE id = $1 AND approved_at IS NULL
            """,
            (transaction_id, user_id), context="approve inventory transaction",
        )
        if affected == 0:
            logger.warning(f"Approval of {transaction_id} by {user_id} lost: not found or already approved")
            raise NotFoundOrAlreadyApprovedError(
                f"transaction {transaction_id} not found or already approved"
            )

    async def reject(self, transaction_id: uuid.UUID, user_id: uuid.UUID, reason: str) -> None:
        """Close a pending transaction, recording the rejection reason."""
        async with self.db.begin() as tx:
            affected = await tx.exec(
                """
                UPDATE inventory_transactions
                SET approved_at = NOW(), approved_by = $2, reason = $3
                WHERE id = $1 AND approved_at IS NULL
                """,
                (transaction_id, user_id, reason), context="reject inventory transaction",
            )
            if affected == 0:
                logger.warning(f"Rejection of {transaction_id} by {user_id} lost: not found or already processed")
                raise NotFoundOrAlreadyApprovedError(
                    f"transaction {transaction_id} not found or already processed"
                )

    async def bulk_approve(self, transaction_ids: Sequence[uuid.UUID], user_id: uuid.UUID) -> int:
        """Approve every still-pending id; already approved ids are skipped silently."""
        if not transaction_ids:
            return 0
        approved = await self.db.exec(
            """
            UPDATE inventory_transactions
            SET approved_at = NOW(), approved_by = $1
            WHERE id = ANY($2::uuid[]) AND approved_at IS NULL
            """,
            (user_id, list(transaction_ids)), context="bulk approve inventory transactions",
        )
        logger.info(f"Bulk approved {approved} of {len(transaction_ids)} inventory transactions")
        return approved

    async def get_pending_approval(self, warehouse_id: Optional[uuid.UUID] = None) -> List[InventoryTransaction]:
        sql = f"{_SELECT} WHERE approved_at IS NULL"
        args: tuple = ()
        if warehouse_id is not None:
            sql += " AND warehouse_id = $1"
            args = (warehouse_id,)
        return await self._fetch_many(sql + " ORDER BY created_at ASC", args,
                                      context="get pending inventory transactions")

    async def get_pending_transfers(self, warehouse_id: Optional[uuid.UUID] = None) -> List[InventoryTransaction]:
        """Unapproved transfer legs touching ``warehouse_id`` on either side."""
        sql = (
            f"{_SELECT} WHERE transaction_type IN ('TRANSFER_OUT', 'TRANSFER_IN') "
            "AND approved_at IS NULL"
        )
        args: tuple = ()
        if warehouse_id is not None:
            sql += " AND (warehouse_id = $1 OR from_warehouse_id = $1 OR to_warehouse_id = $1)"
            args = (warehouse_id,)
        return await self._fetch_many(sql + " ORDER BY created_at ASC", args,
                                      context="get pending transfers")

    # =========================================================================
    # Reporting
    # =========================================================================

    async def get_cost_of_goods_sold(self, start: datetime, end: datetime,
                                     warehouse_id: Optional[uuid.UUID] = None) -> Decimal:
        """Total cost of approved sales and consumption between ``start`` and ``end``."""
        sql = (
            "SELECT COALESCE(SUM(total_cost), 0) FROM inventory_transactions "
            f"WHERE transaction_type IN {_COGS_TYPES} "
            "AND created_at BETWEEN $1 AND $2 AND approved_at IS NOT NULL"
        )
        args: list = [start, end]
        if warehouse_id is not None:
            sql += " AND warehouse_id = $3"
            args.append(warehouse_id)
        return Decimal(await self.db.query_scalar(sql, args, context="get cost of goods sold") or 0)

    async def get_summary(self, filter: Optional[InventoryTransactionFilter] = None) -> TransactionSummary:
        """
        Totals in and out plus a per-type breakdown.

        Without a date range the last TRANSACTION_SUMMARY_DEFAULT_DAYS days are
        summarised.
        """
        f = filter or InventoryTransactionFilter()
        if f.date_from is None and f.date_to is None:
            end = datetime.now().astimezone()
            f = f.model_copy(update={
                "date_from": end - timedelta(days=settings.TRANSACTION_SUMMARY_DEFAULT_DAYS),
                "date_to": end,
            })

        sql, params = build("inventory_transaction", f, BuildMode.stats)
        row = await self.db.query_one(sql, params, context="get transaction summary")
        summary = TransactionSummary.from_row(row) if row is not None else TransactionSummary()

        q = filtered(
            "inventory_transaction", f,
            "transaction_type, COUNT(*) AS count, COALESCE(SUM(ABS(quantity)), 0) AS total_quantity, "
            "COALESCE(SUM(total_cost), 0) AS total_value",
        ).append(" GROUP BY transaction_type")
        rows = await self.db.query_many(q.sql(), q.params, context="get transaction summary by type")
        summary.by_type = {r["transaction_type"]: TransactionTypeSummary.from_row(r) for r in rows}
        summary.start_date = f.date_from
        summary.end_date = f.date_to
        return summary
