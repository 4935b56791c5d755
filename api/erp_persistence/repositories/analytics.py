# erp_persistence/repositories/analytics.py
"""
Read-only order analytics.

Revenue figures count only orders that still represent income: cancelled
and refunded orders are excluded (REVENUE_STATUS_PREDICATE).
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Dict, List, Optional

from erp_persistence.errors import InvalidArgumentError
from erp_persistence.filters import OrderStatsFilter
from erp_persistence.models import OrderStats, ProductSales, RevenueByPeriod, TopCustomer
from erp_persistence.query_builder import REVENUE_STATUS_PREDICATE, BuildMode, build, filtered
from erp_persistence.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

# TO_CHAR patterns per grouping; the quoted letters are literals
PERIOD_FORMATS: Dict[str, str] = {
    "day": "YYYY-MM-DD",
    "week": 'IYYY-"W"IW',
    "month": "YYYY-MM",
    "quarter": 'YYYY-"Q"Q',
    "year": "YYYY",
}


# Customers ranked by revenue within [$1, $2], at most $3 rows
TOP_CUSTOMERS_SQL = f"""
    SELECT
        c.id AS customer_id,
        TRIM(COALESCE(c.first_name, '') || ' ' || COALESCE(c.last_name, '')) AS customer_name,
        c.email AS customer_email,
        c.company_name AS company_name,
        COUNT(o.id) AS order_count,
        COALESCE(SUM(o.total_amount), 0) AS total_revenue,
        COALESCE(AVG(o.total_amount), 0) AS average_order_value,
        MAX(o.order_date) AS last_order_date
    FROM customers c
    INNER JOIN orders o ON c.id = o.customer_id
    WHERE o.order_date >= $1 AND o.order_date <= $2
      AND o.{REVENUE_STATUS_PREDICATE}
    GROUP BY c.id, c.first_name, c.last_name, c.email, c.company_name
    ORDER BY total_revenue DESC
    LIMIT $3
"""


def period_format(group_by: str) -> str:
    try:
        return PERIOD_FORMATS[group_by]
    except KeyError:
        raise InvalidArgumentError(
            f"invalid group_by {group_by!r}, expected one of {', '.join(PERIOD_FORMATS)}"
        ) from None


class OrderAnalyticsRepository(BaseRepository):
    entity = "order"
    record = OrderStats

    async def get_revenue_by_period(self, start: datetime, end: datetime, group_by: str = "month") -> List[RevenueByPeriod]:
        fmt = period_format(group_by)
        return await self._fetch_many(
            f"""
            SELECT
                TO_CHAR(order_date, '{fmt}') AS period,
                COALESCE(SUM(total_amount), 0) AS revenue,
                COUNT(*) AS order_count,
                COALESCE(AVG(total_amount), 0) AS average_order_value
            FROM orders
            WHERE order_date >= $1 AND order_date <= $2
              AND {REVENUE_STATUS_PREDICATE}
            GROUP BY 1
            ORDER BY period
            """,
            (start, end), context="get revenue by period", record=RevenueByPeriod,
        )

    async def get_top_customers(self, start: datetime, end: datetime, limit: int = 10) -> List[TopCustomer]:
        """Customers ranked by revenue in the window."""
        return await self._fetch_many(
            TOP_CUSTOMERS_SQL,
            (start, end, limit), context="get top customers", record=TopCustomer,
        )

    async def get_sales_by_product(self, start: datetime, end: datetime, limit: int = 10) -> List[ProductSales]:
        return await self._fetch_many(
            f"""
            SELECT
                p.id AS product_id,
                p.sku AS product_sku,
                p.name AS product_name,
                COALESCE(SUM(oi.quantity), 0) AS quantity_sold,
                COALESCE(SUM(oi.total_price), 0) AS total_revenue,
                COUNT(DISTINCT oi.order_id) AS order_count
            FROM products p
            INNER JOIN order_items oi ON p.id = oi.product_id
            INNER JOIN orders o ON oi.order_id = o.id
            WHERE o.order_date >= $1 AND o.order_date <= $2
              AND o.{REVENUE_STATUS_PREDICATE}
            GROUP BY p.id, p.sku, p.name
            ORDER BY total_revenue DESC
            LIMIT $3
            """,
            (start, end, limit), context="get sales by product", record=ProductSales,
        )

    async def get_order_stats(self, filter: Optional[OrderStatsFilter] = None) -> OrderStats:
        """Aggregates plus status and payment-status breakdowns over the same filter."""
        list_filter = (filter or OrderStatsFilter()).to_list_filter()
        sql, params = build("order", list_filter, BuildMode.stats)
        row = await self.db.query_one(sql, params, context="get order stats")
        stats = OrderStats.from_row(row) if row is not None else OrderStats()

        stats.status_counts = await self._counts_by("status", list_filter)
        stats.payment_status_counts = await self._counts_by("payment_status", list_filter)
        return stats

    async def _counts_by(self, column: str, list_filter) -> Dict[str, int]:
        q = filtered("order", list_filter, f"{column}, COUNT(*) AS count").append(f" GROUP BY {column}")
        rows = await self.db.query_many(q.sql(), q.params, context=f"count orders by {column}")
        return {r[column]: int(r["count"]) for r in rows}
