# erp_persistence/repositories/customers.py
"""
Customers, the companies they belong to, and customer-centric reporting.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union

from erp_persistence.errors import parse_uuid
from erp_persistence.filters import CompanyFilter, CustomerFilter, CustomerStatsFilter
from erp_persistence.models import (
    Company,
    Customer,
    CustomerOrdersSummary,
    CustomerStats,
    NewCustomersByPeriod,
    TopCustomer,
)
from erp_persistence.query_builder import COMPANY_COLUMNS, CUSTOMER_COLUMNS, filtered
from erp_persistence.repositories.analytics import TOP_CUSTOMERS_SQL, period_format
from erp_persistence.repositories.base import BaseRepository, insert_sql, update_sql, values_of

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in CUSTOMER_COLUMNS.split(","))
_UPDATABLE = tuple(c for c in _FIELDS if c not in ("id", "customer_code", "created_at", "updated_at"))
_SELECT = f"SELECT {CUSTOMER_COLUMNS} FROM customers"

_COMPANY_FIELDS = tuple(c.strip() for c in COMPANY_COLUMNS.split(","))
_COMPANY_UPDATABLE = tuple(c for c in _COMPANY_FIELDS if c not in ("id", "created_at", "updated_at"))
_COMPANY_SELECT = f"SELECT {COMPANY_COLUMNS} FROM companies"


class CustomerRepository(BaseRepository):
    entity = "customer"
    record = Customer

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, customer: Customer) -> Customer:
        await self.db.exec(insert_sql("customers", _FIELDS), values_of(customer, _FIELDS), context="create customer")
        return customer

    async def get_by_id(self, customer_id: uuid.UUID) -> Customer:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (customer_id,), customer_id,
                                     context="get customer by id")

    async def get_by_code(self, customer_code: str) -> Customer:
        return await self._fetch_one(f"{_SELECT} WHERE customer_code = $1", (customer_code,), customer_code,
                                     context="get customer by code")

    async def get_by_email(self, email: str) -> Customer:
        return await self._fetch_one(f"{_SELECT} WHERE email = $1", (email,), email,
                                     context="get customer by email")

    async def update(self, customer: Customer) -> None:
        await self._affect_one(
            update_sql("customers", _UPDATABLE),
            [customer.id, *values_of(customer, _UPDATABLE)], customer.id,
            context="update customer",
        )

    async def delete(self, customer_id: uuid.UUID) -> None:
        await self._affect_one("DELETE FROM customers WHERE id = $1", (customer_id,), customer_id,
                               context="delete customer")

    async def list(self, filter: Optional[CustomerFilter] = None) -> List[Customer]:
        return await self._list(filter)

    async def count(self, filter: Optional[CustomerFilter] = None) -> int:
        return await self._count(filter)

    async def update_credit_used(self, customer_id: uuid.UUID, amount: Decimal) -> None:
        await self._affect_one(
            "UPDATE customers SET credit_used = $2, updated_at = NOW() WHERE id = $1",
            (customer_id, amount), customer_id, context="update customer credit used",
        )

    async def transfer_orders(self, from_customer_id: Union[str, uuid.UUID],
                              to_customer_id: Union[str, uuid.UUID]) -> int:
        """Reassign every order of one customer to another; returns the number moved."""
        source = parse_uuid(from_customer_id, "from customer id")
        target = parse_uuid(to_customer_id, "to customer id")
        moved = await self.db.exec(
            "UPDATE orders SET customer_id = $1, updated_at = NOW() WHERE customer_id = $2",
            (target, source), context="transfer orders",
        )
        logger.info(f"Transferred {moved} orders from customer {source} to {target}")
        return moved

    # =========================================================================
    # Reporting
    # =========================================================================

    async def get_stats(self, filter: CustomerStatsFilter) -> CustomerStats:
        """
        Customer counts as of ``filter.end_date``.

        total/active and the type and source breakdowns cover every customer
        created up to end_date; new_customers counts those created inside the
        window. The type and is_active filters apply to all of them.
        """
        as_of = CustomerFilter(type=filter.type, is_active=filter.is_active, end_date=filter.end_date)

        q = filtered(
            "customer", as_of,
            "COUNT(*) AS total_customers, COUNT(CASE WHEN is_active = true THEN 1 END) AS active_customers",
        )
        row = await self.db.query_one(q.sql(), q.params, context="get customer stats")
        stats = CustomerStats.from_row(row) if row is not None else CustomerStats()
        stats.new_customers = await self._count(filter.to_list_filter())
        stats.customers_by_type = await self._counts_by("type", as_of)
        stats.customers_by_source = await self._counts_by("source", as_of)
        return stats

    async def _counts_by(self, column: str, filter: CustomerFilter) -> Dict[str, int]:
        q = filtered("customer", filter, f"{column}, COUNT(*) AS count").append(f" GROUP BY {column}")
        rows = await self.db.query_many(q.sql(), q.params, context=f"count customers by {column}")
        return {r[column]: int(r["count"]) for r in rows}

    async def get_top_by_revenue(self, start: datetime, end: datetime, limit: int = 10) -> List[TopCustomer]:
        return await self._fetch_many(
            TOP_CUSTOMERS_SQL,
            (start, end, limit), context="get top customers by revenue", record=TopCustomer,
        )

    async def get_new_customers_by_period(self, start: datetime, end: datetime,
                                          group_by: str = "month") -> List[NewCustomersByPeriod]:
        """Sign-ups per period with the running customer total at the end of each period."""
        fmt = period_format(group_by)
        return await self._fetch_many(
            f"""
            WITH period_customers AS (
                SELECT TO_CHAR(created_at, '{fmt}') AS period, COUNT(*) AS new_customers
                FROM customers
                WHERE created_at >= $1 AND created_at <= $2
                GROUP BY 1
            )
            SELECT
                period,
                new_customers,
                ((SELECT COUNT(*) FROM customers WHERE created_at < $1)
                    + SUM(new_customers) OVER (ORDER BY period))::bigint AS total_customers
            FROM period_customers
            ORDER BY period
            """,
            (start, end), context="get new customers by period", record=NewCustomersByPeriod,
        )

    async def get_orders_summary(self, customer_id: uuid.UUID) -> CustomerOrdersSummary:
        row = await self.db.query_one(
            """
            SELECT
                COUNT(*) AS total_orders,
                COALESCE(SUM(total_amount), 0) AS total_revenue,
                COALESCE(AVG(total_amount), 0) AS average_order_value,
                MIN(order_date) AS first_order_date,
                MAX(order_date) AS last_order_date
            FROM orders
            WHERE customer_id = $1
            """,
            (customer_id,), context="get customer orders summary",
        )
        summary = CustomerOrdersSummary.model_validate({**(dict(row) if row is not None else {}),
                                                        "customer_id": customer_id})
        rows = await self.db.query_many(
            "SELECT status, COUNT(*) AS count FROM orders WHERE customer_id = $1 GROUP BY status",
            (customer_id,), context="get customer order status counts",
        )
        summary.status_counts = {r["status"]: int(r["count"]) for r in rows}
        return summary


class CompanyRepository(BaseRepository):
    entity = "company"
    record = Company

    async def create(self, company: Company) -> Company:
        await self.db.exec(insert_sql("companies", _COMPANY_FIELDS), values_of(company, _COMPANY_FIELDS),
                           context="create company")
        return company

    async def get_by_id(self, company_id: uuid.UUID) -> Company:
        return await self._fetch_one(f"{_COMPANY_SELECT} WHERE id = $1", (company_id,), company_id,
                                     context="get company by id")

    async def get_by_tax_id(self, tax_id: str) -> Company:
        return await self._fetch_one(f"{_COMPANY_SELECT} WHERE tax_id = $1", (tax_id,), tax_id,
                                     context="get company by tax id")

    async def update(self, company: Company) -> None:
        await self._affect_one(
            update_sql("companies", _COMPANY_UPDATABLE),
            [company.id, *values_of(company, _COMPANY_UPDATABLE)], company.id,
            context="update company",
        )

    async def delete(self, company_id: uuid.UUID) -> None:
        await self._affect_one("DELETE FROM companies WHERE id = $1", (company_id,), company_id,
                               context="delete company")

    async def list(self, filter: Optional[CompanyFilter] = None) -> List[Company]:
        return await self._list(filter)

    async def count(self, filter: Optional[CompanyFilter] = None) -> int:
        return await self._count(filter)

    async def exists_by_tax_id(self, tax_id: str) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM companies WHERE tax_id = $1)", (tax_id,),
                                  context="check company exists by tax id")
