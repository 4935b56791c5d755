import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from erp_persistence.errors import InvalidArgumentError
from erp_persistence.filters import CustomerStatsFilter
from erp_persistence.repositories.analytics import OrderAnalyticsRepository
from erp_persistence.repositories.customers import CompanyRepository, CustomerRepository

from conftest import normalize

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 6, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_transfer_orders_binds_target_then_source(db):
    source, target = uuid.uuid4(), uuid.uuid4()
    db.script(4)
    moved = await CustomerRepository(db).transfer_orders(str(source), target)

    assert moved == 4
    assert db.last_params == [target, source]
    assert "SET customer_id = $1" in db.last_sql and "WHERE customer_id = $2" in db.last_sql


@pytest.mark.asyncio
@pytest.mark.parametrize("source,target", [("not-a-uuid", str(uuid.uuid4())), (str(uuid.uuid4()), "")])
async def test_transfer_orders_rejects_malformed_ids(db, source, target):
    with pytest.raises(InvalidArgumentError):
        await CustomerRepository(db).transfer_orders(source, target)
    assert db.statements == []


@pytest.mark.asyncio
async def test_stats_totals_are_as_of_end_date(db):
    db.script(
        {"total_customers": 40, "active_customers": 35},
        6,
        [{"type": "business", "count": 30}, {"type": "individual", "count": 10}],
        [{"source": "web", "count": 25}, {"source": "manual", "count": 15}],
    )
    stats = await CustomerRepository(db).get_stats(
        CustomerStatsFilter(start_date=START, end_date=END)
    )

    assert (stats.total_customers, stats.active_customers, stats.new_customers) == (40, 35, 6)
    assert stats.customers_by_type == {"business": 30, "individual": 10}
    assert stats.customers_by_source == {"web": 25, "manual": 15}

    totals_params, window_params = db.statements[0][1], db.statements[1][1]
    assert totals_params == [END]
    assert window_params == [START, END]
    assert db.statements[2][0].endswith("GROUP BY type")
    assert db.statements[3][0].endswith("GROUP BY source")


@pytest.mark.asyncio
async def test_stats_type_filter_applies_to_every_query(db):
    await CustomerRepository(db).get_stats(
        CustomerStatsFilter(start_date=START, end_date=END, type="business")
    )
    assert all(params[0] == "business" for _, params in db.statements)


@pytest.mark.asyncio
async def test_new_customers_by_period_is_a_running_total(db):
    await CustomerRepository(db).get_new_customers_by_period(START, END, "quarter")
    sql = normalize(db.last_sql)
    assert "TO_CHAR(created_at, 'YYYY-\"Q\"Q')" in sql
    assert "(SELECT COUNT(*) FROM customers WHERE created_at < $1)" in sql
    assert "SUM(new_customers) OVER (ORDER BY period)" in sql


@pytest.mark.asyncio
async def test_new_customers_by_period_rejects_unknown_grouping(db):
    with pytest.raises(InvalidArgumentError):
        await CustomerRepository(db).get_new_customers_by_period(START, END, "decade")


@pytest.mark.asyncio
async def test_weekly_signups_use_iso_week_year(db):
    await CustomerRepository(db).get_new_customers_by_period(START, END, "week")
    assert "TO_CHAR(created_at, 'IYYY-\"W\"IW')" in normalize(db.last_sql)


@pytest.mark.asyncio
async def test_top_customers_query_is_shared_with_analytics(db):
    await CustomerRepository(db).get_top_by_revenue(START, END, 5)
    from_customers = db.statements[-1]
    await OrderAnalyticsRepository(db).get_top_customers(START, END, 5)
    assert db.statements[-1] == from_customers
    assert from_customers[1] == [START, END, 5]
    assert "ORDER BY total_revenue DESC" in normalize(from_customers[0])


@pytest.mark.asyncio
async def test_orders_summary_for_customer_without_orders(db):
    cid = uuid.uuid4()
    db.script({"total_orders": 0, "total_revenue": Decimal("0"), "average_order_value": Decimal("0"),
               "first_order_date": None, "last_order_date": None})
    summary = await CustomerRepository(db).get_orders_summary(cid)
    assert summary.customer_id == cid
    assert summary.total_orders == 0
    assert summary.status_counts == {}


@pytest.mark.asyncio
async def test_company_exists_by_tax_id(db):
    db.script(True)
    assert await CompanyRepository(db).exists_by_tax_id("DE123456789") is True
    assert db.last_params == ["DE123456789"]
