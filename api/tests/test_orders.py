import re
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from erp_persistence.errors import EntityNotFoundError, InvalidArgumentError, OrderNumberExhaustedError
from erp_persistence.filters import OrderStatsFilter
from erp_persistence.models import Order, OrderItem
from erp_persistence.repositories.analytics import OrderAnalyticsRepository, period_format
from erp_persistence.repositories.order_lines import OrderAddressRepository, OrderItemRepository
from erp_persistence.repositories.order_numbers import format_order_number, generate_unique_order_number
from erp_persistence.repositories.orders import PENDING_QUEUE_LIMIT, OrderRepository

from conftest import normalize

ORDER_NUMBER = re.compile(r"^ORD-\d{8}-\d{5}$")


def make_order(**kw) -> Order:
    kw.setdefault("order_number", "ORD-20240601-00042")
    kw.setdefault("customer_id", uuid.uuid4())
    kw.setdefault("created_by", uuid.uuid4())
    return Order(**kw)


# ---------------------------------------------------------------------------
# order numbers
# ---------------------------------------------------------------------------

def test_format_order_number():
    assert format_order_number(date(2024, 6, 1), 1_234_567_042) == "ORD-20240601-67042"
    assert format_order_number(date(2024, 6, 1), 7) == "ORD-20240601-00007"
    assert format_order_number(date(2024, 6, 1), 7, prefix="SO") == "SO-20240601-00007"


@pytest.mark.asyncio
async def test_minted_numbers_are_unique_against_taken_set():
    taken = set()

    async def exists(number):
        return number in taken

    for _ in range(200):
        number = await generate_unique_order_number(exists, retry_delay_ms=0)
        assert ORDER_NUMBER.match(number)
        assert number not in taken
        taken.add(number)


@pytest.mark.asyncio
async def test_collision_retries_with_fresh_clock_reading():
    ticks = iter([100_005, 200_005, 300_017])
    seen = []

    async def exists(number):
        seen.append(number)
        return number.endswith("-00005")

    number = await generate_unique_order_number(
        exists, today=date(2024, 6, 1), retry_delay_ms=0, clock=lambda: next(ticks),
    )
    assert number == "ORD-20240601-00017"
    assert seen == ["ORD-20240601-00005", "ORD-20240601-00005", "ORD-20240601-00017"]


@pytest.mark.asyncio
async def test_exhaustion_after_max_attempts():
    calls = []

    async def exists(number):
        calls.append(number)
        return True

    with pytest.raises(OrderNumberExhaustedError):
        await generate_unique_order_number(exists, max_attempts=3, retry_delay_ms=0)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_repository_mints_against_orders_table(db):
    db.script(True, False)
    number = await OrderRepository(db).generate_unique_order_number()
    assert ORDER_NUMBER.match(number)
    assert len(db.statements) == 2
    assert "FROM orders WHERE order_number = $1" in db.last_sql
    assert db.last_params == [number]


# ---------------------------------------------------------------------------
# order headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_status_keeps_previous_status(db):
    oid = uuid.uuid4()
    await OrderRepository(db).update_status(oid, "CONFIRMED")
    assert "SET previous_status = status, status = $2" in db.last_sql
    assert db.last_params == [oid, "CONFIRMED"]


@pytest.mark.asyncio
async def test_update_status_of_unknown_order(db):
    db.script(0)
    with pytest.raises(EntityNotFoundError):
        await OrderRepository(db).update_status(uuid.uuid4(), "SHIPPED")


@pytest.mark.asyncio
async def test_update_never_writes_status_or_identity(db):
    order = make_order(status="SHIPPED", notes="gate code 4411")
    await OrderRepository(db).update(order)
    sql = db.last_sql
    assignments = sql.split(" SET ", 1)[1].split(" WHERE ", 1)[0]
    for column in ("status =", "previous_status", "order_number", "created_by", "created_at", "order_date"):
        assert column not in assignments.replace("payment_status =", "")
    assert db.last_params[0] == order.id
    assert "gate code 4411" in db.last_params
    assert "SHIPPED" not in db.last_params


@pytest.mark.asyncio
async def test_bulk_update_status(db):
    repo = OrderRepository(db)
    assert await repo.bulk_update_status([], "CANCELLED") == 0
    assert db.statements == []

    ids = [uuid.uuid4(), uuid.uuid4()]
    db.script(2)
    assert await repo.bulk_update_status(ids, "CANCELLED") == 2
    assert "previous_status = status" in db.last_sql
    assert db.last_params == ["CANCELLED", ids]


@pytest.mark.asyncio
async def test_pending_queue_is_bounded(db):
    await OrderRepository(db).get_pending()
    assert db.last_params == ["PENDING", PENDING_QUEUE_LIMIT]


@pytest.mark.asyncio
async def test_search_sets_search_term(db):
    await OrderRepository(db).search("M8 bolt")
    assert db.last_params[:3] == ["%M8 bolt%"] * 3


@pytest.mark.asyncio
async def test_overdue_excludes_closed_orders(db):
    await OrderRepository(db).get_overdue()
    sql = normalize(db.last_sql)
    assert "payment_status <> 'PAID'" in sql
    assert "status NOT IN ('CANCELLED', 'DELIVERED', 'REFUNDED')" in sql
    assert sql.endswith("ORDER BY required_date ASC")


# ---------------------------------------------------------------------------
# items and addresses
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_bulk_create_items_in_one_transaction(db):
    order_id = uuid.uuid4()
    items = [
        OrderItem(order_id=order_id, product_id=uuid.uuid4(), product_sku=f"SKU-{i}",
                  product_name=f"Item {i}", quantity=i + 1, unit_price=Decimal("2.50"),
                  total_price=Decimal("2.50") * (i + 1))
        for i in range(3)
    ]
    await OrderItemRepository(db).bulk_create(items)
    assert len(db.transactions) == 1 and db.transactions[0].committed
    assert len(db.statements) == 3


@pytest.mark.asyncio
async def test_default_address_not_found(db):
    customer = uuid.uuid4()
    with pytest.raises(EntityNotFoundError) as exc:
        await OrderAddressRepository(db).get_default_address(customer, "SHIPPING")
    assert exc.value.key == f"{customer}/SHIPPING"
    assert "is_default = true" in db.last_sql


# ---------------------------------------------------------------------------
# analytics
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("group_by,fmt", [
    ("day", "YYYY-MM-DD"),
    ("week", 'IYYY-"W"IW'),
    ("month", "YYYY-MM"),
    ("quarter", 'YYYY-"Q"Q'),
    ("year", "YYYY"),
])
def test_period_formats(group_by, fmt):
    assert period_format(group_by) == fmt


@pytest.mark.asyncio
async def test_revenue_by_period_rejects_unknown_grouping(db):
    start, end = datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 7, 1, tzinfo=timezone.utc)
    with pytest.raises(InvalidArgumentError):
        await OrderAnalyticsRepository(db).get_revenue_by_period(start, end, "fortnight")
    assert db.statements == []


@pytest.mark.asyncio
async def test_revenue_excludes_cancelled_and_refunded(db):
    start, end = datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 7, 1, tzinfo=timezone.utc)
    db.script([{"period": "2024-W22", "revenue": Decimal("120.00"), "order_count": 3,
                "average_order_value": Decimal("40.00")}])
    rows = await OrderAnalyticsRepository(db).get_revenue_by_period(start, end, "week")
    assert rows[0].period == "2024-W22"
    sql = normalize(db.last_sql)
    assert "TO_CHAR(order_date, 'IYYY-\"W\"IW')" in sql
    assert "'CANCELLED'" in sql and "'REFUNDED'" in sql


@pytest.mark.asyncio
async def test_order_stats_breakdowns(db):
    db.script(
        {"total_orders": 3, "total_revenue": Decimal("90"), "average_order_value": Decimal("30"),
         "total_paid": Decimal("60"), "total_refunded": Decimal("0")},
        [{"status": "PENDING", "count": 2}, {"status": "SHIPPED", "count": 1}],
        [{"payment_status": "PAID", "count": 2}, {"payment_status": "PENDING", "count": 1}],
    )
    stats = await OrderAnalyticsRepository(db).get_order_stats(OrderStatsFilter(currency="EUR"))

    assert stats.total_orders == 3
    assert stats.status_counts == {"PENDING": 2, "SHIPPED": 1}
    assert stats.payment_status_counts == {"PAID": 2, "PENDING": 1}
    assert all(params == ["EUR"] for _, params in db.statements)
    assert db.statements[1][0].endswith("GROUP BY status")
    assert db.statements[2][0].endswith("GROUP BY payment_status")
