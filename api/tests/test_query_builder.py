import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from erp_persistence.errors import InvalidArgumentError, InvalidSortColumnError, InvalidSortOrderError
from erp_persistence.filters import (
    ROOT_PARENT,
    CategoryFilter,
    CustomerFilter,
    InventoryFilter,
    InventoryTransactionFilter,
    OrderFilter,
    ProductFilter,
    UserFilter,
    WarehouseFilter,
)
from erp_persistence.query_builder import (
    ENTITIES,
    IN_STOCK_PREDICATE,
    LOW_STOCK_PREDICATE,
    OUT_OF_STOCK_PREDICATE,
    BuildMode,
    SqlBuilder,
    build,
    filtered,
)

from conftest import normalize, placeholders

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

BUSY_FILTERS = [
    ("product", ProductFilter(
        search="bolt", sku="B-", category_id=uuid.uuid4(), category_ids=[uuid.uuid4(), uuid.uuid4()],
        min_price=Decimal("1"), max_price=Decimal("9"), is_active=True, in_stock=True,
        low_stock=True, created_after=NOW, limit=10, page=3,
    )),
    ("category", CategoryFilter(search="tools", parent_id=uuid.uuid4(), is_active=True, level=2, limit=5)),
    ("warehouse", WarehouseFilter(code="W", ids=[uuid.uuid4()], is_active=False, updated_before=NOW)),
    ("inventory", InventoryFilter(
        sku="X", warehouse_ids=[uuid.uuid4(), uuid.uuid4()], min_quantity=1, is_low_stock=True,
        is_overstock=False, limit=50, offset=100,
    )),
    ("inventory_transaction", InventoryTransactionFilter(
        transaction_types=["SALE", "RETURN"], created_by=[uuid.uuid4()], is_pending=True,
        date_from=NOW, date_to=NOW,
    )),
    ("order", OrderFilter(
        search="ORD-2024", status=["PENDING", "CONFIRMED"], payment_status=["PAID"],
        customer_id=uuid.uuid4(), min_total=Decimal("10"), currency="EUR", limit=20,
    )),
    ("customer", CustomerFilter(search="smith", type="business", has_credit_limit=True, start_date=NOW)),
    ("user", UserFilter(search="ann", is_active=True, is_verified=False, limit=1)),
]


@pytest.mark.parametrize("entity,filter", BUSY_FILTERS, ids=[e for e, _ in BUSY_FILTERS])
@pytest.mark.parametrize("mode", [BuildMode.select_rows, BuildMode.count])
def test_placeholders_are_contiguous_and_match_params(entity, filter, mode):
    sql, params = build(entity, filter, mode)
    assert placeholders(sql) == list(range(1, len(params) + 1))


@pytest.mark.parametrize("entity", sorted(ENTITIES))
def test_empty_filter_emits_no_predicates(entity):
    sql, params = build(entity, None, BuildMode.count)
    assert params == []
    assert sql.endswith("WHERE 1=1")


def test_filter_values_never_reach_sql_text():
    hostile = "x' OR '1'='1"
    sql, params = build("product", ProductFilter(search=hostile, sku=hostile))
    assert hostile not in sql
    assert f"%{hostile}%" in params


def test_sort_injection_is_rejected():
    with pytest.raises(InvalidSortColumnError):
        build("product", ProductFilter(sort_by="name; DROP TABLE products"))


def test_sort_is_validated_in_count_mode_too():
    with pytest.raises(InvalidSortOrderError):
        build("order", OrderFilter(sort_order="sideways"), BuildMode.count)


def test_offset_wins_over_page():
    sql, params = build("product", ProductFilter(limit=20, offset=40, page=5))
    assert normalize(sql).endswith("LIMIT $1 OFFSET $2")
    assert params == [20, 40]


def test_page_derives_offset_without_explicit_offset():
    sql, params = build("product", ProductFilter(limit=20, page=3))
    assert params == [20, 40]
    assert "OFFSET $2" in sql


def test_first_page_and_no_limit_emit_no_offset():
    sql, params = build("product", ProductFilter(limit=20, page=1))
    assert "OFFSET" not in sql
    assert params == [20]

    sql, params = build("product", ProductFilter(offset=40))
    assert "LIMIT" not in sql and "OFFSET" not in sql
    assert params == []


def test_count_and_stats_have_no_order_or_pagination():
    f = ProductFilter(limit=20, offset=40, sort_by="price")
    for mode in (BuildMode.count, BuildMode.stats):
        sql, params = build("product", f, mode)
        assert "ORDER BY" not in sql
        assert "LIMIT" not in sql
        assert params == []


def test_select_rows_shape():
    sql, params = build("product", ProductFilter(is_active=True, sort_by="price", sort_order="asc", limit=5))
    assert normalize(sql) == normalize(
        f"SELECT {ENTITIES['product'].columns} FROM products WHERE 1=1 "
        "AND is_active = $1 ORDER BY price ASC LIMIT $2"
    )
    assert params == [True, 5]


def test_predicate_order_search_then_equality_then_ranges_then_flags():
    cid = uuid.uuid4()
    sql, params = build("product", ProductFilter(
        is_active=True, min_price=Decimal("5"), category_id=cid, search="saw",
    ), BuildMode.count)
    text = normalize(sql)
    assert text.index("ILIKE") < text.index("category_id =") < text.index("price >=") < text.index("is_active =")
    assert params == ["%saw%", "%saw%", "%saw%", cid, Decimal("5"), True]


def test_in_stock_true_and_false():
    sql, params = build("product", ProductFilter(in_stock=True), BuildMode.count)
    assert IN_STOCK_PREDICATE in sql and params == []
    sql, _ = build("product", ProductFilter(in_stock=False), BuildMode.count)
    assert OUT_OF_STOCK_PREDICATE in sql


def test_low_stock_false_emits_nothing():
    sql, _ = build("product", ProductFilter(low_stock=True), BuildMode.count)
    assert LOW_STOCK_PREDICATE in sql
    sql, params = build("product", ProductFilter(low_stock=False), BuildMode.count)
    assert sql.endswith("WHERE 1=1") and params == []


def test_category_parent_tri_state():
    sql, params = build("category", CategoryFilter(), BuildMode.count)
    assert "parent_id" not in sql

    sql, params = build("category", CategoryFilter(parent_id=ROOT_PARENT), BuildMode.count)
    assert "parent_id IS NULL" in sql and params == []

    parent = uuid.uuid4()
    sql, params = build("category", CategoryFilter(parent_id=parent), BuildMode.count)
    assert "parent_id = $1" in sql and params == [parent]


def test_in_list_binds_each_value():
    ids = [uuid.uuid4(), uuid.uuid4(), uuid.uuid4()]
    sql, params = build("warehouse", WarehouseFilter(ids=ids), BuildMode.count)
    assert "id IN ($1, $2, $3)" in sql
    assert params == ids


def test_order_search_covers_number_and_items():
    sql, params = build("order", OrderFilter(search="M8"), BuildMode.count)
    text = normalize(sql)
    assert "order_number ILIKE $1" in text
    assert "oi.product_sku ILIKE $2" in text and "oi.product_name ILIKE $3" in text
    assert params == ["%M8%"] * 3


def test_stats_requires_stats_projection():
    with pytest.raises(InvalidArgumentError):
        build("category", None, BuildMode.stats)


def test_wrong_filter_type_is_rejected():
    with pytest.raises(InvalidArgumentError):
        build("product", OrderFilter())


def test_unknown_entity_and_mode():
    with pytest.raises(InvalidArgumentError):
        build("invoice")
    with pytest.raises(InvalidArgumentError):
        build("product", None, "explain")


def test_filtered_shares_predicates_with_build():
    f = OrderFilter(status=["PAID"], currency="USD")
    q = filtered("order", f, "status, COUNT(*) AS count").append(" GROUP BY status")
    assert normalize(q.sql()) == (
        "SELECT status, COUNT(*) AS count FROM orders WHERE 1=1 "
        "AND currency = $1 AND status IN ($2) GROUP BY status"
    )
    assert q.params == ["USD", "PAID"]


def test_sql_builder_binding():
    q = SqlBuilder("SELECT * FROM t WHERE 1=1")
    q.eq("a", 1).eq("b", None).eq("c", "").in_("d", []).flag("e", False)
    q.order_by("product", "price", "desc").paginate(10)
    assert q.sql() == "SELECT * FROM t WHERE 1=1 AND a = $1 AND e = $2 ORDER BY price DESC LIMIT $3"
    assert q.params == [1, False, 10]
