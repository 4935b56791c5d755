# erp_persistence/query_builder.py
"""
Dynamic query builder for filtered listing, counting and statistics.

``build(entity, filter, mode)`` returns ``(sql, params)`` where ``sql`` has the
shape ``SELECT <projection> FROM <table> WHERE 1=1 [AND <predicate>]*
[ORDER BY <col> <dir>] [LIMIT $k] [OFFSET $m]``.

Rules:
- every filter value is a bound parameter; placeholders are ``$1..$n`` in
  left-to-right order with no gaps
- identifiers are module constants or came back from the whitelist
- predicates are emitted by facet kind in a fixed order: substring search,
  scalar equality, set membership, ranges, null checks and booleans
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from erp_persistence.errors import InvalidArgumentError
from erp_persistence.filters import (
    ROOT_PARENT,
    CategoryFilter,
    CompanyFilter,
    CustomerFilter,
    InventoryFilter,
    InventoryTransactionFilter,
    ListParams,
    OrderFilter,
    ProductFilter,
    RoleFilter,
    UserFilter,
    VariantFilter,
    WarehouseFilter,
)
from erp_persistence.whitelist import order_by_clause


class BuildMode(str, enum.Enum):
    select_rows = "select_rows"
    count = "count"
    stats = "stats"


# ============================================================================
# Placeholder bookkeeping
# ============================================================================

class SqlBuilder:
    """
    Accumulates predicates and their bound parameters.

    Each ``bind`` call appends one parameter and returns its placeholder, so
    text must be assembled in the same order the values are bound.
    """

    def __init__(self, head: str = ""):
        self.head = head
        self.params: List[Any] = []
        self._conditions: List[str] = []
        self._tail: List[str] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def bind_many(self, values: Iterable[Any]) -> str:
        return ", ".join(self.bind(v) for v in values)

    def where(self, condition: str) -> "SqlBuilder":
        self._conditions.append(condition)
        return self

    # -- facet helpers (a facet at its default emits nothing) -----------------

    def search(self, columns: Sequence[str], term: Optional[str]) -> "SqlBuilder":
        if term:
            pattern = f"%{term}%"
            self.where("(" + " OR ".join(f"{c} ILIKE {self.bind(pattern)}" for c in columns) + ")")
        return self

    def ilike(self, column: str, term: Optional[str]) -> "SqlBuilder":
        if term:
            self.where(f"{column} ILIKE {self.bind(f'%{term}%')}")
        return self

    def eq(self, column: str, value: Any) -> "SqlBuilder":
        if value is not None and value != "":
            self.where(f"{column} = {self.bind(value)}")
        return self

    def in_(self, column: str, values: Optional[Sequence[Any]]) -> "SqlBuilder":
        if values:
            self.where(f"{column} IN ({self.bind_many(values)})")
        return self

    def gte(self, column: str, value: Any) -> "SqlBuilder":
        if value is not None:
            self.where(f"{column} >= {self.bind(value)}")
        return self

    def lte(self, column: str, value: Any) -> "SqlBuilder":
        if value is not None:
            self.where(f"{column} <= {self.bind(value)}")
        return self

    def flag(self, column: str, value: Optional[bool]) -> "SqlBuilder":
        if value is not None:
            self.where(f"{column} = {self.bind(value)}")
        return self

    def choice(self, value: Optional[bool], when_true: str, when_false: Optional[str]) -> "SqlBuilder":
        """Fixed compound predicate for a tri-valued boolean (no parameters)."""
        if value is True:
            self.where(when_true)
        elif value is False and when_false:
            self.where(when_false)
        return self

    # -- tail ----------------------------------------------------------------

    def order_by(self, entity: str, sort_by: Optional[str], sort_order: Optional[str]) -> "SqlBuilder":
        return self.append(order_by_clause(entity, sort_by, sort_order))

    def append(self, clause: str) -> "SqlBuilder":
        self._tail.append(clause)
        return self

    def paginate(self, limit: int, offset: int = 0, page: int = 0) -> "SqlBuilder":
        """LIMIT when limit > 0; an explicit offset wins over a page number."""
        if limit and limit > 0:
            self.append(f" LIMIT {self.bind(limit)}")
            if offset and offset > 0:
                self.append(f" OFFSET {self.bind(offset)}")
            elif page and page > 1:
                self.append(f" OFFSET {self.bind((page - 1) * limit)}")
        return self

    def sql(self) -> str:
        text = self.head
        if self._conditions:
            text += " AND " + " AND ".join(self._conditions)
        return text + "".join(self._tail)


# ============================================================================
# Projections
# ============================================================================

PRODUCT_COLUMNS = (
    "id, sku, name, description, short_description, category_id, price, cost, "
    "weight, dimensions, length, width, height, volume, barcode, track_inventory, "
    "stock_quantity, min_stock_level, max_stock_level, allow_backorder, "
    "requires_shipping, taxable, tax_rate, is_active, is_featured, is_digital, "
    "download_url, max_downloads, expiry_days, created_at, updated_at"
)

CATEGORY_COLUMNS = (
    "id, name, description, parent_id, level, path, image_url, sort_order, "
    "is_active, created_at, updated_at"
)

VARIANT_COLUMNS = (
    "id, product_id, sku, name, price, cost, barcode, image_url, track_inventory, "
    "stock_quantity, min_stock_level, max_stock_level, allow_backorder, "
    "is_active, is_digital, sort_order, created_at, updated_at"
)

WAREHOUSE_COLUMNS = (
    "id, name, code, address, city, state, country, postal_code, phone, email, "
    "manager_id, is_active, created_at, updated_at"
)

INVENTORY_SOURCE = (
    "inventory i "
    "JOIN products p ON p.id = i.product_id "
    "JOIN warehouses w ON w.id = i.warehouse_id"
)

INVENTORY_COLUMNS = (
    "i.id, i.product_id, i.warehouse_id, i.quantity_on_hand, i.quantity_reserved, "
    "i.quantity_on_hand - i.quantity_reserved AS quantity_available, "
    "i.reorder_level, i.max_stock, i.min_stock, i.average_cost, "
    "i.last_count_date, i.last_counted_by, i.updated_at, i.updated_by, "
    "p.sku AS product_sku, p.name AS product_name, "
    "w.code AS warehouse_code, w.name AS warehouse_name"
)

TRANSACTION_COLUMNS = (
    "id, product_id, warehouse_id, transaction_type, quantity, reference_type, "
    "reference_id, reason, unit_cost, total_cost, batch_number, expiry_date, "
    "serial_number, from_warehouse_id, to_warehouse_id, created_at, created_by, "
    "approved_at, approved_by"
)

ORDER_COLUMNS = (
    "id, order_number, customer_id, status, previous_status, priority, type, "
    "payment_status, shipping_method, subtotal, tax_amount, shipping_amount, "
    "discount_amount, total_amount, paid_amount, refunded_amount, currency, "
    "order_date, required_date, shipping_date, delivery_date, cancelled_date, "
    "shipping_address_id, billing_address_id, notes, internal_notes, "
    "customer_notes, tracking_number, carrier, created_by, approved_by, "
    "shipped_by, created_at, updated_at, approved_at, shipped_at"
)

CUSTOMER_COLUMNS = (
    "id, customer_code, company_id, type, first_name, last_name, email, phone, "
    "website, company_name, tax_id, industry, credit_limit, credit_used, terms, "
    "is_active, is_vat_exempt, preferred_currency, notes, source, created_at, updated_at"
)

COMPANY_COLUMNS = (
    "id, company_name, legal_name, tax_id, industry, website, phone, email, "
    "address, city, state, country, postal_code, is_active, created_at, updated_at"
)

USER_COLUMNS = (
    "id, email, username, password_hash, first_name, last_name, phone, "
    "is_active, is_verified, last_login_at, created_at, updated_at"
)

ROLE_COLUMNS = "id, name, description, permissions, is_system, created_at, updated_at"

# Predicates shared with the repositories' fixed queries
LOW_STOCK_PREDICATE = "track_inventory = true AND stock_quantity <= min_stock_level AND stock_quantity > 0"
IN_STOCK_PREDICATE = "(NOT track_inventory OR stock_quantity > 0 OR allow_backorder = true)"
OUT_OF_STOCK_PREDICATE = "(track_inventory = true AND stock_quantity <= 0 AND allow_backorder = false)"
OVERSTOCK_PREDICATE = "max_stock_level IS NOT NULL AND stock_quantity > max_stock_level"
REVENUE_STATUS_PREDICATE = "status NOT IN ('CANCELLED', 'REFUNDED')"

PRODUCT_STATS = (
    "COUNT(*) AS total_products, "
    "COUNT(CASE WHEN is_active = true THEN 1 END) AS active_products, "
    "COUNT(CASE WHEN is_active = false THEN 1 END) AS inactive_products, "
    "COUNT(CASE WHEN is_featured = true THEN 1 END) AS featured_products, "
    f"COUNT(CASE WHEN {LOW_STOCK_PREDICATE} THEN 1 END) AS low_stock_products, "
    f"COUNT(CASE WHEN {OUT_OF_STOCK_PREDICATE} THEN 1 END) AS out_of_stock_products, "
    f"COUNT(CASE WHEN {OVERSTOCK_PREDICATE} THEN 1 END) AS overstock_products, "
    "COUNT(CASE WHEN is_digital = true THEN 1 END) AS digital_products, "
    "COUNT(CASE WHEN is_digital = false THEN 1 END) AS physical_products, "
    "COALESCE(AVG(price), 0) AS average_price, "
    "COALESCE(MIN(price), 0) AS min_price, "
    "COALESCE(MAX(price), 0) AS max_price, "
    "COALESCE(SUM(stock_quantity * cost), 0) AS total_stock_value"
)

ORDER_STATS = (
    "COUNT(*) AS total_orders, "
    f"COALESCE(SUM(total_amount) FILTER (WHERE {REVENUE_STATUS_PREDICATE}), 0) AS total_revenue, "
    f"COALESCE(AVG(total_amount) FILTER (WHERE {REVENUE_STATUS_PREDICATE}), 0) AS average_order_value, "
    "COALESCE(SUM(paid_amount), 0) AS total_paid, "
    "COALESCE(SUM(refunded_amount), 0) AS total_refunded"
)

CUSTOMER_STATS = (
    "COUNT(*) AS total_customers, "
    "COUNT(CASE WHEN is_active = true THEN 1 END) AS active_customers, "
    "COUNT(CASE WHEN type = 'business' THEN 1 END) AS business_customers, "
    "COALESCE(SUM(credit_limit), 0) AS total_credit_limit, "
    "COALESCE(SUM(credit_used), 0) AS total_credit_used"
)

INVENTORY_STATS = (
    "COUNT(*) AS total_items, "
    "COALESCE(SUM(i.quantity_on_hand), 0) AS total_on_hand, "
    "COALESCE(SUM(i.quantity_reserved), 0) AS total_reserved, "
    "COALESCE(SUM(i.quantity_on_hand - i.quantity_reserved), 0) AS total_available, "
    "COALESCE(SUM(i.quantity_on_hand * i.average_cost), 0) AS total_value, "
    "COUNT(CASE WHEN i.quantity_on_hand <= i.reorder_level AND i.quantity_on_hand > 0 THEN 1 END) AS low_stock_items, "
    "COUNT(CASE WHEN i.quantity_on_hand = 0 THEN 1 END) AS out_of_stock_items, "
    "COUNT(CASE WHEN i.max_stock IS NOT NULL AND i.quantity_on_hand > i.max_stock THEN 1 END) AS overstock_items"
)

TRANSACTION_STATS = (
    "COUNT(*) AS total_transactions, "
    "COALESCE(SUM(CASE WHEN quantity > 0 THEN quantity ELSE 0 END), 0) AS total_quantity_in, "
    "COALESCE(SUM(CASE WHEN quantity < 0 THEN ABS(quantity) ELSE 0 END), 0) AS total_quantity_out, "
    "COALESCE(SUM(CASE WHEN quantity > 0 THEN total_cost ELSE 0 END), 0) AS total_value_in, "
    "COALESCE(SUM(CASE WHEN quantity < 0 THEN total_cost ELSE 0 END), 0) AS total_value_out"
)


# ============================================================================
# Per-entity predicates
# ============================================================================

def product_predicates(q: SqlBuilder, f: ProductFilter) -> None:
    q.search(("name", "description", "sku"), f.search)
    q.ilike("sku", f.sku)
    q.eq("category_id", f.category_id)
    q.in_("category_id", f.category_ids)
    q.gte("price", f.min_price)
    q.lte("price", f.max_price)
    q.gte("created_at", f.created_after)
    q.lte("created_at", f.created_before)
    q.flag("is_active", f.is_active)
    q.flag("is_featured", f.is_featured)
    q.flag("is_digital", f.is_digital)
    q.flag("track_inventory", f.track_inventory)
    q.choice(f.in_stock, IN_STOCK_PREDICATE, OUT_OF_STOCK_PREDICATE)
    q.choice(f.low_stock, LOW_STOCK_PREDICATE, None)


def category_predicates(q: SqlBuilder, f: CategoryFilter) -> None:
    q.search(("name", "description"), f.search)
    if f.parent_id == ROOT_PARENT:
        q.where("parent_id IS NULL")
    else:
        q.eq("parent_id", f.parent_id)
    q.eq("level", f.level)
    q.flag("is_active", f.is_active)


def variant_predicates(q: SqlBuilder, f: VariantFilter) -> None:
    q.search(("name", "sku"), f.search)
    q.ilike("sku", f.sku)
    q.eq("product_id", f.product_id)
    q.gte("price", f.min_price)
    q.lte("price", f.max_price)
    q.flag("is_active", f.is_active)
    q.flag("is_digital", f.is_digital)
    q.flag("track_inventory", f.track_inventory)
    q.choice(f.in_stock, IN_STOCK_PREDICATE, OUT_OF_STOCK_PREDICATE)
    q.choice(f.low_stock, LOW_STOCK_PREDICATE, None)


def warehouse_predicates(q: SqlBuilder, f: WarehouseFilter) -> None:
    q.ilike("code", f.code)
    q.ilike("name", f.name)
    q.ilike("city", f.city)
    q.ilike("state", f.state)
    q.ilike("country", f.country)
    q.eq("manager_id", f.manager_id)
    q.in_("id", f.ids)
    q.gte("created_at", f.created_after)
    q.lte("created_at", f.created_before)
    q.gte("updated_at", f.updated_after)
    q.lte("updated_at", f.updated_before)
    q.flag("is_active", f.is_active)


def inventory_predicates(q: SqlBuilder, f: InventoryFilter) -> None:
    q.ilike("p.sku", f.sku)
    q.ilike("p.name", f.product_name)
    q.ilike("w.code", f.warehouse_code)
    q.in_("i.id", f.ids)
    q.in_("i.product_id", f.product_ids)
    q.in_("i.warehouse_id", f.warehouse_ids)
    q.gte("i.quantity_on_hand", f.min_quantity)
    q.lte("i.quantity_on_hand", f.max_quantity)
    q.gte("i.average_cost", f.min_average_cost)
    q.lte("i.average_cost", f.max_average_cost)
    q.gte("i.last_count_date", f.last_counted_after)
    q.lte("i.last_count_date", f.last_counted_before)
    q.gte("i.updated_at", f.updated_after)
    q.lte("i.updated_at", f.updated_before)
    q.choice(f.is_low_stock,
             "i.quantity_on_hand <= i.reorder_level",
             "i.quantity_on_hand > i.reorder_level")
    q.choice(f.is_out_of_stock, "i.quantity_on_hand = 0", "i.quantity_on_hand > 0")
    q.choice(f.is_overstock,
             "i.max_stock IS NOT NULL AND i.quantity_on_hand > i.max_stock",
             "(i.max_stock IS NULL OR i.quantity_on_hand <= i.max_stock)")


def transaction_predicates(q: SqlBuilder, f: InventoryTransactionFilter) -> None:
    q.ilike("batch_number", f.batch_number)
    q.ilike("serial_number", f.serial_number)
    q.eq("reference_type", f.reference_type)
    q.eq("reference_id", f.reference_id)
    q.in_("id", f.ids)
    q.in_("product_id", f.product_ids)
    q.in_("warehouse_id", f.warehouse_ids)
    q.in_("transaction_type", f.transaction_types)
    q.in_("created_by", f.created_by)
    q.in_("approved_by", f.approved_by)
    q.gte("created_at", f.date_from)
    q.lte("created_at", f.date_to)
    q.gte("created_at", f.created_after)
    q.lte("created_at", f.created_before)
    q.gte("approved_at", f.approved_after)
    q.lte("approved_at", f.approved_before)
    q.choice(f.is_approved, "approved_at IS NOT NULL", "approved_at IS NULL")
    q.choice(f.is_pending, "approved_at IS NULL", "approved_at IS NOT NULL")


def order_predicates(q: SqlBuilder, f: OrderFilter) -> None:
    if f.search:
        pattern = f"%{f.search}%"
        number = q.bind(pattern)
        sku = q.bind(pattern)
        name = q.bind(pattern)
        q.where(
            f"(order_number ILIKE {number} OR EXISTS (SELECT 1 FROM order_items oi "
            f"WHERE oi.order_id = orders.id AND (oi.product_sku ILIKE {sku} OR oi.product_name ILIKE {name})))"
        )
    q.eq("customer_id", f.customer_id)
    q.eq("currency", f.currency)
    q.eq("created_by", f.created_by)
    q.in_("status", f.status)
    q.in_("payment_status", f.payment_status)
    q.in_("priority", f.priority)
    q.in_("type", f.type)
    q.in_("shipping_method", f.shipping_method)
    q.gte("order_date", f.start_date)
    q.lte("order_date", f.end_date)
    q.gte("total_amount", f.min_total)
    q.lte("total_amount", f.max_total)


def customer_predicates(q: SqlBuilder, f: CustomerFilter) -> None:
    q.search(("customer_code", "first_name", "last_name", "email", "COALESCE(company_name, '')"), f.search)
    q.eq("type", f.type)
    q.eq("company_id", f.company_id)
    q.eq("industry", f.industry)
    q.eq("source", f.source)
    q.gte("credit_limit", f.min_credit_limit)
    q.lte("credit_limit", f.max_credit_limit)
    q.gte("created_at", f.start_date)
    q.lte("created_at", f.end_date)
    q.flag("is_active", f.is_active)
    q.choice(f.has_credit_limit, "credit_limit > 0", "credit_limit = 0")


def company_predicates(q: SqlBuilder, f: CompanyFilter) -> None:
    q.search(("company_name", "legal_name", "tax_id", "email"), f.search)
    q.eq("industry", f.industry)
    q.gte("created_at", f.start_date)
    q.lte("created_at", f.end_date)
    q.flag("is_active", f.is_active)


def user_predicates(q: SqlBuilder, f: UserFilter) -> None:
    q.search(("email", "username", "first_name", "last_name"), f.search)
    q.flag("is_active", f.is_active)
    q.flag("is_verified", f.is_verified)


def role_predicates(q: SqlBuilder, f: RoleFilter) -> None:
    q.search(("name", "description"), f.search)
    q.flag("is_system", f.is_system)


# ============================================================================
# Registry
# ============================================================================

@dataclass(frozen=True)
class EntityQuery:
    source: str
    columns: str
    filter_type: type
    predicates: Callable[[SqlBuilder, Any], None]
    stats: Optional[str] = None


ENTITIES = {
    "product": EntityQuery("products", PRODUCT_COLUMNS, ProductFilter, product_predicates, PRODUCT_STATS),
    "category": EntityQuery("product_categories", CATEGORY_COLUMNS, CategoryFilter, category_predicates),
    "variant": EntityQuery("product_variants", VARIANT_COLUMNS, VariantFilter, variant_predicates),
    "warehouse": EntityQuery("warehouses", WAREHOUSE_COLUMNS, WarehouseFilter, warehouse_predicates),
    "inventory": EntityQuery(INVENTORY_SOURCE, INVENTORY_COLUMNS, InventoryFilter, inventory_predicates, INVENTORY_STATS),
    "inventory_transaction": EntityQuery(
        "inventory_transactions", TRANSACTION_COLUMNS, InventoryTransactionFilter,
        transaction_predicates, TRANSACTION_STATS,
    ),
    "order": EntityQuery("orders", ORDER_COLUMNS, OrderFilter, order_predicates, ORDER_STATS),
    "customer": EntityQuery("customers", CUSTOMER_COLUMNS, CustomerFilter, customer_predicates, CUSTOMER_STATS),
    "company": EntityQuery("companies", COMPANY_COLUMNS, CompanyFilter, company_predicates),
    "user": EntityQuery("users", USER_COLUMNS, UserFilter, user_predicates),
    "role": EntityQuery("roles", ROLE_COLUMNS, RoleFilter, role_predicates),
}


def filtered(entity: str, filter: Optional[ListParams], projection: str) -> SqlBuilder:
    """
    Start a query over ``entity`` with its filter predicates applied.

    Used for GROUP BY breakdowns that share a filter with ``build``; the caller
    appends its own tail.
    """
    target = _entity(entity)
    f = _coerce(target, filter)
    q = SqlBuilder(f"SELECT {projection} FROM {target.source} WHERE 1=1")
    target.predicates(q, f)
    return q


def build(entity: str, filter: Optional[ListParams] = None,
          mode: BuildMode | str = BuildMode.select_rows) -> Tuple[str, List[Any]]:
    """
    Build a parameterised statement for ``entity``.

    Args:
        entity: key of ENTITIES
        filter: the entity's filter record (None means no predicates)
        mode: select_rows, count or stats

    Returns:
        (sql, params) with ``len(params)`` equal to the number of placeholders

    Raises:
        InvalidSortColumnError / InvalidSortOrderError for rejected sort input,
        InvalidArgumentError for an unknown entity, wrong filter type or a
        stats request on an entity without a stats projection.
    """
    target = _entity(entity)
    f = _coerce(target, filter)
    try:
        mode = BuildMode(mode)
    except ValueError as e:
        raise InvalidArgumentError(f"unknown build mode: {mode!r}") from e

    # sort input is validated in every mode
    order_by = order_by_clause(entity, f.sort_by, f.sort_order)

    if mode is BuildMode.select_rows:
        projection = target.columns
    elif mode is BuildMode.count:
        projection = "COUNT(*)"
    else:
        if target.stats is None:
            raise InvalidArgumentError(f"no statistics projection for {entity}")
        projection = target.stats

    q = SqlBuilder(f"SELECT {projection} FROM {target.source} WHERE 1=1")
    target.predicates(q, f)
    if mode is BuildMode.select_rows:
        q.append(order_by)
        q.paginate(f.limit, f.offset, f.page)
    return q.sql(), q.params


def _entity(entity: str) -> EntityQuery:
    target = ENTITIES.get(entity)
    if target is None:
        raise InvalidArgumentError(f"unknown entity: {entity!r}")
    return target


def _coerce(target: EntityQuery, filter: Optional[ListParams]) -> Any:
    if filter is None:
        return target.filter_type()
    if not isinstance(filter, target.filter_type):
        raise InvalidArgumentError(
            f"expected {target.filter_type.__name__}, got {type(filter).__name__}"
        )
    return filter
