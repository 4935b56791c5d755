# erp_persistence/whitelist.py
"""
Sort identifier whitelist.

Bound parameters cannot carry identifiers, so ORDER BY columns and directions
are the only user input ever interpolated into SQL text. Both pass through here
first; anything outside the per-entity allow-list is rejected.
"""
from __future__ import annotations
from typing import Dict, Optional, Tuple

from erp_persistence.errors import InvalidSortColumnError, InvalidSortOrderError

# ============================================================================
# Allow-lists: public token -> emitted SQL column
# ============================================================================

def _plain(*columns: str) -> Dict[str, str]:
    return {c: c for c in columns}


SORT_COLUMNS: Dict[str, Dict[str, str]] = {
    "product": _plain(
        "id", "sku", "name", "description", "price", "cost", "category_id",
        "stock_quantity", "min_stock_level", "max_stock_level",
        "is_active", "is_featured", "is_digital", "created_at", "updated_at",
    ),
    "category": _plain(
        "id", "name", "description", "parent_id", "level", "path",
        "sort_order", "is_active", "created_at", "updated_at",
    ),
    "order": _plain(
        "id", "order_number", "customer_id", "status", "priority", "type",
        "payment_status", "shipping_method", "subtotal", "tax_amount",
        "shipping_amount", "discount_amount", "total_amount", "paid_amount",
        "currency", "order_date", "required_date", "shipping_date",
        "delivery_date", "created_at", "updated_at",
    ),
    "customer": _plain(
        "id", "customer_code", "email", "first_name", "last_name",
        "company_name", "type", "industry", "credit_limit", "credit_used",
        "is_active", "source", "created_at", "updated_at",
    ),
    "company": _plain(
        "id", "company_name", "legal_name", "tax_id", "industry", "email",
        "city", "country", "is_active", "created_at", "updated_at",
    ),
    "inventory": {
        "id": "i.id",
        "product_id": "i.product_id",
        "warehouse_id": "i.warehouse_id",
        "quantity_on_hand": "i.quantity_on_hand",
        "quantity_reserved": "i.quantity_reserved",
        "reorder_level": "i.reorder_level",
        "average_cost": "i.average_cost",
        "last_count_date": "i.last_count_date",
        "updated_at": "i.updated_at",
        "product_name": "p.name",
        "sku": "p.sku",
        "warehouse_code": "w.code",
        "warehouse_name": "w.name",
    },
    "inventory_transaction": _plain(
        "id", "product_id", "warehouse_id", "transaction_type", "quantity",
        "reference_type", "unit_cost", "total_cost", "batch_number",
        "created_at", "created_by", "approved_at", "approved_by",
    ),
    "user": _plain(
        "id", "email", "username", "first_name", "last_name", "is_active",
        "is_verified", "created_at", "updated_at", "last_login_at",
    ),
    "role": _plain("id", "name", "description", "is_system", "created_at", "updated_at"),
    "warehouse": _plain(
        "id", "name", "code", "city", "state", "country", "postal_code",
        "is_active", "created_at", "updated_at",
    ),
    "variant": _plain(
        "id", "product_id", "sku", "name", "price", "cost", "stock_quantity",
        "sort_order", "is_active", "created_at", "updated_at",
    ),
}

# Defaults are compile-time SQL fragments, never user text
DEFAULT_SORT: Dict[str, Tuple[str, str]] = {
    "product": ("created_at", "DESC"),
    "category": ("sort_order, name", "ASC"),
    "order": ("order_date", "DESC"),
    "customer": ("created_at", "DESC"),
    "company": ("created_at", "DESC"),
    "inventory": ("p.name", "ASC"),
    "inventory_transaction": ("created_at", "DESC"),
    "user": ("created_at", "DESC"),
    "role": ("name", "ASC"),
    "warehouse": ("name", "ASC"),
    "variant": ("sort_order, name", "ASC"),
}

SORT_ORDERS = ("ASC", "DESC")


def _normalize(token: str) -> str:
    return token.strip().strip('"').strip("'").strip().lower()


def validate_column(entity: str, name: str) -> str:
    """
    Return the SQL column for ``name`` if it is whitelisted for ``entity``.

    Matching is case-insensitive on the trimmed token; the returned value is
    always the canonical whitelist entry, never the caller's text.
    """
    allowed = SORT_COLUMNS.get(entity)
    if allowed is None:
        raise InvalidSortColumnError(entity, name)
    column = allowed.get(_normalize(name or ""))
    if column is None:
        raise InvalidSortColumnError(entity, name)
    return column


def validate_sort_order(order: str) -> str:
    """Uppercase and check a sort direction token."""
    normalized = (order or "").strip().upper()
    if normalized not in SORT_ORDERS:
        raise InvalidSortOrderError(order)
    return normalized


def order_by_clause(entity: str, sort_by: Optional[str], sort_order: Optional[str]) -> str:
    """Build `` ORDER BY <col> <dir>`` with per-entity defaults."""
    default_col, default_dir = DEFAULT_SORT[entity]
    column = validate_column(entity, sort_by) if sort_by else default_col
    direction = validate_sort_order(sort_order) if sort_order else default_dir
    return f" ORDER BY {column} {direction}"
