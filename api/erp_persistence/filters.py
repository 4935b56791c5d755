# erp_persistence/filters.py
"""
Declarative filter records consumed by the query builder.

Each listable entity has one filter. A facet left at its default emits no
predicate; tri-valued booleans use ``None`` for "don't care".
"""
from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

# Nil UUID: CategoryFilter.parent_id == ROOT_PARENT selects root categories
ROOT_PARENT = uuid.UUID(int=0)


class ListParams(BaseModel):
    """Pagination and sorting shared by every filter."""
    limit: int = 0
    offset: int = 0
    page: int = 0
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None


# ============================================================================
# Catalog
# ============================================================================

class ProductFilter(ListParams):
    search: str = ""
    category_id: Optional[uuid.UUID] = None
    category_ids: List[uuid.UUID] = Field(default_factory=list)
    sku: str = ""
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_digital: Optional[bool] = None
    track_inventory: Optional[bool] = None
    in_stock: Optional[bool] = None
    low_stock: Optional[bool] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


class CategoryFilter(ListParams):
    search: str = ""
    parent_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None
    level: Optional[int] = None


class VariantFilter(ListParams):
    product_id: Optional[uuid.UUID] = None
    search: str = ""
    sku: str = ""
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    is_active: Optional[bool] = None
    is_digital: Optional[bool] = None
    track_inventory: Optional[bool] = None
    in_stock: Optional[bool] = None
    low_stock: Optional[bool] = None


# ============================================================================
# Stock
# ============================================================================

class WarehouseFilter(ListParams):
    ids: List[uuid.UUID] = Field(default_factory=list)
    code: str = ""
    name: str = ""
    is_active: Optional[bool] = None
    manager_id: Optional[uuid.UUID] = None
    city: str = ""
    state: str = ""
    country: str = ""
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    updated_after: Optional[datetime] = None
    updated_before: Optional[datetime] = None


class InventoryFilter(ListParams):
    ids: List[uuid.UUID] = Field(default_factory=list)
    product_ids: List[uuid.UUID] = Field(default_factory=list)
    warehouse_ids: List[uuid.UUID] = Field(default_factory=list)
    sku: str = ""
    product_name: str = ""
    warehouse_code: str = ""
    is_low_stock: Optional[bool] = None
    is_out_of_stock: Optional[bool] = None
    is_overstock: Optional[bool] = None
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    min_average_cost: Optional[Decimal] = None
    max_average_cost: Optional[Decimal] = None
    last_counted_after: Optional[datetime] = None
    last_counted_before: Optional[datetime] = None
    updated_after: Optional[datetime] = None
    updated_before: Optional[datetime] = None


class InventoryTransactionFilter(ListParams):
    ids: List[uuid.UUID] = Field(default_factory=list)
    product_ids: List[uuid.UUID] = Field(default_factory=list)
    warehouse_ids: List[uuid.UUID] = Field(default_factory=list)
    transaction_types: List[str] = Field(default_factory=list)
    reference_type: str = ""
    reference_id: str = ""
    created_by: List[uuid.UUID] = Field(default_factory=list)
    approved_by: List[uuid.UUID] = Field(default_factory=list)
    batch_number: str = ""
    serial_number: str = ""
    is_approved: Optional[bool] = None
    is_pending: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    approved_after: Optional[datetime] = None
    approved_before: Optional[datetime] = None


# ============================================================================
# Sales
# ============================================================================

class OrderFilter(ListParams):
    search: str = ""
    status: List[str] = Field(default_factory=list)
    payment_status: List[str] = Field(default_factory=list)
    priority: List[str] = Field(default_factory=list)
    type: List[str] = Field(default_factory=list)
    shipping_method: List[str] = Field(default_factory=list)
    customer_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_total: Optional[Decimal] = None
    max_total: Optional[Decimal] = None
    currency: str = ""
    created_by: Optional[uuid.UUID] = None


class CustomerFilter(ListParams):
    search: str = ""
    type: str = ""
    company_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None
    industry: Optional[str] = None
    source: str = ""
    has_credit_limit: Optional[bool] = None
    min_credit_limit: Optional[Decimal] = None
    max_credit_limit: Optional[Decimal] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class CompanyFilter(ListParams):
    search: str = ""
    industry: Optional[str] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class CustomerStatsFilter(BaseModel):
    start_date: datetime
    end_date: datetime
    type: str = ""
    is_active: Optional[bool] = None

    def to_list_filter(self) -> CustomerFilter:
        return CustomerFilter(
            type=self.type,
            is_active=self.is_active,
            start_date=self.start_date,
            end_date=self.end_date,
        )


# ============================================================================
# Identity
# ============================================================================

class UserFilter(ListParams):
    search: str = ""
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None


class RoleFilter(ListParams):
    search: str = ""
    is_system: Optional[bool] = None


# ============================================================================
# Statistics
# ============================================================================

class ProductStatsFilter(BaseModel):
    category_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def to_list_filter(self) -> ProductFilter:
        return ProductFilter(
            category_id=self.category_id,
            is_active=self.is_active,
            created_after=self.start_date,
            created_before=self.end_date,
        )


class OrderStatsFilter(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    customer_id: Optional[uuid.UUID] = None
    status: List[str] = Field(default_factory=list)
    currency: str = ""

    def to_list_filter(self) -> OrderFilter:
        return OrderFilter(
            start_date=self.start_date,
            end_date=self.end_date,
            customer_id=self.customer_id,
            status=self.status,
            currency=self.currency,
        )
