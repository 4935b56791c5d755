# erp_persistence/models.py
"""
Pydantic records returned and accepted by the repositories.

Records mirror the projections in query_builder; ``from_row`` builds one from
a driver row mapping.
"""
from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now().astimezone()


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]):
        return cls.model_validate(dict(row))

    @classmethod
    def from_rows(cls, rows) -> list:
        return [cls.from_row(r) for r in rows]


# ============================================================================
# Catalog
# ============================================================================

class CategoryMetadata(Record):
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_keywords: Optional[str] = None


class Category(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    level: int = 0
    path: str = ""
    image_url: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    metadata: Optional[CategoryMetadata] = None


class Product(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    sku: str
    name: str
    description: Optional[str] = None
    short_description: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    price: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    weight: Optional[Decimal] = None
    dimensions: Optional[str] = None
    length: Optional[Decimal] = None
    width: Optional[Decimal] = None
    height: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    barcode: Optional[str] = None
    track_inventory: bool = True
    stock_quantity: int = 0
    min_stock_level: int = 0
    max_stock_level: Optional[int] = None
    allow_backorder: bool = False
    requires_shipping: bool = True
    taxable: bool = True
    tax_rate: Decimal = Decimal("0")
    is_active: bool = True
    is_featured: bool = False
    is_digital: bool = False
    download_url: Optional[str] = None
    max_downloads: Optional[int] = None
    expiry_days: Optional[int] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ProductVariant(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    product_id: uuid.UUID
    sku: str
    name: str
    price: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    barcode: Optional[str] = None
    image_url: Optional[str] = None
    track_inventory: bool = True
    stock_quantity: int = 0
    min_stock_level: int = 0
    max_stock_level: Optional[int] = None
    allow_backorder: bool = False
    is_active: bool = True
    is_digital: bool = False
    sort_order: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class VariantAttribute(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    variant_id: uuid.UUID
    name: str
    value: str
    type: str = "text"
    sort_order: int = 0


class VariantImage(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    variant_id: uuid.UUID
    image_url: str
    alt_text: Optional[str] = None
    sort_order: int = 0
    is_main: bool = False


# ============================================================================
# Stock
# ============================================================================

class Warehouse(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    code: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class InventoryRow(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    quantity_on_hand: int = 0
    quantity_reserved: int = 0
    quantity_available: Optional[int] = None
    reorder_level: int = 0
    max_stock: Optional[int] = None
    min_stock: Optional[int] = None
    average_cost: Decimal = Decimal("0")
    last_count_date: Optional[datetime] = None
    last_counted_by: Optional[uuid.UUID] = None
    updated_at: datetime = Field(default_factory=_now)
    updated_by: Optional[uuid.UUID] = None
    # joined columns, present on list/search results
    product_sku: Optional[str] = None
    product_name: Optional[str] = None
    warehouse_code: Optional[str] = None
    warehouse_name: Optional[str] = None

    @property
    def available(self) -> int:
        return self.quantity_on_hand - self.quantity_reserved


class StockAdjustment(Record):
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    adjustment: int
    updated_by: Optional[uuid.UUID] = None


class StockReservation(Record):
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    quantity: int


class InventoryTransaction(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    product_id: uuid.UUID
    warehouse_id: uuid.UUID
    transaction_type: str
    quantity: int
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    reason: Optional[str] = None
    unit_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    batch_number: Optional[str] = None
    expiry_date: Optional[datetime] = None
    serial_number: Optional[str] = None
    from_warehouse_id: Optional[uuid.UUID] = None
    to_warehouse_id: Optional[uuid.UUID] = None
    created_at: datetime = Field(default_factory=_now)
    created_by: uuid.UUID
    approved_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None

    @property
    def is_pending(self) -> bool:
        return self.approved_at is None


# ============================================================================
# Sales
# ============================================================================

class Company(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    company_name: str
    legal_name: Optional[str] = None
    tax_id: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Customer(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    customer_code: str
    company_id: Optional[uuid.UUID] = None
    type: str = "individual"
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None
    industry: Optional[str] = None
    credit_limit: Decimal = Decimal("0")
    credit_used: Decimal = Decimal("0")
    terms: str = "NET30"
    is_active: bool = True
    is_vat_exempt: bool = False
    preferred_currency: str = "USD"
    notes: Optional[str] = None
    source: str = "manual"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Order(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    order_number: str
    customer_id: uuid.UUID
    status: str = "DRAFT"
    previous_status: Optional[str] = None
    priority: str = "NORMAL"
    type: str = "SALES"
    payment_status: str = "PENDING"
    shipping_method: str = "STANDARD"
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    shipping_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    refunded_amount: Decimal = Decimal("0")
    currency: str = "USD"
    order_date: datetime = Field(default_factory=_now)
    required_date: Optional[datetime] = None
    shipping_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    cancelled_date: Optional[datetime] = None
    shipping_address_id: Optional[uuid.UUID] = None
    billing_address_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    created_by: uuid.UUID
    approved_by: Optional[uuid.UUID] = None
    shipped_by: Optional[uuid.UUID] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    approved_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None


class OrderItem(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    order_id: uuid.UUID
    product_id: uuid.UUID
    product_sku: str
    product_name: str
    quantity: int
    unit_price: Decimal
    discount_amount: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_price: Decimal
    notes: Optional[str] = None
    status: str = "ORDERED"
    quantity_shipped: int = 0
    quantity_returned: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class OrderAddress(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    customer_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    type: str
    first_name: str
    last_name: str
    company: Optional[str] = None
    address_line_1: str
    address_line_2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    phone: Optional[str] = None
    email: Optional[str] = None
    instructions: Optional[str] = None
    is_default: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


# ============================================================================
# Identity
# ============================================================================

class User(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    email: str
    username: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False
    last_login_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Role(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    is_system: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class EmailVerification(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    email: str
    token: str
    token_type: str = "verification"
    expires_at: datetime
    is_used: bool = False
    used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return not self.is_used and self.expires_at > (now or _now())


# ============================================================================
# Statistics
# ============================================================================

class ProductStats(Record):
    total_products: int = 0
    active_products: int = 0
    inactive_products: int = 0
    featured_products: int = 0
    low_stock_products: int = 0
    out_of_stock_products: int = 0
    overstock_products: int = 0
    digital_products: int = 0
    physical_products: int = 0
    average_price: Decimal = Decimal("0")
    min_price: Decimal = Decimal("0")
    max_price: Decimal = Decimal("0")
    total_stock_value: Decimal = Decimal("0")


class OrderStats(Record):
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0")
    average_order_value: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_refunded: Decimal = Decimal("0")
    status_counts: Dict[str, int] = Field(default_factory=dict)
    payment_status_counts: Dict[str, int] = Field(default_factory=dict)


class CustomerStats(Record):
    total_customers: int = 0
    active_customers: int = 0
    new_customers: int = 0
    customers_by_type: Dict[str, int] = Field(default_factory=dict)
    customers_by_source: Dict[str, int] = Field(default_factory=dict)


class InventoryValue(Record):
    warehouse_id: Optional[uuid.UUID] = None
    total_items: int = 0
    total_quantity: int = 0
    total_value: Decimal = Decimal("0")


class TransactionTypeSummary(Record):
    transaction_type: str
    count: int = 0
    total_quantity: int = 0
    total_value: Decimal = Decimal("0")


class TransactionSummary(Record):
    total_transactions: int = 0
    total_quantity_in: int = 0
    total_quantity_out: int = 0
    total_value_in: Decimal = Decimal("0")
    total_value_out: Decimal = Decimal("0")
    by_type: Dict[str, TransactionTypeSummary] = Field(default_factory=dict)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class WarehouseStats(Record):
    warehouse_id: uuid.UUID
    warehouse_name: str
    warehouse_code: str
    total_products: int = 0
    total_quantity: int = 0
    total_value: Decimal = Decimal("0")
    low_stock_products: int = 0
    out_of_stock_products: int = 0
    last_updated: Optional[datetime] = None


class VerificationStats(Record):
    token_type: str
    total: int = 0
    active: int = 0
    used: int = 0
    expired: int = 0
    last_sent_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None


class RevenueByPeriod(Record):
    period: str
    revenue: Decimal = Decimal("0")
    order_count: int = 0
    average_order_value: Decimal = Decimal("0")


class TopCustomer(Record):
    customer_id: uuid.UUID
    customer_name: str
    customer_email: Optional[str] = None
    company_name: Optional[str] = None
    order_count: int = 0
    total_revenue: Decimal = Decimal("0")
    average_order_value: Decimal = Decimal("0")
    last_order_date: Optional[datetime] = None


class ProductSales(Record):
    product_id: uuid.UUID
    product_sku: str
    product_name: str
    quantity_sold: int = 0
    total_revenue: Decimal = Decimal("0")
    order_count: int = 0


class CustomerOrdersSummary(Record):
    customer_id: uuid.UUID
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0")
    average_order_value: Decimal = Decimal("0")
    first_order_date: Optional[datetime] = None
    last_order_date: Optional[datetime] = None
    status_counts: Dict[str, int] = Field(default_factory=dict)


class NewCustomersByPeriod(Record):
    period: str
    new_customers: int = 0
    total_customers: int = 0
