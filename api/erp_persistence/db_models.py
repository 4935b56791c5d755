# erp_persistence/db_models.py
"""
SQLAlchemy ORM Models for the ERP schema - Part 1: catalog and stock.

Schema contract for the tables the repositories query: categories, products,
variants, warehouses, inventory and inventory transactions.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import enum
import uuid

from sqlalchemy import (
    String, Integer, Boolean, Text, DateTime,
    Numeric, ForeignKey, Index, CheckConstraint, UniqueConstraint,
    Uuid, func, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_persistence.database import Base

# ============================================================================
# ENUMS (stored as VARCHAR, values match the application constants)
# ============================================================================

class TransactionType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    CONSUMPTION = "CONSUMPTION"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    EXPIRY = "EXPIRY"
    PRODUCTION = "PRODUCTION"
    CYCLE_COUNT = "CYCLE_COUNT"


# ============================================================================
# MIXIN for updated_at
# ============================================================================

class TimestampMixin:
    """Mixin for created_at and updated_at columns."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


# ============================================================================
# 1. WAREHOUSES
# ============================================================================

class Warehouse(TimestampMixin, Base):
    __tablename__ = "warehouses"

    id: Mapped[uuid.UUID] = _uuid_pk()
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    inventory_rows: Mapped[List["InventoryItem"]] = relationship(back_populates="warehouse")


# ============================================================================
# 2. PRODUCT CATEGORIES (materialized path + parent pointer)
# ============================================================================

class ProductCategory(TimestampMixin, Base):
    __tablename__ = "product_categories"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("product_categories.id", ondelete="RESTRICT")
    )
    level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    parent: Mapped[Optional["ProductCategory"]] = relationship(remote_side="ProductCategory.id")
    meta: Mapped[Optional["CategoryMetadata"]] = relationship(back_populates="category")

    __table_args__ = (
        UniqueConstraint("parent_id", "name", name="uq_categories_parent_name"),
        # UNIQUE treats NULLs as distinct, so roots need their own index
        Index("uq_categories_root_name", "name", unique=True,
              postgresql_where=text("parent_id IS NULL")),
        Index("idx_categories_parent", "parent_id"),
        Index("idx_categories_path", "path"),
        CheckConstraint("level >= 0", name="ck_categories_level"),
    )


class CategoryMetadata(TimestampMixin, Base):
    __tablename__ = "category_metadata"

    id: Mapped[uuid.UUID] = _uuid_pk()
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("product_categories.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    seo_title: Mapped[Optional[str]] = mapped_column(String(255))
    seo_description: Mapped[Optional[str]] = mapped_column(Text)
    seo_keywords: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped["ProductCategory"] = relationship(back_populates="meta")


# ============================================================================
# 3. PRODUCTS
# ============================================================================

class Product(TimestampMixin, Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = _uuid_pk()
    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    short_description: Mapped[Optional[str]] = mapped_column(String(500))
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("product_categories.id", ondelete="SET NULL")
    )
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    dimensions: Mapped[Optional[str]] = mapped_column(String(100))
    length: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    width: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    height: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    volume: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3))
    barcode: Mapped[Optional[str]] = mapped_column(String(100))
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_stock_level: Mapped[Optional[int]] = mapped_column(Integer)
    allow_backorder: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_shipping: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_digital: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    download_url: Mapped[Optional[str]] = mapped_column(String(500))
    max_downloads: Mapped[Optional[int]] = mapped_column(Integer)
    expiry_days: Mapped[Optional[int]] = mapped_column(Integer)

    # Relationships
    variants: Mapped[List["ProductVariant"]] = relationship(back_populates="product")

    __table_args__ = (
        Index("idx_products_category", "category_id"),
        Index("idx_products_active", "is_active", postgresql_where=text("is_active = true")),
    )


# ============================================================================
# 4. PRODUCT VARIANTS (+ attributes, images)
# ============================================================================

class ProductVariant(TimestampMixin, Base):
    __tablename__ = "product_variants"

    id: Mapped[uuid.UUID] = _uuid_pk()
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    barcode: Mapped[Optional[str]] = mapped_column(String(100))
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_stock_level: Mapped[Optional[int]] = mapped_column(Integer)
    allow_backorder: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_digital: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    product: Mapped["Product"] = relationship(back_populates="variants")

    __table_args__ = (
        Index("idx_variants_product", "product_id"),
    )


class VariantAttribute(Base):
    __tablename__ = "variant_attributes"

    id: Mapped[uuid.UUID] = _uuid_pk()
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), default="text", nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("variant_id", "name", name="uq_variant_attributes"),
    )


class VariantImage(Base):
    __tablename__ = "variant_images"

    id: Mapped[uuid.UUID] = _uuid_pk()
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)
    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    alt_text: Mapped[Optional[str]] = mapped_column(String(255))
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_main: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_variant_images_main", "variant_id", unique=True,
              postgresql_where=text("is_main = true")),
    )


# ============================================================================
# 5. INVENTORY (one row per product and warehouse)
# ============================================================================

class InventoryItem(Base):
    __tablename__ = "inventory"

    id: Mapped[uuid.UUID] = _uuid_pk()
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    quantity_on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_stock: Mapped[Optional[int]] = mapped_column(Integer)
    min_stock: Mapped[Optional[int]] = mapped_column(Integer)
    average_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)
    last_count_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_counted_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)

    # Relationships
    warehouse: Mapped["Warehouse"] = relationship(back_populates="inventory_rows")
    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_product_warehouse"),
        CheckConstraint("quantity_reserved >= 0", name="ck_inventory_reserved"),
        Index("idx_inventory_warehouse", "warehouse_id"),
    )


# ============================================================================
# 6. INVENTORY TRANSACTIONS
# ============================================================================

class InventoryTransaction(Base):
    __tablename__ = "inventory_transactions"

    id: Mapped[uuid.UUID] = _uuid_pk()
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_type: Mapped[Optional[str]] = mapped_column(String(50))
    reference_id: Mapped[Optional[str]] = mapped_column(String(100))
    reason: Mapped[Optional[str]] = mapped_column(Text)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0, nullable=False)
    batch_number: Mapped[Optional[str]] = mapped_column(String(100))
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    serial_number: Mapped[Optional[str]] = mapped_column(String(100))
    from_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("warehouses.id"))
    to_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("warehouses.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)

    __table_args__ = (
        Index("idx_inv_tx_product_warehouse", "product_id", "warehouse_id"),
        Index("idx_inv_tx_pending", "created_at", postgresql_where=text("approved_at IS NULL")),
        Index("idx_inv_tx_type", "transaction_type"),
    )
