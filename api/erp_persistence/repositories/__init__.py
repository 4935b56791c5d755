# erp_persistence/repositories/__init__.py
"""
PostgreSQL repositories for the ERP entities.
"""
from erp_persistence.repositories.analytics import OrderAnalyticsRepository
from erp_persistence.repositories.categories import CategoryRepository
from erp_persistence.repositories.customers import CompanyRepository, CustomerRepository
from erp_persistence.repositories.inventory import InventoryRepository
from erp_persistence.repositories.inventory_transactions import InventoryTransactionRepository
from erp_persistence.repositories.order_lines import OrderAddressRepository, OrderItemRepository
from erp_persistence.repositories.orders import OrderRepository
from erp_persistence.repositories.products import ProductRepository
from erp_persistence.repositories.users import RoleRepository, UserRepository
from erp_persistence.repositories.variants import ProductVariantRepository
from erp_persistence.repositories.verifications import EmailVerificationRepository
from erp_persistence.repositories.warehouses import WarehouseRepository

__all__ = [
    "CategoryRepository",
    "CompanyRepository",
    "CustomerRepository",
    "EmailVerificationRepository",
    "InventoryRepository",
    "InventoryTransactionRepository",
    "OrderAddressRepository",
    "OrderAnalyticsRepository",
    "OrderItemRepository",
    "OrderRepository",
    "ProductRepository",
    "ProductVariantRepository",
    "RoleRepository",
    "UserRepository",
    "WarehouseRepository",
]
