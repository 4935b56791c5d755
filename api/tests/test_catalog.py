import uuid
from decimal import Decimal

import pytest

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.filters import ProductStatsFilter
from erp_persistence.models import Product
from erp_persistence.query_builder import LOW_STOCK_PREDICATE
from erp_persistence.repositories import ProductRepository, ProductVariantRepository, WarehouseRepository

from conftest import normalize


@pytest.mark.asyncio
async def test_product_update_is_keyed_on_id(db):
    product = Product(sku="HB-8", name="Hex bolt M8", price=Decimal("0.35"))
    await ProductRepository(db).update(product)
    sql = db.last_sql
    assert sql.startswith("UPDATE products SET sku = $2")
    assert sql.endswith("updated_at = NOW() WHERE id = $1")
    assert db.last_params[:3] == [product.id, "HB-8", "Hex bolt M8"]


@pytest.mark.asyncio
async def test_low_stock_query_excludes_empty_rows(db):
    await ProductRepository(db).get_low_stock(5)
    sql = normalize(db.last_sql)
    assert "stock_quantity > 0" in sql
    assert "track_inventory = true" in sql
    assert db.last_params == [5]


@pytest.mark.asyncio
async def test_get_price(db):
    pid = uuid.uuid4()
    db.script({"price": Decimal("12.50")})
    repo = ProductRepository(db)
    assert await repo.get_price(pid) == Decimal("12.50")
    with pytest.raises(EntityNotFoundError):
        await repo.get_price(pid)


@pytest.mark.asyncio
async def test_get_by_categories_short_circuits_on_empty(db):
    assert await ProductRepository(db).get_by_categories([]) == []
    assert db.statements == []


@pytest.mark.asyncio
async def test_product_stats_share_list_predicates(db):
    db.script({"total_products": 4, "active_products": 3, "low_stock_products": 1})
    stats = await ProductRepository(db).get_stats(ProductStatsFilter(is_active=True))
    assert stats.total_products == 4 and stats.low_stock_products == 1
    assert LOW_STOCK_PREDICATE in db.last_sql
    assert db.last_params == [True]


@pytest.mark.asyncio
async def test_set_main_image_for_foreign_image_rolls_back(db):
    db.script(3, 0)
    with pytest.raises(EntityNotFoundError):
        await ProductVariantRepository(db).set_main_image(uuid.uuid4(), uuid.uuid4())
    assert db.transactions[0].rolled_back
    assert len(db.statements) == 2


@pytest.mark.asyncio
async def test_variant_bulk_delete(db):
    repo = ProductVariantRepository(db)
    assert await repo.bulk_delete([]) == 0
    ids = [uuid.uuid4()]
    db.script(1)
    assert await repo.bulk_delete(ids) == 1
    assert db.last_params == [ids]


@pytest.mark.asyncio
async def test_warehouse_stats_for_unknown_warehouse(db):
    with pytest.raises(EntityNotFoundError):
        await WarehouseRepository(db).get_stats(uuid.uuid4())
