import uuid
from datetime import datetime, timedelta, timezone

import pytest

from erp_persistence.errors import ErrorKind, NotFoundOrAlreadyApprovedError
from erp_persistence.filters import InventoryTransactionFilter
from erp_persistence.repositories.inventory_transactions import InventoryTransactionRepository
from erp_persistence.settings import settings

TX_ID = uuid.uuid4()
USER = uuid.uuid4()


@pytest.mark.asyncio
async def test_approve_is_guarded_by_pending_state(db):
    await InventoryTransactionRepository(db).approve(TX_ID, USER)
    assert "approved_at IS NULL" in db.last_sql
    assert db.last_params == [TX_ID, USER]


@pytest.mark.asyncio
async def test_second_approval_loses(db):
    """The first approver gets the row; the second sees zero affected rows."""
    repo = InventoryTransactionRepository(db)
    db.script(1, 0)
    await repo.approve(TX_ID, USER)
    with pytest.raises(NotFoundOrAlreadyApprovedError) as exc:
        await repo.approve(TX_ID, uuid.uuid4())
    assert exc.value.kind is ErrorKind.not_found_or_already_approved


@pytest.mark.asyncio
async def test_reject_records_reason_in_transaction(db):
    db.script(0)
    with pytest.raises(NotFoundOrAlreadyApprovedError):
        await InventoryTransactionRepository(db).reject(TX_ID, USER, "damaged")
    assert db.last_params == [TX_ID, USER, "damaged"]
    assert db.transactions[0].rolled_back


@pytest.mark.asyncio
async def test_bulk_approve(db):
    repo = InventoryTransactionRepository(db)
    assert await repo.bulk_approve([], USER) == 0
    assert db.statements == []

    ids = [uuid.uuid4(), uuid.uuid4(), uuid.uuid4()]
    db.script(2)
    assert await repo.bulk_approve(ids, USER) == 2
    assert "id = ANY($2::uuid[])" in db.last_sql
    assert db.last_params == [USER, ids]


@pytest.mark.asyncio
async def test_pending_transfers_match_either_side(db):
    wid = uuid.uuid4()
    await InventoryTransactionRepository(db).get_pending_transfers(wid)
    assert "from_warehouse_id = $1 OR to_warehouse_id = $1" in db.last_sql
    assert db.last_params == [wid]


@pytest.mark.asyncio
async def test_summary_defaults_to_recent_window(db):
    before = datetime.now(timezone.utc)
    db.script(
        {"total_transactions": 3, "total_quantity_in": 10, "total_quantity_out": 4,
         "total_value_in": 100, "total_value_out": 40},
        [{"transaction_type": "SALE", "count": 2, "total_quantity": 4, "total_value": 40},
         {"transaction_type": "PURCHASE", "count": 1, "total_quantity": 10, "total_value": 100}],
    )
    summary = await InventoryTransactionRepository(db).get_summary()

    window = summary.end_date - summary.start_date
    assert window == timedelta(days=settings.TRANSACTION_SUMMARY_DEFAULT_DAYS)
    assert summary.end_date >= before
    assert summary.total_transactions == 3
    assert set(summary.by_type) == {"SALE", "PURCHASE"}
    assert summary.by_type["SALE"].total_quantity == 4

    stats_params, breakdown_params = db.statements[0][1], db.statements[1][1]
    assert stats_params == breakdown_params == [summary.start_date, summary.end_date]
    assert db.last_sql.endswith("GROUP BY transaction_type")


@pytest.mark.asyncio
async def test_summary_keeps_explicit_range(db):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await InventoryTransactionRepository(db).get_summary(InventoryTransactionFilter(date_from=start))
    assert db.statements[0][1] == [start]
