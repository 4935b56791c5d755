import uuid
from datetime import datetime, timedelta, timezone

import pytest

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.repositories.verifications import EmailVerificationRepository
from erp_persistence.settings import settings

USER = uuid.uuid4()


@pytest.mark.asyncio
async def test_mark_used_only_consumes_unused_tokens(db):
    vid = uuid.uuid4()
    repo = EmailVerificationRepository(db)
    db.script(1, 0)

    await repo.mark_used(vid)
    assert "is_used = false" in db.last_sql

    with pytest.raises(EntityNotFoundError) as exc:
        await repo.mark_used(vid)
    assert exc.value.key == vid


@pytest.mark.asyncio
async def test_unknown_token_is_not_echoed(db):
    with pytest.raises(EntityNotFoundError) as exc:
        await EmailVerificationRepository(db).get_by_token("s3cr3t-token")
    assert "s3cr3t-token" not in str(exc.value)


@pytest.mark.asyncio
async def test_active_verification_picks_newest_unexpired(db):
    with pytest.raises(EntityNotFoundError):
        await EmailVerificationRepository(db).get_active_verification(USER, "password_reset")
    sql = " ".join(db.last_sql.split())
    assert "is_used = false AND expires_at > NOW()" in sql
    assert sql.endswith("ORDER BY created_at DESC LIMIT 1")


@pytest.mark.asyncio
async def test_user_verifications_optional_type(db):
    repo = EmailVerificationRepository(db)
    await repo.get_user_verifications(USER)
    assert db.last_params == [USER]
    await repo.get_user_verifications(USER, "verification")
    assert db.last_params == [USER, "verification"]


@pytest.mark.asyncio
async def test_cleanup_expired_default_cutoff(db):
    db.script(5)
    before = datetime.now(timezone.utc)
    assert await EmailVerificationRepository(db).cleanup_expired() == 5
    after = datetime.now(timezone.utc)

    (cutoff,) = db.last_params
    age = timedelta(hours=settings.VERIFICATION_CLEANUP_AGE_HOURS)
    assert before - age <= cutoff <= after - age


@pytest.mark.asyncio
async def test_cleanup_expired_custom_age(db):
    before = datetime.now(timezone.utc)
    await EmailVerificationRepository(db).cleanup_expired(timedelta(days=7))
    (cutoff,) = db.last_params
    assert cutoff <= before - timedelta(days=7) + timedelta(seconds=5)


@pytest.mark.asyncio
async def test_stats_are_keyed_by_token_type(db):
    sent = datetime(2024, 6, 1, tzinfo=timezone.utc)
    db.script([
        {"token_type": "verification", "total": 3, "active": 1, "used": 1, "expired": 1,
         "last_sent_at": sent, "last_used_at": None},
        {"token_type": "password_reset", "total": 1, "active": 0, "used": 1, "expired": 0,
         "last_sent_at": sent, "last_used_at": sent},
    ])
    stats = await EmailVerificationRepository(db).get_stats(USER)

    assert set(stats) == {"verification", "password_reset"}
    assert stats["verification"].expired == 1
    assert stats["password_reset"].last_used_at == sent
    assert db.last_params == [USER]
