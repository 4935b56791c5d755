# erp_persistence/repositories/verifications.py
"""
Email verification and password-reset tokens.

A token is active while ``is_used`` is false and ``expires_at`` lies in the
future. Consuming a token is a single guarded UPDATE, so two concurrent
redemptions of the same token cannot both succeed.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.models import EmailVerification, VerificationStats
from erp_persistence.repositories.base import BaseRepository, insert_sql, values_of
from erp_persistence.settings import settings

logger = logging.getLogger(__name__)

VERIFICATION_COLUMNS = (
    "id, user_id, email, token, token_type, expires_at, is_used, used_at, created_at, updated_at"
)
_FIELDS = tuple(c.strip() for c in VERIFICATION_COLUMNS.split(","))
_SELECT = f"SELECT {VERIFICATION_COLUMNS} FROM email_verifications"


class EmailVerificationRepository(BaseRepository):
    entity = "email_verification"
    record = EmailVerification

    async def create(self, verification: EmailVerification) -> EmailVerification:
        await self.db.exec(insert_sql("email_verifications", _FIELDS), values_of(verification, _FIELDS),
                           context="create email verification")
        return verification

    async def get_by_token(self, token: str) -> EmailVerification:
        # the token itself is a credential; keep it out of the error message
        return await self._fetch_one(f"{_SELECT} WHERE token = $1", (token,), "token",
                                     context="get verification by token")

    async def get_active_verification(self, user_id: uuid.UUID, token_type: str) -> EmailVerification:
        """Newest unused, unexpired token of ``token_type`` for the user."""
        return await self._fetch_one(
            f"""
            {_SELECT}
            WHERE user_id = $1 AND token_type = $2 AND is_used = false AND expires_at > NOW()
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id, token_type), f"{user_id}/{token_type}", context="get active verification",
        )

    async def get_user_verifications(self, user_id: uuid.UUID,
                                     token_type: Optional[str] = None) -> List[EmailVerification]:
        sql = f"{_SELECT} WHERE user_id = $1"
        args: list = [user_id]
        if token_type:
            sql += " AND token_type = $2"
            args.append(token_type)
        return await self._fetch_many(sql + " ORDER BY created_at DESC", args,
                                      context="get user verifications")

    async def mark_used(self, verification_id: uuid.UUID) -> None:
        """
        Consume a token.

        Raises:
            EntityNotFoundError: no such token, or it was already used
        """
        await self._affect_one(
            """
            UPDATE email_verifications
            SET is_used = true, used_at = NOW(), updated_at = NOW()
            WHERE id = $1 AND is_used = false
            """,
            (verification_id,), verification_id, context="mark verification used",
        )

    async def deactivate_all(self, user_id: uuid.UUID, token_type: str) -> int:
        return await self.db.exec(
            """
            UPDATE email_verifications
            SET is_used = true, updated_at = NOW()
            WHERE user_id = $1 AND token_type = $2 AND is_used = false
            """,
            (user_id, token_type), context="deactivate user verifications",
        )

    async def delete_expired(self) -> int:
        deleted = await self.db.exec("DELETE FROM email_verifications WHERE expires_at < NOW()", (),
                                     context="delete expired verifications")
        logger.info(f"Deleted {deleted} expired verifications")
        return deleted

    async def cleanup_expired(self, older_than: Optional[timedelta] = None) -> int:
        """Delete tokens that expired more than ``older_than`` ago (default VERIFICATION_CLEANUP_AGE_HOURS)."""
        if older_than is None:
            older_than = timedelta(hours=settings.VERIFICATION_CLEANUP_AGE_HOURS)
        cutoff = datetime.now().astimezone() - older_than
        deleted = await self.db.exec("DELETE FROM email_verifications WHERE expires_at < $1", (cutoff,),
                                     context="cleanup expired verifications")
        logger.info(f"Cleaned up {deleted} verifications expired before {cutoff.isoformat()}")
        return deleted

    async def get_stats(self, user_id: uuid.UUID) -> Dict[str, VerificationStats]:
        rows = await self.db.query_many(
            """
            SELECT
                token_type,
                COUNT(*) AS total,
                COUNT(CASE WHEN is_used = false AND expires_at > NOW() THEN 1 END) AS active,
                COUNT(CASE WHEN is_used = true THEN 1 END) AS used,
                COUNT(CASE WHEN is_used = false AND expires_at <= NOW() THEN 1 END) AS expired,
                MAX(created_at) AS last_sent_at,
                MAX(used_at) AS last_used_at
            FROM email_verifications
            WHERE user_id = $1
            GROUP BY token_type
            """,
            (user_id,), context="get verification stats",
        )
        return {r["token_type"]: VerificationStats.from_row(r) for r in rows}
