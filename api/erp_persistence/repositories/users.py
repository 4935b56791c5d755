# erp_persistence/repositories/users.py
"""
Users, roles and the user_roles association.

Role names for a user come back from one joined query, never one lookup
per assignment.
"""
from __future__ import annotations
import logging
import uuid
from typing import List, Optional

from erp_persistence.errors import EntityNotFoundError
from erp_persistence.filters import RoleFilter, UserFilter
from erp_persistence.models import Role, User
from erp_persistence.query_builder import ROLE_COLUMNS, USER_COLUMNS
from erp_persistence.repositories.base import BaseRepository, insert_sql, update_sql, values_of

logger = logging.getLogger(__name__)

_FIELDS = tuple(c.strip() for c in USER_COLUMNS.split(","))
# last_login_at has its own writer
_UPDATABLE = tuple(c for c in _FIELDS if c not in ("id", "last_login_at", "created_at", "updated_at"))
_SELECT = f"SELECT {USER_COLUMNS} FROM users"

_ROLE_FIELDS = tuple(c.strip() for c in ROLE_COLUMNS.split(","))
_ROLE_SELECT = f"SELECT {ROLE_COLUMNS} FROM roles"


class UserRepository(BaseRepository):
    entity = "user"
    record = User

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, user: User) -> User:
        await self.db.exec(insert_sql("users", _FIELDS), values_of(user, _FIELDS), context="create user")
        logger.info(f"Created user {user.username}")
        return user

    async def get_by_id(self, user_id: uuid.UUID) -> User:
        return await self._fetch_one(f"{_SELECT} WHERE id = $1", (user_id,), user_id, context="get user by id")

    async def get_by_email(self, email: str) -> User:
        return await self._fetch_one(f"{_SELECT} WHERE email = $1", (email,), email, context="get user by email")

    async def get_by_username(self, username: str) -> User:
        return await self._fetch_one(f"{_SELECT} WHERE username = $1", (username,), username,
                                     context="get user by username")

    async def update(self, user: User) -> None:
        await self._affect_one(
            update_sql("users", _UPDATABLE),
            [user.id, *values_of(user, _UPDATABLE)], user.id,
            context="update user",
        )

    async def delete(self, user_id: uuid.UUID) -> None:
        await self._affect_one("DELETE FROM users WHERE id = $1", (user_id,), user_id, context="delete user")

    async def list(self, filter: Optional[UserFilter] = None) -> List[User]:
        return await self._list(filter)

    async def count(self, filter: Optional[UserFilter] = None) -> int:
        return await self._count(filter)

    async def exists_by_email(self, email: str) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM users WHERE email = $1)", (email,),
                                  context="check user exists by email")

    async def exists_by_username(self, username: str) -> bool:
        return await self._exists("SELECT EXISTS(SELECT 1 FROM users WHERE username = $1)", (username,),
                                  context="check user exists by username")

    async def update_last_login(self, user_id: uuid.UUID) -> None:
        await self._affect_one(
            "UPDATE users SET last_login_at = NOW(), updated_at = NOW() WHERE id = $1",
            (user_id,), user_id, context="update last login",
        )

    # =========================================================================
    # Roles
    # =========================================================================

    async def get_user_roles(self, user_id: uuid.UUID) -> List[str]:
        rows = await self.db.query_many(
            """
            SELECT r.name
            FROM roles r
            INNER JOIN user_roles ur ON r.id = ur.role_id
            WHERE ur.user_id = $1
            ORDER BY r.name
            """,
            (user_id,), context="get user roles",
        )
        return [r["name"] for r in rows]

    async def assign_role(self, user_id: uuid.UUID, role_name: str, assigned_by: Optional[uuid.UUID] = None) -> None:
        """Grant ``role_name``; granting a role the user already holds is a no-op."""
        async with self.db.begin() as tx:
            role_id = await tx.query_scalar("SELECT id FROM roles WHERE name = $1", (role_name,),
                                            context="get role id by name")
            if role_id is None:
                raise EntityNotFoundError("role", role_name)
            await tx.exec(
                """
                INSERT INTO user_roles (id, user_id, role_id, assigned_by, assigned_at)
                VALUES ($1, $2, $3, $4, NOW())
                ON CONFLICT (user_id, role_id) DO NOTHING
                """,
                (uuid.uuid4(), user_id, role_id, assigned_by), context="assign role",
            )
        logger.info(f"Assigned role {role_name} to user {user_id}")

    async def remove_role(self, user_id: uuid.UUID, role_name: str) -> bool:
        removed = await self.db.exec(
            """
            DELETE FROM user_roles ur
            USING roles r
            WHERE ur.role_id = r.id AND ur.user_id = $1 AND r.name = $2
            """,
            (user_id, role_name), context="remove role",
        )
        if removed:
            logger.info(f"Removed role {role_name} from user {user_id}")
        return removed > 0

    async def has_role(self, user_id: uuid.UUID, role_name: str) -> bool:
        return await self._exists(
            """
            SELECT EXISTS(
                SELECT 1 FROM user_roles ur
                INNER JOIN roles r ON r.id = ur.role_id
                WHERE ur.user_id = $1 AND r.name = $2
            )
            """,
            (user_id, role_name), context="check user has role",
        )


class RoleRepository(BaseRepository):
    entity = "role"
    record = Role

    async def create(self, role: Role) -> Role:
        await self.db.exec(insert_sql("roles", _ROLE_FIELDS), values_of(role, _ROLE_FIELDS), context="create role")
        return role

    async def get_by_name(self, name: str) -> Role:
        return await self._fetch_one(f"{_ROLE_SELECT} WHERE name = $1", (name,), name, context="get role by name")

    async def list(self, filter: Optional[RoleFilter] = None) -> List[Role]:
        return await self._list(filter)
