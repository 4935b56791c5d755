# erp_persistence/repositories/categories.py
"""
Category tree repository.

Categories are stored with both a parent pointer and a materialized path.
Invariants kept by create() and the rebuild operations:
- roots have level 0 and path "/<slug>"
- children have path = parent.path + "/<slug>" and level = parent.level + 1
- (parent_id, name) is unique, roots included

update() never recomputes paths; callers that rename or reparent run
rebuild_category_paths() on the moved subtree afterwards.
"""
from __future__ import annotations
import logging
import re
import uuid
from typing import List, Optional, Sequence, Tuple

from erp_persistence.errors import EntityNotFoundError, InvalidArgumentError
from erp_persistence.filters import CategoryFilter
from erp_persistence.models import Category, CategoryMetadata
from erp_persistence.query_builder import CATEGORY_COLUMNS
from erp_persistence.repositories.base import BaseRepository, insert_sql, values_of

logger = logging.getLogger(__name__)

# ASCII letters, digits and ASCII whitespace survive; Python and PostgreSQL
# both read these escapes, so slugify() and slug_sql() agree on every name
SLUG_CLASS = r"[^a-zA-Z0-9 \t\n\r\f\v]"
_SLUG_STRIP = re.compile(SLUG_CLASS)


def slugify(name: str) -> str:
    """Lowercase ``name`` and drop everything outside ASCII letters, digits and whitespace."""
    return _SLUG_STRIP.sub("", name or "").lower()


def slug_sql(column: str) -> str:
    return f"LOWER(REGEXP_REPLACE({column}, '{SLUG_CLASS}', '', 'g'))"


def child_path(parent_path: Optional[str], name: str) -> str:
    return f"{parent_path or ''}/{slugify(name)}"


_FIELDS = tuple(c.strip() for c in CATEGORY_COLUMNS.split(","))
_PREFIXED = ", ".join(f"c.{c}" for c in _FIELDS)

_SELECT_WITH_METADATA = f"""
    SELECT {_PREFIXED},
           cm.seo_title, cm.seo_description, cm.seo_keywords
    FROM product_categories c
    LEFT JOIN category_metadata cm ON c.id = cm.category_id
"""

_UPSERT_METADATA = """
    INSERT INTO category_metadata (
        id, category_id, seo_title, seo_description, seo_keywords,
        created_at, updated_at
    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
    ON CONFLICT (category_id) DO UPDATE SET
        seo_title = EXCLUDED.seo_title,
        seo_description = EXCLUDED.seo_description,
        seo_keywords = EXCLUDED.seo_keywords,
        updated_at = EXCLUDED.updated_at
"""

_DESCENDANTS = f"""
    WITH RECURSIVE category_tree AS (
        SELECT {CATEGORY_COLUMNS}
        FROM product_categories
        WHERE parent_id = $1

        UNION ALL

        SELECT {_PREFIXED}
        FROM product_categories c
        INNER JOIN category_tree ct ON c.parent_id = ct.id
    )
    SELECT {CATEGORY_COLUMNS}
    FROM category_tree
    ORDER BY level ASC, sort_order ASC, name ASC
"""

# upward walk from the category itself; callers drop or keep the start row
_UPWARD = f"""
    WITH RECURSIVE category_tree AS (
        SELECT {CATEGORY_COLUMNS}
        FROM product_categories
        WHERE id = $1

        UNION ALL

        SELECT {_PREFIXED}
        FROM product_categories c
        INNER JOIN category_tree ct ON c.id = ct.parent_id
    )
    SELECT {CATEGORY_COLUMNS}
    FROM category_tree
"""

_REBUILD_ALL = f"""
    WITH RECURSIVE category_tree AS (
        SELECT id, 0 AS level, '/' || {slug_sql('name')} AS path
        FROM product_categories
        WHERE parent_id IS NULL

        UNION ALL

        SELECT c.id, ct.level + 1, ct.path || '/' || {slug_sql('c.name')}
        FROM product_categories c
        INNER JOIN category_tree ct ON c.parent_id = ct.id
    )
    UPDATE product_categories pc
    SET path = ct.path, level = ct.level, updated_at = NOW()
    FROM category_tree ct
    WHERE ct.id = pc.id
"""

# the subtree root takes its prefix from the parent's stored path and level
_REBUILD_SUBTREE = f"""
    WITH RECURSIVE category_tree AS (
        SELECT c.id,
               COALESCE(parent.level + 1, 0) AS level,
               COALESCE(parent.path, '') || '/' || {slug_sql('c.name')} AS path
        FROM product_categories c
        LEFT JOIN product_categories parent ON parent.id = c.parent_id
        WHERE c.id = $1

        UNION ALL

        SELECT c.id, ct.level + 1, ct.path || '/' || {slug_sql('c.name')}
        FROM product_categories c
        INNER JOIN category_tree ct ON c.parent_id = ct.id
    )
    UPDATE product_categories pc
    SET path = ct.path, level = ct.level, updated_at = NOW()
    FROM category_tree ct
    WHERE ct.id = pc.id
"""

_IN_SUBTREE = """
    WITH RECURSIVE category_tree AS (
        SELECT id FROM product_categories WHERE id = $1

        UNION ALL

        SELECT c.id
        FROM product_categories c
        INNER JOIN category_tree ct ON c.parent_id = ct.id
    )
    SELECT EXISTS(SELECT 1 FROM category_tree WHERE id = $2)
"""

_COUNT_PRODUCTS = """
    WITH RECURSIVE category_tree AS (
        SELECT id FROM product_categories WHERE id = $1

        UNION ALL

        SELECT c.id
        FROM product_categories c
        INNER JOIN category_tree ct ON c.parent_id = ct.id
    )
    SELECT COUNT(*)
    FROM products p
    INNER JOIN category_tree ct ON p.category_id = ct.id
    WHERE p.is_active = true
"""


def _with_metadata(row) -> Category:
    data = dict(row)
    seo = {k: data.pop(k, None) for k in ("seo_title", "seo_description", "seo_keywords")}
    category = Category.model_validate(data)
    if any(v is not None for v in seo.values()):
        category.metadata = CategoryMetadata(**seo)
    return category


class CategoryRepository(BaseRepository):
    """Hierarchical product categories."""

    entity = "category"
    record = Category

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, category: Category) -> Category:
        """
        Insert the category and its SEO row in one transaction.

        ``level`` and ``path`` are derived from the parent row read inside the
        same transaction; values set on the record are overwritten.
        """
        metadata = category.metadata or CategoryMetadata()
        async with self.db.begin() as tx:
            if category.parent_id is None:
                category.level = 0
                category.path = child_path(None, category.name)
            else:
                parent = await tx.query_one(
                    "SELECT level, path FROM product_categories WHERE id = $1",
                    (category.parent_id,), context="get parent category",
                )
                if parent is None:
                    raise EntityNotFoundError("category", category.parent_id)
                category.level = parent["level"] + 1
                category.path = child_path(parent["path"], category.name)

            await tx.exec(
                insert_sql("product_categories", _FIELDS),
                values_of(category, _FIELDS),
                context="create category",
            )
            await tx.exec(
                _UPSERT_METADATA,
                (uuid.uuid4(), category.id, metadata.seo_title, metadata.seo_description,
                 metadata.seo_keywords, category.created_at, category.updated_at),
                context="create category metadata",
            )
        return category

    async def get_by_id(self, category_id: uuid.UUID) -> Category:
        row = await self.db.query_one(
            _SELECT_WITH_METADATA + " WHERE c.id = $1", (category_id,),
            context="get category by id",
        )
        if row is None:
            raise EntityNotFoundError("category", category_id)
        return _with_metadata(row)

    async def get_by_path(self, path: str) -> Category:
        row = await self.db.query_one(
            _SELECT_WITH_METADATA + " WHERE c.path = $1", (path,),
            context="get category by path",
        )
        if row is None:
            raise EntityNotFoundError("category", path)
        return _with_metadata(row)

    async def update(self, category: Category) -> None:
        """
        Update the base row and SEO row in one transaction.

        A new ``parent_id`` inside the category's own subtree is rejected.
        Paths are left as stored.
        """
        metadata = category.metadata or CategoryMetadata()
        async with self.db.begin() as tx:
            if category.parent_id is not None:
                if category.parent_id == category.id:
                    raise InvalidArgumentError("category cannot be its own parent")
                cycle = await tx.query_scalar(
                    _IN_SUBTREE, (category.id, category.parent_id),
                    context="check category cycle",
                )
                if cycle:
                    raise InvalidArgumentError(
                        f"parent {category.parent_id} is a descendant of category {category.id}"
                    )

            affected = await tx.exec(
                """
                UPDATE product_categories
                SET name = $2, description = $3, parent_id = $4, level = $5,
                    path = $6, image_url = $7, sort_order = $8, is_active = $9,
                    updated_at = NOW()
                WHERE id = $1
                """,
                (category.id, category.name, category.description, category.parent_id,
                 category.level, category.path, category.image_url, category.sort_order,
                 category.is_active),
                context="update category",
            )
            if affected == 0:
                raise EntityNotFoundError("category", category.id)
            await tx.exec(
                _UPSERT_METADATA,
                (uuid.uuid4(), category.id, metadata.seo_title, metadata.seo_description,
                 metadata.seo_keywords, category.created_at, category.updated_at),
                context="update category metadata",
            )

    async def delete(self, category_id: uuid.UUID) -> None:
        await self._affect_one(
            "DELETE FROM product_categories WHERE id = $1", (category_id,),
            category_id, context="delete category",
        )

    async def list(self, filter: Optional[CategoryFilter] = None) -> List[Category]:
        return await self._list(filter)

    async def count(self, filter: Optional[CategoryFilter] = None) -> int:
        return await self._count(filter)

    # =========================================================================
    # Navigation
    # =========================================================================

    async def list_root(self) -> List[Category]:
        return await self._fetch_many(
            f"SELECT {CATEGORY_COLUMNS} FROM product_categories "
            "WHERE parent_id IS NULL ORDER BY sort_order ASC, name ASC",
            (), context="list root categories",
        )

    async def get_children(self, parent_id: uuid.UUID) -> List[Category]:
        return await self._fetch_many(
            f"SELECT {CATEGORY_COLUMNS} FROM product_categories "
            "WHERE parent_id = $1 ORDER BY sort_order ASC, name ASC",
            (parent_id,), context="get category children",
        )

    async def get_descendants(self, category_id: uuid.UUID) -> List[Category]:
        """All strict descendants, shallowest first."""
        return await self._fetch_many(_DESCENDANTS, (category_id,), context="get category descendants")

    async def get_ancestors(self, category_id: uuid.UUID) -> List[Category]:
        """Strict ancestors, immediate parent first and root last."""
        return await self._fetch_many(
            _UPWARD + " WHERE id <> $1 ORDER BY level DESC", (category_id,),
            context="get category ancestors",
        )

    async def get_path(self, category_id: uuid.UUID) -> List[Category]:
        """Root to self, inclusive."""
        return await self._fetch_many(
            _UPWARD + " ORDER BY level ASC", (category_id,), context="get category path",
        )

    async def count_products(self, category_id: uuid.UUID) -> int:
        """Active products in the category and all of its descendants."""
        return int(await self.db.query_scalar(
            _COUNT_PRODUCTS, (category_id,), context="count products in category",
        ) or 0)

    async def exists_by_path(self, path: str) -> bool:
        return await self._exists(
            "SELECT EXISTS(SELECT 1 FROM product_categories WHERE path = $1)",
            (path,), context="check category exists by path",
        )

    async def exists_by_name(self, name: str, parent_id: Optional[uuid.UUID] = None) -> bool:
        if parent_id is None:
            return await self._exists(
                "SELECT EXISTS(SELECT 1 FROM product_categories WHERE name = $1 AND parent_id IS NULL)",
                (name,), context="check category exists by name",
            )
        return await self._exists(
            "SELECT EXISTS(SELECT 1 FROM product_categories WHERE name = $1 AND parent_id = $2)",
            (name, parent_id), context="check category exists by name",
        )

    # =========================================================================
    # Structural maintenance
    # =========================================================================

    async def rebuild_paths(self) -> int:
        """Re-derive path and level for every category from the roots down."""
        async with self.db.begin() as tx:
            updated = await tx.exec(_REBUILD_ALL, (), context="rebuild category paths")
        logger.info(f"Rebuilt paths for {updated} categories")
        return updated

    async def rebuild_category_paths(self, category_id: uuid.UUID) -> int:
        """Re-derive path and level for ``category_id`` and its subtree."""
        async with self.db.begin() as tx:
            updated = await tx.exec(_REBUILD_SUBTREE, (category_id,), context="rebuild category subtree paths")
            if updated == 0:
                raise EntityNotFoundError("category", category_id)
        logger.info(f"Rebuilt paths for {updated} categories under {category_id}")
        return updated

    async def bulk_update_sort_order(self, updates: Sequence[Tuple[uuid.UUID, int]]) -> None:
        """Apply (category_id, sort_order) pairs; all or nothing."""
        if not updates:
            return
        async with self.db.begin() as tx:
            for category_id, sort_order in updates:
                affected = await tx.exec(
                    "UPDATE product_categories SET sort_order = $2, updated_at = NOW() WHERE id = $1",
                    (category_id, sort_order), context="update category sort order",
                )
                if affected == 0:
                    raise EntityNotFoundError("category", category_id)
        logger.info(f"Updated sort order for {len(updates)} categories")
