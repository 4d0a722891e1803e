"""
Category resolver — turns the client's categoryRef into a category id.

categoryRef may be either the category's UUID or its name (any case).
Only active categories resolve by name; an id lookup honours is_active too,
so a retired category cannot be smuggled in by id.

Lookups are cached in a BoundedTTLCache owned by this resolver. The
resolver instance lives on app.state, so the cache is shared by requests
but by nothing else.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cache.ttl import BoundedTTLCache
from models.category import Category
from models.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedCategory:
    id: uuid.UUID
    name: str


class CategoryResolver:

    def __init__(self, cache: BoundedTTLCache):
        self._cache = cache

    async def resolve(self, session: AsyncSession, ref: str | None) -> ResolvedCategory:
        trimmed = (ref or "").strip()
        if not trimmed:
            raise ValidationError("Category is required")

        try:
            category_id = uuid.UUID(trimmed)
        except ValueError:
            category_id = None

        cache_key = f"id:{category_id}" if category_id else f"name:{trimmed.lower()}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        if category_id is not None:
            query = select(Category).where(Category.id == category_id, Category.is_active.is_(True))
        else:
            query = select(Category).where(
                func.lower(Category.name) == trimmed.lower(),
                Category.is_active.is_(True),
            )
        category = (await session.execute(query)).scalar_one_or_none()
        if category is None:
            raise ValidationError(f"Category '{trimmed}' does not exist or is inactive")

        resolved = ResolvedCategory(id=category.id, name=category.name)
        self._cache.set(cache_key, resolved)
        return resolved

    def invalidate(self, category: ResolvedCategory) -> None:
        """Drop a category from the cache after it is renamed or retired."""
        self._cache.invalidate(f"id:{category.id}")
        self._cache.invalidate(f"name:{category.name.lower()}")
