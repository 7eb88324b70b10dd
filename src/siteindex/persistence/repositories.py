"""Repository pattern for index item persistence.

Repositories work inside a caller-owned session and only flush; the caller
commits, then invalidates the count cache. ``SqlItemCounter`` is the
relational count source behind the cache and opens its own short-lived
session per query so concurrent counts never share a connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from siteindex.core.model import IndexItem, IndexItemCreate, IndexItemUpdate, ItemFilter
from siteindex.persistence.tables import IndexItemTable


@dataclass
class UpdateResult:
    """An updated item and the previous values of the fields that changed."""

    item: IndexItem
    previous: dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> set[str]:
        return set(self.previous)


def _apply_filter(stmt: Select, item_filter: ItemFilter | None) -> Select:
    if item_filter is None:
        return stmt
    if item_filter.campus is not None:
        stmt = stmt.where(IndexItemTable.campus == item_filter.campus)
    if item_filter.letter is not None:
        stmt = stmt.where(IndexItemTable.letter == item_filter.letter.upper())
    if item_filter.created_since is not None:
        stmt = stmt.where(IndexItemTable.created_at >= item_filter.created_since)
    return stmt


class IndexItemRepository:
    """Repository for index item operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, item_id: int) -> IndexItem | None:
        row = await self.session.get(IndexItemTable, item_id)
        return None if row is None else IndexItem.model_validate(row)

    async def list_all(
        self,
        item_filter: ItemFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[IndexItem]:
        """List items ordered by letter, then title."""
        stmt = _apply_filter(select(IndexItemTable), item_filter)
        stmt = stmt.order_by(IndexItemTable.letter, IndexItemTable.title).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [IndexItem.model_validate(row) for row in result.scalars()]

    async def search(self, query: str, campus: str | None = None) -> list[IndexItem]:
        """Items whose title contains ``query``, ignoring case."""
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = select(IndexItemTable).where(IndexItemTable.title.ilike(f"%{escaped}%", escape="\\"))
        if campus is not None:
            stmt = stmt.where(IndexItemTable.campus == campus)
        stmt = stmt.order_by(IndexItemTable.letter, IndexItemTable.title)
        result = await self.session.execute(stmt)
        return [IndexItem.model_validate(row) for row in result.scalars()]

    async def count(self, item_filter: ItemFilter | None = None) -> int:
        stmt = _apply_filter(select(func.count()).select_from(IndexItemTable), item_filter)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def create(self, data: IndexItemCreate) -> IndexItem:
        row = IndexItemTable(
            title=data.title,
            url=data.url,
            letter=data.letter.upper(),
            campus=data.campus,
        )
        self.session.add(row)
        await self.session.flush()
        # Load server-generated timestamps
        await self.session.refresh(row)
        return IndexItem.model_validate(row)

    async def update(self, item_id: int, data: IndexItemUpdate) -> UpdateResult | None:
        """Apply the fields set on ``data``.

        Returns:
            The updated item with the previous values of changed fields, or
            None if not found.
        """
        row = await self.session.get(IndexItemTable, item_id)
        if row is None:
            return None

        previous: dict[str, Any] = {}
        for name, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            if name == "letter":
                value = value.upper()
            if getattr(row, name) != value:
                previous[name] = getattr(row, name)
                setattr(row, name, value)

        if previous:
            await self.session.flush()
            await self.session.refresh(row)
        return UpdateResult(item=IndexItem.model_validate(row), previous=previous)

    async def delete(self, item_id: int) -> IndexItem | None:
        """Delete an item.

        Returns:
            The deleted item, or None if not found.
        """
        row = await self.session.get(IndexItemTable, item_id)
        if row is None:
            return None

        item = IndexItem.model_validate(row)
        await self.session.delete(row)
        await self.session.flush()
        return item


class SqlItemCounter:
    """Count source for the cache, one session per query."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def count(self, item_filter: ItemFilter | None = None) -> int:
        async with self.session_factory() as session:
            return await IndexItemRepository(session).count(item_filter)
