"""Index item use cases.

Listings and short title searches are served from the listing cache, and
each goes through the request coalescer so a burst of identical page loads
runs one query. Every write commits first, then evicts the counts and
listings it can affect and forgets coalesced reads before reporting
success. An eviction failure is logged and the write still succeeds.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from siteindex.cache.invalidation import ItemPlacement, WriteOperation
from siteindex.cache.keys import CacheKeys
from siteindex.cache.runtime import CacheRuntime
from siteindex.core.model import IndexItem, IndexItemCreate, IndexItemUpdate, ItemFilter
from siteindex.persistence.repositories import IndexItemRepository

logger = logging.getLogger(__name__)


class ItemNotFoundError(LookupError):
    """Raised when an item id does not exist."""

    def __init__(self, item_id: int):
        super().__init__(f"Index item {item_id} not found")
        self.item_id = item_id


def _placement(item: IndexItem) -> ItemPlacement:
    return ItemPlacement(letter=item.letter, campus=item.campus)


class IndexItemService:
    """Reads and writes index items, keeping the caches honest."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: CacheRuntime,
    ):
        self.session_factory = session_factory
        self.runtime = runtime

    async def list_items(
        self,
        campus: str | None = None,
        letter: str | None = None,
    ) -> list[IndexItem]:
        """Items for a campus and/or letter, ordered by letter and title."""
        letter = letter.upper() if letter else None
        key = CacheKeys.item_list(campus=campus, letter=letter)

        async def load() -> list[IndexItem]:
            async with self.session_factory() as session:
                return await IndexItemRepository(session).list_all(
                    ItemFilter(campus=campus, letter=letter)
                )

        async def query() -> list[IndexItem]:
            return await self.runtime.item_lists.read_through(key, load)

        return await self.runtime.read("index_items", query, campus=campus, letter=letter)

    async def search_items(self, query: str, campus: str | None = None) -> list[IndexItem]:
        """Items whose title contains ``query``, ignoring case."""
        text = query.strip()
        if not text:
            return []

        async def load() -> list[IndexItem]:
            async with self.session_factory() as session:
                return await IndexItemRepository(session).search(text, campus=campus)

        async def cached() -> list[IndexItem]:
            return await self.runtime.item_lists.search(text, campus, load)

        return await self.runtime.read("search_items", cached, q=text.lower(), campus=campus)

    async def get_item(self, item_id: int) -> IndexItem:
        async with self.session_factory() as session:
            item = await IndexItemRepository(session).get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    async def create_item(self, data: IndexItemCreate) -> IndexItem:
        async with self.session_factory() as session:
            item = await IndexItemRepository(session).create(data)
            await session.commit()

        await self.runtime.invalidate_after_write(WriteOperation.CREATE, [_placement(item)])
        logger.info("Created index item %s", item.id, extra={"item_id": item.id})
        return item

    async def update_item(self, item_id: int, data: IndexItemUpdate) -> IndexItem:
        """Apply a partial update.

        Listings are evicted for both the old and the new letter and campus.
        An update that changes nothing evicts nothing.
        """
        async with self.session_factory() as session:
            result = await IndexItemRepository(session).update(item_id, data)
            if result is None:
                raise ItemNotFoundError(item_id)
            await session.commit()

        if result.changed:
            item = result.item
            before = ItemPlacement(
                letter=result.previous.get("letter", item.letter),
                campus=result.previous.get("campus", item.campus),
            )
            await self.runtime.invalidate_after_write(
                WriteOperation.UPDATE, [before, _placement(item)], result.changed
            )
        return result.item

    async def delete_item(self, item_id: int) -> None:
        async with self.session_factory() as session:
            deleted = await IndexItemRepository(session).delete(item_id)
            if deleted is None:
                raise ItemNotFoundError(item_id)
            await session.commit()

        await self.runtime.invalidate_after_write(WriteOperation.DELETE, [_placement(deleted)])
        logger.info("Deleted index item %s", item_id, extra={"item_id": item_id})
