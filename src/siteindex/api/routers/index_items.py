"""Index item endpoints.

Listings and searches are cached and coalesced per filter; every write
evicts the counts and listings it affects before responding.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from siteindex.api.deps import ItemServiceDep
from siteindex.core.model import IndexItem, IndexItemCreate, IndexItemUpdate

router = APIRouter(prefix="/api/indexItems", tags=["index items"])


@router.get("", response_model=list[IndexItem])
async def list_index_items(
    service: ItemServiceDep,
    campus: str | None = Query(default=None, max_length=200),
    letter: str | None = Query(default=None, min_length=1, max_length=1),
) -> list[IndexItem]:
    """List items, optionally filtered by campus and letter."""
    return await service.list_items(campus=campus, letter=letter)


@router.get("/search", response_model=list[IndexItem])
async def search_index_items(
    service: ItemServiceDep,
    q: str = Query(min_length=1, max_length=200, description="Text to find in item titles"),
    campus: str | None = Query(default=None, max_length=200),
) -> list[IndexItem]:
    """Items whose title contains ``q``, ignoring case."""
    return await service.search_items(q, campus=campus)


@router.get("/{item_id}", response_model=IndexItem)
async def get_index_item(item_id: int, service: ItemServiceDep) -> IndexItem:
    return await service.get_item(item_id)


@router.post("", response_model=IndexItem, status_code=status.HTTP_201_CREATED)
async def create_index_item(data: IndexItemCreate, service: ItemServiceDep) -> IndexItem:
    return await service.create_item(data)


@router.patch("/{item_id}", response_model=IndexItem)
async def update_index_item(
    item_id: int, data: IndexItemUpdate, service: ItemServiceDep
) -> IndexItem:
    """Update the supplied fields of an item."""
    return await service.update_item(item_id, data)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_index_item(item_id: int, service: ItemServiceDep) -> Response:
    await service.delete_item(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
