"""JSON error responses for the site index API.

Every error body has the same shape: ``{"code": ..., "message": ...,
"timestamp": ...}``. Unexpected exceptions, including relational store
failures propagated from the cache layer, become a generic 500 and are
logged with their traceback.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from siteindex.cache.invalidation import InvalidationError
from siteindex.services.index_items import ItemNotFoundError

logger = logging.getLogger(__name__)


class ErrorBody(BaseModel):
    """Error payload returned by every failing endpoint."""

    code: str
    message: str
    timestamp: str


class SiteIndexApiError(HTTPException):
    """Base exception for API errors."""

    def __init__(self, status_code: int, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(status_code=status_code, detail=message)

    def to_body(self) -> ErrorBody:
        return ErrorBody(
            code=self.code,
            message=self.message,
            timestamp=datetime.now(UTC).isoformat(),
        )


class NotFoundError(SiteIndexApiError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str, identifier: str | int):
        super().__init__(
            status_code=404,
            code="NotFound",
            message=f"{resource_type} '{identifier}' not found",
        )


class BadRequestError(SiteIndexApiError):
    """Invalid request (400)."""

    def __init__(self, message: str):
        super().__init__(status_code=400, code="BadRequest", message=message)


class ConflictError(SiteIndexApiError):
    """Request conflicts with work already in progress (409)."""

    def __init__(self, message: str):
        super().__init__(status_code=409, code="Conflict", message=message)


class InternalServerError(SiteIndexApiError):
    """Internal server error (500)."""

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(status_code=500, code="InternalServerError", message=message)


async def api_exception_handler(request: Request, exc: SiteIndexApiError) -> JSONResponse:
    """Exception handler for API errors."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body().model_dump())


async def item_not_found_handler(request: Request, exc: ItemNotFoundError) -> JSONResponse:
    return await api_exception_handler(request, NotFoundError("Index item", exc.item_id))


async def invalidation_error_handler(request: Request, exc: InvalidationError) -> JSONResponse:
    return await api_exception_handler(request, BadRequestError(str(exc)))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return await api_exception_handler(request, InternalServerError())
