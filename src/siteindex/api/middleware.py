"""Request ID middleware.

Propagates a request ID to the logging context and the response headers.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from siteindex.observability.logging import request_id_var


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Extracts or generates ``x-request-id`` for every request.

    The ID is stored on ``request.state``, set in the logging context
    variable for the duration of the request, and echoed in the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        token = request_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response
        finally:
            request_id_var.reset(token)
