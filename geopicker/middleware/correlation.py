"""Correlation ID middleware for request tracking."""

import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from structlog.contextvars import bind_contextvars, clear_contextvars

REQUEST_ID_HEADER = "X-Request-ID"


def is_valid_request_id(value: str | None) -> bool:
    """Accept UUIDs and ``test-`` prefixed ids; reject everything else."""
    if not value:
        return False
    if value.startswith("test-"):
        return True
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle request correlation IDs.

    A caller-supplied ``X-Request-ID`` is reused when it is valid; otherwise
    a fresh UUID4 is issued. The id is bound into the structlog context,
    stored on ``request.state`` and echoed on the response.
    """

    def _get_correlation_id(self, request: Request) -> str:
        header_value = request.headers.get(REQUEST_ID_HEADER, "")
        if is_valid_request_id(header_value):
            return header_value
        return str(uuid.uuid4())

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        clear_contextvars()
        correlation_id = self._get_correlation_id(request)
        bind_contextvars(correlation_id=correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response
