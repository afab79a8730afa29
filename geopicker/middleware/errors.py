"""Error handling middleware."""

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.status import (
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)
from starlette.types import ASGIApp

from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import GeocodingError

logger = get_logger()

# Map exception types to status codes (None means use exception's status_code)
ErrorMapping = dict[type[Exception], int | None]


def geocoding_error_response(
    request: Request, exc: GeocodingError
) -> JSONResponse:
    """Render a geocoding error with its wire body and status."""
    correlation_id = getattr(request.state, "correlation_id", None)
    logger.warning(
        "geocoding_request_failed",
        error_code=exc.code,
        error_message=str(exc),
        status_code=exc.http_status,
        path=request.url.path,
        correlation_id=correlation_id,
    )
    response = JSONResponse(status_code=exc.http_status, content=exc.to_payload())
    if correlation_id:
        response.headers["X-Request-ID"] = correlation_id
    return response


async def handle_geocoding_error(request: Request, exc: Exception) -> Response:
    """Exception handler registered on the FastAPI app."""
    if not isinstance(exc, GeocodingError):
        raise exc
    return geocoding_error_response(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the geocoding error handler to ``app``."""
    app.add_exception_handler(GeocodingError, handle_geocoding_error)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware to turn unhandled errors into consistent JSON responses."""

    def __init__(self, app: ASGIApp) -> None:
        """
        Initialize middleware with error mappings.

        Args:
        ----
            app: The ASGI application
        """
        super().__init__(app)
        self.error_mapping: ErrorMapping = {
            KeyError: HTTP_404_NOT_FOUND,
            ValueError: HTTP_422_UNPROCESSABLE_ENTITY,
            HTTPException: None,  # Use its own status_code
        }

    def _get_error_detail(self, exc: Exception) -> tuple[str, int]:
        """Get error detail and status code from exception."""
        if isinstance(exc, HTTPException):
            return str(exc.detail), exc.status_code
        elif isinstance(exc, KeyError):
            return f"'{exc.args[0]}'" if exc.args else str(exc), HTTP_404_NOT_FOUND

        mapped_status = self.error_mapping.get(type(exc))
        status_code = (
            mapped_status
            if mapped_status is not None
            else HTTP_500_INTERNAL_SERVER_ERROR
        )
        detail = str(exc.args[0] if exc.args else str(exc))
        return detail, status_code

    def _create_error_response(
        self,
        error_type: str,
        detail: str,
        status_code: int,
        correlation_id: str | None,
    ) -> JSONResponse:
        """Create JSON error response with optional correlation ID."""
        response = JSONResponse(
            status_code=status_code,
            content={
                "error": error_type,
                "message": detail,
                "status_code": status_code,
                "correlation_id": correlation_id if correlation_id else "unknown",
            },
            media_type="application/json",
        )
        if correlation_id:
            response.headers["X-Request-ID"] = correlation_id
        return response

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """
        Process the request/response cycle and handle errors.

        Args:
        ----
            request: The incoming request
            call_next: The next handler in the middleware chain

        Returns:
        -------
            The response from downstream handlers or error response
        """
        try:
            return await call_next(request)
        except GeocodingError as exc:
            return geocoding_error_response(request, exc)
        except Exception as exc:
            correlation_id = getattr(request.state, "correlation_id", None)
            error_type = exc.__class__.__name__
            detail, status_code = self._get_error_detail(exc)

            logger.error(
                "request_error",
                error_type=error_type,
                error_message=detail,
                status_code=status_code,
                path=request.url.path,
                method=request.method,
                correlation_id=correlation_id,
            )
            return self._create_error_response(
                error_type, detail, status_code, correlation_id
            )
