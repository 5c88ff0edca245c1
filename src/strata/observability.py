"""Request logging and failure recovery."""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Awaitable, Callable

from .http import Status, reason_phrase
from .middleware import Handler, MiddlewareCallable
from .requests import Request
from .responses import PlainTextResponse, Response

REQUEST_LOGGER = logging.getLogger("strata.requests")
ERROR_LOGGER = logging.getLogger("strata.errors")

ErrorHandler = Callable[[Request], Awaitable[Response] | Response]


def format_request_line(duration_ms: int, status: Any, method: str, path: str) -> str:
    """Render one access-log line: ``<duration>ms <status> <method> <path>``."""

    return "%3sms %s %-4s %s" % (duration_ms, status, method, path)


def log_requests_middleware(logger: logging.Logger | None = None) -> MiddlewareCallable:
    """Log elapsed time, status, method, and path for every request.

    The response is returned untouched; an absent response is logged with
    status ``nil``. Exceptions propagate without a log line, so keep error
    recovery inside this stage.
    """

    sink = logger or REQUEST_LOGGER

    async def middleware(request: Request, handler: Handler) -> Any:
        start = time.perf_counter()
        response = await handler(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        status = getattr(response, "status", None)
        sink.info(format_request_line(duration_ms, "nil" if status is None else status, request.method, request.path))
        return response

    return middleware


def default_on_error(request: Request) -> Response:
    """Minimal generic error response."""

    status = int(request.ambient.get("status", Status.INTERNAL_SERVER_ERROR))
    return PlainTextResponse(reason_phrase(status), status=status)


def internal_error_middleware(
    on_error: ErrorHandler | None = None,
    *,
    logger: logging.Logger | None = None,
) -> MiddlewareCallable:
    """Convert any unhandled exception below this stage into an error response.

    The traceback goes to ``logger``; ``on_error`` receives the request with
    ambient ``status`` set to 500 and ``error`` set to the exception.
    """

    sink = logger or ERROR_LOGGER
    handle_error = on_error or default_on_error

    async def middleware(request: Request, handler: Handler) -> Any:
        try:
            return await handler(request)
        except Exception as exc:
            sink.exception("Unhandled error while processing %s %s", request.method, request.path)
            failed = request.with_ambient(status=int(Status.INTERNAL_SERVER_ERROR), error=exc)
            response = handle_error(failed)
            if inspect.isawaitable(response):
                response = await response
            return response

    return middleware


__all__ = [
    "ERROR_LOGGER",
    "REQUEST_LOGGER",
    "ErrorHandler",
    "default_on_error",
    "format_request_line",
    "internal_error_middleware",
    "log_requests_middleware",
]
