"""Response primitives."""

from __future__ import annotations

from typing import Any, Iterable

import msgspec
from msgspec import structs

from .exceptions import HTTPError
from .http import Status
from .serialization import json_encode

Headers = tuple[tuple[str, str], ...]


class Markup(str):
    """Text that should be delivered as ``text/html`` when returned by a handler."""

    __slots__ = ()


class Response(msgspec.Struct, frozen=True):
    """Immutable response payload.

    ``session`` is ``UNSET`` when the handler leaves the session untouched,
    ``None`` to clear it, or a mapping that replaces the stored session.
    """

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""
    session: dict[str, Any] | None | msgspec.UnsetType = msgspec.UNSET

    def with_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Return a new response with ``headers`` appended."""

        return structs.replace(self, headers=self.headers + tuple(headers))

    def header(self, name: str, default: str | None = None) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return default


def PlainTextResponse(
    text: str,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a plain text response."""

    default_headers = (("content-type", "text/plain; charset=utf-8"),)
    return Response(status=status, headers=default_headers + tuple(headers or ()), body=text.encode("utf-8"))


def HTMLResponse(
    markup: str,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create an HTML response."""

    default_headers = (("content-type", "text/html; charset=utf-8"),)
    return Response(status=status, headers=default_headers + tuple(headers or ()), body=markup.encode("utf-8"))


def JSONResponse(
    data: Any,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a JSON response encoded via :mod:`msgspec`."""

    default_headers = (("content-type", "application/json"),)
    return Response(status=status, headers=default_headers + tuple(headers or ()), body=json_encode(data))


def exception_to_response(exc: HTTPError) -> Response:
    return Response(
        status=exc.status,
        headers=(("content-type", "application/json"),),
        body=exc.to_response_body(),
    )


__all__ = [
    "HTMLResponse",
    "JSONResponse",
    "Markup",
    "PlainTextResponse",
    "Response",
    "exception_to_response",
]
