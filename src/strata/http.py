"""HTTP utilities and status code helpers."""

from __future__ import annotations

from enum import IntEnum
from http import HTTPStatus as _HTTPStatus


class Status(IntEnum):
    """Enumeration of the HTTP status codes used within the pipeline."""

    SWITCHING_PROTOCOLS = 101
    OK = 200
    MOVED_PERMANENTLY = 301
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    NOT_ACCEPTABLE = 406
    INTERNAL_SERVER_ERROR = 500


SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})


def ensure_status(status: int | Status) -> int:
    """Normalize ``status`` to an ``int`` and ensure it is within the HTTP range."""

    code = int(status)
    if code < 100 or code > 599:
        raise ValueError(f"Invalid HTTP status code: {status}")
    return code


def reason_phrase(status: int | Status) -> str:
    """Return the HTTP reason phrase for ``status`` if known."""

    try:
        code = ensure_status(status)
        return _HTTPStatus(code).phrase
    except ValueError:
        return "Unknown Status"


def is_upgrade(status: int | Status) -> bool:
    """Return ``True`` when ``status`` accepts a protocol upgrade."""

    return ensure_status(status) == Status.SWITCHING_PROTOCOLS


__all__ = ["SAFE_METHODS", "Status", "ensure_status", "is_upgrade", "reason_phrase"]
