"""Session stores and cookie helpers."""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import secrets
import threading
from typing import Any, Mapping, Protocol

import msgspec
from cryptography.fernet import Fernet, InvalidToken

from .exceptions import ConfigurationError
from .serialization import json_decode, json_encode

logger = logging.getLogger(__name__)

MIN_COOKIE_KEY_BYTES = 16


class SessionStore(Protocol):
    """Storage backend for session data.

    Stores are shared by every in-flight request and must tolerate
    concurrent use.
    """

    def read(self, key: str | None) -> dict[str, Any]: ...

    def write(self, key: str | None, data: Mapping[str, Any]) -> str: ...

    def delete(self, key: str | None) -> str | None: ...


def decode_secret(secret: str) -> bytes:
    """Decode a base64 cookie secret or raise :class:`ConfigurationError`."""

    normalized = secret.strip()
    padding = "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized + padding, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("Cookie secret must be valid base64") from exc


class CookieStore:
    """Keep the whole session inside the cookie, sealed with Fernet.

    The cookie value is the session: ``write`` returns the new cookie value
    and ``read`` returns an empty session for missing, expired, or tampered
    values.
    """

    def __init__(self, *, key: bytes, ttl: int | None = None) -> None:
        if len(key) < MIN_COOKIE_KEY_BYTES:
            raise ConfigurationError(f"Cookie store key must be at least {MIN_COOKIE_KEY_BYTES} bytes")
        digest = hashlib.sha256(key).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))
        self._ttl = ttl

    @classmethod
    def from_secret(cls, secret: str, *, ttl: int | None = None) -> "CookieStore":
        return cls(key=decode_secret(secret), ttl=ttl)

    def read(self, key: str | None) -> dict[str, Any]:
        if not key:
            return {}
        try:
            plaintext = self._fernet.decrypt(key.encode("ascii"), ttl=self._ttl)
        except (InvalidToken, UnicodeEncodeError):
            logger.debug("Discarding unreadable session cookie")
            return {}
        try:
            data = json_decode(plaintext)
        except msgspec.DecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def write(self, key: str | None, data: Mapping[str, Any]) -> str:
        return self._fernet.encrypt(json_encode(dict(data))).decode("ascii")

    def delete(self, key: str | None) -> str | None:
        return None


class MemoryStore:
    """Process-local session store keyed by random session ids."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def read(self, key: str | None) -> dict[str, Any]:
        if not key:
            return {}
        with self._lock:
            return dict(self._sessions.get(key, {}))

    def write(self, key: str | None, data: Mapping[str, Any]) -> str:
        with self._lock:
            if key is None or key not in self._sessions:
                key = secrets.token_urlsafe(32)
            self._sessions[key] = dict(data)
        return key

    def delete(self, key: str | None) -> str | None:
        if key:
            with self._lock:
                self._sessions.pop(key, None)
        return None


def read_cookie(header: str | None, name: str) -> str | None:
    """Return the value of cookie ``name`` from a ``Cookie`` header.

    Malformed neighbouring cookies are skipped rather than ending the parse.
    """

    if not header:
        return None
    for chunk in header.split(";"):
        key, sep, value = chunk.partition("=")
        if sep and key.strip() == name:
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            return value
    return None


def set_cookie_header(
    name: str,
    value: str | None,
    *,
    path: str = "/",
    http_only: bool = True,
    same_site: str | None = None,
    secure: bool = False,
    max_age: int | None = None,
) -> tuple[str, str]:
    """Build a ``set-cookie`` header; ``value=None`` expires the cookie."""

    parts = [f"{name}={value or ''}", f"Path={path}"]
    if value is None:
        parts.append("Max-Age=0")
        parts.append("Expires=Thu, 01 Jan 1970 00:00:00 GMT")
    elif max_age is not None:
        parts.append(f"Max-Age={max_age}")
    if http_only:
        parts.append("HttpOnly")
    if same_site:
        parts.append(f"SameSite={same_site.capitalize()}")
    if secure:
        parts.append("Secure")
    return ("set-cookie", "; ".join(parts))


__all__ = [
    "CookieStore",
    "MemoryStore",
    "SessionStore",
    "decode_secret",
    "read_cookie",
    "set_cookie_header",
]
