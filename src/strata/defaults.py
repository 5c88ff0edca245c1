"""Layered session and security defaults.

The effective configuration is built by layering an ordered list of
``(path, value)`` overrides onto one of two frozen baselines. Each step
returns a new value, so the merge order stays auditable.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import msgspec
from msgspec import Struct, structs

from .config import SIXTY_DAYS
from .exceptions import ConfigurationError
from .guards import anti_forgery_middleware
from .http import Status
from .middleware import Handler, MiddlewareCallable, apply_middleware
from .requests import Request
from .responses import Response
from .sessions import CookieStore, MemoryStore, SessionStore, read_cookie, set_cookie_header
from .static import ResourceResolver

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "strata-session"

OverridePath = tuple[str, ...]
Override = tuple[OverridePath, Any]


class CookieAttributes(Struct, frozen=True):
    path: str = "/"
    http_only: bool = True
    same_site: str | None = "strict"
    secure: bool = False
    max_age: int | None = None


class SessionDefaults(Struct, frozen=True):
    enabled: bool = True
    store: Any = None
    cookie_name: str = "session"
    cookie_attrs: CookieAttributes = CookieAttributes()


class SecurityDefaults(Struct, frozen=True):
    anti_forgery: bool = True
    ssl_redirect: bool = False
    hsts: bool = False
    frame_options: str | None = "SAMEORIGIN"
    content_type_options: bool = True


class SiteDefaults(Struct, frozen=True):
    """Session, security, and static-serving settings for one site."""

    session: SessionDefaults = SessionDefaults()
    security: SecurityDefaults = SecurityDefaults()
    static: str | None = "public"
    proxy: bool = False


SITE_DEFAULTS = SiteDefaults()

SECURE_SITE_DEFAULTS = SiteDefaults(
    session=SessionDefaults(cookie_attrs=CookieAttributes(secure=True)),
    security=SecurityDefaults(ssl_redirect=True, hsts=True),
    proxy=True,
)


def assoc_in(value: Struct, path: Sequence[str], replacement: Any) -> Struct:
    """Return a copy of ``value`` with the field at ``path`` replaced."""

    if not path:
        raise ConfigurationError("Override path must not be empty")
    head, *rest = path
    if head not in value.__struct_fields__:
        raise ConfigurationError(f"Unknown configuration key {head!r} on {type(value).__name__}")
    if rest:
        current = getattr(value, head)
        if not isinstance(current, Struct):
            raise ConfigurationError(f"Configuration key {head!r} is not a section")
        replacement = assoc_in(current, rest, replacement)
    return structs.replace(value, **{head: replacement})


def layer(baseline: SiteDefaults, overrides: Iterable[Override]) -> SiteDefaults:
    """Apply ``overrides`` to ``baseline`` in order."""

    merged: Struct = baseline
    for path, replacement in overrides:
        merged = assoc_in(merged, path, replacement)
    return merged  # type: ignore[return-value]


def site_overrides(
    *,
    session_store: SessionStore | None = None,
    cookie_secret: str | None = None,
    session_max_age: int = SIXTY_DAYS,
) -> list[Override]:
    """Return the ordered overrides applied on top of a baseline.

    A cookie secret takes precedence over an explicit ``session_store``.
    """

    if cookie_secret is not None:
        session_store = CookieStore.from_secret(cookie_secret, ttl=session_max_age)
    return [
        (("session", "store"), session_store),
        (("session", "cookie_name"), SESSION_COOKIE_NAME),
        (("session", "cookie_attrs", "max_age"), session_max_age),
        (("session", "cookie_attrs", "same_site"), "lax"),
        (("security", "anti_forgery"), False),
        (("security", "ssl_redirect"), False),
        (("static",), None),
    ]


def build_site_defaults(
    *,
    session_store: SessionStore | None = None,
    cookie_secret: str | None = None,
    secure: bool = True,
    session_max_age: int = SIXTY_DAYS,
) -> SiteDefaults:
    """Build the effective site defaults for the outer pipeline."""

    baseline = SECURE_SITE_DEFAULTS if secure else SITE_DEFAULTS
    logger.debug("Layering site defaults onto the %s baseline", "secure" if secure else "site")
    overrides = site_overrides(
        session_store=session_store,
        cookie_secret=cookie_secret,
        session_max_age=session_max_age,
    )
    return layer(baseline, overrides)


def _request_scheme(request: Request, *, proxy: bool) -> str:
    if proxy:
        forwarded = request.header("x-forwarded-proto")
        if forwarded:
            return forwarded.split(",", 1)[0].strip().lower()
    return str(request.ambient.get("scheme", "http")).lower()


def _security_headers(security: SecurityDefaults) -> tuple[tuple[str, str], ...]:
    headers: list[tuple[str, str]] = []
    if security.content_type_options:
        headers.append(("x-content-type-options", "nosniff"))
    if security.frame_options:
        headers.append(("x-frame-options", security.frame_options))
    if security.hsts:
        headers.append(("strict-transport-security", "max-age=31536000; includeSubDomains"))
    return tuple(headers)


def apply_security_headers(response: Response, headers: Iterable[tuple[str, str]]) -> Response:
    """Append ``headers`` to ``response`` when missing."""

    existing = {name.lower() for name, _ in response.headers}
    additions = tuple((name, value) for name, value in headers if name.lower() not in existing)
    if not additions:
        return response
    return response.with_headers(additions)


def site_defaults_middleware(defaults: SiteDefaults) -> MiddlewareCallable:
    """Enforce ``defaults``: TLS redirect, static files, sessions, and security headers."""

    session = defaults.session
    security = defaults.security
    store: SessionStore = session.store if session.store is not None else MemoryStore()
    static = ResourceResolver(defaults.static) if defaults.static else None
    headers = _security_headers(security)
    inner: tuple[MiddlewareCallable, ...] = (anti_forgery_middleware,) if security.anti_forgery else ()

    def session_cookie(key: str | None) -> tuple[str, str]:
        attrs = session.cookie_attrs
        return set_cookie_header(
            session.cookie_name,
            key,
            path=attrs.path,
            http_only=attrs.http_only,
            same_site=attrs.same_site,
            secure=attrs.secure,
            max_age=attrs.max_age,
        )

    async def middleware(request: Request, handler: Handler) -> Response | None:
        if security.ssl_redirect and _request_scheme(request, proxy=defaults.proxy) == "http":
            host = request.header("host", "")
            location = f"https://{host}{request.path}"
            if request.query_string:
                location = f"{location}?{request.query_string}"
            return Response(status=int(Status.MOVED_PERMANENTLY), headers=(("location", location),))
        if static is not None:
            hit = static.resolve(request)
            if hit is not None:
                return apply_security_headers(hit, headers)
        key: str | None = None
        if session.enabled:
            key = read_cookie(request.header("cookie"), session.cookie_name)
            request = request.with_ambient(session=store.read(key), session_key=key)
        response = await apply_middleware(inner, handler)(request)
        if response is None:
            return None
        if session.enabled and response.session is not msgspec.UNSET:
            if response.session is None:
                cookie = session_cookie(store.delete(key))
            else:
                cookie = session_cookie(store.write(key, response.session))
            response = structs.replace(response, session=msgspec.UNSET).with_headers((cookie,))
        return apply_security_headers(response, headers)

    return middleware


__all__ = [
    "SECURE_SITE_DEFAULTS",
    "SESSION_COOKIE_NAME",
    "SITE_DEFAULTS",
    "CookieAttributes",
    "SecurityDefaults",
    "SessionDefaults",
    "SiteDefaults",
    "apply_security_headers",
    "assoc_in",
    "build_site_defaults",
    "layer",
    "site_defaults_middleware",
    "site_overrides",
]
