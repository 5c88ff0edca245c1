"""Request guards that must be added to a pipeline explicitly."""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Any

import msgspec
from msgspec import structs

from .exceptions import HTTPError
from .formats import decode_body
from .http import SAFE_METHODS, Status, is_upgrade
from .middleware import Handler, MiddlewareCallable
from .requests import Request
from .responses import PlainTextResponse, Response

logger = logging.getLogger(__name__)

ANTI_FORGERY_SESSION_KEY = "__anti_forgery_token"
ANTI_FORGERY_HEADER = "x-csrf-token"
ANTI_FORGERY_PARAM = "__anti-forgery-token"

_NO_ORIGIN: Any = object()


def forbidden() -> Response:
    return PlainTextResponse("Forbidden", status=int(Status.FORBIDDEN))


def upgrade_origin_middleware(base_url: str | None = None) -> MiddlewareCallable:
    """Replace accepted protocol upgrades from foreign origins with a 403.

    Upgrade requests skip the browser's usual cross-origin protections, so an
    accepted upgrade (status 101) is only kept when the request's ``Origin``
    header equals the base URL exactly. A missing ``Origin`` never matches.
    ``base_url`` defaults to the request's ambient ``base_url``.
    """

    async def middleware(request: Request, handler: Handler) -> Any:
        response = await handler(request)
        if not isinstance(response, Response) or not is_upgrade(response.status):
            return response
        expected = base_url if base_url is not None else request.base_url
        origin = request.headers.get("origin", _NO_ORIGIN)
        if origin != expected:
            logger.warning(
                "Rejected upgrade for %s from origin %s",
                request.path,
                "<none>" if origin is _NO_ORIGIN else origin,
            )
            return forbidden()
        return response

    return middleware


def _submitted_token(request: Request) -> Any:
    if ANTI_FORGERY_PARAM in request.params:
        return request.params[ANTI_FORGERY_PARAM]
    try:
        decoded = decode_body(request)
    except HTTPError:
        return None
    return decoded.get(ANTI_FORGERY_PARAM) if isinstance(decoded, dict) else None


async def anti_forgery_middleware(request: Request, handler: Handler) -> Any:
    """Require the session's anti-forgery token on state-changing requests.

    The token travels in the ``x-csrf-token`` header or the
    ``__anti-forgery-token`` parameter, read from the form or JSON body when
    params have not been parsed yet. Requests without a session token get
    one minted and persisted with the response.
    """

    session = dict(request.session)
    token = session.get(ANTI_FORGERY_SESSION_KEY)
    minted = token is None
    if minted:
        token = secrets.token_urlsafe(32)
        session[ANTI_FORGERY_SESSION_KEY] = token
    if request.method not in SAFE_METHODS:
        supplied = request.header(ANTI_FORGERY_HEADER) or _submitted_token(request)
        if minted or not isinstance(supplied, str) or not hmac.compare_digest(supplied, token):
            logger.info("Rejected %s %s: invalid anti-forgery token", request.method, request.path)
            return PlainTextResponse("Invalid anti-forgery token", status=int(Status.FORBIDDEN))
    response = await handler(request.with_ambient(session=session, anti_forgery_token=token))
    if minted and isinstance(response, Response) and response.session is not None:
        if response.session is msgspec.UNSET:
            response = structs.replace(response, session=session)
        else:
            response = structs.replace(response, session={**response.session, ANTI_FORGERY_SESSION_KEY: token})
    return response


__all__ = [
    "ANTI_FORGERY_HEADER",
    "ANTI_FORGERY_PARAM",
    "ANTI_FORGERY_SESSION_KEY",
    "anti_forgery_middleware",
    "forbidden",
    "upgrade_origin_middleware",
]
