"""Request-body parsing and response encoding by media type."""

from __future__ import annotations

import logging
from typing import Any, Callable
from urllib.parse import parse_qsl

import msgspec

from .exceptions import HTTPError
from .http import Status
from .middleware import Handler
from .requests import Request
from .responses import HTMLResponse, Markup, PlainTextResponse, Response, exception_to_response
from .serialization import json_decode, json_encode, msgpack_decode, msgpack_encode

logger = logging.getLogger(__name__)

JSON = "application/json"
MSGPACK = "application/msgpack"
FORM = "application/x-www-form-urlencoded"

_DECODERS: dict[str, Callable[[bytes], Any]] = {
    JSON: json_decode,
    MSGPACK: msgpack_decode,
    "application/x-msgpack": msgpack_decode,
}

_ENCODERS: dict[str, Callable[[Any], bytes]] = {
    JSON: json_encode,
    MSGPACK: msgpack_encode,
}


def _media_type(value: str | None) -> str:
    return (value or "").split(";", 1)[0].strip().lower()


def _decode_form(body: bytes) -> dict[str, Any]:
    parsed: dict[str, Any] = {}
    for key, value in parse_qsl(body.decode("utf-8"), keep_blank_values=True):
        parsed[key] = value
    return parsed


def decode_body(request: Request) -> Any:
    """Decode the request body according to its ``content-type``."""

    body = request.body()
    if not body:
        return None
    media_type = _media_type(request.header("content-type"))
    if media_type == FORM:
        try:
            return _decode_form(body)
        except UnicodeDecodeError as exc:
            raise HTTPError(Status.BAD_REQUEST, "malformed_form_body") from exc
    decoder = _DECODERS.get(media_type)
    if decoder is None:
        return None
    try:
        return decoder(body)
    except msgspec.DecodeError as exc:
        raise HTTPError(Status.BAD_REQUEST, "malformed_body") from exc


async def params_middleware(request: Request, handler: Handler) -> Any:
    """Merge query-string and body parameters into ``request.params``.

    Mapping bodies are merged key by key; any other decoded body is stored
    under ``"body"``. A malformed body yields a 400 response.
    """

    params: dict[str, Any] = {key: values[-1] for key, values in request.query_params.items()}
    try:
        decoded = decode_body(request)
    except HTTPError as exc:
        logger.debug("Rejected request body for %s %s: %s", request.method, request.path, exc.detail)
        return exception_to_response(exc)
    if isinstance(decoded, dict):
        params.update(decoded)
    elif decoded is not None:
        params["body"] = decoded
    params.update(request.params)
    return await handler(request.evolve(params=params))


def negotiate(accept: str | None) -> str:
    """Pick the response media type for an ``Accept`` header."""

    if not accept:
        return JSON
    best: str | None = None
    best_q = 0.0
    for raw_part in accept.split(","):
        parts = [segment.strip() for segment in raw_part.split(";") if segment.strip()]
        if not parts:
            continue
        media_type = parts[0].lower()
        quality = 1.0
        for param in parts[1:]:
            name, _, value = param.partition("=")
            if name.strip() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if media_type in {"*/*", "application/*"}:
            media_type = JSON
        if media_type not in _ENCODERS or quality <= 0:
            continue
        if quality > best_q:
            best, best_q = media_type, quality
    if best is None:
        raise HTTPError(Status.NOT_ACCEPTABLE, "not_acceptable")
    return best


def encode_result(request: Request, result: Any) -> Response | None:
    """Turn a handler's return value into a :class:`Response`."""

    if result is None or isinstance(result, Response):
        return result
    if isinstance(result, Markup):
        return HTMLResponse(result)
    if isinstance(result, str):
        return PlainTextResponse(result)
    media_type = negotiate(request.header("accept"))
    return Response(headers=(("content-type", media_type),), body=_ENCODERS[media_type](result))


async def format_middleware(request: Request, handler: Handler) -> Response | None:
    """Encode renderable handler results per the negotiated media type.

    An :class:`HTTPError` raised by the handler becomes its JSON error response.
    """

    try:
        result = await handler(request)
        return encode_result(request, result)
    except HTTPError as exc:
        return exception_to_response(exc)


__all__ = [
    "FORM",
    "JSON",
    "MSGPACK",
    "decode_body",
    "encode_result",
    "format_middleware",
    "negotiate",
    "params_middleware",
]
