"""ASGI interface adapter.

Lets any ASGI server (granian, uvicorn, ...) drive a pipeline. Only HTTP
scopes are handled; the transport itself belongs to the server.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from .http import Status, reason_phrase
from .middleware import Handler
from .requests import Request
from .responses import PlainTextResponse, Response

Receive = Callable[[], Awaitable[Mapping[str, Any]]]
Send = Callable[[Mapping[str, Any]], Awaitable[None]]


class ASGIAdapter:
    """Expose a pipeline handler as an ASGI application."""

    def __init__(self, handler: Handler, *, base_url: str | None = None) -> None:
        self.handler = handler
        self.base_url = base_url

    async def __call__(self, scope: Mapping[str, Any], receive: Receive, send: Send) -> None:
        scope_type = scope.get("type")
        if scope_type == "lifespan":
            await _handle_lifespan(receive, send)
            return
        if scope_type != "http":
            raise RuntimeError("ASGIAdapter only supports HTTP and lifespan scopes")
        request = await self.build_request(scope, receive)
        response = await self.handler(request)
        if response is None:
            response = PlainTextResponse(reason_phrase(Status.NOT_FOUND), status=int(Status.NOT_FOUND))
        await send_response(response, send)

    async def build_request(self, scope: Mapping[str, Any], receive: Receive) -> Request:
        headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
        ambient: dict[str, Any] = {"scheme": scope.get("scheme", "http")}
        if self.base_url is not None:
            ambient["base_url"] = self.base_url
        return Request(
            method=scope["method"],
            path=scope["path"],
            headers=headers,
            query_string=(scope.get("query_string") or b"").decode("latin-1"),
            body=await _read_body(receive),
            ambient=ambient,
        )


async def _read_body(receive: Receive) -> bytes:
    buffer = bytearray()
    while True:
        message = await receive()
        message_type = message.get("type")
        if message_type == "http.disconnect":
            break
        if message_type != "http.request":
            continue
        buffer.extend(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return bytes(buffer)


async def _handle_lifespan(receive: Receive, send: Send) -> None:
    while True:
        message = await receive()
        if message.get("type") == "lifespan.startup":
            await send({"type": "lifespan.startup.complete"})
        elif message.get("type") == "lifespan.shutdown":
            await send({"type": "lifespan.shutdown.complete"})
            return


async def send_response(response: Response, send: Send) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
        }
    )
    await send({"type": "http.response.body", "body": response.body})


__all__ = ["ASGIAdapter", "send_response"]
