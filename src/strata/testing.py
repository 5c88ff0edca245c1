"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode

from .middleware import Handler
from .requests import Request
from .responses import Response
from .serialization import json_encode


class TestClient:
    """Async test client that executes requests against a handler in-process."""

    __test__ = False

    def __init__(self, handler: Handler, *, ambient: Mapping[str, Any] | None = None) -> None:
        self.handler = handler
        self.ambient = dict(ambient or {})

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        body: bytes | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response | None:
        request_headers = dict(headers or {})
        payload = body or b""
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        request = Request(
            method=method,
            path=path,
            headers=request_headers,
            query_string=urlencode(query or {}, doseq=True),
            body=payload,
            ambient=self.ambient,
        )
        return await self.handler(request)

    async def get(
        self,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response | None:
        return await self.request("GET", path, query=query, headers=headers)

    async def post(
        self,
        path: str,
        *,
        json: Any | None = None,
        body: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response | None:
        return await self.request("POST", path, json=json, body=body, headers=headers)
