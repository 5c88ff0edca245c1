"""Middleware chaining primitives."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Protocol

from .requests import Request
from .responses import Response

Handler = Callable[[Request], Awaitable[Any]]


class Middleware(Protocol):
    async def __call__(self, request: Request, handler: Handler) -> Response | None:  # pragma: no cover - protocol
        ...


MiddlewareCallable = Callable[[Request, Handler], Awaitable[Any]]

_PipelineKey = tuple[MiddlewareCallable, ...]


def apply_middleware(middlewares: Iterable[MiddlewareCallable], endpoint: Handler) -> Handler:
    """Compose middleware into a single handler.

    The first middleware is the outermost: it sees the request first and the
    response last.
    """

    normalized = _normalize_middlewares(middlewares)
    if not normalized:
        return endpoint
    return _MiddlewarePipeline(normalized).bind(endpoint)


def _normalize_middlewares(middlewares: Iterable[MiddlewareCallable]) -> _PipelineKey:
    if isinstance(middlewares, tuple):
        return middlewares
    return tuple(middlewares)


class _MiddlewarePipeline:
    __slots__ = ("_middlewares",)

    def __init__(self, middlewares: _PipelineKey) -> None:
        self._middlewares = middlewares

    def bind(self, endpoint: Handler) -> Handler:
        return _BoundHandler(self, 0, endpoint)

    async def _invoke(self, index: int, request: Request, endpoint: Handler) -> Any:
        if index >= len(self._middlewares):
            return await endpoint(request)
        middleware = self._middlewares[index]
        return await middleware(request, _BoundHandler(self, index + 1, endpoint))


class _BoundHandler:
    __slots__ = ("_endpoint", "_index", "_pipeline")

    def __init__(self, pipeline: _MiddlewarePipeline, index: int, endpoint: Handler) -> None:
        self._pipeline = pipeline
        self._index = index
        self._endpoint = endpoint

    async def __call__(self, request: Request) -> Any:
        return await self._pipeline._invoke(self._index, request, self._endpoint)


__all__ = ["Handler", "Middleware", "MiddlewareCallable", "apply_middleware"]
