"""Static resources with single-page-application fallback."""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

import msgspec

from .config import ResourceConfig
from .http import Status
from .middleware import Handler, MiddlewareCallable
from .requests import Request
from .responses import Response
from .static import ResourceResolver

T = TypeVar("T")

_PENDING: Any = object()


class ResolutionKind(str, Enum):
    """How a request was answered by :func:`resource_middleware`."""

    NO_MATCH = "no_match"
    STATIC_FILE = "static_file"
    SPA_ENTRY = "spa_entry"
    HANDLER_RESPONSE = "handler_response"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class Resolution(msgspec.Struct, frozen=True):
    """Outcome of resolving one request against resources and the handler."""

    kind: ResolutionKind
    response: Any = None

    @property
    def matched(self) -> bool:
        return self.kind is not ResolutionKind.NO_MATCH


class _Deferred(Generic[T]):
    """Evaluate an async thunk at most once, and only when first awaited."""

    __slots__ = ("_thunk", "_value")

    def __init__(self, thunk: Callable[[], Awaitable[T]]) -> None:
        self._thunk = thunk
        self._value: Any = _PENDING

    async def get(self) -> T:
        if self._value is _PENDING:
            self._value = await self._thunk()
        return self._value


def _is_miss(result: Any) -> bool:
    if result is None:
        return True
    return isinstance(result, Response) and result.status == Status.NOT_FOUND


async def resolve(
    request: Request,
    handler: Handler,
    resolver: ResourceResolver,
    config: ResourceConfig,
) -> Resolution:
    """Resolve ``request`` with static hits first, then the handler, then the SPA entry."""

    static = resolver.resolve_with_index(request)
    if static is not None:
        return Resolution(ResolutionKind.STATIC_FILE, static)

    handled = _Deferred(lambda: handler(request))

    async def spa_candidate() -> Response | None:
        if not config.spa_applies_to(request.path):
            return None
        return resolver.resolve_with_index(request.evolve(path=config.spa_path))

    spa = _Deferred(spa_candidate)

    if _is_miss(await handled.get()):
        entry = await spa.get()
        if entry is not None:
            return Resolution(ResolutionKind.SPA_ENTRY, entry)
    result = await handled.get()
    if result is None:
        return Resolution(ResolutionKind.NO_MATCH)
    return Resolution(ResolutionKind.HANDLER_RESPONSE, result)


def resource_middleware(
    config: ResourceConfig,
    *,
    resolver: ResourceResolver | None = None,
) -> MiddlewareCallable:
    """Serve static resources, deferring to the handler and then the SPA entry on a miss.

    A static hit always wins and the handler is never invoked for it. When the
    handler reports nothing (``None``) or a 404 and the request qualifies for
    SPA fallback, the SPA entry is served instead. Any other handler response,
    error statuses included, passes through unchanged.
    """

    if resolver is None:
        content_types = dict(config.content_types)
        resolver = ResourceResolver(
            config.root,
            index_files=config.index_files,
            cache_control=config.cache_control,
            content_types=content_types,
        )

    async def middleware(request: Request, handler: Handler) -> Any:
        resolution = await resolve(request, handler, resolver, config)
        return resolution.response

    return middleware


__all__ = ["Resolution", "ResolutionKind", "resolve", "resource_middleware"]
