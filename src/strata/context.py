"""Per-request ambient context."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Mapping

from .middleware import Handler, MiddlewareCallable
from .requests import Request

ContextProvider = Callable[[Any], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]


def context_middleware(
    provider: ContextProvider | None = None,
    shared: Any = None,
    *,
    base_url: str | None = None,
) -> MiddlewareCallable:
    """Attach ambient context before the handler runs.

    ``provider(shared)`` is called once per request, e.g. to hand out a
    consistent database snapshot. Keys already present on the request win
    over provided ones.
    """

    async def middleware(request: Request, handler: Handler) -> Any:
        context: dict[str, Any] = {}
        if base_url is not None:
            context["base_url"] = base_url
        if provider is not None:
            provided = provider(shared)
            if inspect.isawaitable(provided):
                provided = await provided
            context.update(provided or {})
        context.update(request.ambient)
        return await handler(request.evolve(ambient=context))

    return middleware


__all__ = ["ContextProvider", "context_middleware"]
