from __future__ import annotations

import pytest

from strata.middleware import apply_middleware
from strata.requests import Request
from strata.responses import Response


@pytest.mark.asyncio
async def test_middleware_executes_in_order() -> None:
    events: list[str] = []

    def recorder(name: str):
        async def middleware(request: Request, handler):
            events.append(f"before:{name}")
            response = await handler(request)
            events.append(f"after:{name}")
            return response

        return middleware

    async def endpoint(request: Request) -> Response:
        events.append("endpoint")
        return Response(status=204)

    handler = apply_middleware([recorder("outer"), recorder("inner")], endpoint)
    response = await handler(Request(method="GET", path="/"))
    assert response.status == 204
    assert events == ["before:outer", "before:inner", "endpoint", "after:inner", "after:outer"]


@pytest.mark.asyncio
async def test_stages_hand_copies_downstream() -> None:
    original = Request(method="GET", path="/", ambient={"base_url": "https://app.example"})
    seen: list[Request] = []

    async def tagging(request: Request, handler):
        return await handler(request.with_ambient(tag="x"))

    async def endpoint(request: Request) -> Response:
        seen.append(request)
        return Response()

    await apply_middleware([tagging], endpoint)(original)
    assert seen[0] is not original
    assert seen[0].ambient == {"base_url": "https://app.example", "tag": "x"}
    assert dict(original.ambient) == {"base_url": "https://app.example"}


@pytest.mark.asyncio
async def test_short_circuit_skips_downstream() -> None:
    async def blocker(request: Request, handler):
        return Response(status=403)

    async def endpoint(request: Request) -> Response:
        raise AssertionError("unreachable")

    assert (await apply_middleware([blocker], endpoint)(Request(method="GET", path="/"))).status == 403


@pytest.mark.asyncio
async def test_apply_middleware_without_stages_returns_endpoint() -> None:
    async def endpoint(request: Request) -> Response:
        return Response()

    assert apply_middleware([], endpoint) is endpoint


def test_request_is_read_only_and_evolves() -> None:
    request = Request(method="get", path="/a", headers={"X-Token": "1"}, query_string="q=1&q=2")
    assert request.method == "GET"
    assert request.header("x-token") == "1"
    assert request.query_params == {"q": ["1", "2"]}
    with pytest.raises(TypeError):
        request.headers["x-token"] = "2"  # type: ignore[index]
    moved = request.evolve(path="/b")
    assert (moved.path, request.path) == ("/b", "/a")
    assert moved.query_string == "q=1&q=2"


@pytest.mark.asyncio
async def test_composed_pipelines_are_not_retained() -> None:
    import gc
    import weakref

    class Stage:
        async def __call__(self, request: Request, handler):
            return await handler(request)

    async def endpoint(request: Request) -> Response:
        return Response()

    stage = Stage()
    tracker = weakref.ref(stage)
    handler = apply_middleware([stage], endpoint)
    assert (await handler(Request(method="GET", path="/"))).status == 200
    del stage, handler
    gc.collect()
    assert tracker() is None
