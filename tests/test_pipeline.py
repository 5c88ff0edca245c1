from __future__ import annotations

import base64
import logging

import pytest

from strata.config import PipelineOptions
from strata.defaults import SESSION_COOKIE_NAME, build_site_defaults, layer, site_defaults_middleware
from strata.exceptions import ConfigurationError, HTTPError
from strata.guards import ANTI_FORGERY_SESSION_KEY, upgrade_origin_middleware
from strata.middleware import apply_middleware
from strata.pipeline import inner_defaults, inner_middlewares, outer_defaults
from strata.requests import Request
from strata.responses import Response
from strata.serialization import json_decode
from strata.sessions import MemoryStore
from strata.testing import TestClient


@pytest.fixture
def public(tmp_path):
    root = tmp_path / "public"
    (root / "js").mkdir(parents=True)
    (root / "index.html").write_text("<main></main>", encoding="utf-8")
    (root / "js" / "app.js").write_text("run()", encoding="utf-8")
    return root


async def app(request: Request):
    if request.path == "/api/items":
        return {"items": [request.params.get("name")]}
    if request.path == "/boom":
        raise RuntimeError("handler failure")
    if request.path == "/ws":
        return Response(status=101)
    if request.path == "/whoami":
        return {"base_url": request.base_url, "db": request.ambient.get("db"), "session": dict(request.session)}
    if request.path == "/login":
        return Response(status=204, session={"uid": "7"})
    if request.path == "/form":
        return Response(status=204, body=request.params.get("note", "").encode())
    if request.path == "/items/missing":
        raise HTTPError(404, "no_such_item")
    if request.path == "/conflict":
        raise HTTPError(409, "version_mismatch")
    return Response(status=404)


def _options(public, **overrides) -> PipelineOptions:
    values = {"root": str(public), "spa_path": "/index.html", "base_url": "https://app.example", "secure": False}
    values.update(overrides)
    return PipelineOptions(**values)


@pytest.mark.asyncio
async def test_inner_defaults_serves_static_spa_and_api(public) -> None:
    client = TestClient(inner_defaults(app, _options(public)))

    static = await client.get("/js/app.js")
    assert static.body == b"run()"

    spa = await client.get("/dashboard")
    assert spa.body == b"<main></main>"

    missing_asset = await client.get("/js/missing.js")
    assert missing_asset.status == 404

    api = await client.post("/api/items", json={"name": "bolt"})
    assert json_decode(api.body) == {"items": ["bolt"]}


@pytest.mark.asyncio
async def test_inner_defaults_recovers_and_logs_errors(public, caplog) -> None:
    handler = inner_defaults(app, _options(public), error_logger=logging.getLogger("tests.pipeline.errors"))
    with caplog.at_level(logging.INFO, logger="strata.requests"):
        response = await TestClient(handler).get("/boom")
    assert response.status == 500
    lines = [r.getMessage() for r in caplog.records if r.name == "strata.requests"]
    assert lines[-1].split()[1:] == ["500", "GET", "/boom"]


@pytest.mark.asyncio
async def test_failures_in_resource_stage_are_recovered(public) -> None:
    class BrokenResolver:
        def resolve_with_index(self, request):
            raise OSError("disk gone")

    from strata.observability import internal_error_middleware
    from strata.spa import resource_middleware

    handler = apply_middleware(
        [
            internal_error_middleware(logger=logging.getLogger("tests.quiet")),
            resource_middleware(_options(public).resources(), resolver=BrokenResolver()),
        ],
        app,
    )
    assert (await handler(Request(method="GET", path="/"))).status == 500


def test_inner_stage_order(public) -> None:
    names = [getattr(stage, "__qualname__", "") for stage in inner_middlewares(_options(public))]
    assert names[0].startswith("log_requests_middleware")
    assert names[1].startswith("internal_error_middleware")
    assert names[2].startswith("resource_middleware")
    assert names[3:] == ["format_middleware", "params_middleware"]


@pytest.mark.asyncio
async def test_outer_defaults_injects_context_and_sessions(public) -> None:
    snapshots: list[object] = []

    def provider(shared):
        snapshot = object()
        snapshots.append(snapshot)
        return {"db": shared["db"]}

    options = _options(public, context_provider=provider, shared_state={"db": "snapshot-1"})
    handler = outer_defaults(inner_defaults(app, options), options)
    client = TestClient(handler)

    who = await client.get("/whoami")
    assert json_decode(who.body) == {"base_url": "https://app.example", "db": "snapshot-1", "session": {}}
    assert who.header("x-content-type-options") == "nosniff"

    login = await client.get("/login")
    cookie = login.header("set-cookie").split(";", 1)[0]
    who = await client.get("/whoami", headers={"cookie": cookie})
    assert json_decode(who.body)["session"] == {"uid": "7"}
    assert len(snapshots) == 3


@pytest.mark.asyncio
async def test_upgrade_guard_added_explicitly(public) -> None:
    options = _options(public)
    guarded = apply_middleware([upgrade_origin_middleware()], inner_defaults(app, options))
    handler = outer_defaults(guarded, options)
    client = TestClient(handler)
    assert (await client.get("/ws", headers={"origin": "https://evil.example"})).status == 403
    assert (await client.get("/ws", headers={"origin": "https://app.example"})).status == 101

    unguarded = TestClient(outer_defaults(inner_defaults(app, options), options))
    assert (await unguarded.get("/ws", headers={"origin": "https://evil.example"})).status == 101


def test_outer_defaults_rejects_bad_cookie_secret(public) -> None:
    with pytest.raises(ConfigurationError):
        outer_defaults(app, _options(public, cookie_secret="not base64!!"))


@pytest.mark.asyncio
async def test_building_twice_is_deterministic(public) -> None:
    secret = base64.b64encode(b"k" * 32).decode()
    responses = []
    for _ in range(2):
        options = _options(public, cookie_secret=secret)
        client = TestClient(outer_defaults(inner_defaults(app, options), options))
        for path in ("/", "/dashboard", "/js/app.js", "/js/nope.js", "/boom"):
            response = await client.get(path)
            responses.append((path, response.status, response.body, response.headers))
    first, second = responses[:5], responses[5:]
    assert first == second


@pytest.mark.asyncio
async def test_options_from_mapping(public) -> None:
    handler = inner_defaults(app, {"root": str(public), "spa_path": "/index.html", "index_files": ["index.html"]})
    assert (await TestClient(handler).get("/anything")).body == b"<main></main>"


@pytest.mark.asyncio
async def test_repeated_failures_log_the_same_shape(public, caplog) -> None:
    client = TestClient(inner_defaults(app, _options(public)))
    with caplog.at_level(logging.INFO):
        for _ in range(2):
            assert (await client.get("/boom")).status == 500
    request_lines = [r.getMessage().split()[1:] for r in caplog.records if r.name == "strata.requests"]
    error_records = [r for r in caplog.records if r.name == "strata.errors"]
    assert request_lines == [["500", "GET", "/boom"], ["500", "GET", "/boom"]]
    assert len(error_records) == 2
    assert all(isinstance(r.exc_info[1], RuntimeError) for r in error_records)
    assert error_records[0].getMessage() == error_records[1].getMessage()


@pytest.mark.asyncio
async def test_handler_http_errors_become_client_responses(public) -> None:
    client = TestClient(inner_defaults(app, _options(public)))

    conflict = await client.get("/conflict")
    assert conflict.status == 409
    assert json_decode(conflict.body) == {"error": {"status": 409, "detail": "version_mismatch"}}

    missing = await client.get("/items/missing")
    assert missing.status == 200
    assert missing.body == b"<main></main>"

    excluded = await client.get("/js/gone.js")
    assert excluded.status == 404


@pytest.mark.asyncio
async def test_form_anti_forgery_token_passes_outer_defaults(public) -> None:
    store = MemoryStore()
    key = store.write(None, {ANTI_FORGERY_SESSION_KEY: "tok"})
    options = _options(public)
    defaults = layer(build_site_defaults(session_store=store, secure=False), [(("security", "anti_forgery"), True)])
    handler = apply_middleware([site_defaults_middleware(defaults)], inner_defaults(app, options))
    client = TestClient(handler)
    headers = {
        "content-type": "application/x-www-form-urlencoded",
        "cookie": f"{SESSION_COOKIE_NAME}={key}",
    }

    accepted = await client.post("/form", body=b"__anti-forgery-token=tok&note=hi", headers=headers)
    assert accepted.status == 204
    assert accepted.body == b"hi"

    rejected = await client.post("/form", body=b"__anti-forgery-token=wrong", headers=headers)
    assert rejected.status == 403

    as_json = await client.post("/form", json={"__anti-forgery-token": "tok"}, headers={"cookie": headers["cookie"]})
    assert as_json.status == 204
