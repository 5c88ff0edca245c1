from __future__ import annotations

import gzip

import brotli
import pytest

from strata.requests import Request
from strata.static import ResourceResolver, index_candidates


def _get(path: str, *, method: str = "GET", headers: dict[str, str] | None = None) -> Request:
    return Request(method=method, path=path, headers=headers)


@pytest.fixture
def public(tmp_path):
    root = tmp_path / "public"
    (root / "docs").mkdir(parents=True)
    (root / "app.js").write_text("console.log('ok');", encoding="utf-8")
    (root / "docs" / "index.html").write_text("<h1>Docs</h1>", encoding="utf-8")
    return root


def test_index_candidates_normalize_trailing_slash() -> None:
    assert index_candidates("/docs", ["index.html", "index.htm"]) == [
        "/docs",
        "/docs/index.html",
        "/docs/index.htm",
    ]
    assert index_candidates("/docs/", ["index.html"]) == ["/docs/", "/docs/index.html"]
    assert index_candidates("/", ["index.html"]) == ["/", "/index.html"]


def test_resolve_serves_exact_file(public) -> None:
    resolver = ResourceResolver(public)
    response = resolver.resolve(_get("/app.js"))
    assert response is not None
    assert response.status == 200
    assert response.body == b"console.log('ok');"
    assert response.header("content-type") == "text/javascript; charset=utf-8"
    assert response.header("content-length") == str(len(b"console.log('ok');"))
    assert response.header("vary") == "accept-encoding"
    assert response.header("cache-control") is None


def test_resolve_misses_directories_and_missing_files(public) -> None:
    resolver = ResourceResolver(public)
    assert resolver.resolve(_get("/docs")) is None
    assert resolver.resolve(_get("/missing.txt")) is None
    assert resolver.resolve(_get("/")) is None


def test_resolve_with_index_tries_index_files_in_order(public) -> None:
    (public / "guide").mkdir()
    (public / "guide" / "index.htm").write_text("second", encoding="utf-8")
    resolver = ResourceResolver(public, index_files=("index.html", "index.htm"))

    docs = resolver.resolve_with_index(_get("/docs"))
    assert docs is not None and docs.body == b"<h1>Docs</h1>"
    trailing = resolver.resolve_with_index(_get("/docs/"))
    assert trailing is not None and trailing.body == docs.body

    guide = resolver.resolve_with_index(_get("/guide"))
    assert guide is not None and guide.body == b"second"

    (public / "guide" / "index.html").write_text("first", encoding="utf-8")
    guide = resolver.resolve_with_index(_get("/guide"))
    assert guide is not None and guide.body == b"first"


def test_resolve_rejects_traversal_and_unsafe_methods(public, tmp_path) -> None:
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")
    resolver = ResourceResolver(public)
    assert resolver.resolve(_get("/../secret.txt")) is None
    assert resolver.resolve(_get("/app.js", method="POST")) is None


def test_resolve_does_not_follow_escaping_symlinks(public, tmp_path) -> None:
    outside = tmp_path / "outside.txt"
    outside.write_text("outside", encoding="utf-8")
    (public / "link.txt").symlink_to(outside)
    assert ResourceResolver(public).resolve(_get("/link.txt")) is None


def test_head_request_has_length_but_no_body(public) -> None:
    response = ResourceResolver(public, cache_control="public, max-age=60").resolve(_get("/app.js", method="HEAD"))
    assert response is not None
    assert response.body == b""
    assert response.header("content-length") == str((public / "app.js").stat().st_size)
    assert response.header("cache-control") == "public, max-age=60"


def test_resolve_compresses_when_accepted(public) -> None:
    script = public / "bundle.js"
    script.write_text("const data = '" + "x" * 512 + "';", encoding="utf-8")
    expected = script.read_bytes()
    resolver = ResourceResolver(public)

    br = resolver.resolve(_get("/bundle.js", headers={"accept-encoding": "br, gzip"}))
    assert br is not None
    assert br.header("content-encoding") == "br"
    assert brotli.decompress(br.body) == expected

    gz = resolver.resolve(_get("/bundle.js", headers={"accept-encoding": "gzip"}))
    assert gz is not None
    assert gz.header("content-encoding") == "gzip"
    assert gzip.decompress(gz.body) == expected
    assert gz.header("content-length") == str(len(gz.body))


def test_binary_types_are_not_compressed(public) -> None:
    (public / "logo.png").write_bytes(b"\x89PNG\r\n")
    response = ResourceResolver(public).resolve(_get("/logo.png", headers={"accept-encoding": "gzip"}))
    assert response is not None
    assert response.header("content-type") == "image/png"
    assert response.header("content-encoding") is None


def test_content_type_overrides(public) -> None:
    (public / "data.cljs").write_text("(ns app)", encoding="utf-8")
    resolver = ResourceResolver(public, content_types={".CLJS": "text/x-clojure"})
    response = resolver.resolve(_get("/data.cljs"))
    assert response is not None
    assert response.header("content-type") == "text/x-clojure"


def test_missing_root_misses_everything(tmp_path) -> None:
    resolver = ResourceResolver(tmp_path / "absent")
    assert resolver.resolve_with_index(_get("/index.html")) is None


def test_index_files_must_be_bare_names(public) -> None:
    with pytest.raises(ValueError):
        ResourceResolver(public, index_files=("nested/index.html",))
