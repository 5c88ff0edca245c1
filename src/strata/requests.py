"""Request primitives."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, MutableMapping
from urllib.parse import parse_qsl

_UNCHANGED: Any = object()


class Request:
    """Immutable view of an incoming request.

    Stages never edit a request in place: :meth:`evolve` and
    :meth:`with_ambient` hand a modified copy to the next stage.
    """

    __slots__ = (
        "_body",
        "_query_params",
        "_raw_query",
        "ambient",
        "headers",
        "method",
        "params",
        "path",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        query_string: str | None = None,
        body: bytes | None = None,
        params: Mapping[str, Any] | None = None,
        ambient: Mapping[str, Any] | None = None,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.headers: Mapping[str, str] = MappingProxyType({k.lower(): v for k, v in (headers or {}).items()})
        self._raw_query = query_string or ""
        self._body = body or b""
        self._query_params: MutableMapping[str, list[str]] | None = None
        self.params: Mapping[str, Any] = MappingProxyType(dict(params or {}))
        self.ambient: Mapping[str, Any] = MappingProxyType(dict(ambient or {}))

    def __repr__(self) -> str:
        return f"Request(method={self.method!r}, path={self.path!r})"

    @staticmethod
    def _parse_query(raw: str) -> MutableMapping[str, list[str]]:
        parsed: MutableMapping[str, list[str]] = {}
        for key, value in parse_qsl(raw, keep_blank_values=True):
            parsed.setdefault(key, []).append(value)
        return parsed

    @property
    def query_string(self) -> str:
        return self._raw_query

    @property
    def query_params(self) -> MutableMapping[str, list[str]]:
        if self._query_params is None:
            self._query_params = self._parse_query(self._raw_query)
        return self._query_params

    @property
    def base_url(self) -> str | None:
        return self.ambient.get("base_url")

    @property
    def session(self) -> Mapping[str, Any]:
        return self.ambient.get("session") or {}

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def text(self) -> str:
        return self._body.decode()

    def body(self) -> bytes:
        return self._body

    def evolve(
        self,
        *,
        method: str = _UNCHANGED,
        path: str = _UNCHANGED,
        headers: Mapping[str, str] = _UNCHANGED,
        body: bytes = _UNCHANGED,
        params: Mapping[str, Any] = _UNCHANGED,
        ambient: Mapping[str, Any] = _UNCHANGED,
    ) -> "Request":
        """Return a copy of this request with the given fields replaced."""

        return Request(
            method=self.method if method is _UNCHANGED else method,
            path=self.path if path is _UNCHANGED else path,
            headers=self.headers if headers is _UNCHANGED else headers,
            query_string=self._raw_query,
            body=self._body if body is _UNCHANGED else body,
            params=self.params if params is _UNCHANGED else params,
            ambient=self.ambient if ambient is _UNCHANGED else ambient,
        )

    def with_ambient(self, **values: Any) -> "Request":
        """Return a copy with ``values`` layered over the ambient mapping."""

        merged = dict(self.ambient)
        merged.update(values)
        return self.evolve(ambient=merged)
