"""Static resource resolution.

Compression relies on the ubiquitous ``brotli`` and ``zstandard`` C extensions;
``gzip`` is always available.
"""

from __future__ import annotations

import gzip
import logging
import mimetypes
import os
import re
import stat as stat_module
from dataclasses import dataclass
from email.utils import formatdate
from pathlib import Path
from typing import Callable, Iterable, Mapping

import brotli
import zstandard

from .http import Status
from .requests import Request
from .responses import Response

logger = logging.getLogger(__name__)

CompressFunc = Callable[[bytes], bytes]

_TRAILING_SLASH = re.compile(r"/?$")
_ZSTD_COMPRESSOR = zstandard.ZstdCompressor(level=6)


def _gzip_compress(data: bytes) -> bytes:
    return gzip.compress(data, compresslevel=6)


def _brotli_compress(data: bytes) -> bytes:
    return brotli.compress(data, quality=5)


def _zstd_compress(data: bytes) -> bytes:
    return _ZSTD_COMPRESSOR.compress(data)


_COMPRESSORS: tuple[tuple[str, CompressFunc], ...] = (
    ("br", _brotli_compress),
    ("zstd", _zstd_compress),
    ("gzip", _gzip_compress),
)

_COMPRESSIBLE_TYPES = frozenset(
    {
        "application/json",
        "application/javascript",
        "application/xml",
        "application/xhtml+xml",
        "application/rss+xml",
        "application/atom+xml",
        "application/x-javascript",
        "application/yaml",
        "application/x-yaml",
        "image/svg+xml",
    }
)


def index_candidates(path: str, index_files: Iterable[str]) -> list[str]:
    """Return ``path`` followed by ``path`` with each index file appended.

    The path is normalized to end in exactly one ``/`` before appending.
    """

    candidates = [path]
    for index_file in index_files:
        candidates.append(_TRAILING_SLASH.sub(lambda _: f"/{index_file}", path, count=1))
    return candidates


@dataclass(slots=True, frozen=True)
class _FileMetadata:
    st_size: int
    st_mtime: float
    st_mode: int

    @property
    def is_file(self) -> bool:
        return stat_module.S_ISREG(self.st_mode)


@dataclass(slots=True)
class _AssetCacheEntry:
    metadata: _FileMetadata
    raw: bytes | None
    encodings: dict[str, bytes]


class ResourceResolver:
    """Map request paths onto files below a resource root.

    A lookup that finds nothing returns ``None``; the resolver knows nothing
    about SPA fallback or the application handler.
    """

    def __init__(
        self,
        root: str | os.PathLike[str],
        *,
        index_files: Iterable[str] = ("index.html",),
        follow_symlinks: bool = False,
        cache_control: str | None = None,
        content_types: Mapping[str, str] | None = None,
    ) -> None:
        self._root = Path(os.fspath(root)).resolve()
        if not self._root.is_dir():
            logger.warning("Resource root %s is not a directory; every lookup will miss", self._root)
        self._index_files = tuple(index_files)
        for index_file in self._index_files:
            if Path(index_file).is_absolute() or "/" in index_file:
                raise ValueError(f"Index file {index_file!r} must be a bare file name")
        self._follow_symlinks = follow_symlinks
        self._cache_control = cache_control
        self._content_types = {suffix.lower(): value for suffix, value in (content_types or {}).items()}
        self._compressor_map = dict(_COMPRESSORS)
        self._asset_cache: dict[str, _AssetCacheEntry] = {}

    @property
    def root(self) -> Path:
        return self._root

    @property
    def index_files(self) -> tuple[str, ...]:
        return self._index_files

    def resolve(self, request: Request) -> Response | None:
        """Serve the file at exactly ``request.path`` or return ``None``."""

        if request.method not in {"GET", "HEAD"}:
            return None
        located = self._locate(request.path)
        if located is None:
            return None
        target, metadata = located
        content_type = self._content_type_for(target)
        negotiated = self._negotiate_encoding(
            request.header("accept-encoding"),
            compressible=self._should_compress(content_type),
        )
        entry = self._cached_asset(target, metadata)
        header_pairs = [
            ("content-type", content_type),
            ("last-modified", formatdate(metadata.st_mtime, usegmt=True)),
            ("vary", "accept-encoding"),
        ]
        if negotiated is not None:
            payload = self._ensure_compressed(entry, target, negotiated)
            header_pairs.append(("content-encoding", negotiated))
        else:
            payload = self._ensure_raw(entry, target)
        header_pairs.insert(1, ("content-length", str(len(payload))))
        if self._cache_control:
            header_pairs.append(("cache-control", self._cache_control))
        body = payload if request.method == "GET" else b""
        return Response(status=int(Status.OK), headers=tuple(header_pairs), body=body)

    def resolve_with_index(self, request: Request) -> Response | None:
        """Try the exact path, then the path with each index file appended."""

        for candidate in index_candidates(request.path, self._index_files):
            target = request if candidate == request.path else request.evolve(path=candidate)
            response = self.resolve(target)
            if response is not None:
                return response
        return None

    def _cached_asset(self, path: Path, metadata: _FileMetadata) -> _AssetCacheEntry:
        key = os.fspath(path)
        entry = self._asset_cache.get(key)
        if entry is None or entry.metadata != metadata:
            entry = _AssetCacheEntry(metadata=metadata, raw=None, encodings={})
            self._asset_cache[key] = entry
        return entry

    def _ensure_raw(self, entry: _AssetCacheEntry, path: Path) -> bytes:
        if entry.raw is None:
            entry.raw = path.read_bytes()
        return entry.raw

    def _ensure_compressed(self, entry: _AssetCacheEntry, path: Path, encoding: str) -> bytes:
        cached = entry.encodings.get(encoding)
        if cached is not None:
            return cached
        compressed = self._compressor_map[encoding](self._ensure_raw(entry, path))
        entry.encodings[encoding] = compressed
        return compressed

    def _negotiate_encoding(self, header: str | None, *, compressible: bool) -> str | None:
        if not header or not compressible:
            return None
        q_values = _parse_accept_encoding(header)
        wildcard_q = q_values.get("*")
        best_encoding: str | None = None
        best_q = 0.0
        for name, _ in _COMPRESSORS:
            quality = q_values.get(name, wildcard_q)
            if quality is None or quality <= 0:
                continue
            if quality > best_q:
                best_q = quality
                best_encoding = name
        return best_encoding

    def _should_compress(self, content_type: str) -> bool:
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type.startswith("text/"):
            return True
        if media_type.endswith("+json") or media_type.endswith("+xml"):
            return True
        return media_type in _COMPRESSIBLE_TYPES

    def _locate(self, path: str) -> tuple[Path, _FileMetadata] | None:
        relative = _sanitize(path)
        if relative is None:
            return None
        target = self._root / relative
        if not self._follow_symlinks:
            target = target.resolve()
            try:
                target.relative_to(self._root)
            except ValueError:
                return None
        try:
            info = os.stat(target)
        except (FileNotFoundError, NotADirectoryError):
            return None
        metadata = _FileMetadata(st_size=info.st_size, st_mtime=info.st_mtime, st_mode=info.st_mode)
        if not metadata.is_file:
            return None
        return target, metadata

    def _content_type_for(self, path: Path) -> str:
        override = self._content_types.get(path.suffix.lower())
        if override:
            return override
        guessed, _ = mimetypes.guess_type(path.name)
        if guessed is None:
            return "application/octet-stream"
        if guessed.startswith("text/") and "charset=" not in guessed:
            return f"{guessed}; charset=utf-8"
        return guessed


def _sanitize(path: str) -> Path | None:
    raw = (path or "").lstrip("/")
    if not raw:
        return None
    candidate = Path(raw)
    if candidate.is_absolute() or any(part == ".." for part in candidate.parts):
        return None
    return candidate


def _parse_accept_encoding(header: str) -> dict[str, float]:
    q_values: dict[str, float] = {}
    for raw_part in header.split(","):
        parts = [segment.strip() for segment in raw_part.split(";") if segment.strip()]
        if not parts:
            continue
        encoding = parts[0].lower()
        quality = 1.0
        for param in parts[1:]:
            name, _, value = param.partition("=")
            if name.strip() != "q":
                continue
            try:
                quality = float(value)
            except ValueError:
                quality = 0.0
        existing = q_values.get(encoding)
        if existing is None or quality > existing:
            q_values[encoding] = quality
    return q_values


__all__ = ["ResourceResolver", "index_candidates"]
