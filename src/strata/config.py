"""Pipeline configuration objects."""

from __future__ import annotations

from typing import Any, Mapping

import msgspec
from msgspec import Struct

from .exceptions import ConfigurationError

DEFAULT_SPA_EXCLUDE_PATHS: tuple[str, ...] = (
    "/js/",
    "/css/",
    "/cljs/",
    "/img/",
    "/assets/",
    "/favicon.ico",
)

SIXTY_DAYS = 60 * 60 * 24 * 60


class ResourceConfig(Struct, frozen=True):
    """Where static resources live and when the SPA entry may stand in for a miss."""

    root: str = "public"
    index_files: tuple[str, ...] = ("index.html",)
    spa_path: str | None = None
    spa_client_paths: frozenset[str] | None = None
    spa_exclude_paths: tuple[str, ...] = DEFAULT_SPA_EXCLUDE_PATHS
    cache_control: str | None = None
    content_types: tuple[tuple[str, str], ...] = ()

    def spa_applies_to(self, path: str) -> bool:
        """Return ``True`` when a miss on ``path`` may fall back to the SPA entry.

        A configured client-path set wins outright over the exclude prefixes.
        """

        if self.spa_path is None:
            return False
        if self.spa_client_paths is not None:
            return path in self.spa_client_paths
        return not any(path.startswith(prefix) for prefix in self.spa_exclude_paths)


class PipelineOptions(Struct, frozen=True, forbid_unknown_fields=True):
    """Typed configuration surface for the default pipelines."""

    root: str = "public"
    index_files: tuple[str, ...] = ("index.html",)
    spa_path: str | None = None
    spa_client_paths: frozenset[str] | None = None
    spa_exclude_paths: tuple[str, ...] = DEFAULT_SPA_EXCLUDE_PATHS
    cache_control: str | None = None
    session_store: Any = None
    cookie_secret: str | None = None
    secure: bool = True
    session_max_age: int = SIXTY_DAYS
    base_url: str | None = None
    on_error: Any = None
    context_provider: Any = None
    shared_state: Any = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PipelineOptions":
        try:
            return msgspec.convert(dict(values), type=cls)
        except msgspec.ValidationError as exc:
            raise ConfigurationError(f"Invalid pipeline options: {exc}") from exc

    def resources(self) -> ResourceConfig:
        return ResourceConfig(
            root=self.root,
            index_files=self.index_files,
            spa_path=self.spa_path,
            spa_client_paths=self.spa_client_paths,
            spa_exclude_paths=self.spa_exclude_paths,
            cache_control=self.cache_control,
        )


__all__ = ["DEFAULT_SPA_EXCLUDE_PATHS", "SIXTY_DAYS", "PipelineOptions", "ResourceConfig"]
