"""Granian integration helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import msgspec
from granian import Granian

from .asgi import ASGIAdapter

_CURRENT_APP: ASGIAdapter | None = None


def _register_current_app(app: ASGIAdapter) -> None:
    """Store ``app`` for retrieval by worker processes."""

    global _CURRENT_APP
    _CURRENT_APP = app


def _clear_current_app() -> None:
    global _CURRENT_APP
    _CURRENT_APP = None


def _current_app_loader() -> ASGIAdapter:
    """Return the application registered for the current process."""

    if _CURRENT_APP is None:
        raise RuntimeError("no strata application registered for Granian")
    return _CURRENT_APP


class ServerConfig(msgspec.Struct, frozen=True):
    host: str = "127.0.0.1"
    port: int = 8080
    interface: str = "asgi"
    loop: str = "auto"
    workers: int = 1
    certificate_path: str | Path | None = None
    private_key_path: str | Path | None = None


def _granian_kwargs(cfg: ServerConfig) -> Mapping[str, Any]:
    kwargs: dict[str, Any] = {
        "address": cfg.host,
        "port": cfg.port,
        "interface": cfg.interface,
        "loop": cfg.loop,
        "workers": cfg.workers,
    }
    if (cfg.certificate_path is None) != (cfg.private_key_path is None):
        raise RuntimeError("TLS requires both certificate_path and private_key_path")
    if cfg.certificate_path is not None and cfg.private_key_path is not None:
        kwargs["ssl_cert"] = Path(cfg.certificate_path)
        kwargs["ssl_key"] = Path(cfg.private_key_path)
    return kwargs


def create_server(app: ASGIAdapter, config: ServerConfig | None = None) -> Granian:
    cfg = config or ServerConfig()
    _register_current_app(app)
    try:
        return Granian("strata.server:_current_app_loader", **_granian_kwargs(cfg))
    except Exception:
        _clear_current_app()
        raise


def run(app: ASGIAdapter, config: ServerConfig | None = None) -> None:
    server = create_server(app, config)
    try:
        server.serve(target_loader=_current_app_loader, wrap_loader=False)
    finally:
        _clear_current_app()


__all__ = ["ServerConfig", "create_server", "run"]
