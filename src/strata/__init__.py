"""Strata: composable async HTTP middleware for static sites, SPAs, and sessions."""

from .asgi import ASGIAdapter
from .config import PipelineOptions, ResourceConfig
from .context import context_middleware
from .defaults import (
    SECURE_SITE_DEFAULTS,
    SITE_DEFAULTS,
    SiteDefaults,
    build_site_defaults,
    layer,
    site_defaults_middleware,
)
from .exceptions import ConfigurationError, HTTPError, StrataError
from .formats import format_middleware, params_middleware
from .guards import anti_forgery_middleware, upgrade_origin_middleware
from .middleware import apply_middleware
from .observability import default_on_error, internal_error_middleware, log_requests_middleware
from .pipeline import inner_defaults, outer_defaults
from .requests import Request
from .responses import HTMLResponse, JSONResponse, Markup, PlainTextResponse, Response
from .sessions import CookieStore, MemoryStore
from .spa import Resolution, ResolutionKind, resource_middleware
from .static import ResourceResolver
from .testing import TestClient

__all__ = [
    "SECURE_SITE_DEFAULTS",
    "SITE_DEFAULTS",
    "ASGIAdapter",
    "ConfigurationError",
    "CookieStore",
    "HTMLResponse",
    "HTTPError",
    "JSONResponse",
    "Markup",
    "MemoryStore",
    "PipelineOptions",
    "PlainTextResponse",
    "Request",
    "Resolution",
    "ResolutionKind",
    "ResourceConfig",
    "ResourceResolver",
    "Response",
    "SiteDefaults",
    "StrataError",
    "TestClient",
    "anti_forgery_middleware",
    "apply_middleware",
    "build_site_defaults",
    "context_middleware",
    "default_on_error",
    "format_middleware",
    "inner_defaults",
    "internal_error_middleware",
    "layer",
    "log_requests_middleware",
    "outer_defaults",
    "params_middleware",
    "resource_middleware",
    "site_defaults_middleware",
    "upgrade_origin_middleware",
]
