"""Canonical middleware orderings.

``inner_defaults`` sits next to the application handler and ``outer_defaults``
at the edge. They stay separate calls because the upgrade origin check and
anti-forgery protection are left out of both and must be added explicitly::

    handler = inner_defaults(app, options)
    handler = apply_middleware([upgrade_origin_middleware(options.base_url)], handler)
    handler = outer_defaults(handler, options)
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .config import PipelineOptions
from .context import context_middleware
from .defaults import build_site_defaults, site_defaults_middleware
from .formats import format_middleware, params_middleware
from .middleware import Handler, MiddlewareCallable, apply_middleware
from .observability import internal_error_middleware, log_requests_middleware
from .spa import resource_middleware


def _options(options: PipelineOptions | Mapping[str, Any] | None) -> PipelineOptions:
    if options is None:
        return PipelineOptions()
    if isinstance(options, PipelineOptions):
        return options
    return PipelineOptions.from_mapping(options)


def inner_middlewares(
    options: PipelineOptions | Mapping[str, Any] | None = None,
    *,
    request_logger: logging.Logger | None = None,
    error_logger: logging.Logger | None = None,
) -> tuple[MiddlewareCallable, ...]:
    """Return the inner stages, outermost first."""

    opts = _options(options)
    return (
        log_requests_middleware(request_logger),
        internal_error_middleware(opts.on_error, logger=error_logger),
        resource_middleware(opts.resources()),
        format_middleware,
        params_middleware,
    )


def outer_middlewares(options: PipelineOptions | Mapping[str, Any] | None = None) -> tuple[MiddlewareCallable, ...]:
    """Return the outer stages, outermost first."""

    opts = _options(options)
    defaults = build_site_defaults(
        session_store=opts.session_store,
        cookie_secret=opts.cookie_secret,
        secure=opts.secure,
        session_max_age=opts.session_max_age,
    )
    return (
        context_middleware(opts.context_provider, opts.shared_state, base_url=opts.base_url),
        site_defaults_middleware(defaults),
    )


def inner_defaults(
    handler: Handler,
    options: PipelineOptions | Mapping[str, Any] | None = None,
    *,
    request_logger: logging.Logger | None = None,
    error_logger: logging.Logger | None = None,
) -> Handler:
    """Wrap ``handler`` with params, format, resources, error recovery, and logging.

    Logging is outermost so recovered failures are logged with their
    converted status.
    """

    stages = inner_middlewares(options, request_logger=request_logger, error_logger=error_logger)
    return apply_middleware(stages, handler)


def outer_defaults(handler: Handler, options: PipelineOptions | Mapping[str, Any] | None = None) -> Handler:
    """Wrap ``handler`` with site defaults, then context injection.

    Raises :class:`~strata.exceptions.ConfigurationError` for an invalid
    cookie secret.
    """

    return apply_middleware(outer_middlewares(options), handler)


__all__ = ["inner_defaults", "inner_middlewares", "outer_defaults", "outer_middlewares"]
