"""resttree: client core for hierarchical, rate-limited JSON-over-HTTP resource APIs.

This package provides dynamic navigation of nested resources, CRUD and custom
action dispatch, uniform response and error interpretation, cursor pagination
through ``Link`` headers, and an adaptive dual-tier throttle driven by the
quota the server reports on every response.

Concrete APIs declare their resources as ``ResourceNode`` subclasses and
navigate them from an ``ApiClient``.
"""

__version__ = "0.1.0"

from . import (
    auth,
    client,
    config,
    exceptions,
    executor,
    log_config,
    pagination,
    processor,
    resources,
    telemetry,
    throttle,
    transport,
    types,
)
from .client import ApiClient
from .config import ResttreeSettings, ThrottleSettings
from .resources import ResourceNode

__all__ = [
    "__version__",
    "ApiClient",
    "ResourceNode",
    "ResttreeSettings",
    "ThrottleSettings",
    "auth",
    "client",
    "config",
    "exceptions",
    "executor",
    "log_config",
    "pagination",
    "processor",
    "resources",
    "telemetry",
    "throttle",
    "transport",
    "types",
]
