"""Observability: structured logging, request ids, metrics and health checks."""

from .health import ComponentHealth, HealthStatus
from .logging_config import JSONFormatter, RequestIDFilter, configure_logging
from .middleware import RequestIDMiddleware
from .request_id import generate_request_id, get_request_id, request_id_var, set_request_id

__all__ = [
    "configure_logging",
    "JSONFormatter",
    "RequestIDFilter",
    "RequestIDMiddleware",
    "request_id_var",
    "generate_request_id",
    "get_request_id",
    "set_request_id",
    "HealthStatus",
    "ComponentHealth",
]
