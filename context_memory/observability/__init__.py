"""
Observability helpers - structured logging with request context.
"""

from .logging import (
    LogLevel,
    RequestContext,
    StructuredFormatter,
    configure_logging,
    get_request_context,
    request_context,
)

__all__ = [
    "LogLevel",
    "RequestContext",
    "StructuredFormatter",
    "configure_logging",
    "get_request_context",
    "request_context",
]
