"""Middleware components for request processing.

Provides request correlation ID tracking so log lines and outgoing metric
queries can be tied back to the panel request that caused them.
"""

from .correlation_id import correlation_id_middleware, get_request_id

__all__ = ["correlation_id_middleware", "get_request_id"]
