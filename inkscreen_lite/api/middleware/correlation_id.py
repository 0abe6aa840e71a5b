"""Request correlation ID middleware.

Each incoming request gets an ID, taken from the client when it sends one
and generated otherwise. The ID is stored in a context variable, so it
follows the render through the metric fan-out: the logging filter adds it to
every record and the metric source forwards it to Prometheus as
``X-Request-ID``.
"""

import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

from aiohttp import web

# Uses contextvars so concurrent requests on one event loop stay separate
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADERS = ("X-Request-ID", "X-Correlation-ID")


@web.middleware
async def correlation_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Extract or generate a correlation ID for the request.

    Priority for correlation ID extraction:
    1. X-Request-ID from client
    2. X-Correlation-ID from client
    3. Generate new UUID

    The ID is echoed back in the ``X-Request-ID`` response header, including
    on error responses raised as ``web.HTTPException``.

    Args:
        request: aiohttp request object
        handler: Next handler in middleware chain

    Returns:
        Response with correlation ID added to headers
    """
    correlation_id = next(
        (request.headers[h] for h in REQUEST_ID_HEADERS if request.headers.get(h)),
        str(uuid.uuid4()),
    )

    token = request_id_var.set(correlation_id)
    request["correlation_id"] = correlation_id
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers["X-Request-ID"] = correlation_id
        raise
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = correlation_id
    return response


def get_request_id() -> str:
    """Get current request correlation ID from context.

    Returns:
        Current request correlation ID, or "no-request-id" if not set

    Example:
        >>> from inkscreen_lite.api.middleware import get_request_id
        >>> logger.info("Rendering for request %s", get_request_id())
    """
    request_id = request_id_var.get()
    return request_id if request_id else "no-request-id"
