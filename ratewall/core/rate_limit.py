"""Rate limiting middleware for the FastAPI app.

This module wires the limiter selector into the HTTP layer: every request
not on an exempt path gets one admission decision before it reaches a route.

Rate limiting strategy:
- Requests carrying the token header (``API_KEY`` by default) are limited
  per token.
- All other requests are limited per client IP.
- Rejections are a plain-text 429. Store failures reject the same way, so
  clients cannot tell them apart from ordinary throttling.
"""

from __future__ import annotations

from fastapi import Request, Response, status
from fastapi.responses import PlainTextResponse

from ratewall.services.identity import RequestIdentity
from ratewall.services.selector import LimiterSelector

TOO_MANY_REQUESTS_MESSAGE = (
    "You have reached the maximum number of requests or actions allowed within a certain time frame"
)
IDENTITY_HEADER = "Identity"
REQUEST_COUNT_HEADER = "Request-Count"


def request_identity(request: Request, token_header: str) -> RequestIdentity:
    """Extract the attributes limiters derive keys from.

    Args:
        request: Incoming request.
        token_header: Name of the header carrying the API token.

    Returns:
        RequestIdentity with the client host and the token, if present.
    """

    client_host = request.client.host if request.client else "unknown"
    return RequestIdentity(
        remote_address=client_host,
        api_key=request.headers.get(token_header) or None,
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing the rate limits.

    Reads the selector and settings from ``app.state`` (set by the app
    factory). On rejection answers 429 without calling the route; otherwise
    calls the route. Both paths set the ``Identity`` and ``Request-Count``
    headers.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response, or a 429 response.
    """

    rate_limit_settings = request.app.state.settings.rate_limit
    if not rate_limit_settings.rate_limit_enabled:
        return await call_next(request)
    if request.url.path in rate_limit_settings.exempt_paths:
        return await call_next(request)

    selector: LimiterSelector = request.app.state.limiter_selector
    identity = request_identity(request, rate_limit_settings.rate_limit_token_header)
    decision = await selector.decide(identity)

    if decision.allowed:
        response = await call_next(request)
    else:
        response = PlainTextResponse(
            TOO_MANY_REQUESTS_MESSAGE,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )

    response.headers[IDENTITY_HEADER] = decision.identity
    response.headers[REQUEST_COUNT_HEADER] = str(decision.current_count)
    return response
