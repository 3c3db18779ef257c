"""CORS headers for the configured allowed origins."""

from typing import Sequence

from aiohttp import hdrs, web

from agent_bridge.server.acceptor import Handler


def cors_middleware(allowed_origins: Sequence[str]):
    """Build a middleware echoing allowed origins back to the browser.

    Args:
        allowed_origins: Origins allowed to call the API, ``*`` allows any

    Returns:
        aiohttp middleware
    """
    allow_any = "*" in allowed_origins
    allowed = frozenset(allowed_origins)

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        origin = request.headers.get(hdrs.ORIGIN)
        origin_allowed = bool(origin) and (allow_any or origin in allowed)

        if (
            request.method == hdrs.METH_OPTIONS
            and hdrs.ACCESS_CONTROL_REQUEST_METHOD in request.headers
        ):
            response: web.StreamResponse = web.Response(status=204)
            if origin_allowed:
                response.headers[hdrs.ACCESS_CONTROL_ALLOW_METHODS] = "GET, POST, OPTIONS"
                requested = request.headers.get(hdrs.ACCESS_CONTROL_REQUEST_HEADERS)
                if requested:
                    response.headers[hdrs.ACCESS_CONTROL_ALLOW_HEADERS] = requested
        else:
            response = await handler(request)

        # Upgraded responses have already sent their headers
        if origin_allowed and not response.prepared:
            response.headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = origin
            response.headers.add(hdrs.VARY, hdrs.ORIGIN)

        return response

    return middleware
