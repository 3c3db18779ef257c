"""Connection acceptor for WebSocket upgrade requests.

Only the bridge route may be upgraded. Any other upgrade request has its
raw transport aborted before a handshake response is written, so the peer
sees the connection drop with no bytes sent.
"""

from typing import Awaitable, Callable

import structlog
from aiohttp import hdrs, web

from agent_bridge.core.constants import BridgeConstants


logger = structlog.get_logger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def is_bridge_path(path: str) -> bool:
    """Accept decision: the path must equal the bridge route exactly."""
    return path == BridgeConstants.BRIDGE_ROUTE


def is_upgrade_request(request: web.Request) -> bool:
    return request.headers.get(hdrs.UPGRADE, "").lower() == "websocket"


def reject_upgrade(request: web.Request) -> None:
    """Drop the underlying transport without completing any handshake."""
    transport = request.transport
    if transport is not None:
        transport.abort()


@web.middleware
async def upgrade_guard(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Reject upgrades to anything but the bridge route.

    Plain HTTP requests pass through untouched.
    """
    if is_upgrade_request(request) and not is_bridge_path(request.path):
        logger.info("Rejecting upgrade request", path=request.path)
        reject_upgrade(request)
        # Never written: the transport is gone
        raise web.HTTPNotFound()

    return await handler(request)
