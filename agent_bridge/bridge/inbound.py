"""Inbound leg over an aiohttp server-side WebSocket."""

from typing import AsyncIterator, Optional

import structlog
from aiohttp import WSMsgType, web

from agent_bridge.ai.realtime_base import Frame
from agent_bridge.core.constants import BridgeConstants


logger = structlog.get_logger(__name__)


class InboundLeg:
    """Client-facing leg (meeting media relay)."""

    name = "inbound"

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    @property
    def close_code(self) -> Optional[int]:
        return self._ws.close_code

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield relay frames until the relay closes or the socket errors."""
        async for msg in self._ws:
            if msg.type == WSMsgType.TEXT:
                yield Frame(msg.data)
            elif msg.type == WSMsgType.BINARY:
                yield Frame(msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.warning("Inbound WebSocket error", error=str(self._ws.exception()))
                break

    async def send(self, frame: Frame) -> None:
        if self._ws.closed:
            raise ConnectionError("Inbound leg closed")
        if frame.is_binary:
            await self._ws.send_bytes(frame.data)
        else:
            await self._ws.send_str(frame.data)

    async def ping(self) -> None:
        if self._ws.closed:
            raise ConnectionError("Inbound leg closed")
        await self._ws.ping()

    async def close(self, code: int = BridgeConstants.CLOSE_NORMAL, reason: str = "") -> None:
        await self._ws.close(code=code, message=reason.encode("utf-8"))
