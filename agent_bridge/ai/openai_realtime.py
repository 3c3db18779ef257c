"""OpenAI Realtime upstream connector.

Opens one outbound WebSocket per bridge session:

1. URL carries the model as a query parameter
2. Authorization and protocol negotiation headers are attached
3. Library keepalive is disabled; the session runs its own liveness monitor

Also builds the two JSON messages the bridge originates itself: the one-time
``session.update`` and the ``input_audio_buffer.append`` audio envelope.
"""

import base64
import json
from typing import AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import quote

import structlog
import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from agent_bridge.ai.realtime_base import Frame
from agent_bridge.config import AIConfig
from agent_bridge.core.constants import BridgeConstants
from agent_bridge.core.errors import UpstreamConnectFailed


logger = structlog.get_logger(__name__)

# Realtime audio deltas can exceed the library's 1 MiB default
MAX_MESSAGE_SIZE = 16 * 1024 * 1024


def _dumps(message: Dict) -> str:
    return json.dumps(message, separators=(",", ":"))


def build_instructions(persona_prompt: str, agent_name: str) -> str:
    """Concatenate the persona prompt with the agent's display name."""
    return f"{persona_prompt}\n\nName: {agent_name}"


def build_session_update(voice: str, instructions: str) -> str:
    """Build the one-time session configuration message.

    Args:
        voice: Upstream voice identifier
        instructions: Persona instructions

    Returns:
        JSON text for a ``session.update`` event
    """
    return _dumps({
        "type": BridgeConstants.SESSION_UPDATE,
        "session": {
            "voice": voice,
            "instructions": instructions,
        },
    })


def build_audio_append(payload: bytes) -> str:
    """Wrap one block of raw audio in the upstream's append envelope.

    The payload is passed through verbatim: no validation, resampling or
    implicit commit.

    Args:
        payload: Raw audio bytes from an inbound binary frame

    Returns:
        JSON text for an ``input_audio_buffer.append`` event
    """
    return _dumps({
        "type": BridgeConstants.AUDIO_APPEND,
        "audio": base64.b64encode(payload).decode("ascii"),
    })


class UpstreamLeg:
    """Outbound leg over a ``websockets`` client connection."""

    name = "outbound"

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.state is not State.OPEN

    @property
    def close_code(self) -> Optional[int]:
        return self._ws.close_code

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield upstream frames with their original framing until close."""
        try:
            async for message in self._ws:
                yield Frame(message)
        except ConnectionClosed as e:
            logger.info(
                "Upstream connection closed abnormally",
                code=e.rcvd.code if e.rcvd else None,
                reason=e.rcvd.reason if e.rcvd else None,
            )

    async def send(self, frame: Frame) -> None:
        try:
            await self._ws.send(frame.data)
        except ConnectionClosed as e:
            raise ConnectionError(f"Upstream leg closed: {e}") from e

    async def ping(self) -> None:
        # Pong waiter is not awaited
        try:
            await self._ws.ping()
        except ConnectionClosed as e:
            raise ConnectionError(f"Upstream leg closed: {e}") from e

    async def close(self, code: int = BridgeConstants.CLOSE_NORMAL, reason: str = "") -> None:
        await self._ws.close(code=code, reason=reason)


class OpenAIRealtimeConnector:
    """Opens the outbound leg of a session to the OpenAI Realtime API."""

    def __init__(self, ai: AIConfig) -> None:
        """Initialize connector.

        Args:
            ai: AI settings (API key, model, endpoint)

        Raises:
            ValueError: If no API key is configured
        """
        if not ai.openai_api_key:
            raise ValueError("OpenAI API key not configured")

        self._api_key = ai.openai_api_key
        self._model = ai.model
        self._base_url = ai.realtime_url

    @property
    def url(self) -> str:
        """Connection URL with the model embedded as a query parameter."""
        return f"{self._base_url}?model={quote(self._model, safe='')}"

    @property
    def headers(self) -> List[Tuple[str, str]]:
        """Auth and protocol negotiation headers."""
        return [
            ("Authorization", f"Bearer {self._api_key}"),
            (BridgeConstants.OPENAI_BETA_HEADER, BridgeConstants.OPENAI_BETA_VALUE),
        ]

    async def connect(self) -> UpstreamLeg:
        """Open the outbound connection.

        No handshake timeout is applied; a hang only blocks the owning session.

        Returns:
            Open upstream leg

        Raises:
            UpstreamConnectFailed: If the connection or handshake fails
        """
        logger.info("Connecting to OpenAI Realtime", model=self._model)

        try:
            ws = await websockets.connect(
                self.url,
                additional_headers=self.headers,
                open_timeout=None,
                ping_interval=None,
                max_size=MAX_MESSAGE_SIZE,
            )
        except Exception as e:
            raise UpstreamConnectFailed(f"Failed to connect to OpenAI Realtime: {e}") from e

        logger.info("OpenAI Realtime connected", model=self._model)
        return UpstreamLeg(ws)
