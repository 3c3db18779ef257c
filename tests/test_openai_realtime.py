"""Tests for the OpenAI Realtime upstream connector."""

import json
from dataclasses import replace
from typing import Dict, List

import pytest
from websockets.asyncio.server import ServerConnection, serve

from agent_bridge.ai.openai_realtime import (
    OpenAIRealtimeConnector,
    build_audio_append,
    build_instructions,
    build_session_update,
)
from agent_bridge.ai.realtime_base import Frame
from agent_bridge.config import AIConfig
from agent_bridge.core.errors import UpstreamConnectFailed


class TestMessageBuilders:
    """Messages originated by the bridge."""

    def test_audio_append_envelope(self) -> None:
        """Test the base64 audio envelope."""
        assert build_audio_append(bytes([1, 2, 3])) == (
            '{"type":"input_audio_buffer.append","audio":"AQID"}'
        )

    def test_session_update(self) -> None:
        """Test the session configuration message shape."""
        message = json.loads(build_session_update(voice="verse", instructions="Be brief."))
        assert message == {
            "type": "session.update",
            "session": {"voice": "verse", "instructions": "Be brief."},
        }

    def test_instructions_include_agent_name(self) -> None:
        """Test persona prompt and name concatenation."""
        assert build_instructions("Be brief.", "Munffett") == "Be brief.\n\nName: Munffett"


class TestConnector:
    """Connection URL, headers and leg behaviour."""

    def test_requires_api_key(self) -> None:
        """Test that a missing key is rejected up front."""
        with pytest.raises(ValueError, match="API key"):
            OpenAIRealtimeConnector(AIConfig())

    def test_url_and_headers(self, ai_config: AIConfig) -> None:
        """Test model query parameter and auth/beta headers."""
        connector = OpenAIRealtimeConnector(replace(ai_config, model="gpt 4o/rt"))

        assert connector.url == "wss://api.openai.com/v1/realtime?model=gpt%204o%2Frt"
        assert dict(connector.headers) == {
            "Authorization": "Bearer sk-test",
            "OpenAI-Beta": "realtime=v1",
        }

    @pytest.mark.asyncio
    async def test_connect_failure(self, ai_config: AIConfig) -> None:
        """Test that a refused connection surfaces as UpstreamConnectFailed."""
        connector = OpenAIRealtimeConnector(
            replace(ai_config, realtime_url="ws://127.0.0.1:1/v1/realtime")
        )
        with pytest.raises(UpstreamConnectFailed):
            await connector.connect()

    @pytest.mark.asyncio
    async def test_leg_against_server(self, ai_config: AIConfig) -> None:
        """Test handshake metadata and framing in both directions."""
        requests: List[Dict] = []
        received: List = []

        async def handler(ws: ServerConnection) -> None:
            requests.append({
                "path": ws.request.path,
                "authorization": ws.request.headers.get("Authorization"),
                "beta": ws.request.headers.get("OpenAI-Beta"),
            })
            received.append(await ws.recv())
            await ws.send('{"type":"session.created"}')
            await ws.send(b"\x00\x01")
            await ws.close()

        async with serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            connector = OpenAIRealtimeConnector(
                replace(ai_config, realtime_url=f"ws://127.0.0.1:{port}/v1/realtime")
            )

            leg = await connector.connect()
            assert not leg.closed

            # Server is parked in recv() until the send below
            await leg.ping()
            await leg.send(Frame('{"type":"input_audio_buffer.commit"}'))

            frames = [frame async for frame in leg.frames()]

        assert requests == [{
            "path": "/v1/realtime?model=gpt-4o-realtime-preview",
            "authorization": "Bearer sk-test",
            "beta": "realtime=v1",
        }]
        assert received == ['{"type":"input_audio_buffer.commit"}']
        assert frames == [Frame('{"type":"session.created"}'), Frame(b"\x00\x01")]
        assert leg.closed

        with pytest.raises(ConnectionError):
            await leg.send(Frame("late"))
