"""Tests for the HTTP layer and the bridge route."""

import asyncio
import json
import logging
from dataclasses import replace
from typing import AsyncGenerator, Dict, List

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from agent_bridge.config import Config, RecallConfig
from agent_bridge.core.agent_config import AgentConfig
from agent_bridge.recall.bot_client import RecallBotClient
from agent_bridge.server.acceptor import is_bridge_path
from agent_bridge.server.routes import create_app
from tests.fake_legs import FakeConnector, eventually


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector(auto_open=True)


@pytest.fixture
def app(app_config: Config, agent: AgentConfig, fake_connector: FakeConnector) -> web.Application:
    return create_app(app_config, agent=agent, connector=fake_connector)


@pytest_asyncio.fixture
async def client(app: web.Application) -> AsyncGenerator[TestClient, None]:
    async with TestClient(TestServer(app)) as client:
        yield client


class TestAcceptor:
    """Upgrade routing."""

    def test_bridge_path_exact_match(self) -> None:
        """Test only the exact route is accepted."""
        assert is_bridge_path("/ws/agent")
        assert not is_bridge_path("/ws/agent/extra")
        assert not is_bridge_path("/ws/agentx")
        assert not is_bridge_path("/ws")
        assert not is_bridge_path("/")

    @pytest.mark.asyncio
    async def test_other_upgrade_dropped_without_bytes(
        self, client: TestClient, fake_connector: FakeConnector
    ) -> None:
        """Test a foreign upgrade path gets its transport closed, nothing written."""
        reader, writer = await asyncio.open_connection(client.host, client.port)
        writer.write(
            b"GET /ws/other HTTP/1.1\r\n"
            b"Host: localhost\r\n"
            b"Upgrade: websocket\r\n"
            b"Connection: Upgrade\r\n"
            b"Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==\r\n"
            b"Sec-WebSocket-Version: 13\r\n"
            b"\r\n"
        )
        await writer.drain()

        try:
            data = await asyncio.wait_for(reader.read(), timeout=1.0)
        except ConnectionResetError:
            data = b""
        writer.close()

        assert data == b""
        assert fake_connector.connect_calls == 0

    @pytest.mark.asyncio
    async def test_other_upgrade_fails_for_client(
        self, client: TestClient, fake_connector: FakeConnector
    ) -> None:
        """Test a WebSocket client sees the handshake fail."""
        with pytest.raises(aiohttp.ClientError):
            await client.ws_connect("/health")
        assert fake_connector.connect_calls == 0

    @pytest.mark.asyncio
    async def test_plain_get_on_bridge_route(self, client: TestClient) -> None:
        """Test a non-upgrade request to the bridge route is refused."""
        resp = await client.get("/ws/agent")
        assert resp.status == 400


class TestBridgeRoute:
    """End-to-end through aiohttp with a fake upstream."""

    @pytest.mark.asyncio
    async def test_relay_session(self, client: TestClient, fake_connector: FakeConnector) -> None:
        """Test translation both ways and teardown on relay close."""
        outbound = fake_connector.leg
        ws = await client.ws_connect("/ws/agent")

        await ws.send_bytes(bytes([1, 2, 3]))
        await ws.send_str('{"type":"input_audio_buffer.commit"}')
        await eventually(lambda: len(outbound.sent) == 3)

        assert json.loads(outbound.sent[0].data)["type"] == "session.update"
        assert outbound.sent[1].data == '{"type":"input_audio_buffer.append","audio":"AQID"}'
        assert outbound.sent[2].data == '{"type":"input_audio_buffer.commit"}'

        outbound.feed('{"type":"response.audio.delta"}')
        outbound.feed(b"\x09\x08")
        assert await ws.receive_str(timeout=1.0) == '{"type":"response.audio.delta"}'
        assert await ws.receive_bytes(timeout=1.0) == b"\x09\x08"

        await ws.close()
        await eventually(lambda: outbound.close_calls == [1000])

    @pytest.mark.asyncio
    async def test_upstream_close_closes_relay(self, client: TestClient, fake_connector: FakeConnector) -> None:
        """Test the relay socket is closed when the upstream goes away."""
        ws = await client.ws_connect("/ws/agent")
        await eventually(lambda: len(fake_connector.leg.sent) == 1)

        fake_connector.leg.hang_up()

        msg = await ws.receive(timeout=1.0)
        assert msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED)
        await ws.close()


class TestHttpEndpoints:
    """Health, webhook, CORS."""

    @pytest.mark.asyncio
    async def test_health(self, client: TestClient) -> None:
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.text() == "ok"

    @pytest.mark.asyncio
    async def test_webhook_accepts_any_json(self, client: TestClient) -> None:
        """Test the webhook is a 200 sink for any JSON body."""
        for body in ({"type": "bot.status_change", "data": {}}, {"foo": 1}, [1, 2], "text"):
            resp = await client.post("/api/recall/webhook", json=body)
            assert resp.status == 200

    @pytest.mark.asyncio
    async def test_webhook_rejects_invalid_json(self, client: TestClient) -> None:
        resp = await client.post(
            "/api/recall/webhook",
            data=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_cors_allowed_origin(self, client: TestClient) -> None:
        """Test allowed origins are echoed, others are not."""
        resp = await client.get("/health", headers={"Origin": "https://app.example.com"})
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example.com"
        assert "Access-Control-Allow-Credentials" not in resp.headers

        resp = await client.get("/health", headers={"Origin": "https://evil.example.com"})
        assert "Access-Control-Allow-Origin" not in resp.headers

    @pytest.mark.asyncio
    async def test_cors_preflight(self, client: TestClient) -> None:
        resp = await client.options(
            "/api/bots",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert resp.status == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example.com"
        assert resp.headers["Access-Control-Allow-Headers"] == "content-type"
        assert "Access-Control-Allow-Credentials" not in resp.headers

    @pytest.mark.asyncio
    async def test_requests_are_access_logged(
        self, client: TestClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test ordinary HTTP requests produce an access log line."""
        caplog.set_level(logging.INFO, logger="aiohttp.access")

        resp = await client.get("/health")
        assert resp.status == 200

        await eventually(
            lambda: any("/health" in record.getMessage() for record in caplog.records
                        if record.name == "aiohttp.access")
        )


class TestBotEndpoints:
    """Bot control routes."""

    @pytest.mark.asyncio
    async def test_unconfigured(self, client: TestClient) -> None:
        """Test bot routes answer 503 without an API key."""
        resp = await client.get("/api/bots")
        assert resp.status == 503

    @pytest.mark.asyncio
    async def test_create_list_end(
        self,
        app_config: Config,
        agent: AgentConfig,
        recall_config: RecallConfig,
        recall_calls: List[Dict],
    ) -> None:
        """Test the routes relay to the bot API with public URLs."""
        cfg = replace(app_config, recall=recall_config)
        bot_client = RecallBotClient(recall_config.api_key, recall_config.api_base)
        app = create_app(cfg, agent=agent, connector=FakeConnector(), bot_client=bot_client)

        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/api/bots", json={})
            assert resp.status == 400

            resp = await client.post("/api/bots", json={"meeting_url": "https://meet.google.com/abc"})
            assert resp.status == 201
            created = await resp.json()
            assert created["bot_name"] == "Tester"
            assert created["webhook_url"] == "https://bridge.example.com/api/recall/webhook"
            assert created["real_time_media"] == {
                "websocket_audio_destination_url": "wss://bridge.example.com/ws/agent",
            }

            resp = await client.get("/api/bots")
            assert resp.status == 200
            assert await resp.json() == {"results": [{"id": "bot-1"}]}

            resp = await client.post("/api/bots/gone-1/end")
            assert resp.status == 204

        methods = [(c["method"], c["path"]) for c in recall_calls if c["authorization"].startswith("Bearer")]
        assert methods[-2:] == [
            ("POST", "/api/v1/bot/gone-1/leave_call/"),
            ("DELETE", "/api/v1/bot/gone-1/"),
        ]
