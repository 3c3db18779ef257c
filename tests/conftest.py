"""Shared test fixtures and configuration."""

from typing import AsyncGenerator, Dict, List

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from agent_bridge.config import AIConfig, Config, RecallConfig, ServerConfig
from agent_bridge.core.agent_config import AgentConfig
from tests.fake_legs import FakeConnector, FakeLeg


@pytest.fixture
def ai_config() -> AIConfig:
    """AI settings with a dummy key."""
    return AIConfig(
        openai_api_key="sk-test",
        model="gpt-4o-realtime-preview",
        voice="verse",
        persona_prompt="You are a test analyst.",
        agent_name="Tester",
    )


@pytest.fixture
def agent(ai_config: AIConfig) -> AgentConfig:
    """Persona built from the AI settings."""
    return AgentConfig.from_ai_config(ai_config)


@pytest.fixture
def app_config(ai_config: AIConfig) -> Config:
    """Configuration without bot control."""
    return Config(
        ai=ai_config,
        server=ServerConfig(
            allowed_origins=["https://app.example.com"],
            ping_interval_s=0.05,
            public_base_url="https://bridge.example.com",
        ),
    )


@pytest_asyncio.fixture
async def inbound() -> AsyncGenerator[FakeLeg, None]:
    """Relay-facing fake leg."""
    yield FakeLeg("inbound")


@pytest_asyncio.fixture
async def connector() -> AsyncGenerator[FakeConnector, None]:
    """Connector that opens only when the test calls open()."""
    yield FakeConnector()


@pytest.fixture
def recall_calls() -> List[Dict]:
    """Requests received by the fake Recall API."""
    return []


@pytest_asyncio.fixture
async def recall_api(recall_calls: List[Dict]) -> AsyncGenerator[TestServer, None]:
    """Fake Recall API that only accepts the Bearer scheme.

    - GET  /api/v1/bot/                     -> 200 list
    - POST /api/v1/bot/                     -> 201 with the payload echoed
    - POST /api/v1/bot/{id}/leave_call/     -> 200, or 404 for ids starting with "gone"
    - DELETE /api/v1/bot/{id}/              -> 204
    """

    @web.middleware
    async def record(request: web.Request, handler):
        body = await request.json() if request.can_read_body else None
        recall_calls.append({
            "method": request.method,
            "path": request.path,
            "authorization": request.headers.get("Authorization", ""),
            "json": body,
        })
        if not request.headers.get("Authorization", "").startswith("Bearer "):
            return web.json_response({"detail": "Invalid token."}, status=401)
        return await handler(request)

    async def list_bots(request: web.Request) -> web.Response:
        return web.json_response({"results": [{"id": "bot-1"}]})

    async def create_bot(request: web.Request) -> web.Response:
        payload = await request.json()
        return web.json_response({"id": "bot-2", **payload}, status=201)

    async def leave_call(request: web.Request) -> web.Response:
        if request.match_info["bot_id"].startswith("gone"):
            return web.json_response({"detail": "Not found."}, status=404)
        return web.json_response({"status": "leaving"})

    async def delete_bot(request: web.Request) -> web.Response:
        return web.Response(status=204)

    app = web.Application(middlewares=[record])
    app.router.add_get("/api/v1/bot/", list_bots)
    app.router.add_post("/api/v1/bot/", create_bot)
    app.router.add_post("/api/v1/bot/{bot_id}/leave_call/", leave_call)
    app.router.add_delete("/api/v1/bot/{bot_id}/", delete_bot)

    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def recall_config(recall_api: TestServer) -> RecallConfig:
    """Recall settings pointing at the fake API."""
    return RecallConfig(
        api_key="recall-key",
        api_base=str(recall_api.make_url("/api/v1")),
    )
