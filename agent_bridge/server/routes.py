"""HTTP surface of the bridge: health, webhook, bot control and the bridge route."""

from typing import Optional

import structlog
from aiohttp import web

from agent_bridge.ai.openai_realtime import OpenAIRealtimeConnector
from agent_bridge.ai.realtime_base import UpstreamConnector
from agent_bridge.bridge.inbound import InboundLeg
from agent_bridge.bridge.session import SessionBridge
from agent_bridge.config import Config
from agent_bridge.core.agent_config import AgentConfig
from agent_bridge.core.constants import BridgeConstants
from agent_bridge.recall.bot_client import BotResponse, RecallBotClient
from agent_bridge.server.acceptor import upgrade_guard
from agent_bridge.server.cors import cors_middleware


logger = structlog.get_logger(__name__)

CONFIG_KEY = web.AppKey("config", Config)
AGENT_KEY = web.AppKey("agent", AgentConfig)
CONNECTOR_KEY = web.AppKey("connector", UpstreamConnector)
BOT_CLIENT_KEY = web.AppKey("bot_client", Optional[RecallBotClient])

WEBHOOK_ROUTE = "/api/recall/webhook"


async def health_handler(request: web.Request) -> web.Response:
    """Liveness probe: returns 200 if process is up."""
    return web.Response(text="ok", status=200)


async def webhook_handler(request: web.Request) -> web.Response:
    """Log a Recall lifecycle event. No other processing."""
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("Webhook body is not JSON", error=str(e))
        return web.Response(status=400)

    if isinstance(body, dict):
        event = body.get("type") or body.get("event") or sorted(body.keys())
    else:
        event = type(body).__name__

    logger.info("Recall webhook event", event=event)
    return web.Response(status=200)


async def bridge_handler(request: web.Request) -> web.StreamResponse:
    """Upgrade the relay connection and run one bridge session on it."""
    ws = web.WebSocketResponse(autoping=True, heartbeat=None)
    if not ws.can_prepare(request).ok:
        raise web.HTTPBadRequest(text="WebSocket upgrade required")
    await ws.prepare(request)

    app = request.app
    bridge = SessionBridge(
        inbound=InboundLeg(ws),
        connector=app[CONNECTOR_KEY],
        agent=app[AGENT_KEY],
        ping_interval_s=app[CONFIG_KEY].server.ping_interval_s,
    )

    logger.info(
        "Relay connected",
        session_id=bridge.session_id,
        remote=request.remote
    )

    try:
        await bridge.start()
    except Exception as e:
        logger.error("Bridge session crashed", session_id=bridge.session_id, error=str(e), exc_info=True)
    finally:
        if not ws.closed:
            await ws.close()

    return ws


def _bot_client(request: web.Request) -> RecallBotClient:
    client = request.app[BOT_CLIENT_KEY]
    if client is None:
        raise web.HTTPServiceUnavailable(text="Bot control is not configured")
    return client


def _public_base_url(request: web.Request) -> str:
    configured = request.app[CONFIG_KEY].server.public_base_url
    if configured:
        return configured

    # Use forwarded headers if behind proxy
    host = request.headers.get("x-forwarded-host") or request.host
    proto = request.headers.get("x-forwarded-proto") or request.scheme
    return f"{proto}://{host}"


def _ws_url(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):]
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):]
    return base_url


def _relay(response: BotResponse) -> web.Response:
    if response.body is None:
        return web.Response(status=response.status)
    return web.json_response(response.body, status=response.status)


async def list_bots_handler(request: web.Request) -> web.Response:
    response = await _bot_client(request).list_bots()
    return _relay(response)


async def create_bot_handler(request: web.Request) -> web.Response:
    """Send a bot into a meeting, streaming to this bridge.

    Expected JSON body:
    - meeting_url: Meeting to join (required)
    - bot_name: Display name (defaults to the agent name)
    """
    client = _bot_client(request)

    try:
        body = await request.json()
    except ValueError:
        return web.json_response({"error": "Body must be JSON"}, status=400)

    meeting_url = body.get("meeting_url") if isinstance(body, dict) else None
    if not meeting_url:
        return web.json_response({"error": "meeting_url is required"}, status=400)

    base_url = _public_base_url(request)
    response = await client.create_bot(
        meeting_url=meeting_url,
        bot_name=body.get("bot_name") or request.app[AGENT_KEY].agent_name,
        webhook_url=f"{base_url}{WEBHOOK_ROUTE}",
        media_relay_url=f"{_ws_url(base_url)}{BridgeConstants.BRIDGE_ROUTE}",
    )
    return _relay(response)


async def end_bot_handler(request: web.Request) -> web.Response:
    bot_id = request.match_info["bot_id"]
    response = await _bot_client(request).end_bot(bot_id)
    return _relay(response)


async def _close_bot_client(app: web.Application) -> None:
    client = app[BOT_CLIENT_KEY]
    if client is not None:
        await client.close()


def create_app(
    cfg: Config,
    agent: Optional[AgentConfig] = None,
    connector: Optional[UpstreamConnector] = None,
    bot_client: Optional[RecallBotClient] = None,
) -> web.Application:
    """Create and configure the aiohttp application.

    Args:
        cfg: Process configuration
        agent: Persona (loaded from cfg when omitted)
        connector: Upstream connector (OpenAI Realtime when omitted)
        bot_client: Bot REST client (built from cfg.recall when omitted)

    Returns:
        Configured application
    """
    if agent is None:
        agent = AgentConfig.load(cfg.ai)
    if connector is None:
        connector = OpenAIRealtimeConnector(cfg.ai)
    if bot_client is None and cfg.recall.enabled:
        bot_client = RecallBotClient(cfg.recall.api_key, cfg.recall.api_base)

    app = web.Application(
        middlewares=[upgrade_guard, cors_middleware(cfg.server.allowed_origins)]
    )
    app[CONFIG_KEY] = cfg
    app[AGENT_KEY] = agent
    app[CONNECTOR_KEY] = connector
    app[BOT_CLIENT_KEY] = bot_client

    app.router.add_get("/health", health_handler)
    app.router.add_post(WEBHOOK_ROUTE, webhook_handler)
    app.router.add_get(BridgeConstants.BRIDGE_ROUTE, bridge_handler)
    app.router.add_get("/api/bots", list_bots_handler)
    app.router.add_post("/api/bots", create_bot_handler)
    app.router.add_post("/api/bots/{bot_id}/end", end_bot_handler)

    app.on_cleanup.append(_close_bot_client)

    logger.info(
        "Application created",
        bridge_route=BridgeConstants.BRIDGE_ROUTE,
        bot_control=bot_client is not None,
        agent=agent.to_dict()
    )
    return app
