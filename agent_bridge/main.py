"""Main application entry point for the meeting agent bridge."""

import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
from aiohttp import web

from agent_bridge import __version__
from agent_bridge.config import Config, config
from agent_bridge.core.constants import BridgeConstants
from agent_bridge.server.routes import create_app


def setup_logging(cfg: Config = config) -> Optional[Path]:
    """Configure structured logging, optionally mirrored to a file.

    Args:
        cfg: Configuration providing level, format and log directory

    Returns:
        Path of the log file, if file logging is enabled
    """
    log_level = getattr(logging, cfg.system.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file: Optional[Path] = None
    if cfg.system.log_dir:
        log_dir = Path(cfg.system.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"agent-bridge_{timestamp}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=handlers,
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if cfg.system.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if log_file:
        structlog.get_logger(__name__).info("Logging to file", path=str(log_file))
    return log_file


async def run_server(cfg: Config) -> None:
    """Serve until SIGINT/SIGTERM.

    Args:
        cfg: Validated configuration
    """
    logger = structlog.get_logger(__name__)

    app = create_app(cfg)
    runner = web.AppRunner(app, access_log_format=BridgeConstants.ACCESS_LOG_FORMAT)
    await runner.setup()
    site = web.TCPSite(runner, cfg.server.host, cfg.server.port)
    await site.start()

    logger.info(
        "Server up",
        host=cfg.server.host,
        port=cfg.server.port,
        bridge_route=BridgeConstants.BRIDGE_ROUTE,
        model=cfg.ai.model
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
        logger.info("Shutting down...")
    finally:
        # Open sessions are dropped with the process
        await runner.cleanup()


def cli() -> None:
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Meeting agent bridge: relays meeting audio to a realtime speech model"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--host", help="Bind address (overrides HOST)")
    parser.add_argument("--port", type=int, help="Bind port (overrides PORT)")

    args = parser.parse_args()

    cfg = config
    if args.host or args.port:
        from dataclasses import replace

        cfg = replace(
            cfg,
            server=replace(
                cfg.server,
                host=args.host or cfg.server.host,
                port=args.port or cfg.server.port,
            ),
        )

    # Setup logging BEFORE anything else
    setup_logging(cfg)
    logger = structlog.get_logger(__name__)

    try:
        cfg.validate()
    except ValueError as e:
        logger.error("Invalid configuration", error=str(e))
        sys.exit(1)

    logger.info("Starting agent bridge", version=__version__)

    try:
        asyncio.run(run_server(cfg))
    except KeyboardInterrupt:
        logger.info("Shutdown complete")
        sys.exit(0)
    except Exception as e:
        logger.error("Fatal error", error=str(e), exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
