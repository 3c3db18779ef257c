"""Per-leg liveness monitor.

Sends a transport-level ping at a fixed interval so intermediaries do not
drop an idle connection. Pong responses are not verified: a peer that keeps
its socket open but stops answering pings is not disconnected.
"""

import asyncio
from typing import Optional

import structlog

from agent_bridge.ai.realtime_base import Leg
from agent_bridge.core.constants import BridgeConstants


class LivenessMonitor:
    """Periodic ping task for one leg. Owned by exactly one session."""

    def __init__(
        self,
        leg: Leg,
        interval_s: float = BridgeConstants.PING_INTERVAL_S,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize monitor.

        Args:
            leg: Leg to ping
            interval_s: Seconds between pings
            logger: Session-bound logger

        Raises:
            ValueError: If interval_s is <= 0
        """
        if interval_s <= 0:
            raise ValueError(f"Ping interval must be positive, got {interval_s}")

        self._leg = leg
        self._interval_s = interval_s
        self._task: Optional[asyncio.Task[None]] = None
        self._pings_sent = 0
        self._logger = (logger or structlog.get_logger(__name__)).bind(leg=leg.name)

    @property
    def running(self) -> bool:
        """True while the ping task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def pings_sent(self) -> int:
        return self._pings_sent

    def start(self) -> None:
        """Start the ping task. Starting a running monitor is a no-op."""
        if self._task is not None:
            return

        self._task = asyncio.create_task(
            self._run(),
            name=f"liveness-{self._leg.name}"
        )

    def cancel(self) -> None:
        """Stop the ping task. Idempotent, also safe before start()."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval_s)
                try:
                    await self._leg.ping()
                    self._pings_sent += 1
                except Exception as e:
                    # Leg is probably already closed; teardown cancels us
                    self._logger.debug("Ping failed", error=str(e))
        except asyncio.CancelledError:
            self._logger.debug("Liveness monitor stopped", pings_sent=self._pings_sent)
            raise
