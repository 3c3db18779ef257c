"""Session bridge: one inbound leg paired with one upstream leg.

State machine:

    CONNECTING --(upstream open, session.update sent)--> ACTIVE
    CONNECTING | ACTIVE --(close/error on either leg)--> CLOSING --> CLOSED

Data flow:
- Inbound -> Outbound: text frames pass through, binary frames are wrapped in
  an ``input_audio_buffer.append`` envelope and sent as text. Frames received
  while CONNECTING are queued and flushed after ``session.update``.
- Outbound -> Inbound: every frame passes through with its framing.
"""

import asyncio
import uuid
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple

import structlog

from agent_bridge.ai.openai_realtime import build_audio_append, build_session_update
from agent_bridge.ai.realtime_base import Frame, Leg, UpstreamConnector
from agent_bridge.bridge.liveness import LivenessMonitor
from agent_bridge.core.agent_config import AgentConfig
from agent_bridge.core.constants import BridgeConstants
from agent_bridge.core.errors import ForwardFailed, UpstreamConnectFailed


class SessionState(Enum):
    """Bridge session lifecycle states."""

    CONNECTING = auto()
    ACTIVE = auto()
    CLOSING = auto()
    CLOSED = auto()


class SessionBridge:
    """Owns one paired inbound/outbound connection for the lifetime of a call."""

    def __init__(
        self,
        inbound: Leg,
        connector: UpstreamConnector,
        agent: AgentConfig,
        ping_interval_s: float = BridgeConstants.PING_INTERVAL_S,
    ) -> None:
        """Initialize session.

        Args:
            inbound: Client-facing leg, already accepted
            connector: Factory for the upstream leg
            agent: Persona used for the session configuration message
            ping_interval_s: Liveness ping interval for both legs
        """
        self.session_id = uuid.uuid4().hex[:12]

        self._inbound = inbound
        self._outbound: Optional[Leg] = None
        self._connector = connector
        self._agent = agent
        self._ping_interval_s = ping_interval_s

        self._state = SessionState.CONNECTING
        self._pending_outbound: List[Frame] = []
        self._outbound_lock = asyncio.Lock()
        self._config_sent = False

        self._inbound_monitor: Optional[LivenessMonitor] = None
        self._outbound_monitor: Optional[LivenessMonitor] = None

        # Stats
        self._frames_up = 0
        self._audio_frames_up = 0
        self._frames_down = 0
        self._close_trigger: Optional[str] = None

        self._logger = structlog.get_logger(__name__).bind(session_id=self.session_id)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pending_outbound(self) -> Tuple[Frame, ...]:
        """Frames waiting for the upstream leg to open."""
        return tuple(self._pending_outbound)

    @property
    def close_trigger(self) -> Optional[str]:
        """Name of the leg whose close started teardown."""
        return self._close_trigger

    @property
    def liveness_running(self) -> bool:
        """True while any liveness monitor of this session is alive."""
        return any(
            monitor is not None and monitor.running
            for monitor in (self._inbound_monitor, self._outbound_monitor)
        )

    async def start(self) -> None:
        """Run the session until teardown completes.

        Returns once both legs are closed and liveness timers cancelled.
        Errors never propagate out of the session.
        """
        self._logger.info("Session starting", route=BridgeConstants.BRIDGE_ROUTE)

        inbound_task = asyncio.create_task(
            self._inbound_pump(),
            name=f"bridge-{self.session_id}-inbound"
        )
        connect_task = asyncio.create_task(
            self._connector.connect(),
            name=f"bridge-{self.session_id}-connect"
        )

        await asyncio.wait({inbound_task, connect_task}, return_when=asyncio.FIRST_COMPLETED)

        if not connect_task.done():
            # Inbound closed while the upstream handshake was in progress
            connect_task.cancel()
        await asyncio.gather(connect_task, return_exceptions=True)

        outbound = self._connect_result(connect_task)
        if outbound is None:
            await self._teardown("outbound", code=BridgeConstants.CLOSE_INTERNAL_ERROR)
            await self._finish({inbound_task})
            return

        self._outbound = outbound
        if self._state is not SessionState.CONNECTING:
            # Teardown already ran without an outbound leg to close
            await self._close_quietly(outbound, BridgeConstants.CLOSE_NORMAL)
            await self._finish({inbound_task})
            return

        try:
            await self._activate()
        except ForwardFailed as e:
            self._logger.warning("Session configuration failed", error=str(e))
            await self._teardown(e.leg)
            await self._finish({inbound_task})
            return

        outbound_task = asyncio.create_task(
            self._outbound_pump(),
            name=f"bridge-{self.session_id}-outbound"
        )

        await asyncio.wait({inbound_task, outbound_task}, return_when=asyncio.FIRST_COMPLETED)
        await self._finish({inbound_task, outbound_task})

    def stats(self) -> Dict:
        """Get session statistics.

        Returns:
            Statistics dictionary
        """
        return {
            "session_id": self.session_id,
            "state": self._state.name,
            "frames_up": self._frames_up,
            "audio_frames_up": self._audio_frames_up,
            "frames_down": self._frames_down,
            "pending": len(self._pending_outbound),
            "config_sent": self._config_sent,
            "close_trigger": self._close_trigger,
        }

    def _connect_result(self, connect_task: "asyncio.Task[Leg]") -> Optional[Leg]:
        if connect_task.cancelled():
            return None

        exc = connect_task.exception()
        if exc is None:
            return connect_task.result()

        if isinstance(exc, UpstreamConnectFailed):
            self._logger.error("Upstream connect failed", error=str(exc))
        else:
            self._logger.error("Upstream connect error", error=str(exc), exc_info=exc)
        return None

    async def _activate(self) -> None:
        """Send session.update, go ACTIVE, flush pending frames, start liveness.

        Holds the outbound lock throughout so frames arriving during the
        flush queue up behind it.

        Raises:
            ForwardFailed: If the outbound leg closed meanwhile
        """
        if self._outbound is None:
            raise ForwardFailed("outbound")

        async with self._outbound_lock:
            if self._config_sent:
                return

            session_update = build_session_update(
                voice=self._agent.voice,
                instructions=self._agent.instructions,
            )
            await self._send(self._outbound, Frame(session_update))
            self._config_sent = True
            if self._state is not SessionState.CONNECTING:
                # Torn down while the configuration was in flight
                return
            self._state = SessionState.ACTIVE

            pending, self._pending_outbound = self._pending_outbound, []
            for frame in pending:
                await self._send(self._outbound, frame)

            if self._state is not SessionState.ACTIVE:
                # A leg closed during the flush; teardown already ran
                return

        self._logger.info(
            "Session active",
            voice=self._agent.voice,
            flushed=len(pending)
        )

        self._inbound_monitor = LivenessMonitor(self._inbound, self._ping_interval_s, self._logger)
        self._outbound_monitor = LivenessMonitor(self._outbound, self._ping_interval_s, self._logger)
        self._inbound_monitor.start()
        self._outbound_monitor.start()

    def _translate_inbound(self, frame: Frame) -> Frame:
        if not frame.is_binary:
            return frame

        self._audio_frames_up += 1
        return Frame(build_audio_append(bytes(frame.data)))

    async def _inbound_pump(self) -> None:
        """Inbound -> Outbound."""
        trigger = "inbound"
        try:
            async for frame in self._inbound.frames():
                self._frames_up += 1
                payload = self._translate_inbound(frame)

                if self._state is SessionState.CONNECTING:
                    self._pending_outbound.append(payload)
                    continue
                if self._state is not SessionState.ACTIVE:
                    break

                async with self._outbound_lock:
                    await self._send(self._outbound, payload)

                if self._frames_up % BridgeConstants.LOG_INTERVAL_FRAMES == 0:
                    self._logger.debug(
                        "Inbound frames forwarded",
                        count=self._frames_up,
                        audio=self._audio_frames_up
                    )

        except ForwardFailed as e:
            self._logger.warning("Forward to upstream failed", error=str(e))
            trigger = e.leg
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error("Inbound pump error", error=str(e), exc_info=True)
        finally:
            await self._teardown(trigger)

    async def _outbound_pump(self) -> None:
        """Outbound -> Inbound, framing preserved."""
        trigger = "outbound"
        try:
            if self._outbound is None:
                raise ForwardFailed("outbound")

            async for frame in self._outbound.frames():
                self._frames_down += 1
                await self._send(self._inbound, frame)

                if self._frames_down % BridgeConstants.LOG_INTERVAL_FRAMES == 0:
                    self._logger.debug("Upstream frames forwarded", count=self._frames_down)

        except ForwardFailed as e:
            self._logger.warning("Forward to relay failed", error=str(e))
            trigger = e.leg
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error("Outbound pump error", error=str(e), exc_info=True)
        finally:
            await self._teardown(trigger)

    async def _send(self, leg: Optional[Leg], frame: Frame) -> None:
        if leg is None or leg.closed:
            raise ForwardFailed(leg.name if leg else "outbound")
        try:
            await leg.send(frame)
        except Exception as e:
            raise ForwardFailed(leg.name, e) from e

    async def _teardown(self, trigger: str, code: int = BridgeConstants.CLOSE_NORMAL) -> None:
        """Close both legs and cancel timers, exactly once.

        The peer of the triggering leg is always closed. The triggering leg
        itself is closed only if it is still open, e.g. after a send error
        that left the socket up.

        Args:
            trigger: Name of the leg that closed or failed
            code: Close code sent to the peer
        """
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return

        self._state = SessionState.CLOSING
        self._close_trigger = trigger
        self._logger.info("Session closing", trigger=trigger)

        if trigger == self._inbound.name:
            failed, peer = self._inbound, self._outbound
        else:
            failed, peer = self._outbound, self._inbound

        if peer is not None:
            await self._close_quietly(peer, code)
        if failed is not None and not failed.closed:
            await self._close_quietly(failed, BridgeConstants.CLOSE_INTERNAL_ERROR)

        for monitor in (self._inbound_monitor, self._outbound_monitor):
            if monitor is not None:
                monitor.cancel()

        dropped = len(self._pending_outbound)
        self._pending_outbound.clear()

        self._state = SessionState.CLOSED
        self._logger.info("Session closed", dropped_pending=dropped, **self.stats())

    async def _close_quietly(self, leg: Leg, code: int) -> None:
        # Peer may already be gone
        try:
            await leg.close(code=code)
        except Exception as e:
            self._logger.debug("Peer close failed", leg=leg.name, error=str(e))

    async def _finish(self, tasks: set) -> None:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
