"""Session bridge between the meeting relay and the speech model.

This module provides the bridging layer between the two legs of a call:
- SessionBridge: paired-connection state machine with protocol translation
- LivenessMonitor: per-leg periodic ping task
- InboundLeg: relay-facing leg over an aiohttp WebSocket
"""

__all__ = [
    "ForwardFailed",
    "InboundLeg",
    "LivenessMonitor",
    "SessionBridge",
    "SessionState",
    "UpstreamConnectFailed",
]

from agent_bridge.core.errors import ForwardFailed, UpstreamConnectFailed
from agent_bridge.bridge.inbound import InboundLeg
from agent_bridge.bridge.liveness import LivenessMonitor
from agent_bridge.bridge.session import SessionBridge, SessionState
