"""Bridge protocol constants."""


class BridgeConstants:
    """Route, timing and wire constants shared by the bridge components."""

    # Only upgrade path routed to the session bridge
    BRIDGE_ROUTE = "/ws/agent"

    # Liveness
    PING_INTERVAL_S = 25.0  # Below typical 30-60s idle timeouts on proxies

    # Upstream protocol negotiation
    OPENAI_BETA_HEADER = "OpenAI-Beta"
    OPENAI_BETA_VALUE = "realtime=v1"

    # Upstream event types
    SESSION_UPDATE = "session.update"
    AUDIO_APPEND = "input_audio_buffer.append"

    # WebSocket close codes
    CLOSE_NORMAL = 1000
    CLOSE_INTERNAL_ERROR = 1011

    # Logging intervals
    LOG_INTERVAL_FRAMES = 500

    # One line per HTTP request: method, path, status, size, duration
    ACCESS_LOG_FORMAT = "%r %s %b - %Tf"
