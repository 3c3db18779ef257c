"""Process-wide configuration loaded from environment variables.

Configuration is read once at import time and treated as read-only afterwards.
Validation happens at startup (see ``Config.validate``) so that importing
this module never fails: a malformed numeric variable falls back to its
default and is reported by ``validate()``.
"""

import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union


DEFAULT_PERSONA_PROMPT = (
    "You are Munffett, a concise, helpful investment co-analyst. "
    "Speak briefly and clearly."
)


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_number(
    name: str,
    raw: Optional[str],
    default: Union[int, float],
    cast: Callable[[str], Union[int, float]],
    problems: List[str],
) -> Union[int, float]:
    """Parse a numeric variable, recording a problem instead of raising."""
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        problems.append(f"{name} must be a number, got {raw!r}")
        return default


@dataclass(frozen=True)
class AIConfig:
    """Speech-to-speech service settings."""

    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-realtime-preview"
    realtime_url: str = "wss://api.openai.com/v1/realtime"
    voice: str = "verse"
    persona_prompt: str = DEFAULT_PERSONA_PROMPT
    agent_name: str = "Munffett"
    agent_prompt_file: Optional[str] = None


@dataclass(frozen=True)
class ServerConfig:
    """HTTP/WebSocket server settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    ping_interval_s: float = 25.0
    public_base_url: Optional[str] = None

    @property
    def allow_any_origin(self) -> bool:
        """True when every origin is allowed."""
        return "*" in self.allowed_origins


@dataclass(frozen=True)
class RecallConfig:
    """Meeting bot REST API settings."""

    api_key: Optional[str] = None
    api_base: str = "https://us-east-1.recall.ai/api/v1"

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class SystemConfig:
    """Logging settings."""

    log_level: str = "INFO"
    log_format: str = "console"
    log_dir: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """Top-level configuration."""

    ai: AIConfig = field(default_factory=AIConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    recall: RecallConfig = field(default_factory=RecallConfig)
    system: SystemConfig = field(default_factory=SystemConfig)
    problems: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "Config":
        """Build configuration from the current environment.

        Returns:
            Config instance with defaults for unset variables
        """
        env = os.environ
        problems: List[str] = []

        ai = AIConfig(
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            model=env.get("REALTIME_MODEL", AIConfig.model),
            realtime_url=env.get("OPENAI_REALTIME_URL", AIConfig.realtime_url),
            voice=env.get("VOICE", AIConfig.voice),
            persona_prompt=env.get("PERSONA_PROMPT", DEFAULT_PERSONA_PROMPT),
            agent_name=env.get("AGENT_NAME", AIConfig.agent_name),
            agent_prompt_file=env.get("AGENT_PROMPT_FILE") or None,
        )

        server = ServerConfig(
            host=env.get("HOST", ServerConfig.host),
            port=int(_parse_number("PORT", env.get("PORT"), ServerConfig.port, int, problems)),
            allowed_origins=_split_csv(env.get("ALLOWED_ORIGINS", "*")) or ["*"],
            ping_interval_s=float(_parse_number(
                "PING_INTERVAL_S",
                env.get("PING_INTERVAL_S"),
                ServerConfig.ping_interval_s,
                float,
                problems,
            )),
            public_base_url=(env.get("PUBLIC_BASE_URL") or "").rstrip("/") or None,
        )

        recall = RecallConfig(
            api_key=env.get("RECALL_API_KEY") or None,
            api_base=env.get("RECALL_API_BASE", RecallConfig.api_base).rstrip("/"),
        )

        system = SystemConfig(
            log_level=env.get("LOG_LEVEL", SystemConfig.log_level),
            log_format=env.get("LOG_FORMAT", SystemConfig.log_format),
            log_dir=env.get("LOG_DIR") or None,
        )

        return cls(
            ai=ai,
            server=server,
            recall=recall,
            system=system,
            problems=tuple(problems),
        )

    def validate(self) -> None:
        """Check values required to serve sessions.

        Raises:
            ValueError: If a required value is missing or invalid
        """
        if self.problems:
            raise ValueError("; ".join(self.problems))
        if not self.ai.openai_api_key:
            raise ValueError("Missing OPENAI_API_KEY env var")
        if self.server.ping_interval_s <= 0:
            raise ValueError(
                f"PING_INTERVAL_S must be positive, got {self.server.ping_interval_s}"
            )


config = Config.from_env()
