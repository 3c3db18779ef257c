"""Agent persona loader from YAML files.

Supports persona prompts that are too long or too multi-line to keep in
environment variables. Values from the file override the environment.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import structlog
import yaml

from agent_bridge.ai.openai_realtime import build_instructions
from agent_bridge.config import AIConfig


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AgentConfig:
    """Agent persona used to build the session configuration message.

    Fields:
        persona_prompt: Persona instructions (required)
        agent_name: Display name appended to the instructions
        voice: Upstream voice identifier
        metadata: Optional metadata for documentation purposes
    """

    persona_prompt: str
    agent_name: str
    voice: str
    metadata: Optional[Dict] = None

    @property
    def instructions(self) -> str:
        """Instructions sent upstream: persona prompt followed by the agent name."""
        return build_instructions(self.persona_prompt, self.agent_name)

    @classmethod
    def from_ai_config(cls, ai: AIConfig) -> "AgentConfig":
        """Build the persona from environment-derived settings."""
        return cls(
            persona_prompt=ai.persona_prompt,
            agent_name=ai.agent_name,
            voice=ai.voice,
        )

    @classmethod
    def from_yaml(cls, file_path: str | Path, defaults: AIConfig) -> "AgentConfig":
        """Load agent persona from YAML file.

        Args:
            file_path: Path to YAML configuration file
            defaults: Settings used for keys missing from the file

        Returns:
            AgentConfig instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If YAML file is invalid
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Agent config file not found: {file_path}")

        logger.info("Loading agent config from YAML", file_path=str(file_path))

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML file: {e}")

        if not isinstance(data, dict):
            raise ValueError("YAML file must contain a dictionary")

        persona_prompt = data.get("instructions")
        if not persona_prompt:
            raise ValueError("'instructions' field is required in YAML config")
        if not isinstance(persona_prompt, str):
            raise ValueError("'instructions' field must be a string")

        agent_name = data.get("agent_name") or defaults.agent_name
        voice = data.get("voice") or defaults.voice
        metadata = data.get("metadata")

        agent = cls(
            persona_prompt=persona_prompt.strip(),
            agent_name=str(agent_name).strip(),
            voice=str(voice).strip(),
            metadata=metadata,
        )

        logger.info(
            "Agent config loaded successfully",
            instructions_length=len(agent.persona_prompt),
            agent_name=agent.agent_name,
            voice=agent.voice,
        )
        return agent

    @classmethod
    def load(cls, ai: AIConfig) -> "AgentConfig":
        """Load persona from the configured YAML file, or from settings if none.

        FAIL-FAST: if a file is configured but cannot be loaded, the error
        propagates. No fallback to defaults when a file is specified.

        Args:
            ai: AI settings

        Returns:
            AgentConfig instance
        """
        if not ai.agent_prompt_file:
            return cls.from_ai_config(ai)

        yaml_path = Path(ai.agent_prompt_file)
        if not yaml_path.is_absolute():
            yaml_path = Path.cwd() / yaml_path

        return cls.from_yaml(yaml_path, defaults=ai)

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging/debugging.

        Returns:
            Dictionary representation
        """
        prompt = self.persona_prompt
        return {
            "persona_prompt": prompt[:100] + "..." if len(prompt) > 100 else prompt,
            "agent_name": self.agent_name,
            "voice": self.voice,
            "metadata": self.metadata,
            "instructions_length": len(self.instructions),
        }
