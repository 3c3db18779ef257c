"""Recall.ai meeting bot control."""

__all__ = [
    "BotResponse",
    "CredentialStrategy",
    "RecallBotClient",
]

from agent_bridge.recall.bot_client import BotResponse, CredentialStrategy, RecallBotClient
