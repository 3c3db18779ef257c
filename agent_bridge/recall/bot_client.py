"""Recall.ai bot lifecycle REST client.

Create, list and end meeting bots. Every request is tried with an ordered
list of credential strategies: when the API rejects one as unauthorized the
next is tried, and the first response that is not a 401 wins.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import aiohttp
import structlog


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CredentialStrategy:
    """One way of presenting the API key."""

    name: str
    scheme: str

    def headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"{self.scheme} {api_key}"}


DEFAULT_STRATEGIES = (
    CredentialStrategy(name="token", scheme="Token"),
    CredentialStrategy(name="bearer", scheme="Bearer"),
)


@dataclass(frozen=True)
class BotResponse:
    """Upstream response relayed to the caller."""

    status: int
    body: Any = None
    strategy: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class RecallBotClient:
    """Thin async wrapper around the bot endpoints of the Recall API."""

    def __init__(
        self,
        api_key: str,
        api_base: str,
        strategies: Sequence[CredentialStrategy] = DEFAULT_STRATEGIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize client.

        Args:
            api_key: Recall API key
            api_base: API root, e.g. https://us-east-1.recall.ai/api/v1
            strategies: Credential strategies in the order they are tried
            session: Optional shared HTTP session (created lazily otherwise)

        Raises:
            ValueError: If no API key or no strategy is given
        """
        if not api_key:
            raise ValueError("Recall API key not configured")
        if not strategies:
            raise ValueError("At least one credential strategy is required")

        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._strategies = tuple(strategies)
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def list_bots(self) -> BotResponse:
        logger.info("Listing bots")
        return await self._request("GET", "bot/")

    async def create_bot(
        self,
        meeting_url: str,
        bot_name: str,
        webhook_url: Optional[str],
        media_relay_url: str,
    ) -> BotResponse:
        """Ask a bot to join a meeting and stream its audio to the bridge.

        Args:
            meeting_url: Meeting to join
            bot_name: Display name of the bot in the meeting
            webhook_url: Callback for lifecycle events
            media_relay_url: Bridge WebSocket URL the bot streams to

        Returns:
            Upstream response
        """
        payload: Dict[str, Any] = {
            "meeting_url": meeting_url,
            "bot_name": bot_name,
            "real_time_media": {
                "websocket_audio_destination_url": media_relay_url,
            },
        }
        if webhook_url:
            payload["webhook_url"] = webhook_url

        logger.info("Creating bot", bot_name=bot_name, media_relay_url=media_relay_url)
        return await self._request("POST", "bot/", json=payload)

    async def end_bot(self, bot_id: str) -> BotResponse:
        """Remove a bot from its call.

        Tries the leave-call action first and falls back to deleting the bot
        when the API does not know the action for it (404).

        Args:
            bot_id: Bot identifier

        Returns:
            Response of the last action attempted
        """
        response = await self._request("POST", f"bot/{bot_id}/leave_call/")
        if response.status != 404:
            return response

        logger.info("Leave call not found, deleting bot", bot_id=bot_id)
        return await self._request("DELETE", f"bot/{bot_id}/")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        resource: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> BotResponse:
        """Send a request, walking the credential strategies on 401."""
        url = f"{self._api_base}/{resource}"
        session = self._get_session()
        response = BotResponse(status=401)

        for strategy in self._strategies:
            try:
                async with session.request(
                    method,
                    url,
                    json=json,
                    headers=strategy.headers(self._api_key),
                ) as resp:
                    body = await self._read_body(resp)
                    response = BotResponse(status=resp.status, body=body, strategy=strategy.name)
            except aiohttp.ClientError as e:
                logger.error("Recall request failed", method=method, url=url, error=str(e))
                return BotResponse(status=502, body={"error": str(e)}, strategy=strategy.name)

            if response.status != 401:
                break

            logger.info(
                "Credential scheme rejected",
                method=method,
                url=url,
                strategy=strategy.name
            )

        if response.status >= 400:
            logger.warning(
                "Recall command failed",
                method=method,
                url=url,
                status=response.status,
                strategy=response.strategy
            )
        return response

    @staticmethod
    async def _read_body(resp: aiohttp.ClientResponse) -> Any:
        text = await resp.text()
        if not text:
            return None
        try:
            return await resp.json(content_type=None)
        except ValueError:
            return text
