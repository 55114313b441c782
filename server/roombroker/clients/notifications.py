"""Operator notifications via a Slack incoming webhook."""

import logging
from typing import Any, Optional, Protocol

import httpx

from ..core.config import Settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Fire-and-forget alert sink. ``send`` must not raise."""

    async def send(self, text: str, **options: Any) -> bool:
        ...


class SlackNotifier:
    """
    Posts messages to a Slack incoming webhook.

    Disabled notifiers report success without sending. Delivery problems
    are logged and reported as False.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        enabled: bool = True,
        username: str = "RoomBroker Bot",
        icon: str = ":hotel:",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.enabled = enabled
        self.username = username
        self.icon = icon
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "SlackNotifier":
        return cls(
            webhook_url=settings.slack_webhook_url,
            enabled=settings.slack_enabled,
            username=settings.slack_username,
            client=client,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, text: str, **options: Any) -> bool:
        """
        Send ``text`` to the webhook.

        Args:
            text: Message body (Slack mrkdwn)
            **options: ``username``, ``icon`` and ``channel`` overrides

        Returns:
            True if sent (or skipped because disabled), False otherwise
        """
        if not self.enabled:
            logger.debug("Slack disabled - skipping message")
            return True

        if not self.webhook_url:
            logger.warning("Slack webhook URL not configured")
            return False

        payload = {
            "text": text,
            "username": options.get("username") or self.username,
            "icon_emoji": options.get("icon") or self.icon,
        }
        if options.get("channel"):
            payload["channel"] = options["channel"]

        try:
            client = await self._get_client()
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Slack notification failed: {e}", extra={"error": str(e)})
            return False

        return True
