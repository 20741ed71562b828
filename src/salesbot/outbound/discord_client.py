"""Discord REST helpers."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from salesbot.config import settings

logger = structlog.get_logger()


class DiscordClient:
    def __init__(
        self,
        token: str | None = None,
        api_base: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        if token is None and settings.discord_bot_token:
            token = settings.discord_bot_token.get_secret_value()
        self._token = token
        self._api_base = (api_base or settings.discord_api_base).rstrip("/")
        self._timeout = timeout_seconds or settings.delivery_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self._timeout,
            headers={"Authorization": f"Bot {self._token}"},
            transport=self._transport,
        )

    def send_channel_message(self, channel_id: str, payload: dict[str, Any]) -> dict[str, str | bool | None]:
        """Post a message to a channel."""
        if not self._token:
            return {"ok": False, "error": "discord_config_missing", "message_id": None}

        url = f"{self._api_base}/channels/{channel_id}/messages"
        try:
            with self._client() as client:
                response = client.post(url, json=payload)
            if response.status_code not in (200, 201):
                return {
                    "ok": False,
                    "error": f"discord_http_{response.status_code}",
                    "message_id": None,
                }
            data = response.json()
            return {"ok": True, "error": None, "message_id": str(data.get("id")) if data.get("id") else None}
        except Exception as exc:
            logger.warning("Discord send failed", channel_id=channel_id, error=str(exc))
            return {"ok": False, "error": str(exc), "message_id": None}

    def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> dict[str, str | bool | None]:
        if not self._token:
            return {"ok": False, "error": "discord_config_missing"}

        url = f"{self._api_base}/channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji)}/@me"
        try:
            with self._client() as client:
                response = client.put(url)
            if response.status_code not in (200, 204):
                return {"ok": False, "error": f"discord_http_{response.status_code}"}
            return {"ok": True, "error": None}
        except Exception as exc:
            logger.warning("Discord reaction failed", channel_id=channel_id, error=str(exc))
            return {"ok": False, "error": str(exc)}
