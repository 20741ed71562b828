"""HTTP helper shared by the feed adapters."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from salesbot.feeds.base import FeedError

logger = structlog.get_logger()

USER_AGENT = "SalesBot/1.0 (+nft sales notifier)"


def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15.0,
    transport: httpx.BaseTransport | None = None,
) -> Any:
    """GET a JSON document. Raises FeedError on transport, status, or decode errors."""
    request_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    try:
        with httpx.Client(timeout=timeout_seconds, headers=request_headers, transport=transport) as client:
            response = client.get(url, params=params)
    except httpx.RequestError as exc:
        raise FeedError(f"Request failed: {exc}") from exc

    if response.status_code >= 400:
        snippet = response.text[:200] if response.text else ""
        logger.warning("Feed HTTP error", url=url, status=response.status_code, body=snippet)
        raise FeedError(f"HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError as exc:
        raise FeedError(f"Invalid JSON: {exc}") from exc
