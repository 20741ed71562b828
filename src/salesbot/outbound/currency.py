"""HBAR to USD rate for display."""

from __future__ import annotations

import httpx
import structlog

from salesbot.cache import TtlCache
from salesbot.config import settings

logger = structlog.get_logger()

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"
RATE_KEY = "hbar_usd"


class HbarRateService:
    """Cached HBAR/USD quote; falls back to the last known value, then to a default."""

    def __init__(
        self,
        cache: TtlCache[float] | None = None,
        default_rate: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._cache = cache or TtlCache(settings.currency_cache_seconds)
        self._default = default_rate if default_rate is not None else settings.default_hbar_usd_rate
        self._transport = transport

    def get_rate(self) -> float:
        cached = self._cache.get(RATE_KEY)
        if cached is not None:
            return cached
        try:
            rate = self._fetch()
        except Exception as exc:
            logger.warning("HBAR rate fetch failed", error=str(exc))
            return self._cache.peek(RATE_KEY) or self._default
        self._cache.set(RATE_KEY, rate)
        return rate

    def _fetch(self) -> float:
        with httpx.Client(timeout=10.0, transport=self._transport) as client:
            response = client.get(COINGECKO_URL, params={"ids": "hedera-hashgraph", "vs_currencies": "usd"})
            response.raise_for_status()
        rate = response.json()["hedera-hashgraph"]["usd"]
        return float(rate)
