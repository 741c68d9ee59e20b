"""
Exchange-rate service — USDT → VES rate from the Binance P2P aggregator.

The rate is fetched with httpx and cached in-process for
EXCHANGE_RATE_TTL_SECONDS. Checkout always asks this service for the
rate; a rate sent by the client is never trusted.
"""
import logging
import time
from typing import Optional

import httpx

from config import settings
from domain.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

# (rate, fetched_at monotonic seconds)
_cache: Optional[tuple[float, float]] = None


def clear_cache() -> None:
    global _cache
    _cache = None


def parse_rate(payload, field: str) -> float:
    """
    Extract a positive rate from the provider payload.

    >>> parse_rate({"ask": "36.5", "bid": 36.1}, "ask")
    36.5
    """
    if not isinstance(payload, dict) or field not in payload:
        raise UpstreamServiceError(
            "Exchange rate unavailable: unexpected provider response.",
            details={"field": field},
        )
    try:
        rate = float(payload[field])
    except (TypeError, ValueError):
        raise UpstreamServiceError(
            "Exchange rate unavailable: rate is not a number.",
            details={"field": field},
        )
    if rate <= 0:
        raise UpstreamServiceError("Exchange rate unavailable: non-positive rate.")
    return rate


async def fetch_rate(client: Optional[httpx.AsyncClient] = None) -> float:
    """Fetch the current rate from the provider (no cache)."""
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.exchange_rate_timeout_seconds) as c:
                response = await c.get(settings.exchange_rate_url)
        else:
            response = await client.get(settings.exchange_rate_url)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Exchange rate fetch failed: {e}")
        raise UpstreamServiceError("Exchange rate unavailable. Please try again later.")
    except ValueError:
        logger.error("Exchange rate provider returned invalid JSON")
        raise UpstreamServiceError("Exchange rate unavailable. Please try again later.")

    return parse_rate(payload, settings.exchange_rate_field)


async def get_rate(client: Optional[httpx.AsyncClient] = None) -> float:
    """Current rate, served from cache while it is younger than the TTL."""
    global _cache
    now = time.monotonic()
    if _cache is not None and now - _cache[1] < settings.exchange_rate_ttl_seconds:
        return _cache[0]

    rate = await fetch_rate(client)
    _cache = (rate, now)
    logger.info(f"Exchange rate refreshed: {rate} VES/USDT")
    return rate
