from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import httpx

from sniper_sim.config import Settings
from sniper_sim.exceptions import MarketDataException
from sniper_sim.utils.retry import CircuitBreaker, async_retry


@dataclass(frozen=True)
class Quote:
    price_usd: float
    liquidity_usd: float = 0.0
    volume_24h: float = 0.0
    price_change_5m: float = 0.0
    price_change_1h: float = 0.0
    price_change_24h: float = 0.0
    pair_address: str = ""
    dex_id: str = ""
    fetched_at: float = 0.0


@dataclass(frozen=True)
class PriceUpdate:
    token_address: str
    price_usd: float
    timestamp: float


PriceCallback = Callable[[PriceUpdate], None]


class MarketDataProvider(Protocol):
    async def get_quote(self, token_address: str) -> Optional[Quote]:
        """Current quote, or None when the token is unknown to the provider."""
        ...


class PriceStream(Protocol):
    def subscribe(self, token_address: str, callback: PriceCallback) -> None:
        ...

    def unsubscribe(self, token_address: str) -> None:
        ...


class InMemoryPriceStream:
    """Push-based stream: producers call push(), subscribers get callbacks."""

    def __init__(self) -> None:
        self._subscribers: dict[str, PriceCallback] = {}
        self.logger = logging.getLogger("sniper_sim.price_stream")

    def subscribe(self, token_address: str, callback: PriceCallback) -> None:
        self._subscribers[token_address] = callback

    def unsubscribe(self, token_address: str) -> None:
        self._subscribers.pop(token_address, None)

    def push(self, update: PriceUpdate) -> None:
        if update.price_usd <= 0:
            self.logger.debug("Ignoring non-positive price for %s", update.token_address[:8])
            return
        callback = self._subscribers.get(update.token_address)
        if callback is not None:
            callback(update)


def _as_float(value: Any) -> float:
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0


def best_pair_quote(pairs: list[dict[str, Any]], fetched_at: float) -> Optional[Quote]:
    """Pick the deepest pair with a usable USD price."""
    best: Optional[Quote] = None
    for pair in pairs:
        price = _as_float(pair.get("priceUsd"))
        if price <= 0:
            continue
        liquidity = pair.get("liquidity") or {}
        volume = pair.get("volume") or {}
        change = pair.get("priceChange") or {}
        quote = Quote(
            price_usd=price,
            liquidity_usd=_as_float(liquidity.get("usd")),
            volume_24h=_as_float(volume.get("h24")),
            price_change_5m=_as_float(change.get("m5")),
            price_change_1h=_as_float(change.get("h1")),
            price_change_24h=_as_float(change.get("h24")),
            pair_address=str(pair.get("pairAddress") or ""),
            dex_id=str(pair.get("dexId") or ""),
            fetched_at=fetched_at,
        )
        if best is None or quote.liquidity_usd > best.liquidity_usd:
            best = quote
    return best


class DexScreenerMarketData:
    """MarketDataProvider backed by the public DexScreener pairs endpoint."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.settings = settings
        self.base_url = settings.DEXSCREENER_API_BASE.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=settings.API_TIMEOUT_SEC)
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=5, recovery_timeout=30.0, name="DexScreener"
        )
        self.logger = logging.getLogger("sniper_sim.dexscreener")

        retry = async_retry(
            max_attempts=max(1, settings.DEXSCREENER_MAX_RETRIES),
            delay=settings.DEXSCREENER_RETRY_BACKOFF_SEC,
            exceptions=(httpx.HTTPError, MarketDataException),
        )
        self._fetch_pairs = retry(self._get_pairs)

    async def close(self) -> None:
        await self.client.aclose()

    async def _get_pairs(self, token_address: str) -> list[dict[str, Any]]:
        url = f"{self.base_url}/latest/dex/tokens/{token_address}"
        response = await self.client.get(url)
        if response.status_code == 429:
            raise MarketDataException("DexScreener rate limited", token=token_address[:8])
        response.raise_for_status()
        payload = response.json()
        pairs = payload.get("pairs") if isinstance(payload, dict) else None
        return pairs or []

    async def get_quote(self, token_address: str) -> Optional[Quote]:
        if not self.breaker.can_execute():
            self.logger.debug("DexScreener circuit open, skipping quote for %s", token_address[:8])
            return None
        try:
            pairs = await self._fetch_pairs(token_address)
        except (httpx.HTTPError, MarketDataException, ValueError) as exc:
            self.breaker.record_failure()
            self.logger.warning("DexScreener quote failed for %s: %s", token_address[:8], exc)
            return None

        self.breaker.record_success()
        return best_pair_quote(pairs, fetched_at=time.time())
