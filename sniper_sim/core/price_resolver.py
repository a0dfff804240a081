"""Entry price resolution: signal price, then a live quote, then a synthesized fallback."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional

from sniper_sim.core.market_data import MarketDataProvider
from sniper_sim.core.models import PriceSource, StrategyFamily, TokenSignal
from sniper_sim.core.price_model import synthesize_fallback_price

logger = logging.getLogger(__name__)


class PriceResolver:
    def __init__(
        self,
        provider: Optional[MarketDataProvider],
        rng: random.Random,
        quote_timeout_sec: float = 3.0,
    ):
        self.provider = provider
        self.rng = rng
        self.quote_timeout_sec = quote_timeout_sec

    async def fetch_quote_price(self, token_address: str) -> Optional[float]:
        """Quote price or None. Failures and timeouts count as a miss."""
        if self.provider is None:
            return None
        try:
            quote = await asyncio.wait_for(
                self.provider.get_quote(token_address), timeout=self.quote_timeout_sec
            )
        except asyncio.TimeoutError:
            logger.warning(f"Quote timed out for {token_address[:8]} after {self.quote_timeout_sec}s")
            return None
        except Exception as e:
            # Collaborator failures never abort the caller
            logger.warning(f"Quote failed for {token_address[:8]}: {e}")
            return None

        if quote is None or quote.price_usd <= 0:
            return None
        return quote.price_usd

    async def resolve(self, signal: TokenSignal, family: StrategyFamily) -> tuple[float, PriceSource]:
        price = signal.live_price
        if price is not None:
            return price, PriceSource.SIGNAL

        price = await self.fetch_quote_price(signal.address)
        if price is not None:
            return price, PriceSource.QUOTE

        price = synthesize_fallback_price(signal, family, self.rng)
        logger.debug(f"Synthesized fallback price {price:.10f} for {signal.symbol}")
        return price, PriceSource.SYNTHETIC
