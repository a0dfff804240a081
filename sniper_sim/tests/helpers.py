"""Deterministic stand-ins for the clock, price model and market data."""
from __future__ import annotations

import asyncio
from typing import Optional

from sniper_sim.core.market_data import Quote
from sniper_sim.core.models import Priority, RiskLevel, TradeAction, TradeDecision

T0 = 1_700_000_000.0

TOKEN_A = "So1anaTestTokenAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
TOKEN_B = "So1anaTestTokenBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"
TOKEN_C = "So1anaTestTokenCCCCCCCCCCCCCCCCCCCCCCCCCCCCC"


class FakeClock:
    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class StaticPriceModel:
    """Price never moves."""

    def next_price(self, position, now, rng):
        return position.current_price


class ScriptedPriceModel:
    """Returns queued prices in order, then holds the last known price."""

    def __init__(self, prices=()):
        self.prices = list(prices)
        self.calls = 0

    def push(self, *prices):
        self.prices.extend(prices)

    def next_price(self, position, now, rng):
        self.calls += 1
        if self.prices:
            return self.prices.pop(0)
        return position.current_price


class ExplodingPriceModel:
    """Raises for one token, holds the price for the rest."""

    def __init__(self, bad_address: str):
        self.bad_address = bad_address

    def next_price(self, position, now, rng):
        if position.token_address == self.bad_address:
            raise RuntimeError("price feed corrupted")
        return position.current_price


class StubProvider:
    def __init__(self, prices: Optional[dict] = None, fail: bool = False, delay: float = 0.0):
        self.prices = dict(prices or {})
        self.fail = fail
        self.delay = delay
        self.calls: list[str] = []

    async def get_quote(self, token_address: str) -> Optional[Quote]:
        self.calls.append(token_address)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("provider down")
        price = self.prices.get(token_address)
        if price is None:
            return None
        return Quote(price_usd=price, liquidity_usd=50_000)


class GatedProvider(StubProvider):
    """Blocks every quote until release() is called."""

    def __init__(self, prices: Optional[dict] = None):
        super().__init__(prices)
        self.gate: Optional[asyncio.Event] = None

    async def get_quote(self, token_address: str) -> Optional[Quote]:
        if self.gate is None:
            self.gate = asyncio.Event()
        self.calls.append(token_address)
        await self.gate.wait()
        return Quote(price_usd=self.prices[token_address])

    def release(self) -> None:
        self.gate.set()


def make_decision(
    strategy,
    size: float = 0.1,
    action: TradeAction = TradeAction.BUY,
) -> TradeDecision:
    return TradeDecision(
        action=action,
        strategy=strategy,
        position_size=size,
        confidence=80,
        risk_level=RiskLevel.MEDIUM,
        urgency=Priority.HIGH,
        expected_hold_sec=600.0,
        reason="test decision",
    )


def run(coro):
    return asyncio.run(coro)
