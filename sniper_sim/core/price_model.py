"""
Price Simulation Model

Moves the price of positions that have no live feed. Volatility is a
function of time since entry and the position's risk level:

    vol = base * early_multiplier(minutes) * risk_multiplier(risk)
    bias = max(0, 1 - minutes / bias_window) * bias_strength
    step = (u - 0.5 + bias) * 2 * vol            u ~ U(0, 1)

On top of the walk, rare jump events multiply the price (pump or dump).
The result never drops below `price_floor_fraction` of the entry price.
"""
from __future__ import annotations

import random
from typing import Optional, Protocol

from sniper_sim.config import PriceModelSettings
from sniper_sim.constants import (
    FALLBACK_BASE_PRICE,
    FALLBACK_ESTABLISHED_DEX_FACTOR,
    FALLBACK_LIQUIDITY_FACTORS,
    FALLBACK_MIN_PRICE,
    FALLBACK_PUMP_FACTOR,
    FALLBACK_RANDOM_RANGE,
    MINUTE,
)
from sniper_sim.core.models import Position, StrategyFamily, TokenSignal


class PriceSimulationModel(Protocol):
    def next_price(self, position: Position, now: float, rng: random.Random) -> float:
        ...


class RandomWalkPriceModel:
    """Biased random walk with decaying early volatility and jump events."""

    def __init__(self, settings: Optional[PriceModelSettings] = None):
        self.settings = settings or PriceModelSettings()

    def volatility(self, position: Position, now: float) -> float:
        s = self.settings
        minutes = max(0.0, now - position.entry_time) / MINUTE

        vol = s.base_volatility
        for below_minutes, multiplier in s.early_volatility:
            if minutes < below_minutes:
                vol *= multiplier
                break

        return vol * s.risk_volatility.get(position.risk_level.value, 1.0)

    def bias(self, position: Position, now: float) -> float:
        s = self.settings
        if s.bias_window_minutes <= 0:
            return 0.0
        minutes = max(0.0, now - position.entry_time) / MINUTE
        return max(0.0, 1.0 - minutes / s.bias_window_minutes) * s.bias_strength

    def next_price(self, position: Position, now: float, rng: random.Random) -> float:
        s = self.settings
        vol = self.volatility(position, now)
        step = (rng.random() - 0.5 + self.bias(position, now)) * 2 * vol
        price = position.current_price * (1 + step)

        # Jump events
        roll = rng.random()
        if roll < s.pump_probability:
            price *= rng.uniform(*s.pump_range)
        elif roll < s.pump_probability + s.dump_probability:
            price *= rng.uniform(*s.dump_range)

        return max(price, position.entry_price * s.price_floor_fraction)


def synthesize_fallback_price(signal: TokenSignal, family: StrategyFamily, rng: random.Random) -> float:
    """
    Plausible entry price when neither the signal nor a quote has one.

    Scales a tiny base price by liquidity magnitude and source family,
    then jitters it. Never returns less than FALLBACK_MIN_PRICE.
    """
    price = FALLBACK_BASE_PRICE

    for floor, factor in FALLBACK_LIQUIDITY_FACTORS:
        if signal.liquidity_usd > floor:
            price *= factor
            break

    if family in (StrategyFamily.RAYDIUM, StrategyFamily.ORCA):
        price *= FALLBACK_ESTABLISHED_DEX_FACTOR
    elif family is StrategyFamily.PUMP_FUN:
        price *= FALLBACK_PUMP_FACTOR

    price *= rng.uniform(*FALLBACK_RANDOM_RANGE)
    return max(price, FALLBACK_MIN_PRICE)
