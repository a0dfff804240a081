from __future__ import annotations

from typing import Optional

import pytest

from sniper_sim.config import SimConfig
from sniper_sim.core.context import SimulationContext
from sniper_sim.core.engine import SimulationEngine
from sniper_sim.core.models import TokenSignal
from sniper_sim.core.position_manager import PositionManager
from sniper_sim.core.price_resolver import PriceResolver
from sniper_sim.core.strategy_catalog import StrategyCatalog
from sniper_sim.tests.helpers import TOKEN_A, FakeClock, StaticPriceModel


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return StrategyCatalog()


@pytest.fixture
def make_signal(clock):
    """Pump.fun signal, two minutes old, $50k liquidity, score 95 unless overridden."""

    def _make(**overrides) -> TokenSignal:
        fields = dict(
            address=TOKEN_A,
            symbol="TEST",
            created_at=clock.now - 120,
            liquidity_usd=50_000.0,
            security_score=95,
            source_tag="pump.fun",
        )
        fields.update(overrides)
        return TokenSignal(**fields)

    return _make


@pytest.fixture
def make_context(clock):
    def _make(config: Optional[SimConfig] = None, seed: int = 42) -> SimulationContext:
        return SimulationContext.create(config or SimConfig(), clock=clock, seed=seed)

    return _make


@pytest.fixture
def ctx(make_context):
    return make_context()


@pytest.fixture
def make_manager():
    def _make(ctx, price_model=None, provider=None, stream=None) -> PositionManager:
        resolver = PriceResolver(provider, ctx.rng, ctx.config.monitor.quote_timeout_sec)
        return PositionManager(ctx, price_model or StaticPriceModel(), resolver, stream=stream)

    return _make


@pytest.fixture
def make_engine():
    def _make(ctx, price_model=None, provider=None, stream=None) -> SimulationEngine:
        return SimulationEngine(
            ctx, provider=provider, stream=stream, price_model=price_model or StaticPriceModel()
        )

    return _make
