from __future__ import annotations

import itertools
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from sniper_sim.config import SimConfig
from sniper_sim.core.events import EventBus
from sniper_sim.core.models import Position, Trade
from sniper_sim.paper_trading.ledger import PortfolioLedger
from sniper_sim.utils.time import Clock, utc_ts


@dataclass
class SimulationContext:
    """
    All mutable simulation state, passed explicitly instead of held globally.

    Independent contexts can run side by side (one per test, one per run).
    """
    config: SimConfig
    ledger: PortfolioLedger
    events: EventBus
    clock: Clock = utc_ts
    rng: random.Random = field(default_factory=random.Random)
    positions: dict[str, Position] = field(default_factory=dict)
    closed_positions: list[Position] = field(default_factory=list)
    trades: Deque[Trade] = field(default_factory=deque)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    @classmethod
    def create(
        cls,
        config: Optional[SimConfig] = None,
        clock: Optional[Clock] = None,
        seed: Optional[int] = None,
        events: Optional[EventBus] = None,
    ) -> "SimulationContext":
        config = (config or SimConfig()).ensure_valid()
        seed = config.seed if seed is None else seed
        return cls(
            config=config,
            ledger=PortfolioLedger(config.portfolio.starting_balance),
            events=events or EventBus(),
            clock=clock or utc_ts,
            rng=random.Random(seed),
            trades=deque(maxlen=config.portfolio.trade_history_limit),
        )

    def now(self) -> float:
        return self.clock()

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):06d}"

    def active_positions(self) -> list[Position]:
        return [p for p in self.positions.values() if p.is_active]

    def active_for(self, token_address: str) -> Optional[Position]:
        for position in self.positions.values():
            if position.is_active and position.token_address == token_address:
                return position
        return None

    def portfolio_snapshot(self):
        return self.ledger.snapshot(self.positions.values())
