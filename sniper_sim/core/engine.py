"""
Simulation Engine

Single ingress for the discovery layer:

    engine.on_token_detected(signal)
        -> DecisionEngine.evaluate()
        -> PositionManager.open()     (BUY / PRIORITY_BUY)
        -> watch list                 (WATCH)
        -> TokenSkipped event         (SKIP and every refusal)

start() runs the batch tick loop and the timeout guard on the current
event loop; stop() cancels both and, by default, closes what is left.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Optional

from sniper_sim.core.context import SimulationContext
from sniper_sim.core.decision_engine import DecisionEngine
from sniper_sim.core.events import TokenSkipped, TokenWatched
from sniper_sim.core.market_data import MarketDataProvider, PriceStream
from sniper_sim.core.models import Position, TokenSignal, TradeAction, TradeDecision
from sniper_sim.core.performance_tracker import PerformanceTracker
from sniper_sim.core.position_manager import PositionManager
from sniper_sim.core.price_model import PriceSimulationModel, RandomWalkPriceModel
from sniper_sim.core.price_resolver import PriceResolver
from sniper_sim.core.strategy_catalog import StrategyCatalog
from sniper_sim.exceptions import SignalValidationException

logger = logging.getLogger(__name__)

STOP_REASON = "engine stopped"


@dataclass(frozen=True)
class WatchEntry:
    signal: TokenSignal
    decision: TradeDecision
    watched_since: float


class SimulationEngine:
    def __init__(
        self,
        ctx: SimulationContext,
        catalog: Optional[StrategyCatalog] = None,
        provider: Optional[MarketDataProvider] = None,
        stream: Optional[PriceStream] = None,
        price_model: Optional[PriceSimulationModel] = None,
    ):
        self.ctx = ctx
        config = ctx.config

        catalog = catalog or StrategyCatalog()
        if config.strategies:
            catalog = catalog.with_overrides(config.strategies)
        self.catalog = catalog

        self.decisions = DecisionEngine(catalog, config.sizing, clock=ctx.clock)
        self.resolver = PriceResolver(provider, ctx.rng, config.monitor.quote_timeout_sec)
        self.positions = PositionManager(
            ctx,
            price_model or RandomWalkPriceModel(config.price_model),
            self.resolver,
            stream=stream,
        )
        self.performance = PerformanceTracker(starting_value=ctx.ledger.starting_balance)
        self.performance.attach(ctx.events)

        self._watch: dict[str, WatchEntry] = {}
        self._opening: set[str] = set()
        self._running = False
        self._tasks: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    async def on_token_detected(self, signal: TokenSignal) -> Optional[TradeDecision]:
        """Evaluate a detected token and act on the decision. Never raises on bad input."""
        now = self.ctx.now()

        if not isinstance(signal, TokenSignal):
            return self._skip(None, f"invalid signal: expected TokenSignal, got {type(signal).__name__}")
        try:
            signal.validate()
        except SignalValidationException as e:
            logger.warning(f"Dropping invalid signal: {e}")
            return self._skip(signal, f"invalid signal: {e}")

        try:
            decision = self.decisions.evaluate(signal, now)
        except Exception as e:
            logger.error(f"Failed to evaluate {signal.symbol}: {e}", exc_info=True)
            return self._skip(signal, f"invalid signal: {e}")

        # Re-detection is always evaluated afresh
        self._watch.pop(signal.address, None)

        if decision.action is TradeAction.SKIP:
            return self._skip(signal, decision.reason, decision)

        if decision.action is TradeAction.WATCH:
            self._watch[signal.address] = WatchEntry(signal, decision, now)
            logger.info(f"👀 WATCH {signal.symbol}: urgency {decision.urgency.value}")
            self.ctx.events.publish(TokenWatched(signal=signal, decision=decision, timestamp=now))
            return decision

        return await self._open(signal, decision)

    async def _open(self, signal: TokenSignal, decision: TradeDecision) -> Optional[TradeDecision]:
        address = signal.address
        if address in self._opening or self.ctx.active_for(address) is not None:
            return self._skip(signal, f"already holding an active position in {address[:8]}", decision)

        # Opens still awaiting an entry price count against the limit
        limit = self.ctx.config.portfolio.max_open_positions
        if self.positions.open_count + len(self._opening) >= limit:
            return self._skip(signal, f"max open positions reached ({limit})", decision)

        # Clamp to what the balance can cover
        balance = self.ctx.ledger.current_balance
        size = min(decision.position_size, balance)
        minimum = self.ctx.config.sizing.min_position_size
        if size < minimum:
            return self._skip(
                signal,
                f"insufficient balance: {balance:.6f} below minimum position {minimum:.6f}",
                decision,
            )
        if size != decision.position_size:
            logger.debug(f"Clamped {signal.symbol} size {decision.position_size:.6f} -> {size:.6f}")
            decision = replace(decision, position_size=size)

        self._opening.add(address)
        try:
            await self.positions.open(decision, signal)
        finally:
            self._opening.discard(address)
        return decision

    def _skip(
        self,
        signal: Optional[TokenSignal],
        reason: str,
        decision: Optional[TradeDecision] = None,
    ) -> Optional[TradeDecision]:
        self.ctx.events.publish(
            TokenSkipped(signal=signal, reason=reason, timestamp=self.ctx.now(), decision=decision)
        )
        return decision

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._tick_loop(), name="sim-tick-loop"),
            asyncio.create_task(self._guard_loop(), name="sim-timeout-guard"),
        ]
        monitor = self.ctx.config.monitor
        logger.info(
            f"🎯 Simulation engine started (tick every {monitor.tick_interval_sec:.1f}s, "
            f"guard every {monitor.timeout_guard_interval_sec:.1f}s)"
        )

    async def stop(self, close_positions: bool = True) -> list[Position]:
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        closed = []
        if close_positions:
            closed = self.positions.close_all(STOP_REASON)
        logger.info(f"Simulation engine stopped ({len(closed)} positions closed)")
        return closed

    async def run_once(self) -> None:
        """One scheduler pass: batch tick then timeout sweep."""
        await self.positions.tick_all()
        self.positions.enforce_timeouts()

    async def _tick_loop(self) -> None:
        interval = self.ctx.config.monitor.tick_interval_sec
        while self._running:
            try:
                await self.positions.tick_all()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Tick loop error: {e}", exc_info=True)
                await asyncio.sleep(interval)

    async def _guard_loop(self) -> None:
        interval = self.ctx.config.monitor.timeout_guard_interval_sec
        while self._running:
            try:
                self.positions.enforce_timeouts()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Timeout guard error: {e}", exc_info=True)
                await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def watch_list(self) -> dict[str, WatchEntry]:
        return dict(self._watch)

    def snapshot(self):
        return self.ctx.portfolio_snapshot()

    def stats(self) -> dict:
        stats = self.performance.get_stats()
        stats["portfolio"] = self.snapshot().to_dict()
        stats["by_family"] = self.performance.stats_by_family()
        stats["watch_list"] = len(self._watch)
        stats["open_positions"] = self.positions.open_count
        return stats
