"""
Position Manager - open, monitor and exit simulated positions.

Lifecycle: ACTIVE -> CLOSED (terminal).

Each tick refreshes the price (stream, quote or price model), recomputes
ROI and runs the exit check:

1. Take-profit ladder, highest threshold first. Partial tiers sell a
   fraction of the remaining stake; the fired tier and every lower tier
   are then consumed so the same ROI doesn't keep selling.
2. Stop loss.
3. Time-based exit.

A separate timer armed at open closes the position once its max hold
time passes, even if nothing ticks it.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Optional

from sniper_sim.constants import ROI_EPSILON
from sniper_sim.core.context import SimulationContext
from sniper_sim.core.events import (
    PortfolioUpdated,
    PositionClosed,
    PositionError,
    PositionOpened,
    TokenSkipped,
    TradeExecuted,
    snapshot,
)
from sniper_sim.core.market_data import PriceStream, PriceUpdate
from sniper_sim.core.models import (
    Position,
    PositionStatus,
    TakeProfitTier,
    TokenSignal,
    Trade,
    TradeDecision,
    TradeType,
)
from sniper_sim.core.price_model import PriceSimulationModel
from sniper_sim.core.price_resolver import PriceResolver
from sniper_sim.exceptions import InsufficientBalanceException, PositionStateException
from sniper_sim.utils.time import fmt_duration

logger = logging.getLogger(__name__)

TIMEOUT_GUARD_REASON = "max hold time reached (timeout guard)"


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class PositionManager:
    """Owns every Position and settles them into the ledger."""

    def __init__(
        self,
        ctx: SimulationContext,
        price_model: PriceSimulationModel,
        resolver: PriceResolver,
        stream: Optional[PriceStream] = None,
    ):
        self.ctx = ctx
        self.price_model = price_model
        self.resolver = resolver
        self.stream = stream

        self._closed: dict[str, Position] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._stream_prices: dict[str, PriceUpdate] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, position_id: str) -> Optional[Position]:
        return self.ctx.positions.get(position_id) or self._closed.get(position_id)

    def active(self) -> list[Position]:
        return self.ctx.active_positions()

    @property
    def open_count(self) -> int:
        return len(self.ctx.positions)

    def has_timer(self, position_id: str) -> bool:
        return position_id in self._timers

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    async def open(self, decision: TradeDecision, signal: TokenSignal) -> Optional[Position]:
        """
        Open a position for an actionable decision.

        Refuses (TokenSkipped event, returns None) when the balance can't
        cover the decision's size. Never clamps the size itself.
        """
        if not decision.action.is_actionable:
            raise ValueError(f"Cannot open a position for a {decision.action.value} decision")

        size = decision.position_size
        if not self.ctx.ledger.can_afford(size):
            return self._refuse(signal, decision, size)

        strategy = decision.strategy
        price, source = await self.resolver.resolve(signal, strategy.family)

        try:
            self.ctx.ledger.reserve(size)
        except InsufficientBalanceException:
            # Balance changed while the price was being resolved
            return self._refuse(signal, decision, size)

        now = self.ctx.now()
        max_hold = strategy.time_exit.max_hold_sec if strategy.time_exit else strategy.max_hold_sec
        position = Position(
            id=self.ctx.next_id("pos"),
            token_address=signal.address,
            symbol=signal.symbol,
            strategy=strategy,
            entry_time=now,
            entry_price=price,
            current_price=price,
            invested_amount=size,
            initial_invested=size,
            token_amount=size / price,
            price_source=source,
            risk_level=decision.risk_level,
            exit_ladder=strategy.take_profits,
            stop_loss=strategy.stop_loss,
            time_exit=strategy.time_exit,
            max_hold_sec=max_hold,
            price_history=deque(maxlen=self.ctx.config.monitor.price_history_size),
            peak_price=price,
        )
        position.apply_price(price, now)
        self.ctx.positions[position.id] = position

        trade = self._record_trade(position, TradeType.BUY, size, position.token_amount, decision.reason)

        self._arm_timeout(position)
        if self.stream is not None:
            self.stream.subscribe(position.token_address, self._on_stream_update)

        logger.info(
            f"📄 BUY {position.symbol} | {decision.action.value} | "
            f"Size: {size:.4f} | Price: {price:.10f} ({source.value}) | "
            f"Balance: {self.ctx.ledger.current_balance:.4f}"
        )

        events = self.ctx.events
        events.publish(PositionOpened(position=snapshot(position), decision=decision, timestamp=now))
        events.publish(TradeExecuted(trade=trade))
        self._publish_portfolio()
        return position

    def _refuse(self, signal: TokenSignal, decision: TradeDecision, size: float) -> None:
        reason = (
            f"insufficient balance: need {size:.6f}, "
            f"have {self.ctx.ledger.current_balance:.6f}"
        )
        logger.warning(f"SKIP {signal.symbol}: {reason}")
        self.ctx.events.publish(
            TokenSkipped(signal=signal, reason=reason, timestamp=self.ctx.now(), decision=decision)
        )
        return None

    # ------------------------------------------------------------------
    # Timers / stream
    # ------------------------------------------------------------------

    def _arm_timeout(self, position: Position) -> None:
        loop = _running_loop()
        if loop is None:
            # No loop: the periodic enforce_timeouts() sweep covers it
            return
        self._timers[position.id] = loop.call_later(
            position.max_hold_sec, self._on_timeout, position.id
        )

    def _disarm_timeout(self, position_id: str) -> None:
        handle = self._timers.pop(position_id, None)
        if handle is not None:
            handle.cancel()

    def _on_timeout(self, position_id: str) -> None:
        self._timers.pop(position_id, None)
        position = self.ctx.positions.get(position_id)
        if position is not None and position.is_active:
            logger.info(f"⏰ Timeout guard fired for {position.symbol}")
            self.close(position_id, TIMEOUT_GUARD_REASON)

    def _on_stream_update(self, update: PriceUpdate) -> None:
        pending = self._stream_prices.get(update.token_address)
        if pending is None or update.timestamp >= pending.timestamp:
            self._stream_prices[update.token_address] = update

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    async def tick(self, position_id: str) -> None:
        """Refresh one position's price, then run its exit check."""
        position = self.ctx.positions.get(position_id)
        if position is None or not position.is_active:
            return

        sample = await self._refresh_price(position)

        # Closed by the timeout guard or another path while we awaited
        if not position.is_active:
            return

        if sample is not None:
            price, sample_ts = sample
            if sample_ts < position.last_price_at:
                logger.debug(
                    f"Discarding stale price for {position.symbol} "
                    f"({sample_ts:.3f} < {position.last_price_at:.3f})"
                )
            else:
                position.apply_price(price, sample_ts)

        self.check_exit(position)

    async def _refresh_price(self, position: Position) -> Optional[tuple[float, float]]:
        started = self.ctx.now()

        update = self._stream_prices.pop(position.token_address, None)
        if update is not None and update.timestamp > position.last_price_at:
            return update.price_usd, update.timestamp

        if (
            position.price_source.is_live
            and self.resolver.provider is not None
            and self.ctx.config.monitor.poll_quotes
        ):
            price = await self.resolver.fetch_quote_price(position.token_address)
            if price is None:
                # No update this tick; exit check runs on the last known price
                return None
            return price, started

        return self.price_model.next_price(position, started, self.ctx.rng), started

    async def _safe_tick(self, position_id: str) -> None:
        try:
            await self.tick(position_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # One position's fault must not stop the others; it stays ACTIVE
            position = self.ctx.positions.get(position_id)
            address = position.token_address if position else ""
            logger.error(f"Tick failed for {position_id}: {e}", exc_info=True)
            self.ctx.events.publish(
                PositionError(
                    position_id=position_id,
                    token_address=address,
                    error=str(e) or type(e).__name__,
                    timestamp=self.ctx.now(),
                )
            )

    def dispatch_ticks(self) -> list[asyncio.Task]:
        """Fire-and-forget one tick per active position not already in flight."""
        tasks = []
        for position in self.active():
            if position.id in self._inflight:
                continue
            task = asyncio.create_task(self._safe_tick(position.id))
            self._inflight[position.id] = task
            task.add_done_callback(lambda _t, pid=position.id: self._inflight.pop(pid, None))
            tasks.append(task)
        return tasks

    async def tick_all(self) -> None:
        """Batch tick: dispatch every active position and wait for all of them."""
        tasks = self.dispatch_ticks()
        if tasks:
            await asyncio.gather(*tasks)
        self._publish_portfolio()

    def enforce_timeouts(self, now: Optional[float] = None) -> list[Position]:
        """Sweep for positions past their max hold time (independent of ticking)."""
        now = self.ctx.now() if now is None else now
        closed = []
        for position in self.active():
            if now - position.entry_time >= position.max_hold_sec:
                result = self.close(position.id, TIMEOUT_GUARD_REASON)
                if result is not None:
                    closed.append(result)
        return closed

    # ------------------------------------------------------------------
    # Exit rules
    # ------------------------------------------------------------------

    def check_exit(self, position: Position) -> Optional[str]:
        """Apply the first exit rule that fires. Returns its reason, if any."""
        if not position.is_active:
            return None
        roi = position.roi_percent

        for tier in position.exit_ladder:
            if roi + ROI_EPSILON < tier.roi_threshold:
                continue
            if tier.roi_threshold in position.consumed_tiers:
                # Highest qualifying tier already taken; lower ones are too
                break
            if tier.is_full_exit:
                self.close(position.id, tier.label)
            else:
                self.partial_exit(position, tier)
            return tier.label

        if roi <= position.stop_loss.roi_threshold + ROI_EPSILON:
            self.close(position.id, position.stop_loss.label)
            return position.stop_loss.label

        if position.time_exit is not None:
            held = self.ctx.now() - position.entry_time
            if held >= position.time_exit.max_hold_sec:
                reason = f"max hold time reached: {position.time_exit.label}"
                self.close(position.id, reason)
                return reason

        return None

    def partial_exit(self, position: Position, tier: TakeProfitTier) -> Trade:
        fraction = tier.sell_fraction / 100.0
        roi = position.roi_percent

        sold_invested = position.invested_amount * fraction
        exit_value = sold_invested * (1 + roi / 100.0)
        tokens_sold = position.token_amount * fraction

        pnl = self.ctx.ledger.settle(sold_invested, exit_value)
        position.invested_amount -= sold_invested
        position.token_amount -= tokens_sold
        position.realized_pnl += pnl
        position.consumed_tiers.update(
            t.roi_threshold for t in position.exit_ladder if t.roi_threshold <= tier.roi_threshold
        )

        trade = self._record_trade(
            position, TradeType.PARTIAL_SELL, exit_value, tokens_sold, tier.label, roi=roi, pnl=pnl
        )
        logger.info(
            f"💰 PARTIAL SELL {position.symbol} {tier.sell_fraction:.0f}% @ ROI {roi:+.1f}% | "
            f"PnL: {pnl:+.6f} | Remaining: {position.invested_amount:.6f} | {tier.label}"
        )
        self.ctx.events.publish(TradeExecuted(trade=trade))
        self._publish_portfolio()
        return trade

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close(self, position_id: str, reason: str) -> Optional[Position]:
        """
        The only transition into CLOSED. Idempotent: closing an already
        closed position returns None and touches nothing.
        """
        if position_id in self._closed:
            return None
        position = self.ctx.positions.get(position_id)
        if position is None:
            raise PositionStateException("Unknown position", position_id=position_id)

        now = self.ctx.now()
        roi = position.roi_percent
        invested = position.invested_amount
        exit_value = invested * (1 + roi / 100.0)

        pnl = self.ctx.ledger.settle(invested, exit_value)
        position.realized_pnl += pnl
        position.status = PositionStatus.CLOSED
        position.closed_at = now
        position.exit_reason = reason
        position.final_roi = roi

        self._disarm_timeout(position_id)
        if self.stream is not None:
            self.stream.unsubscribe(position.token_address)
        self._stream_prices.pop(position.token_address, None)

        del self.ctx.positions[position_id]
        self._closed[position_id] = position
        self.ctx.closed_positions.append(position)

        trade = self._record_trade(
            position, TradeType.SELL, exit_value, position.token_amount, reason, roi=roi, pnl=pnl
        )

        logger.info(
            f"🚀 SELL {position.symbol} @ ROI {roi:+.1f}% | Value: {exit_value:.6f} | "
            f"PnL: {position.realized_pnl:+.6f} | "
            f"Held: {fmt_duration(now - position.entry_time)} | {reason}"
        )

        events = self.ctx.events
        events.publish(TradeExecuted(trade=trade))
        events.publish(
            PositionClosed(
                position=snapshot(position),
                reason=reason,
                roi_percent=roi,
                realized_pnl=position.realized_pnl,
                timestamp=now,
            )
        )
        self._publish_portfolio()
        return position

    def close_all(self, reason: str) -> list[Position]:
        closed = []
        for position in self.active():
            result = self.close(position.id, reason)
            if result is not None:
                closed.append(result)
        return closed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_trade(
        self,
        position: Position,
        trade_type: TradeType,
        amount: float,
        token_amount: float,
        reason: str,
        roi: float = 0.0,
        pnl: float = 0.0,
    ) -> Trade:
        trade = Trade(
            id=self.ctx.next_id("trade"),
            position_id=position.id,
            token_address=position.token_address,
            symbol=position.symbol,
            type=trade_type,
            amount=amount,
            token_amount=token_amount,
            price=position.current_price,
            timestamp=self.ctx.now(),
            reason=reason,
            roi_percent=roi,
            pnl=pnl,
        )
        self.ctx.trades.append(trade)
        return trade

    def _publish_portfolio(self) -> None:
        self.ctx.events.publish(
            PortfolioUpdated(snapshot=self.ctx.portfolio_snapshot(), timestamp=self.ctx.now())
        )
