"""
Unit tests for the Position Manager

Tests core functionality:
1. Opening and balance refusal
2. Take-profit ladder, stop loss and time exits
3. Timeout guard (timer and sweep)
4. Price refresh order, stale samples and fault isolation
"""

import asyncio
from dataclasses import replace

import pytest

from sniper_sim.core.events import PositionClosed, PositionError, TokenSkipped
from sniper_sim.core.market_data import InMemoryPriceStream, PriceUpdate
from sniper_sim.core.models import (
    PositionStatus,
    PriceSource,
    StrategyFamily,
    TakeProfitTier,
    TimeExit,
    TradeAction,
    TradeType,
)
from sniper_sim.core.position_manager import TIMEOUT_GUARD_REASON
from sniper_sim.core.strategy_catalog import DEFAULT_STRATEGIES
from sniper_sim.exceptions import PositionStateException
from sniper_sim.tests.helpers import (
    TOKEN_A,
    TOKEN_B,
    ExplodingPriceModel,
    GatedProvider,
    ScriptedPriceModel,
    StubProvider,
    make_decision,
    run,
)

PUMP = DEFAULT_STRATEGIES[StrategyFamily.PUMP_FUN]


def _ladder(*tiers):
    return replace(PUMP, take_profits=tuple(TakeProfitTier(r, f, l) for r, f, l in tiers))


class TestOpen:
    """Opening positions"""

    def test_open_reserves_balance(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)
        position = run(manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001)))

        assert position.status is PositionStatus.ACTIVE
        assert position.entry_price == 0.001
        assert position.price_source is PriceSource.SIGNAL
        assert position.token_amount == pytest.approx(100.0)
        assert position.max_hold_sec == 1800
        assert ctx.ledger.current_balance == pytest.approx(9.9)
        assert ctx.ledger.total_invested == pytest.approx(0.1)
        assert [t.type for t in ctx.trades] == [TradeType.BUY]

    def test_oversized_open_refused(self, ctx, make_manager, make_signal):
        """Size above balance: refused with a skip event, balance untouched"""
        manager = make_manager(ctx)
        position = run(manager.open(make_decision(PUMP, 20.0), make_signal(price_usd=0.001)))

        assert position is None
        assert ctx.ledger.current_balance == 10.0
        assert ctx.positions == {}
        skipped = ctx.events.get_history(TokenSkipped)
        assert len(skipped) == 1
        assert skipped[0].reason.startswith("insufficient balance")

    def test_non_actionable_decision_rejected(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)
        with pytest.raises(ValueError):
            run(manager.open(make_decision(PUMP, action=TradeAction.WATCH), make_signal()))

    def test_quote_used_when_signal_has_no_price(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx, provider=StubProvider({TOKEN_A: 0.004}))
        position = run(manager.open(make_decision(PUMP), make_signal()))

        assert position.entry_price == 0.004
        assert position.price_source is PriceSource.QUOTE

    def test_synthetic_price_without_any_feed(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)
        position = run(manager.open(make_decision(PUMP), make_signal()))

        assert position.price_source is PriceSource.SYNTHETIC
        assert position.entry_price > 0


class TestTakeProfitLadder:
    """Partial and full exits"""

    def test_partial_exit_at_500_percent(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx, price_model=ScriptedPriceModel([0.006]))

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.status is PositionStatus.ACTIVE
        assert position.invested_amount == pytest.approx(0.02)
        assert position.realized_pnl == pytest.approx(0.4)
        assert position.token_amount == pytest.approx(20.0)
        assert ctx.ledger.total_realized == pytest.approx(0.4)
        assert ctx.ledger.current_balance == pytest.approx(10.38)
        assert ctx.trades[-1].type is TradeType.PARTIAL_SELL

    def test_same_roi_does_not_sell_again(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx, price_model=ScriptedPriceModel([0.006, 0.006, 0.006]))

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            for _ in range(3):
                await manager.tick(position.id)
            return position

        position = run(scenario())

        sells = [t for t in ctx.trades if t.type is TradeType.PARTIAL_SELL]
        assert len(sells) == 1
        assert position.invested_amount == pytest.approx(0.02)

    def test_highest_qualifying_tier_fires(self, ctx, make_manager, make_signal):
        """At 250% only the 200% tier sells; lower tiers are consumed with it"""
        strategy = _ladder((500, 80, "t500"), (200, 60, "t200"), (100, 40, "t100"))
        manager = make_manager(ctx, price_model=ScriptedPriceModel([0.0035, 0.0035, 0.006]))

        async def scenario():
            position = await manager.open(make_decision(strategy, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            first = (position.invested_amount, set(position.consumed_tiers))
            await manager.tick(position.id)
            second = position.invested_amount
            await manager.tick(position.id)
            return position, first, second

        position, (after_first, consumed), after_second = run(scenario())

        assert after_first == pytest.approx(0.04)
        assert consumed == {200, 100}
        assert after_second == pytest.approx(0.04)
        assert position.invested_amount == pytest.approx(0.008)
        assert [t.reason for t in ctx.trades if t.type is TradeType.PARTIAL_SELL] == ["t200", "t500"]

    def test_full_exit_tier_closes(self, ctx, make_manager, make_signal):
        strategy = _ladder((100, 100, "doubled"))
        manager = make_manager(ctx, price_model=ScriptedPriceModel([0.002]))

        async def scenario():
            position = await manager.open(make_decision(strategy, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.status is PositionStatus.CLOSED
        assert position.exit_reason == "doubled"
        assert ctx.ledger.current_balance == pytest.approx(10.1)


class TestStopAndTimeExits:
    def test_stop_loss(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx, price_model=ScriptedPriceModel([0.0007]))

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.status is PositionStatus.CLOSED
        assert position.exit_reason == "Pump.fun stop loss"
        assert position.final_roi == pytest.approx(-30.0)
        assert ctx.ledger.current_balance == pytest.approx(9.97)

    def test_stop_loss_at_exact_threshold(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx, price_model=ScriptedPriceModel([0.00075]))

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            return position

        assert run(scenario()).exit_reason == "Pump.fun stop loss"

    def test_time_exit_on_tick(self, ctx, make_manager, make_signal, clock):
        manager = make_manager(ctx)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            clock.advance(1800)
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.status is PositionStatus.CLOSED
        assert position.exit_reason == "max hold time reached: Pump.fun max hold time"

    def test_timeout_sweep_without_price_updates(self, ctx, make_manager, make_signal, clock):
        """No tick ever arrives: the sweep closes at the last known price"""
        manager = make_manager(ctx)
        position = run(manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001)))
        position.apply_price(0.0012, clock.now)

        clock.advance(1799)
        assert manager.enforce_timeouts() == []

        clock.advance(1)
        closed = manager.enforce_timeouts()

        assert closed == [position]
        assert position.exit_reason == TIMEOUT_GUARD_REASON
        assert "max hold time reached" in position.exit_reason
        assert position.final_roi == pytest.approx(20.0)
        assert ctx.ledger.current_balance == pytest.approx(10.02)
        assert ctx.positions == {}

    def test_timer_fires_without_ticks(self, ctx, make_manager, make_signal):
        strategy = replace(PUMP, time_exit=TimeExit(0.05, "quick"))
        manager = make_manager(ctx)

        async def scenario():
            position = await manager.open(make_decision(strategy, 0.1), make_signal(price_usd=0.001))
            armed = manager.has_timer(position.id)
            await asyncio.sleep(0.2)
            return position, armed

        position, armed = run(scenario())

        assert armed
        assert position.status is PositionStatus.CLOSED
        assert position.exit_reason == TIMEOUT_GUARD_REASON
        assert not manager.has_timer(position.id)


class TestClose:
    def test_round_trip(self, ctx, make_manager, make_signal, clock):
        manager = make_manager(ctx)
        position = run(manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001)))
        position.apply_price(0.0012, clock.now)

        manager.close(position.id, "manual")

        assert position.realized_pnl == pytest.approx(0.02)
        assert ctx.ledger.current_balance == pytest.approx(10.02)
        assert ctx.ledger.total_invested == pytest.approx(0.0)
        closed = ctx.events.get_history(PositionClosed)
        assert closed[0].reason == "manual"
        assert closed[0].realized_pnl == pytest.approx(0.02)

    def test_close_is_idempotent(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)
        position = run(manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001)))

        assert manager.close(position.id, "first") is position
        balance = ctx.ledger.current_balance
        trades = len(ctx.trades)

        assert manager.close(position.id, "second") is None
        assert position.exit_reason == "first"
        assert ctx.ledger.current_balance == balance
        assert len(ctx.trades) == trades
        assert manager.get(position.id) is position

    def test_unknown_position_raises(self, ctx, make_manager):
        with pytest.raises(PositionStateException):
            make_manager(ctx).close("pos-999999", "manual")

    def test_close_disarms_timer(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            armed = manager.has_timer(position.id)
            manager.close(position.id, "manual")
            return position, armed

        position, armed = run(scenario())
        assert armed
        assert not manager.has_timer(position.id)

    def test_close_all(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)

        async def scenario():
            await manager.open(make_decision(PUMP, 0.1), make_signal(address=TOKEN_A, price_usd=0.001))
            await manager.open(make_decision(PUMP, 0.1), make_signal(address=TOKEN_B, price_usd=0.001))
            return manager.close_all("shutdown")

        closed = run(scenario())

        assert len(closed) == 2
        assert all(p.exit_reason == "shutdown" for p in closed)
        assert ctx.ledger.current_balance == pytest.approx(10.0)


class TestPriceRefresh:
    """Where each tick's price comes from"""

    def test_live_position_polls_quote(self, ctx, make_manager, make_signal):
        model = ScriptedPriceModel([0.5])
        provider = StubProvider({TOKEN_A: 0.0012})
        manager = make_manager(ctx, price_model=model, provider=provider)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.current_price == 0.0012
        assert provider.calls == [TOKEN_A]
        assert model.calls == 0

    def test_quote_failure_keeps_last_price(self, ctx, make_manager, make_signal):
        model = ScriptedPriceModel([0.5])
        provider = StubProvider(fail=True)
        manager = make_manager(ctx, price_model=model, provider=provider)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.status is PositionStatus.ACTIVE
        assert position.current_price == 0.001
        assert model.calls == 0
        assert ctx.events.get_history(PositionError) == []

    def test_synthetic_position_uses_model(self, ctx, make_manager, make_signal):
        model = ScriptedPriceModel()
        provider = StubProvider()
        manager = make_manager(ctx, price_model=model, provider=provider)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal())
            await manager.tick(position.id)
            return position

        position = run(scenario())

        assert position.price_source is PriceSource.SYNTHETIC
        assert provider.calls == [TOKEN_A]  # entry lookup only
        assert model.calls == 1

    def test_stream_update_applied(self, ctx, make_manager, make_signal, clock):
        stream = InMemoryPriceStream()
        model = ScriptedPriceModel([0.5])
        manager = make_manager(ctx, price_model=model, stream=stream)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            subscribed = TOKEN_A in stream._subscribers
            stream.push(PriceUpdate(TOKEN_A, 0.0012, clock.now + 1))
            await manager.tick(position.id)
            manager.close(position.id, "manual")
            return position, subscribed

        position, subscribed = run(scenario())

        assert subscribed
        assert position.final_roi == pytest.approx(20.0)
        assert position.last_price_at == clock.now + 1
        assert model.calls == 0
        assert TOKEN_A not in stream._subscribers

    def test_stale_sample_discarded(self, ctx, make_manager, make_signal, clock):
        """A quote that resolves after a newer price was applied is dropped"""
        provider = GatedProvider({TOKEN_A: 0.003})
        manager = make_manager(ctx, provider=provider)

        async def scenario():
            position = await manager.open(make_decision(PUMP, 0.1), make_signal(price_usd=0.001))
            task = asyncio.create_task(manager.tick(position.id))
            while not provider.calls:
                await asyncio.sleep(0)

            clock.advance(5)
            position.apply_price(0.0012, clock.now)
            provider.release()
            await task
            return position

        position = run(scenario())

        assert position.current_price == 0.0012
        assert position.last_price_at == clock.now
        assert position.invested_amount == pytest.approx(0.1)

    def test_failing_position_does_not_stop_others(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx, price_model=ExplodingPriceModel(TOKEN_A))

        async def scenario():
            bad = await manager.open(make_decision(PUMP, 0.1), make_signal(address=TOKEN_A, price_usd=0.001))
            good = await manager.open(make_decision(PUMP, 0.1), make_signal(address=TOKEN_B, price_usd=0.001))
            await manager.tick_all()
            return bad, good

        bad, good = run(scenario())

        errors = ctx.events.get_history(PositionError)
        assert len(errors) == 1
        assert errors[0].position_id == bad.id
        assert errors[0].token_address == TOKEN_A
        assert bad.status is PositionStatus.ACTIVE
        assert len(good.price_history) == 2
