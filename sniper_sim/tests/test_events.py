"""Tests for the typed event bus."""

import pytest

from sniper_sim.core.events import (
    EventBus,
    PositionOpened,
    PositionError,
    TokenSkipped,
    TradeExecuted,
)
from sniper_sim.core.models import StrategyFamily
from sniper_sim.core.strategy_catalog import DEFAULT_STRATEGIES
from sniper_sim.tests.helpers import make_decision, run


def _skip(reason="nope"):
    return TokenSkipped(signal=None, reason=reason, timestamp=0.0)


class TestEventBus:
    def test_handler_receives_only_subscribed_types(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append, TokenSkipped)

        bus.publish(_skip())
        bus.publish(PositionError("pos-1", "addr", "boom", 0.0))

        assert len(received) == 1
        assert isinstance(received[0], TokenSkipped)

    def test_subscribe_all_by_default(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append)

        bus.publish(_skip())
        bus.publish(PositionError("pos-1", "addr", "boom", 0.0))

        assert len(received) == 2

    def test_non_event_type_rejected(self):
        with pytest.raises(TypeError):
            EventBus().subscribe(print, dict)

    def test_failing_handler_isolated(self):
        """One broken observer must not starve the next one"""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("observer bug")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        bus.publish(_skip())

        assert len(received) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append)
        bus.unsubscribe(received.append)
        bus.publish(_skip())
        assert received == []

    def test_history_and_counts(self):
        bus = EventBus(history_size=2)
        for reason in ("a", "b", "c"):
            bus.publish(_skip(reason))

        assert [e.reason for e in bus.get_history(TokenSkipped)] == ["b", "c"]
        assert bus.counts() == {"TokenSkipped": 2}


class TestEventPayloads:
    def test_opened_payload_is_a_snapshot(self, ctx, make_manager, make_signal, clock):
        """Mutating the live position doesn't rewrite published events"""
        manager = make_manager(ctx)
        strategy = DEFAULT_STRATEGIES[StrategyFamily.PUMP_FUN]
        position = run(manager.open(make_decision(strategy), make_signal(price_usd=0.001)))

        event = ctx.events.get_history(PositionOpened)[0]
        position.apply_price(0.005, clock.now + 1)

        assert event.position is not position
        assert event.position.current_price == 0.001
        assert event.decision.reason == "test decision"

    def test_trade_event_published_on_open(self, ctx, make_manager, make_signal):
        manager = make_manager(ctx)
        strategy = DEFAULT_STRATEGIES[StrategyFamily.PUMP_FUN]
        run(manager.open(make_decision(strategy, 0.2), make_signal(price_usd=0.001)))

        trades = ctx.events.get_history(TradeExecuted)
        assert len(trades) == 1
        assert trades[0].trade.amount == 0.2
