"""
Performance Tracker

Aggregates closed positions into win-rate / profit statistics.

Tracks:
- Win / loss counts and win rate
- Profit factor (gross profit / gross loss)
- Peak portfolio value and max drawdown
- Average realized ROI and hold time
- Breakdown per strategy family and per exit reason

Fed by the event bus (PositionClosed, PortfolioUpdated).
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List

from sniper_sim.core.events import EventBus, PortfolioUpdated, PositionClosed
from sniper_sim.core.models import Position

logger = logging.getLogger(__name__)


@dataclass
class ClosedTradeMetrics:
    """One finished position, reduced to what the statistics need"""
    position_id: str
    symbol: str
    family: str
    invested: float
    realized_pnl: float
    realized_roi_pct: float
    max_favorable_pct: float  # best ROI seen while open
    hold_sec: float
    exit_reason: str

    @property
    def is_win(self) -> bool:
        return self.realized_pnl > 0

    @classmethod
    def from_position(cls, position: Position) -> "ClosedTradeMetrics":
        invested = position.initial_invested
        closed_at = position.closed_at if position.closed_at is not None else position.entry_time
        return cls(
            position_id=position.id,
            symbol=position.symbol,
            family=position.family.value,
            invested=invested,
            realized_pnl=position.realized_pnl,
            realized_roi_pct=position.realized_pnl / invested * 100 if invested else 0.0,
            max_favorable_pct=(position.peak_price / position.entry_price - 1) * 100,
            hold_sec=closed_at - position.entry_time,
            exit_reason=position.exit_reason,
        )


def summarize(trades: Iterable[ClosedTradeMetrics]) -> dict:
    trades = list(trades)
    if not trades:
        return {
            "total": 0,
            "wins": 0,
            "losses": 0,
            "win_rate": 0.0,
            "profit_factor": 0.0,
            "total_pnl": 0.0,
            "avg_roi_pct": 0.0,
            "avg_hold_sec": 0.0,
        }

    wins = [t for t in trades if t.is_win]
    gross_profit = sum(t.realized_pnl for t in wins)
    gross_loss = -sum(t.realized_pnl for t in trades if not t.is_win)

    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = float("inf") if gross_profit > 0 else 0.0

    return {
        "total": len(trades),
        "wins": len(wins),
        "losses": len(trades) - len(wins),
        "win_rate": len(wins) / len(trades) * 100,
        "profit_factor": profit_factor,
        "total_pnl": sum(t.realized_pnl for t in trades),
        "avg_roi_pct": sum(t.realized_roi_pct for t in trades) / len(trades),
        "avg_hold_sec": sum(t.hold_sec for t in trades) / len(trades),
    }


class PerformanceTracker:
    """
    Usage:
        tracker = PerformanceTracker()
        tracker.attach(bus)
        ...
        stats = tracker.get_stats()
    """

    def __init__(self, starting_value: float = 0.0):
        self.completed: List[ClosedTradeMetrics] = []
        self.peak_value = starting_value
        self.max_drawdown_pct = 0.0
        self.last_value = starting_value

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(self._on_closed, PositionClosed)
        bus.subscribe(self._on_portfolio, PortfolioUpdated)

    def _on_closed(self, event: PositionClosed) -> None:
        self.record(event.position)

    def _on_portfolio(self, event: PortfolioUpdated) -> None:
        self.observe_value(event.snapshot.total_value)

    def record(self, position: Position) -> ClosedTradeMetrics:
        metrics = ClosedTradeMetrics.from_position(position)
        self.completed.append(metrics)
        logger.debug(
            f"Recorded {metrics.symbol}: ROI {metrics.realized_roi_pct:+.1f}% ({metrics.exit_reason})"
        )
        return metrics

    def observe_value(self, value: float) -> None:
        self.last_value = value
        if value > self.peak_value:
            self.peak_value = value
            return
        if self.peak_value > 0:
            drawdown = (self.peak_value - value) / self.peak_value * 100
            self.max_drawdown_pct = max(self.max_drawdown_pct, drawdown)

    def get_stats(self) -> dict:
        stats = summarize(self.completed)
        stats["peak_value"] = self.peak_value
        stats["max_drawdown_pct"] = self.max_drawdown_pct
        return stats

    def stats_by_family(self) -> Dict[str, dict]:
        groups: Dict[str, List[ClosedTradeMetrics]] = defaultdict(list)
        for t in self.completed:
            groups[t.family].append(t)
        return {family: summarize(items) for family, items in sorted(groups.items())}

    def stats_by_exit_reason(self) -> Dict[str, dict]:
        groups: Dict[str, List[ClosedTradeMetrics]] = defaultdict(list)
        for t in self.completed:
            groups[t.exit_reason].append(t)
        return {reason: summarize(items) for reason, items in groups.items()}
