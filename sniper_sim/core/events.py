"""
Simulation Event Bus

Observational egress for dashboards, loggers and journals.

Event Types:
- PositionOpened / PositionClosed
- TradeExecuted
- PortfolioUpdated
- TokenSkipped / TokenWatched
- PositionError

Payloads are snapshots: handlers can't mutate engine state through them.
Handlers run synchronously in publish order; a failing handler is logged
and skipped so observers never break the engine.
"""

import copy
import logging
from collections import Counter, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple, Type, Union

from sniper_sim.core.models import Position, TokenSignal, Trade, TradeDecision
from sniper_sim.paper_trading.ledger import PortfolioSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionOpened:
    position: Position
    decision: TradeDecision
    timestamp: float


@dataclass(frozen=True)
class PositionClosed:
    position: Position
    reason: str
    roi_percent: float
    realized_pnl: float
    timestamp: float


@dataclass(frozen=True)
class TradeExecuted:
    trade: Trade


@dataclass(frozen=True)
class PortfolioUpdated:
    snapshot: PortfolioSnapshot
    timestamp: float


@dataclass(frozen=True)
class TokenSkipped:
    signal: Optional[TokenSignal]
    reason: str
    timestamp: float
    decision: Optional[TradeDecision] = None


@dataclass(frozen=True)
class TokenWatched:
    signal: TokenSignal
    decision: TradeDecision
    timestamp: float


@dataclass(frozen=True)
class PositionError:
    position_id: str
    token_address: str
    error: str
    timestamp: float


SimulationEvent = Union[
    PositionOpened,
    PositionClosed,
    TradeExecuted,
    PortfolioUpdated,
    TokenSkipped,
    TokenWatched,
    PositionError,
]

EventHandler = Callable[[SimulationEvent], None]

ALL_EVENT_TYPES: Tuple[type, ...] = (
    PositionOpened,
    PositionClosed,
    TradeExecuted,
    PortfolioUpdated,
    TokenSkipped,
    TokenWatched,
    PositionError,
)


def snapshot(position: Position) -> Position:
    """Detached copy of a position for event payloads."""
    return copy.deepcopy(position)


class EventBus:
    """
    Typed publish/subscribe for simulation events.

    Usage:
        bus.subscribe(on_closed, PositionClosed)
        bus.subscribe(log_everything)          # all event types
        bus.publish(PositionClosed(...))
    """

    def __init__(self, history_size: int = 1000):
        self._handlers: List[Tuple[EventHandler, Tuple[type, ...]]] = []
        self.history: Deque[SimulationEvent] = deque(maxlen=history_size)

    def subscribe(self, handler: EventHandler, *event_types: Type) -> EventHandler:
        types = tuple(event_types) or ALL_EVENT_TYPES
        unknown = [t for t in types if t not in ALL_EVENT_TYPES]
        if unknown:
            raise TypeError(f"Not a simulation event type: {unknown}")
        self._handlers.append((handler, types))
        return handler

    def unsubscribe(self, handler: EventHandler) -> None:
        self._handlers = [(h, t) for h, t in self._handlers if h is not handler]

    def publish(self, event: SimulationEvent) -> None:
        self.history.append(event)
        self._log(event)

        for handler, types in list(self._handlers):
            if not isinstance(event, types):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler {getattr(handler, '__name__', handler)} failed")

    def _log(self, event: SimulationEvent) -> None:
        if isinstance(event, PositionError):
            logger.error(f"⚠️ POSITION ERROR {event.position_id}: {event.error}")
        elif isinstance(event, TokenSkipped):
            symbol = event.signal.symbol if event.signal else "?"
            logger.debug(f"SKIP {symbol}: {event.reason}")
        else:
            logger.debug(f"Event {type(event).__name__}")

    def get_history(self, event_type: Optional[Type] = None) -> List[SimulationEvent]:
        if event_type is None:
            return list(self.history)
        return [e for e in self.history if isinstance(e, event_type)]

    def counts(self) -> Dict[str, int]:
        return dict(Counter(type(e).__name__ for e in self.history))
