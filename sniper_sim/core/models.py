from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from sniper_sim.constants import FRESHNESS_WINDOW_SEC
from sniper_sim.exceptions import SignalValidationException


class Priority(str, Enum):
    """Strategy priority tier, also used as decision urgency."""
    ULTRA_HIGH = "ULTRA_HIGH"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class TradeAction(str, Enum):
    BUY = "BUY"
    PRIORITY_BUY = "PRIORITY_BUY"
    WATCH = "WATCH"
    SKIP = "SKIP"

    @property
    def is_actionable(self) -> bool:
        return self in (TradeAction.BUY, TradeAction.PRIORITY_BUY)


class RiskLevel(str, Enum):
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class StrategyFamily(str, Enum):
    DEMO = "DEMO"
    PUMP_FUN = "PUMP_FUN"
    RAYDIUM = "RAYDIUM"
    ORCA = "ORCA"
    DEXSCREENER = "DEXSCREENER"
    JUPITER = "JUPITER"
    METEORA = "METEORA"
    SERUM = "SERUM"
    UNKNOWN = "UNKNOWN"


class PositionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class TradeType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    PARTIAL_SELL = "PARTIAL_SELL"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class PriceSource(str, Enum):
    """Where a price came from."""
    SIGNAL = "SIGNAL"
    QUOTE = "QUOTE"
    STREAM = "STREAM"
    SYNTHETIC = "SYNTHETIC"

    @property
    def is_live(self) -> bool:
        return self is not PriceSource.SYNTHETIC


@dataclass(frozen=True)
class TokenSignal:
    """Normalized detection record handed over by a discovery adapter."""
    address: str
    symbol: str
    created_at: float
    liquidity_usd: float
    security_score: int
    source_tag: str
    name: str = ""
    liquidity_sol: float = 0.0
    price_usd: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raise SignalValidationException if the record can't be evaluated."""
        if not isinstance(self.address, str) or not self.address.strip():
            raise SignalValidationException("Signal has no token address", symbol=self.symbol)
        if not isinstance(self.metadata, dict):
            raise SignalValidationException(
                "Metadata must be a mapping", address=self.address, metadata=type(self.metadata).__name__
            )
        for name in ("created_at", "liquidity_usd", "liquidity_sol", "price_usd"):
            value = getattr(self, name)
            if value is None and name in ("liquidity_sol", "price_usd"):
                continue
            if not _is_number(value):
                raise SignalValidationException(
                    f"{name} must be a number", address=self.address, **{name: repr(value)}
                )
        if self.created_at <= 0:
            raise SignalValidationException("Signal has no creation time", address=self.address)
        if self.liquidity_usd < 0:
            raise SignalValidationException(
                "Liquidity must be >= 0", address=self.address, liquidity_usd=self.liquidity_usd
            )
        if self.liquidity_sol is not None and self.liquidity_sol < 0:
            raise SignalValidationException(
                "Liquidity must be >= 0", address=self.address, liquidity_sol=self.liquidity_sol
            )
        if isinstance(self.security_score, bool) or not isinstance(self.security_score, int):
            raise SignalValidationException(
                "Security score must be an integer", address=self.address, score=self.security_score
            )
        if not 0 <= self.security_score <= 100:
            raise SignalValidationException(
                "Security score out of range 0-100", address=self.address, score=self.security_score
            )
        if self.price_usd is not None and self.price_usd < 0:
            raise SignalValidationException(
                "Price must be >= 0", address=self.address, price_usd=self.price_usd
            )

    @property
    def live_price(self) -> Optional[float]:
        """Usable price carried on the signal or its metadata, if any."""
        if self.price_usd and self.price_usd > 0:
            return float(self.price_usd)
        for key in ("price_usd", "priceUsd", "price"):
            value = self.metadata.get(key)
            try:
                price = float(value) if value is not None else 0.0
            except (TypeError, ValueError):
                continue
            if price > 0:
                return price
        return None

    @property
    def pump_detected(self) -> bool:
        return bool(self.metadata.get("pump_detected"))

    def raw_age(self, now: float) -> float:
        return max(0.0, now - self.created_at)

    def effective_age(self, now: float) -> float:
        """
        Age used for gating and sizing.

        A token we only noticed late is aged from its detection time, and
        a token detected within the freshness window gets that window back.
        A detection time that isn't an epoch number is ignored.
        """
        age = now - self.created_at
        detected_at = self.metadata.get("detected_at")
        if _is_number(detected_at) and detected_at > 0:
            if detected_at > self.created_at:
                age = now - detected_at
            if now - detected_at < FRESHNESS_WINDOW_SEC:
                age -= FRESHNESS_WINDOW_SEC
        return max(0.0, age)


@dataclass(frozen=True)
class TakeProfitTier:
    roi_threshold: float      # percent
    sell_fraction: float      # percent of remaining stake
    label: str

    @property
    def is_full_exit(self) -> bool:
        return self.sell_fraction >= 100.0


@dataclass(frozen=True)
class StopLoss:
    roi_threshold: float  # percent, negative
    label: str


@dataclass(frozen=True)
class TimeExit:
    max_hold_sec: float
    label: str


@dataclass(frozen=True)
class TradeDecision:
    action: TradeAction
    strategy: Any  # Strategy (kept loose to avoid a circular import)
    position_size: float
    confidence: int
    risk_level: RiskLevel
    urgency: Priority
    expected_hold_sec: float
    reason: str
    multipliers: dict[str, float] = field(default_factory=dict)


@dataclass
class PricePoint:
    price: float
    ts: float


@dataclass
class Position:
    id: str
    token_address: str
    symbol: str
    strategy: Any  # Strategy
    entry_time: float
    entry_price: float
    current_price: float
    invested_amount: float
    initial_invested: float
    token_amount: float
    price_source: PriceSource
    risk_level: RiskLevel
    exit_ladder: tuple[TakeProfitTier, ...]
    stop_loss: StopLoss
    time_exit: Optional[TimeExit]
    max_hold_sec: float
    status: PositionStatus = PositionStatus.ACTIVE
    roi_percent: float = 0.0
    last_price_at: float = 0.0
    price_history: deque = field(default_factory=lambda: deque(maxlen=50))
    consumed_tiers: set[float] = field(default_factory=set)
    realized_pnl: float = 0.0
    peak_price: float = 0.0
    closed_at: Optional[float] = None
    exit_reason: str = ""
    final_roi: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status is PositionStatus.ACTIVE

    @property
    def family(self) -> StrategyFamily:
        return self.strategy.family

    def apply_price(self, price: float, ts: float) -> None:
        self.current_price = price
        self.last_price_at = ts
        self.roi_percent = (price - self.entry_price) / self.entry_price * 100.0
        self.peak_price = max(self.peak_price, price)
        self.price_history.append(PricePoint(price=price, ts=ts))

    def unrealized_pnl(self) -> float:
        if not self.is_active:
            return 0.0
        return (self.current_price / self.entry_price - 1.0) * self.invested_amount

    def is_pumping(self, lookback: int = 5) -> bool:
        """True if the last few samples are strictly rising."""
        recent = list(self.price_history)[-lookback:]
        if len(recent) < 3:
            return False
        return all(b.price > a.price for a, b in zip(recent, recent[1:]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "token_address": self.token_address,
            "symbol": self.symbol,
            "family": self.family.value,
            "status": self.status.value,
            "entry_time": self.entry_time,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "invested_amount": self.invested_amount,
            "initial_invested": self.initial_invested,
            "token_amount": self.token_amount,
            "roi_percent": self.roi_percent,
            "realized_pnl": self.realized_pnl,
            "price_source": self.price_source.value,
            "closed_at": self.closed_at,
            "exit_reason": self.exit_reason,
        }


@dataclass(frozen=True)
class Trade:
    id: str
    position_id: str
    token_address: str
    symbol: str
    type: TradeType
    amount: float           # currency units moved
    token_amount: float
    price: float
    timestamp: float
    reason: str
    roi_percent: float = 0.0
    pnl: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "position_id": self.position_id,
            "token_address": self.token_address,
            "symbol": self.symbol,
            "type": self.type.value,
            "amount": self.amount,
            "token_amount": self.token_amount,
            "price": self.price,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "roi_percent": self.roi_percent,
            "pnl": self.pnl,
        }
