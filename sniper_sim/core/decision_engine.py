"""
Entry Decision Engine

Turns a detected token into a sized trade decision:

1. Resolve the source strategy
2. Entry gate (security / age / liquidity)
3. Position size from the strategy's multiplier tables, clamped
4. Urgency score -> action (PRIORITY_BUY / BUY / WATCH / SKIP)
5. Confidence, risk level and expected hold time for reporting

Pure given the signal and "now": no I/O and no randomness.
"""
from __future__ import annotations

import logging
from typing import Optional

from sniper_sim.config import SizingLimits
from sniper_sim.constants import (
    AGE_URGENCY_POINTS,
    CONFIDENCE_AGE_POINTS,
    CONFIDENCE_BASE,
    CONFIDENCE_LIQUIDITY_POINTS,
    CONFIDENCE_PRIORITY_POINTS,
    CONFIDENCE_SECURITY_WEIGHT,
    HOLD_TIME_BASE_FRACTION,
    HOLD_TIME_FAMILY_FACTORS,
    HOLD_TIME_HIGH_LIQUIDITY_FACTOR,
    HOLD_TIME_HIGH_LIQUIDITY_USD,
    HOLD_TIME_LOW_LIQUIDITY_FACTOR,
    HOLD_TIME_LOW_LIQUIDITY_USD,
    LIQUIDITY_URGENCY_POINTS,
    MEDIUM_URGENCY_BUY_SCORE,
    MIN_EXPECTED_HOLD_SEC,
    PRIORITY_URGENCY_POINTS,
    PUMP_DETECTOR_TAG,
    PUMP_SIGNAL_POINTS,
    RISK_AGE_POINTS,
    RISK_BREAKPOINTS,
    RISK_LIQUIDITY_POINTS,
    RISK_SECURITY_POINTS,
    SECURITY_URGENCY_POINTS,
    URGENCY_BREAKPOINTS,
)
from sniper_sim.core.models import (
    Priority,
    RiskLevel,
    StrategyFamily,
    TokenSignal,
    TradeAction,
    TradeDecision,
)
from sniper_sim.core.strategy_catalog import Strategy, StrategyCatalog
from sniper_sim.utils.time import Clock, fmt_duration, utc_ts

logger = logging.getLogger(__name__)


def _first_at_least(value: float, table) -> float:
    for threshold, points in table:
        if value >= threshold:
            return points
    return 0


def _first_below(value: float, table) -> float:
    for threshold, points in table:
        if value < threshold:
            return points
    return 0


class DecisionEngine:
    """Evaluates TokenSignals against the strategy catalog."""

    def __init__(
        self,
        catalog: StrategyCatalog,
        sizing: Optional[SizingLimits] = None,
        clock: Optional[Clock] = None,
    ):
        self.catalog = catalog
        self.sizing = sizing or SizingLimits()
        self._clock = clock or utc_ts

    def evaluate(self, signal: TokenSignal, now: Optional[float] = None) -> TradeDecision:
        now = self._clock() if now is None else now
        strategy = self.catalog.resolve(signal.source_tag, signal.metadata)

        ok, gate_reason = self.check_entry(signal, strategy, now)
        if not ok:
            logger.debug(f"SKIP {signal.symbol}: {gate_reason}")
            return TradeDecision(
                action=TradeAction.SKIP,
                strategy=strategy,
                position_size=0.0,
                confidence=0,
                risk_level=RiskLevel.VERY_HIGH,
                urgency=Priority.LOW,
                expected_hold_sec=0.0,
                reason=gate_reason,
            )

        size, multipliers = self.position_size(signal, strategy, now)
        urgency = self.urgency(signal, strategy, now)
        action = self.action_for(urgency, signal.security_score)
        if action is TradeAction.SKIP:
            reason = f"{strategy.family.value} strategy: urgency {urgency.value} too low to enter"
        else:
            reason = f"{strategy.family.value} strategy: {gate_reason}"

        decision = TradeDecision(
            action=action,
            strategy=strategy,
            position_size=size,
            confidence=self.confidence(signal, strategy, now),
            risk_level=self.risk_level(signal, strategy, now),
            urgency=urgency,
            expected_hold_sec=self.expected_hold_time(signal, strategy),
            reason=reason,
            multipliers=multipliers,
        )
        logger.debug(
            f"{action.value} {signal.symbol}: size={size:.6f} urgency={urgency.value} "
            f"confidence={decision.confidence} risk={decision.risk_level.value}"
        )
        return decision

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def check_entry(self, signal: TokenSignal, strategy: Strategy, now: float) -> tuple[bool, str]:
        if signal.security_score < strategy.min_security_score:
            return False, (
                f"Security score {signal.security_score} below minimum "
                f"{strategy.min_security_score}"
            )

        age = signal.effective_age(now)
        if age > strategy.max_token_age_sec:
            return False, (
                f"Token age {fmt_duration(age)} exceeds max "
                f"{fmt_duration(strategy.max_token_age_sec)}"
            )

        if signal.liquidity_usd < strategy.min_liquidity_usd:
            return False, (
                f"Liquidity ${signal.liquidity_usd:,.0f} below minimum "
                f"${strategy.min_liquidity_usd:,.0f}"
            )

        return True, f"All entry conditions met for {strategy.family.value}"

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def position_size(
        self, signal: TokenSignal, strategy: Strategy, now: float
    ) -> tuple[float, dict[str, float]]:
        age = signal.effective_age(now)

        # Buckets are not cumulative: the best qualifying tier wins
        age_mult = max((m for limit, m in strategy.age_multipliers if age <= limit), default=1.0)
        security_mult = max(
            (m for floor, m in strategy.security_multipliers if signal.security_score >= floor),
            default=1.0,
        )
        liquidity_mult = max(
            (m for floor, m in strategy.liquidity_multipliers if signal.liquidity_usd >= floor),
            default=1.0,
        )
        source_mult = strategy.source_multiplier

        raw = strategy.base_position_size * age_mult * security_mult * liquidity_mult * source_mult
        size = min(raw, self.sizing.max_position_size)
        size = max(size, self.sizing.min_position_size)

        multipliers = {
            "age": age_mult,
            "security": security_mult,
            "liquidity": liquidity_mult,
            "source": source_mult,
            "raw_size": raw,
        }
        return size, multipliers

    # ------------------------------------------------------------------
    # Urgency / action
    # ------------------------------------------------------------------

    def urgency(self, signal: TokenSignal, strategy: Strategy, now: float) -> Priority:
        score = PRIORITY_URGENCY_POINTS[strategy.priority.value]
        score += _first_at_least(signal.security_score, SECURITY_URGENCY_POINTS)
        score += _first_below(signal.effective_age(now), AGE_URGENCY_POINTS)
        score += _first_at_least(signal.liquidity_usd, LIQUIDITY_URGENCY_POINTS)

        if signal.pump_detected:
            score += PUMP_SIGNAL_POINTS
        if _tag(signal) == PUMP_DETECTOR_TAG:
            score += PUMP_SIGNAL_POINTS

        for threshold, level in URGENCY_BREAKPOINTS:
            if score >= threshold:
                return Priority(level)
        return Priority.LOW

    @staticmethod
    def action_for(urgency: Priority, security_score: int) -> TradeAction:
        if urgency is Priority.ULTRA_HIGH:
            return TradeAction.PRIORITY_BUY
        if urgency is Priority.HIGH:
            return TradeAction.BUY
        if urgency is Priority.MEDIUM:
            if security_score >= MEDIUM_URGENCY_BUY_SCORE:
                return TradeAction.BUY
            return TradeAction.WATCH
        return TradeAction.SKIP

    # ------------------------------------------------------------------
    # Reporting labels
    # ------------------------------------------------------------------

    def confidence(self, signal: TokenSignal, strategy: Strategy, now: float) -> int:
        confidence = CONFIDENCE_BASE
        confidence += signal.security_score / 100 * CONFIDENCE_SECURITY_WEIGHT
        confidence += _first_at_least(signal.liquidity_usd, CONFIDENCE_LIQUIDITY_POINTS)
        confidence += _first_below(signal.raw_age(now), CONFIDENCE_AGE_POINTS)
        confidence += CONFIDENCE_PRIORITY_POINTS[strategy.priority.value]
        return int(round(min(max(confidence, 0.0), 100.0)))

    def risk_level(self, signal: TokenSignal, strategy: Strategy, now: float) -> RiskLevel:
        risk = _first_below(signal.security_score, RISK_SECURITY_POINTS)
        risk += _first_below(signal.liquidity_usd, RISK_LIQUIDITY_POINTS)
        risk += _first_below(signal.raw_age(now), RISK_AGE_POINTS)

        # Most speculative family and highest tier carry extra risk
        if strategy.family is StrategyFamily.PUMP_FUN:
            risk += 1
        if strategy.priority is Priority.ULTRA_HIGH:
            risk += 1

        for threshold, level in RISK_BREAKPOINTS:
            if risk >= threshold:
                return RiskLevel(level)
        return RiskLevel.VERY_LOW

    @staticmethod
    def expected_hold_time(signal: TokenSignal, strategy: Strategy) -> float:
        hold = strategy.max_hold_sec * HOLD_TIME_BASE_FRACTION
        hold *= HOLD_TIME_FAMILY_FACTORS.get(strategy.family.value, 1.0)

        if signal.liquidity_usd >= HOLD_TIME_HIGH_LIQUIDITY_USD:
            hold *= HOLD_TIME_HIGH_LIQUIDITY_FACTOR
        elif signal.liquidity_usd < HOLD_TIME_LOW_LIQUIDITY_USD:
            hold *= HOLD_TIME_LOW_LIQUIDITY_FACTOR

        return max(MIN_EXPECTED_HOLD_SEC, min(hold, strategy.max_hold_sec))


def _tag(signal: TokenSignal) -> str:
    return (signal.source_tag or "").strip().lower()
