"""
Source-Based Trading Strategies

Maps where a token was detected (pump.fun, Raydium, DexScreener, ...) to the
entry gate, exit ladder and position sizing rules used for it.

Unknown provenance always falls back to the most conservative strategy.
"""

import logging
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

from sniper_sim.constants import MINUTE, HOUR
from sniper_sim.core.models import (
    Priority,
    StopLoss,
    StrategyFamily,
    TakeProfitTier,
    TimeExit,
)
from sniper_sim.exceptions import ConfigurationException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Strategy:
    """Static rule set for one source family."""

    family: StrategyFamily
    source: str
    priority: Priority

    # Sizing / holding
    base_position_size: float
    max_hold_sec: float

    # Entry gate
    min_security_score: int
    max_token_age_sec: float
    min_liquidity_usd: float

    # Exits (take profits sorted highest threshold first)
    take_profits: tuple[TakeProfitTier, ...]
    stop_loss: StopLoss
    time_exit: Optional[TimeExit]

    # Sizing multipliers: (max_age_sec | min_score | min_liquidity, multiplier)
    age_multipliers: tuple[tuple[float, float], ...]
    security_multipliers: tuple[tuple[float, float], ...]
    liquidity_multipliers: tuple[tuple[float, float], ...]
    source_multiplier: float

    def __post_init__(self):
        ordered = tuple(sorted(self.take_profits, key=lambda t: t.roi_threshold, reverse=True))
        object.__setattr__(self, "take_profits", ordered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "family": self.family.value,
            "priority": self.priority.value,
            "base_position_size": self.base_position_size,
            "max_hold_sec": self.max_hold_sec,
            "min_security_score": self.min_security_score,
            "max_token_age_sec": self.max_token_age_sec,
            "min_liquidity_usd": self.min_liquidity_usd,
            "take_profits": [(t.roi_threshold, t.sell_fraction) for t in self.take_profits],
            "stop_loss": self.stop_loss.roi_threshold,
            "source_multiplier": self.source_multiplier,
        }


def _tp(*tiers: tuple[float, float, str]) -> tuple[TakeProfitTier, ...]:
    return tuple(TakeProfitTier(roi, pct, label) for roi, pct, label in tiers)


# =============================================
# PREDEFINED STRATEGIES
# =============================================

DEFAULT_STRATEGIES: dict[StrategyFamily, Strategy] = {
    # Educational demo feed: permissive gate, no time exit
    StrategyFamily.DEMO: Strategy(
        family=StrategyFamily.DEMO,
        source="demo",
        priority=Priority.ULTRA_HIGH,
        base_position_size=0.01,
        max_hold_sec=30 * MINUTE,
        min_security_score=5,
        max_token_age_sec=24 * HOUR,
        min_liquidity_usd=100,
        take_profits=_tp(
            (1000, 90, "Demo mega pump - 1000%+ gains"),
            (500, 80, "Demo major pump - 500%+ gains"),
            (200, 60, "Demo strong gains - 200%+"),
            (100, 40, "Demo good gains - 100%+"),
            (50, 20, "Demo early profit - 50%+"),
        ),
        stop_loss=StopLoss(-20, "Demo stop loss"),
        time_exit=None,
        age_multipliers=((HOUR, 2.0),),
        security_multipliers=((10, 1.5),),
        liquidity_multipliers=((1_000, 1.5),),
        source_multiplier=2.0,
    ),

    # Bonding-curve launches: fastest, most speculative
    StrategyFamily.PUMP_FUN: Strategy(
        family=StrategyFamily.PUMP_FUN,
        source="pump.fun",
        priority=Priority.ULTRA_HIGH,
        base_position_size=0.01,
        max_hold_sec=30 * MINUTE,
        min_security_score=10,
        max_token_age_sec=10 * MINUTE,
        min_liquidity_usd=1_000,
        take_profits=_tp(
            (1000, 90, "1000%+ gains - mega pump exit"),
            (500, 80, "500%+ gains - major pump exit"),
            (200, 60, "200%+ gains - strong pump exit"),
            (100, 40, "100%+ gains - pump momentum exit"),
            (50, 25, "50%+ gains - early pump profit"),
        ),
        stop_loss=StopLoss(-25, "Pump.fun stop loss"),
        time_exit=TimeExit(30 * MINUTE, "Pump.fun max hold time"),
        age_multipliers=((1 * MINUTE, 4.0), (3 * MINUTE, 3.0), (5 * MINUTE, 2.0)),
        security_multipliers=((80, 3.0), (60, 2.0), (40, 1.5), (20, 1.2)),
        liquidity_multipliers=(
            (100_000, 3.0), (50_000, 2.5), (25_000, 2.0), (10_000, 1.5), (5_000, 1.2),
        ),
        source_multiplier=2.5,
    ),

    StrategyFamily.RAYDIUM: Strategy(
        family=StrategyFamily.RAYDIUM,
        source="raydium",
        priority=Priority.HIGH,
        base_position_size=0.008,
        max_hold_sec=60 * MINUTE,
        min_security_score=25,
        max_token_age_sec=30 * MINUTE,
        min_liquidity_usd=2_500,
        take_profits=_tp(
            (800, 85, "800%+ gains - major Raydium success"),
            (400, 70, "400%+ gains - strong Raydium exit"),
            (150, 50, "150%+ gains - good Raydium profit"),
            (75, 30, "75%+ gains - early Raydium profit"),
        ),
        stop_loss=StopLoss(-20, "Raydium stop loss"),
        time_exit=TimeExit(60 * MINUTE, "Raydium max hold time"),
        age_multipliers=(
            (2 * MINUTE, 3.0), (5 * MINUTE, 2.5), (10 * MINUTE, 2.0), (15 * MINUTE, 1.5),
        ),
        security_multipliers=((90, 2.5), (75, 2.0), (60, 1.8), (45, 1.5), (30, 1.2)),
        liquidity_multipliers=(
            (100_000, 2.5), (50_000, 2.0), (25_000, 1.8), (10_000, 1.5), (5_000, 1.2),
        ),
        source_multiplier=2.0,
    ),

    StrategyFamily.ORCA: Strategy(
        family=StrategyFamily.ORCA,
        source="orca",
        priority=Priority.MEDIUM,
        base_position_size=0.006,
        max_hold_sec=90 * MINUTE,
        min_security_score=35,
        max_token_age_sec=30 * MINUTE,
        min_liquidity_usd=5_000,
        take_profits=_tp(
            (600, 80, "600%+ gains - excellent Orca exit"),
            (300, 65, "300%+ gains - strong Orca exit"),
            (120, 45, "120%+ gains - good Orca profit"),
            (60, 25, "60%+ gains - early Orca profit"),
        ),
        stop_loss=StopLoss(-15, "Orca stop loss"),
        time_exit=TimeExit(90 * MINUTE, "Orca max hold time"),
        age_multipliers=(
            (3 * MINUTE, 2.5), (8 * MINUTE, 2.0), (15 * MINUTE, 1.8), (20 * MINUTE, 1.5),
        ),
        security_multipliers=((85, 2.2), (70, 1.8), (55, 1.5), (40, 1.3)),
        liquidity_multipliers=((75_000, 2.2), (40_000, 1.8), (20_000, 1.5), (10_000, 1.3)),
        source_multiplier=1.8,
    ),

    StrategyFamily.DEXSCREENER: Strategy(
        family=StrategyFamily.DEXSCREENER,
        source="dexscreener",
        priority=Priority.MEDIUM,
        base_position_size=0.005,
        max_hold_sec=120 * MINUTE,
        min_security_score=40,
        max_token_age_sec=35 * MINUTE,
        min_liquidity_usd=7_500,
        take_profits=_tp(
            (400, 75, "400%+ gains - major DexScreener success"),
            (200, 60, "200%+ gains - strong DexScreener exit"),
            (100, 40, "100%+ gains - good DexScreener profit"),
            (50, 20, "50%+ gains - early DexScreener profit"),
        ),
        stop_loss=StopLoss(-12, "DexScreener stop loss"),
        time_exit=TimeExit(120 * MINUTE, "DexScreener max hold time"),
        age_multipliers=(
            (5 * MINUTE, 2.2), (15 * MINUTE, 1.8), (25 * MINUTE, 1.5), (30 * MINUTE, 1.2),
        ),
        security_multipliers=((80, 2.0), (65, 1.7), (50, 1.4), (40, 1.2)),
        liquidity_multipliers=((100_000, 2.0), (50_000, 1.7), (25_000, 1.4), (10_000, 1.2)),
        source_multiplier=1.5,
    ),

    StrategyFamily.JUPITER: Strategy(
        family=StrategyFamily.JUPITER,
        source="jupiter",
        priority=Priority.MEDIUM,
        base_position_size=0.005,
        max_hold_sec=90 * MINUTE,
        min_security_score=30,
        max_token_age_sec=30 * MINUTE,
        min_liquidity_usd=5_000,
        take_profits=_tp(
            (500, 75, "500%+ gains - Jupiter success"),
            (250, 60, "250%+ gains - Jupiter exit"),
            (100, 40, "100%+ gains - Jupiter profit"),
            (50, 25, "50%+ gains - Jupiter early profit"),
        ),
        stop_loss=StopLoss(-18, "Jupiter stop loss"),
        time_exit=TimeExit(90 * MINUTE, "Jupiter max hold time"),
        age_multipliers=((5 * MINUTE, 2.0), (15 * MINUTE, 1.7), (25 * MINUTE, 1.4)),
        security_multipliers=((75, 1.8), (60, 1.5), (45, 1.3), (30, 1.1)),
        liquidity_multipliers=((50_000, 1.8), (25_000, 1.5), (10_000, 1.3)),
        source_multiplier=1.6,
    ),

    StrategyFamily.METEORA: Strategy(
        family=StrategyFamily.METEORA,
        source="meteora",
        priority=Priority.MEDIUM,
        base_position_size=0.005,
        max_hold_sec=90 * MINUTE,
        min_security_score=35,
        max_token_age_sec=30 * MINUTE,
        min_liquidity_usd=6_000,
        take_profits=_tp(
            (400, 70, "400%+ gains - Meteora success"),
            (200, 55, "200%+ gains - Meteora exit"),
            (100, 35, "100%+ gains - Meteora profit"),
            (50, 20, "50%+ gains - Meteora early profit"),
        ),
        stop_loss=StopLoss(-16, "Meteora stop loss"),
        time_exit=TimeExit(90 * MINUTE, "Meteora max hold time"),
        age_multipliers=((4 * MINUTE, 2.0), (12 * MINUTE, 1.6), (20 * MINUTE, 1.3)),
        security_multipliers=((80, 1.8), (65, 1.5), (50, 1.3), (35, 1.1)),
        liquidity_multipliers=((50_000, 1.8), (25_000, 1.5), (12_000, 1.3)),
        source_multiplier=1.5,
    ),

    StrategyFamily.SERUM: Strategy(
        family=StrategyFamily.SERUM,
        source="serum",
        priority=Priority.LOW,
        base_position_size=0.004,
        max_hold_sec=120 * MINUTE,
        min_security_score=50,
        max_token_age_sec=50 * MINUTE,
        min_liquidity_usd=10_000,
        take_profits=_tp(
            (300, 65, "300%+ gains - Serum success"),
            (150, 50, "150%+ gains - Serum exit"),
            (75, 30, "75%+ gains - Serum profit"),
            (40, 15, "40%+ gains - Serum early profit"),
        ),
        stop_loss=StopLoss(-12, "Serum stop loss"),
        time_exit=TimeExit(120 * MINUTE, "Serum max hold time"),
        age_multipliers=((10 * MINUTE, 1.8), (25 * MINUTE, 1.5), (45 * MINUTE, 1.2)),
        security_multipliers=((85, 1.7), (70, 1.4), (55, 1.2), (50, 1.1)),
        liquidity_multipliers=((75_000, 1.7), (40_000, 1.4), (20_000, 1.2)),
        source_multiplier=1.3,
    ),

    # Conservative default: high security floor, small size
    StrategyFamily.UNKNOWN: Strategy(
        family=StrategyFamily.UNKNOWN,
        source="unknown",
        priority=Priority.LOW,
        base_position_size=0.003,
        max_hold_sec=60 * MINUTE,
        min_security_score=70,
        max_token_age_sec=30 * MINUTE,
        min_liquidity_usd=10_000,
        take_profits=_tp(
            (100, 80, "100%+ gains - unknown source exit"),
            (50, 50, "50%+ gains - unknown source profit"),
            (25, 30, "25%+ gains - unknown source early exit"),
        ),
        stop_loss=StopLoss(-15, "Unknown source stop loss"),
        time_exit=None,
        age_multipliers=((5 * MINUTE, 1.3),),
        security_multipliers=((80, 1.5),),
        liquidity_multipliers=((25_000, 1.5),),
        source_multiplier=1.0,
    ),
}


# Exact aliases, checked in order (also used for substring matching)
SOURCE_ALIASES: tuple[tuple[str, StrategyFamily], ...] = (
    ("demo", StrategyFamily.DEMO),
    ("educational", StrategyFamily.DEMO),
    ("test", StrategyFamily.DEMO),
    ("simulation", StrategyFamily.DEMO),
    ("pump.fun", StrategyFamily.PUMP_FUN),
    ("pumpfun", StrategyFamily.PUMP_FUN),
    ("pump", StrategyFamily.PUMP_FUN),
    ("pump_detector", StrategyFamily.PUMP_FUN),
    ("pump_fun", StrategyFamily.PUMP_FUN),
    ("pump-fun", StrategyFamily.PUMP_FUN),
    ("raydium", StrategyFamily.RAYDIUM),
    ("raydium_monitor", StrategyFamily.RAYDIUM),
    ("raydium_amm", StrategyFamily.RAYDIUM),
    ("raydium_v4", StrategyFamily.RAYDIUM),
    ("raydium_clmm", StrategyFamily.RAYDIUM),
    ("websocket_raydium", StrategyFamily.RAYDIUM),
    ("ray", StrategyFamily.RAYDIUM),
    ("multi_dex", StrategyFamily.RAYDIUM),
    ("multidex", StrategyFamily.RAYDIUM),
    ("scanner", StrategyFamily.RAYDIUM),
    ("unified_detector", StrategyFamily.RAYDIUM),
    ("real_monitor", StrategyFamily.RAYDIUM),
    ("real_token_monitor", StrategyFamily.RAYDIUM),
    ("realtime_monitor", StrategyFamily.RAYDIUM),
    ("orca", StrategyFamily.ORCA),
    ("orca_whirlpool", StrategyFamily.ORCA),
    ("whirlpool", StrategyFamily.ORCA),
    ("orca_v2", StrategyFamily.ORCA),
    ("orca_clmm", StrategyFamily.ORCA),
    ("dexscreener", StrategyFamily.DEXSCREENER),
    ("dex_screener", StrategyFamily.DEXSCREENER),
    ("dexscreen", StrategyFamily.DEXSCREENER),
    ("screener", StrategyFamily.DEXSCREENER),
    ("dexscreener_client", StrategyFamily.DEXSCREENER),
    ("jupiter", StrategyFamily.JUPITER),
    ("jup", StrategyFamily.JUPITER),
    ("jupiter_v6", StrategyFamily.JUPITER),
    ("jupiter_aggregator", StrategyFamily.JUPITER),
    ("meteora", StrategyFamily.METEORA),
    ("meteora_pools", StrategyFamily.METEORA),
    ("meteora_dlmm", StrategyFamily.METEORA),
    ("meteora_v2", StrategyFamily.METEORA),
    ("serum", StrategyFamily.SERUM),
    ("serum_v3", StrategyFamily.SERUM),
    ("serum_dex", StrategyFamily.SERUM),
    ("openbook", StrategyFamily.SERUM),
    ("openbook_v2", StrategyFamily.SERUM),
    ("websocket", StrategyFamily.RAYDIUM),
    ("websocket_monitor", StrategyFamily.RAYDIUM),
    ("ws", StrategyFamily.RAYDIUM),
    ("ws_monitor", StrategyFamily.RAYDIUM),
    ("api", StrategyFamily.DEXSCREENER),
    ("client", StrategyFamily.DEXSCREENER),
    ("monitor", StrategyFamily.RAYDIUM),
    ("detector", StrategyFamily.RAYDIUM),
    ("tracker", StrategyFamily.RAYDIUM),
    ("watcher", StrategyFamily.RAYDIUM),
    ("rapid_analyzer", StrategyFamily.RAYDIUM),
    ("rapid_token_analyzer", StrategyFamily.RAYDIUM),
)

# Metadata flags that reveal the source when the tag does not
METADATA_HINTS: tuple[tuple[tuple[str, ...], StrategyFamily], ...] = (
    (("demo", "educational", "test"), StrategyFamily.DEMO),
    (("pump_detected", "pump_score"), StrategyFamily.PUMP_FUN),
    (("raydium_pool", "amm_id"), StrategyFamily.RAYDIUM),
    (("orca_pool", "whirlpool"), StrategyFamily.ORCA),
    (("dex_screener", "pair_address"), StrategyFamily.DEXSCREENER),
)

KEYWORD_PATTERNS: tuple[tuple[tuple[str, ...], StrategyFamily], ...] = (
    (("pump", "fun"), StrategyFamily.PUMP_FUN),
    (("ray", "raydium"), StrategyFamily.RAYDIUM),
    (("orca", "whirl"), StrategyFamily.ORCA),
    (("dex", "screener", "screen"), StrategyFamily.DEXSCREENER),
    (("jupiter", "jup"), StrategyFamily.JUPITER),
    (("meteora", "dlmm"), StrategyFamily.METEORA),
    (("serum", "openbook"), StrategyFamily.SERUM),
    (("multi", "scanner", "unified"), StrategyFamily.RAYDIUM),
    (("websocket", "ws", "real", "monitor"), StrategyFamily.RAYDIUM),
)

# Fields a config file may override per family
OVERRIDABLE_FIELDS = {
    "priority",
    "base_position_size",
    "max_hold_sec",
    "min_security_score",
    "max_token_age_sec",
    "min_liquidity_usd",
    "source_multiplier",
}


# Shorter terms only match a whole word of the tag
MIN_SUBSTRING_LEN = 4

# Families reachable only through an exact alias or a metadata hint
EXACT_ONLY_FAMILIES = frozenset({StrategyFamily.DEMO})


def _normalize_tag(source_tag: Optional[str]) -> str:
    tag = (source_tag or "").strip().lower().replace("-", "_")
    return tag or "unknown"


def _term_matches(term: str, tag: str, words: set[str]) -> bool:
    if term in words:
        return True
    return len(term) >= MIN_SUBSTRING_LEN and term in tag


class StrategyCatalog:
    """
    Pure lookup from a source tag to a Strategy.

    Resolution order: exact alias, alias contained in the tag, metadata
    hints, keyword patterns, then the UNKNOWN default. The demo strategy is
    never reached by a partial match.
    """

    def __init__(self, strategies: Optional[Mapping[StrategyFamily, Strategy]] = None):
        self._strategies = dict(strategies or DEFAULT_STRATEGIES)
        if StrategyFamily.UNKNOWN not in self._strategies:
            self._strategies[StrategyFamily.UNKNOWN] = DEFAULT_STRATEGIES[StrategyFamily.UNKNOWN]
        self._aliases = dict(SOURCE_ALIASES)

    @property
    def default(self) -> Strategy:
        return self._strategies[StrategyFamily.UNKNOWN]

    def get(self, family: StrategyFamily) -> Strategy:
        return self._strategies.get(family, self.default)

    def families(self) -> list[StrategyFamily]:
        return list(self._strategies)

    def identify_family(
        self, source_tag: Optional[str], metadata: Optional[Mapping[str, Any]] = None
    ) -> StrategyFamily:
        tag = _normalize_tag(source_tag)

        family = self._aliases.get(tag)
        if family is not None:
            return family

        words = set(re.split(r"[^a-z0-9]+", tag))
        for alias, family in SOURCE_ALIASES:
            if family not in EXACT_ONLY_FAMILIES and _term_matches(alias, tag, words):
                return family

        if metadata:
            for keys, family in METADATA_HINTS:
                if any(metadata.get(k) for k in keys):
                    return family

        for keywords, family in KEYWORD_PATTERNS:
            if any(_term_matches(k, tag, words) for k in keywords):
                return family

        return StrategyFamily.UNKNOWN

    def resolve(
        self, source_tag: Optional[str], metadata: Optional[Mapping[str, Any]] = None
    ) -> Strategy:
        family = self.identify_family(source_tag, metadata)
        strategy = self.get(family)
        logger.debug(f"Source '{source_tag}' -> {strategy.family.value} ({strategy.priority.value})")
        return strategy

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> "StrategyCatalog":
        """Build a new catalog with per-family field overrides (from config)."""
        strategies = dict(self._strategies)
        known = {f.name for f in fields(Strategy)}

        for name, values in (overrides or {}).items():
            try:
                family = StrategyFamily(str(name).upper())
            except ValueError:
                raise ConfigurationException("Unknown strategy family", family=name) from None

            changes = {}
            for key, value in (values or {}).items():
                if key not in OVERRIDABLE_FIELDS:
                    state = "unknown" if key not in known else "not overridable"
                    raise ConfigurationException(
                        f"Strategy field is {state}", family=family.value, field=key
                    )
                if key == "priority":
                    value = Priority(str(value).upper())
                elif key == "min_security_score":
                    value = int(value)
                else:
                    value = float(value)
                changes[key] = value

            strategies[family] = replace(strategies[family], **changes)
            logger.info(f"Strategy {family.value} overridden: {changes}")

        return StrategyCatalog(strategies)
