"""
Unit tests for the strategy catalog

Tests source identification and per-family rule sets.
"""

import pytest

from sniper_sim.core.models import Priority, StrategyFamily, TakeProfitTier
from sniper_sim.core.strategy_catalog import (
    DEFAULT_STRATEGIES,
    Strategy,
    StrategyCatalog,
)
from sniper_sim.exceptions import ConfigurationException


class TestIdentifyFamily:
    """Source tag and metadata resolution order"""

    @pytest.mark.parametrize("tag,family", [
        ("pump.fun", StrategyFamily.PUMP_FUN),
        ("raydium_v4", StrategyFamily.RAYDIUM),
        ("orca_whirlpool", StrategyFamily.ORCA),
        ("dexscreener", StrategyFamily.DEXSCREENER),
        ("jup", StrategyFamily.JUPITER),
        ("meteora_dlmm", StrategyFamily.METEORA),
        ("openbook", StrategyFamily.SERUM),
        ("demo", StrategyFamily.DEMO),
    ])
    def test_exact_alias(self, catalog, tag, family):
        assert catalog.identify_family(tag) is family

    def test_case_and_dash_insensitive(self, catalog):
        assert catalog.identify_family("  Pump-Fun ") is StrategyFamily.PUMP_FUN
        assert catalog.identify_family("RAYDIUM") is StrategyFamily.RAYDIUM

    def test_alias_substring(self, catalog):
        assert catalog.identify_family("new_raydium_pool_listener") is StrategyFamily.RAYDIUM

    def test_metadata_hint(self, catalog):
        """Opaque tag, but the metadata gives the source away"""
        family = catalog.identify_family("zzz", {"pair_address": "abc123"})
        assert family is StrategyFamily.DEXSCREENER

    def test_keyword_pattern(self, catalog):
        assert catalog.identify_family("whirly") is StrategyFamily.ORCA

    def test_unknown_falls_back(self, catalog):
        assert catalog.identify_family("mystery_feed") is StrategyFamily.UNKNOWN
        assert catalog.identify_family(None) is StrategyFamily.UNKNOWN
        assert catalog.identify_family("") is StrategyFamily.UNKNOWN

    @pytest.mark.parametrize("tag", ["latest", "e", "o", "st", "birdeye_latest", "news", "contest_feed"])
    def test_short_or_partial_tags_stay_unknown(self, catalog, tag):
        """Fragments never pull in a permissive family"""
        assert catalog.identify_family(tag) is StrategyFamily.UNKNOWN

    def test_demo_needs_exact_alias_or_hint(self, catalog):
        assert catalog.identify_family("demo_feed") is StrategyFamily.UNKNOWN
        assert catalog.identify_family("test") is StrategyFamily.DEMO
        assert catalog.identify_family("feed", {"educational": True}) is StrategyFamily.DEMO

    def test_short_alias_matches_whole_word(self, catalog):
        assert catalog.identify_family("jup_v4") is StrategyFamily.JUPITER
        assert catalog.identify_family("array_feed") is StrategyFamily.UNKNOWN

    def test_resolve_returns_strategy(self, catalog):
        strategy = catalog.resolve("pump.fun")
        assert strategy is DEFAULT_STRATEGIES[StrategyFamily.PUMP_FUN]
        assert strategy.priority is Priority.ULTRA_HIGH


class TestStrategyTable:
    """Built-in strategies"""

    def test_every_family_present(self, catalog):
        assert set(catalog.families()) == set(StrategyFamily)

    def test_ladders_sorted_highest_first(self, catalog):
        for family in catalog.families():
            thresholds = [t.roi_threshold for t in catalog.get(family).take_profits]
            assert thresholds == sorted(thresholds, reverse=True)

    def test_ladder_sorted_on_construction(self):
        base = DEFAULT_STRATEGIES[StrategyFamily.ORCA]
        shuffled = Strategy(**{
            **base.__dict__,
            "take_profits": (
                TakeProfitTier(60, 25, "low"),
                TakeProfitTier(600, 80, "high"),
                TakeProfitTier(120, 45, "mid"),
            ),
        })
        assert [t.label for t in shuffled.take_profits] == ["high", "mid", "low"]

    def test_stop_losses_negative(self, catalog):
        for family in catalog.families():
            assert catalog.get(family).stop_loss.roi_threshold < 0

    def test_pump_fun_values(self, catalog):
        pump = catalog.get(StrategyFamily.PUMP_FUN)
        assert pump.min_security_score == 10
        assert pump.max_token_age_sec == 600
        assert pump.min_liquidity_usd == 1_000
        assert pump.time_exit.max_hold_sec == 1800
        assert pump.stop_loss.roi_threshold == -25


class TestOverrides:
    """Config-driven per-family tuning"""

    def test_override_builds_new_catalog(self, catalog):
        tuned = catalog.with_overrides(
            {"raydium": {"min_security_score": "40", "priority": "ultra_high"}}
        )
        raydium = tuned.get(StrategyFamily.RAYDIUM)

        assert raydium.min_security_score == 40
        assert raydium.priority is Priority.ULTRA_HIGH
        assert catalog.get(StrategyFamily.RAYDIUM).min_security_score == 25

    def test_unknown_family_rejected(self, catalog):
        with pytest.raises(ConfigurationException):
            catalog.with_overrides({"bitcoin": {"min_security_score": 1}})

    def test_unknown_field_rejected(self, catalog):
        with pytest.raises(ConfigurationException) as exc:
            catalog.with_overrides({"orca": {"leverage": 10}})
        assert "unknown" in str(exc.value)

    def test_structural_field_not_overridable(self, catalog):
        with pytest.raises(ConfigurationException) as exc:
            catalog.with_overrides({"orca": {"take_profits": []}})
        assert "not overridable" in str(exc.value)
