"""
Simulation Configuration Manager

Provides configurable portfolio, sizing and monitoring parameters via YAML/JSON file.
Strategy families can be tuned from the same file under a `strategies:` key.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..exceptions import ConfigurationException

logger = logging.getLogger(__name__)


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys the dataclass does not declare (older/newer config files)."""
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.debug(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in names}


@dataclass
class PortfolioSettings:
    """Virtual portfolio limits"""
    starting_balance: float = 10.0
    max_open_positions: int = 50
    trade_history_limit: int = 5000


@dataclass
class SizingLimits:
    """Position size clamps applied after the multiplier tables"""
    max_position_size: float = 0.1    # Hard safety ceiling
    min_position_size: float = 0.001  # Minimum viable size


@dataclass
class MonitorSettings:
    """Position monitoring loop"""
    tick_interval_sec: float = 2.0
    timeout_guard_interval_sec: float = 5.0
    price_history_size: int = 50
    quote_timeout_sec: float = 3.0
    poll_quotes: bool = True  # Re-quote live-priced positions each tick


@dataclass
class PriceModelSettings:
    """Random-walk price simulation for positions without a live feed"""
    base_volatility: float = 0.02
    # (minutes_elapsed_below, multiplier)
    early_volatility: List[List[float]] = field(
        default_factory=lambda: [[1.0, 3.0], [5.0, 2.0], [10.0, 1.5]]
    )
    risk_volatility: Dict[str, float] = field(
        default_factory=lambda: {
            "VERY_HIGH": 2.5,
            "HIGH": 2.0,
            "MEDIUM": 1.5,
            "LOW": 1.2,
            "VERY_LOW": 1.0,
        }
    )
    bias_window_minutes: float = 10.0  # Positive drift fades out over this window
    bias_strength: float = 0.3
    pump_probability: float = 0.01
    pump_range: List[float] = field(default_factory=lambda: [1.5, 3.0])
    dump_probability: float = 0.01
    dump_range: List[float] = field(default_factory=lambda: [0.2, 0.6])
    price_floor_fraction: float = 0.05  # Never below 5% of entry


@dataclass
class SimConfig:
    """Complete simulation configuration"""
    version: str = "1.0"

    portfolio: PortfolioSettings = field(default_factory=PortfolioSettings)
    sizing: SizingLimits = field(default_factory=SizingLimits)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    price_model: PriceModelSettings = field(default_factory=PriceModelSettings)

    # family name -> {field: value} overrides for the strategy catalog
    strategies: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimConfig":
        """Create from dictionary"""
        return cls(
            version=str(data.get("version", "1.0")),
            portfolio=PortfolioSettings(**_known(PortfolioSettings, data.get("portfolio") or {})),
            sizing=SizingLimits(**_known(SizingLimits, data.get("sizing") or {})),
            monitor=MonitorSettings(**_known(MonitorSettings, data.get("monitor") or {})),
            price_model=PriceModelSettings(**_known(PriceModelSettings, data.get("price_model") or {})),
            strategies=dict(data.get("strategies") or {}),
            seed=data.get("seed"),
        )

    def validate(self) -> List[str]:
        """Validate config, return list of errors"""
        errors = []

        if self.portfolio.starting_balance <= 0:
            errors.append("starting_balance must be > 0")
        if self.portfolio.max_open_positions <= 0:
            errors.append("max_open_positions must be > 0")

        if self.sizing.max_position_size <= 0:
            errors.append("max_position_size must be > 0")
        if self.sizing.min_position_size <= 0:
            errors.append("min_position_size must be > 0")
        if self.sizing.min_position_size > self.sizing.max_position_size:
            errors.append("min_position_size must be <= max_position_size")

        if self.monitor.tick_interval_sec <= 0:
            errors.append("tick_interval_sec must be > 0")
        if self.monitor.timeout_guard_interval_sec <= 0:
            errors.append("timeout_guard_interval_sec must be > 0")
        if self.monitor.price_history_size < 2:
            errors.append("price_history_size must be >= 2")
        if self.monitor.quote_timeout_sec <= 0:
            errors.append("quote_timeout_sec must be > 0")

        pm = self.price_model
        if pm.base_volatility < 0:
            errors.append("base_volatility must be >= 0")
        for name in ("pump_probability", "dump_probability"):
            value = getattr(pm, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"{name} must be between 0 and 1")
        if not 0.0 < pm.price_floor_fraction < 1.0:
            errors.append("price_floor_fraction must be between 0 and 1")

        return errors

    def ensure_valid(self) -> "SimConfig":
        errors = self.validate()
        if errors:
            raise ConfigurationException("Invalid simulation config", errors="; ".join(errors))
        return self


class SimConfigManager:
    """
    Simulation config manager.

    Features:
    - Load from YAML or JSON
    - Save configuration
    - Validation
    - Default fallback when the file does not exist

    Usage:
        manager = SimConfigManager("config/sim.yaml")
        config = manager.get_config()
        ceiling = config.sizing.max_position_size
    """

    DEFAULT_CONFIG_PATH = "config/sim_config.yaml"

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or self.DEFAULT_CONFIG_PATH)
        self._config: Optional[SimConfig] = None
        self._last_modified: float = 0
        self._load()

    def _load(self):
        if self.config_path.exists():
            self._config = self._load_from_file()
            logger.info(f"Simulation config loaded from {self.config_path}")
        else:
            self._config = SimConfig()
            logger.info(f"No config at {self.config_path}, using defaults")

    def _load_from_file(self) -> SimConfig:
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                if self.config_path.suffix in [".yaml", ".yml"]:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationException(
                "Could not read simulation config", path=str(self.config_path), error=str(e)
            ) from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationException(
                "Simulation config must be a mapping", path=str(self.config_path)
            )

        self._last_modified = self.config_path.stat().st_mtime
        return SimConfig.from_dict(data or {})

    def save_config(self, config: Optional[SimConfig] = None):
        """Save config to file"""
        config = config or self.get_config()
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        data = config.to_dict()

        with open(self.config_path, "w", encoding="utf-8") as f:
            if self.config_path.suffix in [".yaml", ".yml"]:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2, ensure_ascii=False)

        self._last_modified = self.config_path.stat().st_mtime
        logger.info(f"Simulation config saved to {self.config_path}")

    def get_config(self) -> SimConfig:
        """Get current config"""
        if self._config is None:
            self._config = SimConfig()
        return self._config

    def reload(self) -> bool:
        """Reload config from file if it changed on disk"""
        if not self.config_path.exists():
            return False
        if self.config_path.stat().st_mtime <= self._last_modified:
            return False
        self._config = self._load_from_file()
        logger.info("Simulation config reloaded")
        return True

    def validate(self) -> List[str]:
        return self.get_config().validate()
