"""Config package"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from ..constants import DEXSCREENER_API_BASE
from ..exceptions import ConfigurationException

# Load environment variables
load_dotenv()

from .sim_config import (
    MonitorSettings,
    PortfolioSettings,
    PriceModelSettings,
    SimConfig,
    SimConfigManager,
    SizingLimits,
)

# Educational simulator: dry-run is the only supported mode
DRY_RUN_MODE = "DRY_RUN"


@dataclass
class Settings:
    """Process-level settings read from the environment."""

    SIM_MODE: str = DRY_RUN_MODE
    SIM_CONFIG_PATH: str = "config/sim_config.yaml"

    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    API_TIMEOUT_SEC: float = 5.0
    DEXSCREENER_API_BASE: str = DEXSCREENER_API_BASE
    DEXSCREENER_MAX_RETRIES: int = 2
    DEXSCREENER_RETRY_BACKOFF_SEC: float = 0.5
    MARKET_DATA_ENABLED: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        mode = os.getenv("SIM_MODE", DRY_RUN_MODE).upper()
        if mode != DRY_RUN_MODE:
            raise ConfigurationException(
                "Only DRY_RUN mode is supported by the simulator", SIM_MODE=mode
            )
        try:
            return cls(
                SIM_MODE=mode,
                SIM_CONFIG_PATH=os.getenv("SIM_CONFIG_PATH", cls.SIM_CONFIG_PATH),
                LOG_DIR=os.getenv("LOG_DIR", cls.LOG_DIR),
                LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL).upper(),
                API_TIMEOUT_SEC=float(os.getenv("API_TIMEOUT_SEC", cls.API_TIMEOUT_SEC)),
                DEXSCREENER_API_BASE=os.getenv("DEXSCREENER_API_BASE", cls.DEXSCREENER_API_BASE),
                DEXSCREENER_MAX_RETRIES=int(
                    os.getenv("DEXSCREENER_MAX_RETRIES", cls.DEXSCREENER_MAX_RETRIES)
                ),
                DEXSCREENER_RETRY_BACKOFF_SEC=float(
                    os.getenv("DEXSCREENER_RETRY_BACKOFF_SEC", cls.DEXSCREENER_RETRY_BACKOFF_SEC)
                ),
                MARKET_DATA_ENABLED=os.getenv("MARKET_DATA_ENABLED", "False").lower() == "true",
            )
        except ValueError as e:
            raise ConfigurationException("Invalid numeric environment setting", error=str(e)) from e


__all__ = [
    "DRY_RUN_MODE",
    "MonitorSettings",
    "PortfolioSettings",
    "PriceModelSettings",
    "Settings",
    "SimConfig",
    "SimConfigManager",
    "SizingLimits",
]
