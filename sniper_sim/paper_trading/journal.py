"""
Trade Journal

Persists every simulated trade to a JSON file as it happens.
Subscribes to TradeExecuted events; the engine never reads it back.
"""

import json
import logging
from pathlib import Path
from typing import List

from sniper_sim.core.events import EventBus, TradeExecuted
from sniper_sim.core.models import Trade
from sniper_sim.utils.time import fmt_ts

logger = logging.getLogger(__name__)


class TradeJournal:
    def __init__(self, path: str = "logs/sim_trades.json"):
        self.path = Path(path)

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(self._on_trade, TradeExecuted)

    def _on_trade(self, event: TradeExecuted) -> None:
        self.append(event.trade)

    def append(self, trade: Trade) -> None:
        """Append trade to the JSON log file."""
        record = trade.to_dict()
        record["datetime"] = fmt_ts(trade.timestamp)

        try:
            trades = self.load()
            trades.append(record)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(trades, f, indent=2)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to save trade log: {e}")

    def load(self) -> List[dict]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, list) else []
