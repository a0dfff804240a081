"""
Portfolio Ledger

Virtual cash balance plus invested / realized totals. Mutated only through
reserve() on open and settle() on (partial) close; each call computes its
full delta before touching any field.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from sniper_sim.core.models import Position
from sniper_sim.exceptions import InsufficientBalanceException

logger = logging.getLogger(__name__)

# Float tolerance for balance comparisons
EPSILON = 1e-12


@dataclass(frozen=True)
class PortfolioSnapshot:
    starting_balance: float
    current_balance: float
    total_invested: float
    total_realized: float
    unrealized_pnl: float
    total_value: float
    active_positions: int

    @property
    def total_return_pct(self) -> float:
        if self.starting_balance <= 0:
            return 0.0
        return (self.total_value / self.starting_balance - 1.0) * 100.0

    def to_dict(self) -> dict:
        return {
            "starting_balance": self.starting_balance,
            "current_balance": self.current_balance,
            "total_invested": self.total_invested,
            "total_realized": self.total_realized,
            "unrealized_pnl": self.unrealized_pnl,
            "total_value": self.total_value,
            "active_positions": self.active_positions,
            "total_return_pct": self.total_return_pct,
        }


class PortfolioLedger:
    """Simulated cash ledger. The balance never goes negative."""

    def __init__(self, starting_balance: float = 10.0):
        if starting_balance <= 0:
            raise ValueError("starting_balance must be > 0")
        self.starting_balance = starting_balance
        self.current_balance = starting_balance
        self.total_invested = 0.0
        self.total_realized = 0.0

        logger.info(f"📄 Virtual portfolio initialized: {starting_balance:.4f}")

    def can_afford(self, amount: float) -> bool:
        return 0 < amount <= self.current_balance + EPSILON

    def reserve(self, amount: float) -> None:
        """Move `amount` from cash into invested, or refuse."""
        if amount <= 0:
            raise InsufficientBalanceException("Reserve amount must be > 0", amount=amount)
        if not self.can_afford(amount):
            raise InsufficientBalanceException(
                "Insufficient balance",
                requested=f"{amount:.6f}",
                available=f"{self.current_balance:.6f}",
            )

        new_balance = max(0.0, self.current_balance - amount)
        new_invested = self.total_invested + amount
        self.current_balance, self.total_invested = new_balance, new_invested

    def settle(self, invested_amount: float, exit_value: float) -> float:
        """Return `invested_amount` of stake to cash at `exit_value`. Returns realized P&L."""
        exit_value = max(0.0, exit_value)
        pnl = exit_value - invested_amount

        new_balance = self.current_balance + exit_value
        new_realized = self.total_realized + pnl
        new_invested = max(0.0, self.total_invested - invested_amount)
        self.current_balance, self.total_realized, self.total_invested = (
            new_balance,
            new_realized,
            new_invested,
        )
        return pnl

    @staticmethod
    def unrealized_pnl(positions: Iterable[Position]) -> float:
        return sum(p.unrealized_pnl() for p in positions if p.is_active)

    def total_value(self, positions: Iterable[Position]) -> float:
        active = [p for p in positions if p.is_active]
        return self.current_balance + self.total_invested + self.unrealized_pnl(active)

    def snapshot(self, positions: Iterable[Position]) -> PortfolioSnapshot:
        active = [p for p in positions if p.is_active]
        unrealized = self.unrealized_pnl(active)
        return PortfolioSnapshot(
            starting_balance=self.starting_balance,
            current_balance=self.current_balance,
            total_invested=self.total_invested,
            total_realized=self.total_realized,
            unrealized_pnl=unrealized,
            total_value=self.current_balance + self.total_invested + unrealized,
            active_positions=len(active),
        )
