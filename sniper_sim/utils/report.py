from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sniper_sim.core.models import Position
from sniper_sim.core.performance_tracker import PerformanceTracker
from sniper_sim.paper_trading.ledger import PortfolioSnapshot
from sniper_sim.utils.time import fmt_duration


def _pnl_markup(value: float, text: str) -> str:
    if value > 0:
        style = "green"
    elif value < -10:
        style = "bold red"
    else:
        style = "red"
    return f"[{style}]{text}[/{style}]"


def portfolio_table(snapshot: PortfolioSnapshot) -> Table:
    table = Table(box=box.ROUNDED, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Starting Balance", f"{snapshot.starting_balance:.4f}")
    table.add_row("Current Balance", f"{snapshot.current_balance:.4f}")
    table.add_row("Invested", f"{snapshot.total_invested:.4f}")
    table.add_row("Realized P&L", _pnl_markup(snapshot.total_realized, f"{snapshot.total_realized:+.6f}"))
    table.add_row("Unrealized P&L", _pnl_markup(snapshot.unrealized_pnl, f"{snapshot.unrealized_pnl:+.6f}"))
    table.add_row("Total Value", f"{snapshot.total_value:.4f}")
    table.add_row(
        "Total Return",
        _pnl_markup(snapshot.total_return_pct, f"{snapshot.total_return_pct:+.2f}%"),
    )
    table.add_row("Open Positions", str(snapshot.active_positions))
    return table


def positions_table(positions: list[Position], now: float) -> Table:
    table = Table(box=box.ROUNDED, expand=True)
    table.add_column("Symbol", style="cyan", no_wrap=True)
    table.add_column("Family", style="magenta")
    table.add_column("Invested", justify="right")
    table.add_column("Entry", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("ROI %", justify="right")
    table.add_column("Age", justify="right")

    if not positions:
        table.add_row("-", "-", "-", "-", "-", "-", "-")
        return table

    for p in positions:
        symbol = f"{p.symbol} 🚀" if p.is_pumping() else p.symbol
        table.add_row(
            symbol,
            p.family.value,
            f"{p.invested_amount:.4f}",
            f"{p.entry_price:.10f}",
            f"{p.current_price:.10f}",
            _pnl_markup(p.roi_percent, f"{p.roi_percent:+.1f}%"),
            fmt_duration(now - p.entry_time),
        )
    return table


def performance_table(tracker: PerformanceTracker) -> Table:
    table = Table(box=box.ROUNDED, expand=True)
    table.add_column("Family", style="cyan")
    table.add_column("Trades", justify="right")
    table.add_column("Win Rate", justify="right")
    table.add_column("Profit Factor", justify="right")
    table.add_column("Avg ROI", justify="right")
    table.add_column("Avg Hold", justify="right")

    rows = dict(tracker.stats_by_family())
    rows["ALL"] = tracker.get_stats()
    for family, stats in rows.items():
        pf = stats["profit_factor"]
        table.add_row(
            family,
            str(stats["total"]),
            f"{stats['win_rate']:.1f}%",
            "∞" if pf == float("inf") else f"{pf:.2f}",
            _pnl_markup(stats["avg_roi_pct"], f"{stats['avg_roi_pct']:+.1f}%"),
            fmt_duration(stats["avg_hold_sec"]),
        )
    return table


def render_summary(
    snapshot: PortfolioSnapshot,
    tracker: PerformanceTracker,
    positions: list[Position],
    now: float,
    console: Optional[Console] = None,
) -> None:
    """Print the end-of-run portfolio / performance summary."""
    console = console or Console()
    console.print(Panel("📄 SNIPER SIMULATION SUMMARY", style="bold white on blue"))
    console.print(portfolio_table(snapshot))
    console.print(Panel(positions_table(positions, now), title="Open Positions", border_style="green"))
    stats = tracker.get_stats()
    console.print(
        Panel(
            performance_table(tracker),
            title=f"Performance | Max Drawdown {stats['max_drawdown_pct']:.2f}%",
            border_style="magenta",
        )
    )
