"""Demo runner: feeds synthetic tokens into the simulation engine until interrupted."""
import asyncio
import logging
import platform
import random
import signal
import sys

from sniper_sim.config import Settings, SimConfigManager
from sniper_sim.core.context import SimulationContext
from sniper_sim.core.engine import SimulationEngine
from sniper_sim.core.market_data import DexScreenerMarketData
from sniper_sim.exceptions import SimulationException
from sniper_sim.paper_trading.journal import TradeJournal
from sniper_sim.utils.logging import setup_logging
from sniper_sim.utils.random_data import random_signal
from sniper_sim.utils.report import render_summary

logger = logging.getLogger(__name__)

# Seconds between synthetic detections
DEMO_SIGNAL_INTERVAL_SEC = 5.0


async def demo_feed(engine: SimulationEngine, rng: random.Random, shutdown_event: asyncio.Event) -> None:
    while not shutdown_event.is_set():
        sig = random_signal(rng, engine.ctx.now())
        decision = await engine.on_token_detected(sig)
        if decision is not None:
            logger.info(f"🔭 NEW TOKEN {sig.symbol} [{sig.source_tag}] -> {decision.action.value}")
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=DEMO_SIGNAL_INTERVAL_SEC)
        except asyncio.TimeoutError:
            continue


async def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings)

    config = SimConfigManager(settings.SIM_CONFIG_PATH).get_config()
    ctx = SimulationContext.create(config)

    provider = DexScreenerMarketData(settings) if settings.MARKET_DATA_ENABLED else None
    engine = SimulationEngine(ctx, provider=provider)
    TradeJournal(f"{settings.LOG_DIR}/sim_trades.json").attach(ctx.events)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_shutdown(sig):
        print(f"\n🛑 [SHUTDOWN] Received signal {sig}...")
        shutdown_event.set()

    # add_signal_handler is not available on Windows
    if platform.system() != "Windows":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_shutdown(s))

    await engine.start()
    feed_task = asyncio.create_task(demo_feed(engine, ctx.rng, shutdown_event))
    try:
        await shutdown_event.wait()
    finally:
        logger.info("Initiating graceful shutdown...")
        feed_task.cancel()
        await asyncio.gather(feed_task, return_exceptions=True)
        await engine.stop(close_positions=True)
        if provider is not None:
            await provider.close()

        render_summary(
            engine.snapshot(),
            engine.performance,
            engine.positions.active(),
            ctx.now(),
        )
        logger.info("Shutdown complete")


def run() -> None:
    print("""
╔══════════════════════════════════════════════════════════════╗
║      📄 EDUCATIONAL TOKEN SNIPER SIMULATOR (DRY RUN) 📄      ║
╠══════════════════════════════════════════════════════════════╣
║  No real funds. No on-chain transactions. Ctrl+C to stop.    ║
╚══════════════════════════════════════════════════════════════╝
    """)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("👋 Simulation stopped by user.")
    except SimulationException as e:
        print(f"🔥 Fatal Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
