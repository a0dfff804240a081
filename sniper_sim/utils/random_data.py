from __future__ import annotations

import random
import string

from sniper_sim.core.models import TokenSignal

SOURCES = ["demo", "pump.fun", "raydium", "dexscreener", "orca", "jupiter", "meteora", "mystery_feed"]


def random_address(rng: random.Random) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(rng.choice(alphabet) for _ in range(44))


def random_symbol(rng: random.Random) -> str:
    return "".join(rng.choice(string.ascii_uppercase) for _ in range(rng.randint(3, 5)))


def random_signal(rng: random.Random, now: float, source: str | None = None) -> TokenSignal:
    """Synthetic discovery record for the demo feed."""
    age_sec = rng.uniform(5, 40 * 60)
    symbol = random_symbol(rng)
    pump = rng.random() < 0.15
    return TokenSignal(
        address=random_address(rng),
        symbol=symbol,
        name=f"{symbol} Demo Token",
        created_at=now - age_sec,
        liquidity_usd=rng.uniform(500, 150_000),
        liquidity_sol=rng.uniform(1, 800),
        security_score=rng.randint(5, 100),
        source_tag=source or rng.choice(SOURCES),
        # Most demo tokens have no live price and exercise the fallback
        price_usd=rng.uniform(0.000001, 0.01) if rng.random() < 0.3 else None,
        metadata={
            "detected_at": now - rng.uniform(0, min(age_sec, 60)),
            "pump_detected": pump,
            "pump_score": rng.randint(60, 100) if pump else 0,
        },
    )
