# ============================================
# TIME UNITS (all durations are seconds)
# ============================================
SECOND = 1.0
MINUTE = 60.0
HOUR = 60 * MINUTE

# ============================================
# DETECTION
# ============================================
# Signals detected within this window get a freshness bonus of the same size
FRESHNESS_WINDOW_SEC = 30.0

# Source tags that count as a "special signal" when scoring urgency
PUMP_DETECTOR_TAG = "pump_detector"

# ============================================
# URGENCY SCORING
# ============================================
PRIORITY_URGENCY_POINTS = {
    "ULTRA_HIGH": 4,
    "HIGH": 3,
    "MEDIUM": 2,
    "LOW": 1,
}

# (min_security_score, points), first match wins
SECURITY_URGENCY_POINTS = [(90, 3), (75, 2), (60, 1)]

# (max_age_sec, points), first match wins
AGE_URGENCY_POINTS = [(30.0, 4), (MINUTE, 3), (5 * MINUTE, 2), (15 * MINUTE, 1)]

# (min_liquidity_usd, points)
LIQUIDITY_URGENCY_POINTS = [(100_000.0, 2), (50_000.0, 1)]

PUMP_SIGNAL_POINTS = 2

# (min_score, urgency)
URGENCY_BREAKPOINTS = [(10, "ULTRA_HIGH"), (7, "HIGH"), (4, "MEDIUM")]

# MEDIUM urgency only buys above this security score, otherwise WATCH
MEDIUM_URGENCY_BUY_SCORE = 60

# ============================================
# CONFIDENCE
# ============================================
CONFIDENCE_BASE = 50.0
CONFIDENCE_SECURITY_WEIGHT = 30.0
CONFIDENCE_LIQUIDITY_POINTS = [(100_000.0, 15.0), (50_000.0, 10.0), (25_000.0, 5.0)]
CONFIDENCE_AGE_POINTS = [(2 * MINUTE, 10.0), (10 * MINUTE, 5.0)]
CONFIDENCE_PRIORITY_POINTS = {
    "ULTRA_HIGH": 15.0,
    "HIGH": 10.0,
    "MEDIUM": 5.0,
    "LOW": 0.0,
}

# ============================================
# RISK LEVEL
# ============================================
RISK_SECURITY_POINTS = [(30, 3), (50, 2), (70, 1)]          # score below threshold
RISK_LIQUIDITY_POINTS = [(5_000.0, 3), (15_000.0, 2), (50_000.0, 1)]  # liquidity below
RISK_AGE_POINTS = [(2 * MINUTE, 2), (10 * MINUTE, 1)]        # age below
RISK_BREAKPOINTS = [(6, "VERY_HIGH"), (4, "HIGH"), (2, "MEDIUM"), (1, "LOW")]

# ============================================
# HOLD TIME ESTIMATE
# ============================================
HOLD_TIME_BASE_FRACTION = 0.3
HOLD_TIME_FAMILY_FACTORS = {
    "PUMP_FUN": 0.5,
    "RAYDIUM": 0.8,
    "DEXSCREENER": 1.2,
}
HOLD_TIME_HIGH_LIQUIDITY_USD = 100_000.0
HOLD_TIME_HIGH_LIQUIDITY_FACTOR = 1.3
HOLD_TIME_LOW_LIQUIDITY_USD = 10_000.0
HOLD_TIME_LOW_LIQUIDITY_FACTOR = 0.7
MIN_EXPECTED_HOLD_SEC = 5 * MINUTE

# ============================================
# FALLBACK PRICE SYNTHESIS
# ============================================
FALLBACK_BASE_PRICE = 0.000001
FALLBACK_MIN_PRICE = 0.0000001
# (liquidity_above_usd, multiplier), first match wins
FALLBACK_LIQUIDITY_FACTORS = [
    (100_000.0, 1000.0),
    (50_000.0, 500.0),
    (10_000.0, 100.0),
    (1_000.0, 10.0),
]
FALLBACK_ESTABLISHED_DEX_FACTOR = 5.0
FALLBACK_PUMP_FACTOR = 2.0
FALLBACK_RANDOM_RANGE = (0.5, 1.5)

# ============================================
# MARKET DATA
# ============================================
DEXSCREENER_API_BASE = "https://api.dexscreener.com"

# ============================================
# POSITION MONITORING
# ============================================
# Tolerance for ROI threshold comparisons (percent)
ROI_EPSILON = 1e-9
