"""Scoring weights, band boundaries and snapshot cadence."""
from datetime import timedelta

# Health score weights (points). Positive terms first, then penalties.
FRESH_WEIGHT = 35.0
LIQUIDITY_WEIGHT = 20.0
SNIPER_PENALTY = 15.0
INSIDER_PENALTY = 20.0
CONCENTRATION_PENALTY = 10.0

# Liquidity is scored on a log10 scale between $1 and $1M.
LIQUIDITY_FLOOR_USD = 1.0
LIQUIDITY_CEILING_USD = 1_000_000.0

SCORE_MIN = 0.0
SCORE_MAX = 100.0

# Lower bound of each band, best first.
HEALTH_BANDS = [
    {"key": "excellent", "label": "Excellent", "min": 80.0, "icon": "🟢", "style": "green"},
    {"key": "good", "label": "Good", "min": 60.0, "icon": "🔵", "style": "blue"},
    {"key": "fair", "label": "Fair", "min": 40.0, "icon": "🟡", "style": "yellow"},
    {"key": "poor", "label": "Poor", "min": 0.0, "icon": "🔴", "style": "red"},
]

# Score history cadence by entity age: (max age, interval). Older than the last
# tier falls through to SNAPSHOT_INTERVAL_MATURE.
SNAPSHOT_TIERS = [
    (timedelta(hours=2), timedelta(minutes=5)),
    (timedelta(hours=24), timedelta(minutes=15)),
]
SNAPSHOT_INTERVAL_MATURE = timedelta(minutes=60)

# Alert caveats appended to every fired alert message.
HIGH_TOP10_SHARE = 0.60
