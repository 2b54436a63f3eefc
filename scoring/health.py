"""Token health score and display bands.

The score is additive: two capped positive terms (fresh participants,
liquidity) minus three capped penalties (snipers, insiders, top-10
concentration). Only the final sum is clamped to [0, 100]; each term is
bounded by its own cap.

Both functions here are total. Missing metrics contribute nothing and
out-of-range inputs are clamped before use, so a malformed snapshot still
gets a score.
"""
import math
from dataclasses import dataclass

from utils.constants import (
    CONCENTRATION_PENALTY, FRESH_WEIGHT, HEALTH_BANDS, INSIDER_PENALTY,
    LIQUIDITY_CEILING_USD, LIQUIDITY_FLOOR_USD, LIQUIDITY_WEIGHT,
    SCORE_MAX, SCORE_MIN, SNIPER_PENALTY,
)


@dataclass(frozen=True)
class HealthBand:
    key: str
    label: str
    min: float
    icon: str
    style: str


BANDS = [HealthBand(**b) for b in HEALTH_BANDS]


def _weighted(fraction, weight):
    return min(weight, weight * (fraction or 0.0))


def _liquidity_term(liquidity_usd):
    liq = min(max(liquidity_usd or 0.0, LIQUIDITY_FLOOR_USD), LIQUIDITY_CEILING_USD)
    return min(LIQUIDITY_WEIGHT, LIQUIDITY_WEIGHT * math.log10(liq) / math.log10(LIQUIDITY_CEILING_USD))


def score_components(snapshot):
    """Every term of the score for one snapshot, before the final clamp."""
    s = snapshot.normalized()
    fresh = _weighted(s.fresh_ratio, FRESH_WEIGHT)
    liquidity = _liquidity_term(s.liquidity_usd)
    sniper = _weighted(s.sniper_ratio, SNIPER_PENALTY)
    insider = _weighted(s.insider_ratio, INSIDER_PENALTY)
    concentration = _weighted(s.top10_share, CONCENTRATION_PENALTY)
    return {
        "fresh_score": fresh,
        "liquidity_score": liquidity,
        "sniper_penalty": sniper,
        "insider_penalty": insider,
        "concentration_penalty": concentration,
        "raw_total": fresh + liquidity - sniper - insider - concentration,
    }


def health_score(snapshot):
    """Health score in [0, 100], rounded to 2 decimals."""
    total = score_components(snapshot)["raw_total"]
    return round(max(SCORE_MIN, min(SCORE_MAX, total)), 2)


def band_for(score):
    """Band containing score. Anything below the lowest boundary (or NaN) is Poor."""
    for band in BANDS:
        if score >= band.min:
            return band
    return BANDS[-1]
