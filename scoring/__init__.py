"""Health scoring."""
from scoring.health import HealthBand, BANDS, health_score, score_components, band_for
