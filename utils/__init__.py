"""Utility modules for the token health monitor."""
from utils.logger import setup_logging
from utils.formatters import format_usd, format_pct, format_entity, format_health_badge, time_ago
from utils.retry import RetryPolicy, PersistenceError
