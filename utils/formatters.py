"""Formatting utilities for display."""
from datetime import datetime, timezone


def format_usd(value, compact=False):
    """Format USD value with commas and 2 decimals. Compact mode for large numbers."""
    if value is None:
        return "N/A"
    value = float(value)
    if compact:
        if abs(value) >= 1_000_000_000:
            return f"${value / 1_000_000_000:,.1f}B"
        elif abs(value) >= 1_000_000:
            return f"${value / 1_000_000:,.1f}M"
        elif abs(value) >= 1_000:
            return f"${value / 1_000:,.1f}k"
        return f"${value:,.0f}"
    return f"${value:,.2f}"


def format_pct(value, decimals=1):
    """Format a fraction in [0, 1] as a percentage."""
    if value is None:
        return "N/A"
    return f"{float(value) * 100:.{decimals}f}%"


def format_entity(entity_id, symbol=None, max_length=50):
    """SYMBOL (abcd…wxyz) display for a token."""
    symbol = symbol or "UNKNOWN"
    short = f"{entity_id[:4]}…{entity_id[-4:]}" if len(entity_id) > 10 else entity_id
    display = f"{symbol} ({short})"
    if len(display) > max_length:
        display = f"{symbol[:max(1, max_length - 3 - len(short))]} ({short})"
    return display


def format_health_badge(score, band):
    return f"{band.icon} Health {score:.0f}/100 ({band.label})"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = int((now - dt).total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
