"""Enums for rule kinds, severity, gate states and alert status."""
from enum import Enum


class MetricName(str, Enum):
    HEALTH_SCORE = "health_score"
    LIQUIDITY = "liquidity_usd"
    HOLDERS = "holders_count"
    FRESH = "fresh_ratio"
    SNIPER = "sniper_ratio"
    INSIDER = "insider_ratio"
    TOP10 = "top10_share"


class RuleKind(str, Enum):
    LAUNCH = "launch"
    MOMENTUM_UPGRADE = "momentum_upgrade"
    RISK = "risk"
    CUSTOM = "custom"


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class GateStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ARMED = "armed"
    FIRED = "fired"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
