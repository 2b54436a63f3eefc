"""Data models."""
from models.enums import MetricName, RuleKind, Severity, GateStatus, AlertStatus
from models.metrics import MetricSnapshot, ScoreHistoryEntry
from models.expressions import Comparison, AllOf, AnyOf, RuleDefinitionError
from models.alerts import AlertRule, AlertRecord
