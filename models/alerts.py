"""Dataclasses for alert rules and records."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from models.enums import AlertStatus, RuleKind, Severity
from models.expressions import Expression


@dataclass(frozen=True)
class AlertRule:
    id: str
    kind: RuleKind
    condition: Expression
    hard_mute: Optional[Expression] = None
    debounce: timedelta = timedelta(0)
    sustain: timedelta = timedelta(0)
    name: str = ""
    severity: Severity = Severity.INFO
    enabled: bool = True
    description: str = ""

    def is_muted(self, fields):
        return self.hard_mute is not None and self.hard_mute.evaluate(fields)


@dataclass
class AlertRecord:
    entity_id: str = ""
    rule_id: str = ""
    rule_kind: str = RuleKind.CUSTOM.value
    rule_name: str = ""
    severity: str = Severity.INFO.value
    health_score: float = 0.0
    band: str = ""
    message: str = ""
    metadata: dict = field(default_factory=dict)
    fired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = AlertStatus.ACTIVE.value
    resolved_at: Optional[datetime] = None
    id: Optional[int] = None
