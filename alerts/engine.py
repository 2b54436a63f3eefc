"""Alert evaluation engine."""
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from alerts.dispatcher import build_record
from alerts.gate import AntiNoiseGate, GateDecision
from models.expressions import referenced_metrics
from scoring.health import band_for, health_score

logger = logging.getLogger("tokenhealth.alerts.engine")


def missing_fields(rule, fields):
    """Sorted names a rule's condition or hard mute reads that have no value."""
    names = referenced_metrics(rule.condition)
    if rule.hard_mute is not None:
        names |= referenced_metrics(rule.hard_mute)
    return sorted(n for n in names if fields.get(n) is None)


@dataclass
class EvaluationResult:
    entity_id: str
    score: Optional[float] = None
    band: Optional[object] = None
    fired: list = field(default_factory=list)
    decisions: dict = field(default_factory=dict)
    stale: bool = False


class AlertEngine:
    def __init__(self, rules_manager, dispatcher=None, gate=None, scorer=health_score):
        self.rules_manager = rules_manager
        self.dispatcher = dispatcher
        self.gate = gate or AntiNoiseGate()
        self.scorer = scorer
        self._last_seen = {}
        self._entity_locks = {}
        self._locks_guard = threading.Lock()

    def _entity_lock(self, entity_id):
        lock = self._entity_locks.get(entity_id)
        if lock is None:
            with self._locks_guard:
                lock = self._entity_locks.setdefault(entity_id, threading.Lock())
        return lock

    def rule_fields(self, snapshot, score):
        """Field values a rule expression can reference."""
        fields = snapshot.metric_fields()
        fields["health_score"] = score
        return fields

    def evaluate(self, snapshot):
        """Score one snapshot, step every enabled rule's gate, dispatch what fires."""
        with self._entity_lock(snapshot.entity_id):
            return self._evaluate_locked(snapshot)

    def _evaluate_locked(self, snapshot):
        result = EvaluationResult(entity_id=snapshot.entity_id)
        now = snapshot.observed_at

        last = self._last_seen.get(snapshot.entity_id)
        if last is not None and now <= last:
            kind = "Duplicate" if now == last else "Out-of-order"
            logger.warning(
                f"{kind} snapshot for {snapshot.entity_id} dropped: "
                f"{now.isoformat()} (last seen {last.isoformat()})"
            )
            result.stale = True
            return result
        self._last_seen[snapshot.entity_id] = now

        snap = snapshot.normalized()
        score = self.scorer(snap)
        band = band_for(score)
        fields = self.rule_fields(snap, score)
        result.score = score
        result.band = band

        for rule in self.rules_manager.get_enabled_rules():
            missing = missing_fields(rule, fields)
            if missing:
                # Gate state is left untouched until the data comes back.
                logger.debug(f"{snap.entity_id}/{rule.id}: missing {', '.join(missing)}, rule skipped")
                result.decisions[rule.id] = GateDecision(
                    False, self.gate.status_of(snap.entity_id, rule.id), "missing_data")
                continue

            condition = rule.condition.evaluate(fields)
            muted = rule.is_muted(fields)
            decision = self.gate.evaluate(snap.entity_id, rule, condition, muted, now)
            result.decisions[rule.id] = decision

            if decision.resolved and self.dispatcher:
                self.dispatcher.resolve(snap.entity_id, rule.id, now)

            if not decision.fire:
                continue

            record = build_record(rule, snap, score, band, fields)
            result.fired.append(record)
            if self.dispatcher:
                self.dispatcher.dispatch(record)

        return result

    def check(self, snapshot):
        """Evaluate one snapshot and return the alerts it fired."""
        return self.evaluate(snapshot).fired

    def test_rules(self, snapshot):
        """Evaluate ALL rules against a snapshot, ignoring gate state, for validation."""
        snap = snapshot.normalized()
        score = self.scorer(snap)
        fields = self.rule_fields(snap, score)
        results = []

        for rule in self.rules_manager.get_all_rules():
            missing = missing_fields(rule, fields)
            condition = not missing and rule.condition.evaluate(fields)
            muted = rule.is_muted(fields)
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "kind": rule.kind.value,
                "condition": rule.condition.describe(),
                "health_score": score,
                "condition_met": condition,
                "muted": muted,
                "missing": missing,
                "would_fire": condition and not muted,
                "severity": rule.severity.value,
                "enabled": rule.enabled,
            })
        return results

    def warm_start(self, store):
        """Seed debounce anchors and per-entity watermarks after a restart.

        Snapshots at or before an entity's watermark were already processed
        by the previous run and are dropped, so replaying a stream is a no-op.
        """
        last_fired = store.get_last_fired_times()
        for (entity_id, rule_id), fired_at in last_fired.items():
            self.gate.seed(entity_id, rule_id, fired_at)
        watermarks = store.get_entity_watermarks()
        for entity_id, ts in watermarks.items():
            last = self._last_seen.get(entity_id)
            if last is None or ts > last:
                self._last_seen[entity_id] = ts
        logger.info(f"Warm start: restored {len(last_fired)} debounce anchors, "
                    f"{len(watermarks)} entity watermarks")
        return len(last_fired)

    def forget(self, entity_id):
        """Drop per-entity bookkeeping (out-of-order guard, lock)."""
        with self._locks_guard:
            self._last_seen.pop(entity_id, None)
            self._entity_locks.pop(entity_id, None)

    def last_seen(self, entity_id):
        return self._last_seen.get(entity_id)

    def tracked_entities(self):
        with self._locks_guard:
            return list(self._last_seen)

    def format_alert_summary(self, alerts):
        """Format alerts for display."""
        if not alerts:
            return "All clear - no alerts triggered."
        lines = []
        for a in alerts:
            icon = {"CRITICAL": "!!!", "WARNING": "!!", "INFO": "i"}.get(a.severity, "?")
            first_line = a.message.splitlines()[0] if a.message else a.rule_name
            lines.append(f"[{icon}] [{a.severity}] {first_line}")
        return "\n".join(lines)
