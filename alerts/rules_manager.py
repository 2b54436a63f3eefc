"""Alert rules loading and management."""
import logging
import math
import threading
import yaml
from datetime import timedelta
from pathlib import Path

from config import DEFAULT_RULES_PATH
from models.alerts import AlertRule
from models.enums import RuleKind, Severity
from models.expressions import RuleDefinitionError, parse_expression

logger = logging.getLogger("tokenhealth.alerts.rules")


def _minutes(raw, key):
    value = raw.get(key, 0)
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        raise RuleDefinitionError(f"{key} must be a number, got {value!r}")
    if not math.isfinite(minutes) or minutes < 0:
        raise RuleDefinitionError(f"{key} must be a finite number >= 0, got {minutes:g}")
    try:
        return timedelta(minutes=minutes)
    except OverflowError:
        raise RuleDefinitionError(f"{key} is out of range: {minutes:g}")


def _enabled(raw):
    value = raw.get("enabled", True)
    if not isinstance(value, bool):
        raise RuleDefinitionError(f"enabled must be true or false, got {value!r}")
    return value


def parse_rule(raw):
    """Build an AlertRule from one YAML mapping. Raises RuleDefinitionError."""
    if not isinstance(raw, dict):
        raise RuleDefinitionError(f"rule must be a mapping, got {type(raw).__name__}")
    rule_id = raw.get("id")
    if not rule_id:
        raise RuleDefinitionError("rule is missing an id")
    if "condition" not in raw:
        raise RuleDefinitionError(f"rule {rule_id}: missing condition")

    try:
        kind = RuleKind(raw.get("kind", RuleKind.CUSTOM.value))
    except ValueError:
        raise RuleDefinitionError(f"rule {rule_id}: unknown kind {raw.get('kind')!r}")
    try:
        severity = Severity(str(raw.get("severity", "INFO")).upper())
    except ValueError:
        raise RuleDefinitionError(f"rule {rule_id}: unknown severity {raw.get('severity')!r}")

    hard_mute = raw.get("hard_mute")
    return AlertRule(
        id=str(rule_id),
        kind=kind,
        name=raw.get("name", rule_id),
        condition=parse_expression(raw["condition"], f"rule {rule_id} condition"),
        hard_mute=parse_expression(hard_mute, f"rule {rule_id} hard_mute") if hard_mute else None,
        debounce=_minutes(raw, "debounce_minutes"),
        sustain=_minutes(raw, "sustain_minutes"),
        severity=severity,
        enabled=_enabled(raw),
        description=raw.get("description", ""),
    )


class RulesManager:
    def __init__(self, rules_path=DEFAULT_RULES_PATH):
        self.rules_path = Path(rules_path)
        self.rules = []
        self.errors = []
        self._mtime = None
        self._lock = threading.Lock()
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            return
        mtime = self.rules_path.stat().st_mtime
        try:
            with open(self.rules_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Cannot parse {self.rules_path}, keeping {len(self.rules)} current rules: {e}")
            self._mtime = mtime
            return

        raw_rules = data.get("rules", []) if isinstance(data, dict) else data
        rules, errors = self._parse_rules(raw_rules)
        with self._lock:
            self.rules = rules
            self.errors = errors
            self._mtime = mtime
        logger.info(f"Loaded {len(rules)} rules ({len(errors)} skipped)")

    reload = load

    def maybe_reload(self):
        """Reload when the rules file changed on disk. Returns True if reloaded."""
        try:
            mtime = self.rules_path.stat().st_mtime
        except FileNotFoundError:
            return False
        if mtime == self._mtime:
            return False
        logger.info(f"Rules file changed, reloading {self.rules_path}")
        self.load()
        return True

    def _parse_rules(self, raw_rules):
        rules = []
        errors = []
        seen = set()
        if not isinstance(raw_rules, list):
            errors.append("'rules' must be a list")
            logger.error(errors[-1])
            return rules, errors
        for i, r in enumerate(raw_rules):
            try:
                rule = parse_rule(r)
                if rule.id in seen:
                    raise RuleDefinitionError(f"duplicate rule id {rule.id}")
            except RuleDefinitionError as e:
                errors.append(f"rules[{i}]: {e}")
                logger.error(f"Skipping rules[{i}]: {e}")
                continue
            seen.add(rule.id)
            rules.append(rule)
        return rules, errors

    def get_enabled_rules(self):
        with self._lock:
            return [r for r in self.rules if r.enabled]

    def get_rule(self, rule_id):
        for r in self.get_all_rules():
            if r.id == rule_id:
                return r
        return None

    def get_all_rules(self):
        with self._lock:
            return list(self.rules)
