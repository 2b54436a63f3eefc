"""Turns fired gate decisions into stored alert records and notifications."""
import logging
from concurrent.futures import ThreadPoolExecutor

from models.alerts import AlertRecord
from models.enums import RuleKind
from utils.constants import HIGH_TOP10_SHARE
from utils.formatters import format_entity, format_health_badge, format_pct, format_usd
from utils.retry import PersistenceError, RetryPolicy

logger = logging.getLogger("tokenhealth.alerts.dispatcher")

HEADLINES = {
    RuleKind.LAUNCH: "🚀 LAUNCH ALERT",
    RuleKind.MOMENTUM_UPGRADE: "📈 MOMENTUM UPGRADE",
    RuleKind.RISK: "⚠️ RISK ALERT",
    RuleKind.CUSTOM: "🔔 ALERT",
}

RATIO_FIELDS = {"fresh_ratio", "sniper_ratio", "insider_ratio", "top10_share"}


def _field_value(metric, value):
    if metric in RATIO_FIELDS:
        return format_pct(value, decimals=0)
    if metric == "liquidity_usd":
        return format_usd(value, compact=True)
    return f"{round(float(value), 1):g}"


def why_fired(rule, fields):
    """One line per comparison that held, e.g. 'sniper_ratio 65% > 50%'."""
    return [
        f"{c.metric} {_field_value(c.metric, fields[c.metric])} {c.operator} "
        f"{_field_value(c.metric, c.threshold)}"
        for c in rule.condition.matched(fields)
    ]


def risk_caveats(snapshot):
    caveats = []
    if snapshot.top10_share is not None and snapshot.top10_share > HIGH_TOP10_SHARE:
        caveats.append("High Top10%")
    return caveats


def _rule_fields(snapshot, score):
    fields = snapshot.metric_fields()
    fields["health_score"] = score
    return fields


def render_message(rule, snapshot, score, band, fields=None):
    headline = HEADLINES.get(rule.kind, HEADLINES[RuleKind.CUSTOM])
    holders = snapshot.holders_count if snapshot.holders_count is not None else "N/A"
    message = (
        f"{headline}: {format_entity(snapshot.entity_id, snapshot.symbol)} • "
        f"{format_health_badge(score, band)}\n"
        f"Holders: {holders} • Liq: {format_usd(snapshot.liquidity_usd, compact=True)}\n"
        f"Fresh: {format_pct(snapshot.fresh_ratio)} • Snipers: {format_pct(snapshot.sniper_ratio)} • "
        f"Insiders: {format_pct(snapshot.insider_ratio)} • Top10: {format_pct(snapshot.top10_share)}"
    )
    reasons = why_fired(rule, fields if fields is not None else _rule_fields(snapshot, score))
    if reasons:
        message += f"\nWhy: {', '.join(reasons)}"
    caveats = risk_caveats(snapshot)
    if caveats:
        message += f"\n⚠️ {', '.join(caveats)}"
    return message


def build_record(rule, snapshot, score, band, fields=None):
    """AlertRecord for a rule firing on this snapshot. fired_at is the tick time."""
    if fields is None:
        fields = _rule_fields(snapshot, score)
    metadata = dict(snapshot.metric_fields())
    metadata["health_score"] = score
    metadata["why_fired"] = why_fired(rule, fields)
    metadata["risk_caveats"] = risk_caveats(snapshot)
    if snapshot.symbol:
        metadata["symbol"] = snapshot.symbol
    return AlertRecord(
        entity_id=snapshot.entity_id,
        rule_id=rule.id,
        rule_kind=rule.kind.value,
        rule_name=rule.name or rule.id,
        severity=rule.severity.value,
        health_score=score,
        band=band.label,
        message=render_message(rule, snapshot, score, band, fields),
        metadata=metadata,
        fired_at=snapshot.observed_at,
    )


class AlertDispatcher:
    """Persists alerts with retry and fans them out to channels.

    With background=True, writes run on a single worker thread so a slow or
    failing store never holds up evaluation; close() drains pending writes.
    """

    def __init__(self, store, channels=None, retry=None, background=False):
        self.store = store
        self.channels = channels or []
        self.retry = retry or RetryPolicy()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alert-writer") if background else None
        self.failures = 0

    def dispatch(self, record):
        if self._executor:
            self._executor.submit(self._deliver, record)
        else:
            self._deliver(record)

    def resolve(self, entity_id, rule_id, at):
        if self._executor:
            self._executor.submit(self._resolve, entity_id, rule_id, at)
        else:
            self._resolve(entity_id, rule_id, at)

    def close(self):
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _deliver(self, record):
        try:
            inserted = self.retry.call(
                self.store.save_alert, record,
                description=f"save alert {record.entity_id}/{record.rule_id}",
            )
        except PersistenceError as e:
            self.failures += 1
            logger.error(str(e))
            inserted = True  # write lost, channels still get the alert

        if not inserted:
            return False

        logger.info(f"Alert fired: {record.rule_id} for {record.entity_id} (score {record.health_score:.1f})")
        for channel in self.channels:
            try:
                channel.send(record)
            except Exception as e:
                logger.warning(f"Channel dispatch error: {e}")
        return True

    def _resolve(self, entity_id, rule_id, at):
        try:
            count = self.retry.call(
                self.store.resolve_alerts, entity_id, rule_id, at,
                description=f"resolve alerts {entity_id}/{rule_id}",
            )
        except PersistenceError as e:
            self.failures += 1
            logger.error(str(e))
            return 0
        if count:
            logger.info(f"Resolved {count} {rule_id} alert(s) for {entity_id}")
        return count
