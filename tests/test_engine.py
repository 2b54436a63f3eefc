"""Tests for the alert engine."""
from dataclasses import replace

import pytest

from conftest import T0, make_snapshot
from alerts.dispatcher import AlertDispatcher
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager
from models.enums import AlertStatus, GateStatus
from models.metrics import MetricSnapshot
from utils.retry import RetryPolicy


def _risky(minutes=0, entity_id="MintRISK1111ZZZZ9999"):
    return make_snapshot(entity_id=entity_id, minutes=minutes, sniper_ratio=0.65,
                         insider_ratio=0.45, holders_count=25, liquidity_usd=2_100)


def _risky_without(metric, minutes=0):
    return replace(_risky(minutes=minutes), **{metric: None})


@pytest.fixture
def rules():
    return RulesManager()


@pytest.fixture
def dispatcher(temp_db):
    return AlertDispatcher(temp_db, [], RetryPolicy(sleep=lambda s: None))


def test_launch_fires_with_high_score(rules):
    engine = AlertEngine(rules, scorer=lambda s: 75.0)
    result = engine.evaluate(make_snapshot())
    assert result.score == 75.0
    assert result.band.label == "Good"
    assert [a.rule_id for a in result.fired] == ["launch"]
    assert result.decisions["momentum_upgrade"].reason == "sustaining"
    assert result.decisions["risk"].reason == "idle"


def test_launch_muted_by_snipers(rules):
    engine = AlertEngine(rules, scorer=lambda s: 75.0)
    result = engine.evaluate(make_snapshot(sniper_ratio=0.35))
    assert result.fired == []
    assert result.decisions["launch"].reason == "muted"


def test_momentum_after_sustained_hour(rules):
    engine = AlertEngine(rules, scorer=lambda s: 70.0)
    fired = []
    for minute in (0, 15, 30, 45, 60, 75):
        fired += [(minute, a.rule_id) for a in engine.check(make_snapshot(minutes=minute))]
    assert (60, "momentum_upgrade") in fired
    assert [f for f in fired if f[1] == "momentum_upgrade"] == [(60, "momentum_upgrade")]


def test_risk_fires_for_sniper_heavy_token(rules):
    engine = AlertEngine(rules)
    result = engine.evaluate(_risky())
    assert [a.rule_id for a in result.fired] == ["risk"]
    alert = result.fired[0]
    assert alert.severity == "WARNING"
    assert alert.fired_at == _risky().observed_at
    assert alert.metadata["sniper_ratio"] == 0.65
    assert "RISK ALERT" in alert.message


def test_risk_muted_without_liquidity(rules):
    engine = AlertEngine(rules)
    result = engine.evaluate(make_snapshot(sniper_ratio=0.65, liquidity_usd=500))
    assert result.fired == []
    assert result.decisions["risk"].reason == "muted"


def test_out_of_order_and_duplicate_dropped(rules):
    engine = AlertEngine(rules)
    assert not engine.evaluate(_risky(minutes=10)).stale
    late = engine.evaluate(_risky(minutes=5))
    assert late.stale
    assert late.fired == []
    assert late.score is None
    assert engine.evaluate(_risky(minutes=10)).stale
    assert engine.last_seen(_risky().entity_id) == _risky(minutes=10).observed_at


def test_disabled_rules_skipped(rules_file):
    path = rules_file("""
rules:
  - id: off
    enabled: false
    condition: {metric: health_score, operator: ">=", threshold: 0}
""")
    engine = AlertEngine(RulesManager(path))
    assert engine.evaluate(make_snapshot()).fired == []


def test_fired_alerts_persisted_and_resolved(rules, dispatcher, temp_db):
    engine = AlertEngine(rules, dispatcher, scorer=lambda s: 75.0)
    engine.evaluate(_risky(minutes=0))
    stored = temp_db.get_recent_alerts()
    assert [a.rule_id for a in stored] == ["risk"]
    assert stored[0].status == AlertStatus.ACTIVE.value

    result = engine.evaluate(make_snapshot(entity_id=_risky().entity_id, minutes=1))
    assert result.decisions["risk"].resolved
    risk = [a for a in temp_db.get_recent_alerts() if a.rule_id == "risk"]
    assert risk[0].status == AlertStatus.RESOLVED.value
    assert risk[0].resolved_at == make_snapshot(minutes=1).observed_at


def test_warm_start_keeps_debounce(rules, dispatcher, temp_db):
    engine = AlertEngine(rules, dispatcher)
    engine.evaluate(_risky(minutes=0))

    restarted = AlertEngine(rules, dispatcher)
    assert restarted.warm_start(temp_db) == 1
    assert restarted.evaluate(_risky(minutes=2)).fired == []
    assert [a.rule_id for a in restarted.evaluate(_risky(minutes=6)).fired] == ["risk"]
    assert len(temp_db.get_recent_alerts()) == 2


def test_test_rules_ignores_gate(rules):
    engine = AlertEngine(rules)
    engine.evaluate(_risky(minutes=0))
    results = {r["rule_id"]: r for r in engine.test_rules(_risky(minutes=1))}
    assert results["risk"]["would_fire"] is True
    assert results["risk"]["condition"].startswith("health_score < 40")
    assert results["launch"]["would_fire"] is False
    assert set(results["launch"]) >= {"name", "kind", "health_score", "muted", "severity", "enabled"}


def test_format_alert_summary(rules):
    engine = AlertEngine(rules)
    assert engine.format_alert_summary([]) == "All clear - no alerts triggered."
    summary = engine.format_alert_summary(engine.check(_risky()))
    assert summary.startswith("[!!] [WARNING]")
    assert "\n" not in summary


def test_forget_clears_order_guard(rules):
    engine = AlertEngine(rules)
    engine.evaluate(_risky(minutes=10))
    engine.forget(_risky().entity_id)
    assert engine.last_seen(_risky().entity_id) is None
    assert not engine.evaluate(_risky(minutes=5)).stale


@pytest.mark.parametrize("score,band", [(75.0, "Good"), (85.0, "Excellent")])
def test_launch_scenario_fires_once(rules, score, band):
    engine = AlertEngine(rules, scorer=lambda s: score)
    fired = []
    for minute in (0, 5, 10):
        result = engine.evaluate(make_snapshot(minutes=minute, liquidity_usd=25_500, holders_count=150,
                                               sniper_ratio=0.12, insider_ratio=0.08))
        assert result.band.label == band
        fired += [a.rule_id for a in result.fired if a.rule_id == "launch"]
    assert fired == ["launch"]


def test_empty_snapshot_fires_nothing(rules):
    engine = AlertEngine(rules)
    result = engine.evaluate(MetricSnapshot(entity_id="MintEMPTY", observed_at=T0))
    assert result.score == 0.0
    assert result.fired == []
    assert {d.reason for d in result.decisions.values()} == {"missing_data"}


def test_missing_mute_field_skips_rule(rules):
    engine = AlertEngine(rules)
    result = engine.evaluate(_risky_without("holders_count"))
    assert result.fired == []
    assert result.decisions["risk"].reason == "missing_data"


def test_missing_data_keeps_fired_streak(rules, dispatcher, temp_db):
    engine = AlertEngine(rules, dispatcher)
    engine.evaluate(_risky(minutes=0))
    result = engine.evaluate(_risky_without("liquidity_usd", minutes=1))
    assert result.decisions["risk"].reason == "missing_data"
    assert not result.decisions["risk"].resolved
    assert result.decisions["risk"].status == GateStatus.FIRED
    assert engine.evaluate(_risky(minutes=2)).fired == []
    assert temp_db.get_recent_alerts()[0].status == AlertStatus.ACTIVE.value


def test_test_rules_reports_missing_fields(rules):
    engine = AlertEngine(rules)
    results = {r["rule_id"]: r for r in engine.test_rules(_risky_without("liquidity_usd"))}
    assert results["risk"]["missing"] == ["liquidity_usd"]
    assert results["risk"]["would_fire"] is False


def test_fired_alert_explains_itself(rules):
    engine = AlertEngine(rules)
    alert = engine.check(_risky())[0]
    why = alert.metadata["why_fired"]
    assert why[0].startswith("health_score 6.8 < 40")
    assert why[1:] == ["sniper_ratio 65% > 50%", "insider_ratio 45% > 40%"]
    assert "sniper_ratio 65% > 50%, insider_ratio 45% > 40%" in alert.message.splitlines()[3]
