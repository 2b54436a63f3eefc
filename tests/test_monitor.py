"""Tests for the health monitor: sharded ticks, score history, replay."""
import sqlite3
import pytest
from datetime import timedelta

from conftest import T0, make_snapshot
from alerts.dispatcher import AlertDispatcher
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager
from monitor.monitor import HealthMonitor
from utils.retry import RetryPolicy

RISKY = "MintRISK1111ZZZZ9999"
STEADY = "MintGOOD2222YYYY8888"
CONFIG = {"engine": {"workers": 4, "state_ttl_hours": 48},
          "retention": {"alerts_days": 7, "score_history_days": 30}}


def _retry():
    return RetryPolicy(attempts=2, sleep=lambda s: None)


def _build(db, warm=False):
    engine = AlertEngine(RulesManager(), AlertDispatcher(db, [], _retry()))
    if warm:
        engine.warm_start(db)
    return HealthMonitor(engine, db, CONFIG, _retry())


def _stream(minutes=range(0, 35, 5)):
    snaps = []
    for m in minutes:
        snaps.append(make_snapshot(entity_id=RISKY, minutes=m, sniper_ratio=0.65, insider_ratio=0.45,
                                   holders_count=25, liquidity_usd=2_100))
        snaps.append(make_snapshot(entity_id=STEADY, minutes=m, fresh_ratio=1.0, liquidity_usd=1e6,
                                   sniper_ratio=0.02, insider_ratio=0.01, top10_share=0.1))
    return snaps


def _counts(db):
    return (len(db.get_recent_alerts(limit=1000)),
            db.get_snapshot_stats()["total_snapshots"])


def test_batch_scores_and_records(temp_db):
    monitor = _build(temp_db)
    results = monitor.process_batch(_stream())
    assert len(results) == 14
    alerts = temp_db.get_recent_alerts()
    assert [(a.entity_id, a.rule_id) for a in alerts] == [(RISKY, "risk")]
    assert len(temp_db.get_score_history(RISKY)) == 7
    assert len(temp_db.get_score_history(STEADY)) == 7
    assert temp_db.get_score_history(STEADY)[0].band == "Fair"


def test_refeed_same_process_is_noop(temp_db):
    monitor = _build(temp_db)
    monitor.process_batch(_stream())
    before = _counts(temp_db)
    results = monitor.process_batch(_stream())
    assert all(r.stale for r in results)
    assert _counts(temp_db) == before


@pytest.mark.parametrize("warm", [True, False])
def test_refeed_after_restart_no_duplicates(temp_db, warm):
    _build(temp_db).process_batch(_stream())
    before = _counts(temp_db)
    _build(temp_db, warm=warm).process_batch(_stream())
    assert _counts(temp_db) == before


def test_history_cadence_for_young_token(temp_db):
    monitor = _build(temp_db)
    monitor.process_batch([make_snapshot(entity_id=STEADY, minutes=m) for m in range(13)])
    times = [h.snapshot_time for h in temp_db.get_score_history(STEADY)]
    assert times == [T0, T0 + timedelta(minutes=5), T0 + timedelta(minutes=10)]


def test_history_cadence_uses_first_seen(temp_db):
    monitor = _build(temp_db)
    old = T0 - timedelta(days=3)
    monitor.process_batch([
        make_snapshot(entity_id=STEADY, minutes=m, first_seen_at=old) for m in range(0, 130, 10)
    ])
    times = [h.snapshot_time for h in temp_db.get_score_history(STEADY)]
    assert times == [T0, T0 + timedelta(minutes=60), T0 + timedelta(minutes=120)]


def test_entity_age_falls_back_to_first_tick(temp_db):
    monitor = _build(temp_db)
    assert monitor.entity_age(make_snapshot(minutes=0)) == timedelta(0)
    assert monitor.entity_age(make_snapshot(minutes=45)) == timedelta(minutes=45)


def test_history_write_failure_does_not_block_alerts(temp_db, monkeypatch):
    def broken(entry):
        raise sqlite3.OperationalError("database is locked")
    monkeypatch.setattr(temp_db, "save_score_entry", broken)

    monitor = _build(temp_db)
    monitor.process_batch(_stream(minutes=[0, 5]))
    assert monitor.history_failures == 4
    assert len(temp_db.get_recent_alerts()) == 1


def test_single_worker_keeps_order(temp_db):
    monitor = HealthMonitor(AlertEngine(RulesManager()), temp_db,
                            {"engine": {"workers": 1}}, _retry())
    results = monitor.process_batch(_stream())
    assert [r.entity_id for r in results[:2]] == [RISKY, RISKY]
    assert not any(r.stale for r in results)


def test_empty_batch(temp_db):
    assert _build(temp_db).process_batch([]) == []


def test_evict_stale_forgets_idle_entities(temp_db):
    monitor = _build(temp_db)
    monitor.process_batch(_stream(minutes=[0]))
    evicted = monitor.evict_stale(T0 + timedelta(hours=49))
    assert evicted == 6
    assert len(monitor.engine.gate) == 0
    assert monitor.engine.last_seen(RISKY) is None


def test_cleanup_applies_retention(temp_db):
    monitor = _build(temp_db)
    monitor.process_batch(_stream(minutes=[0]))
    removed = monitor.cleanup(now=T0 + timedelta(days=8))
    assert removed == {"alerts": 1, "score_history": 0}


def test_evict_stale_drops_restored_watermarks(temp_db):
    _build(temp_db).process_batch(_stream(minutes=[0]))
    monitor = _build(temp_db, warm=True)
    assert monitor.engine.last_seen(RISKY) is not None
    monitor.evict_stale(T0 + timedelta(hours=49))
    assert monitor.engine.tracked_entities() == []
