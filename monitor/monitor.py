"""HealthMonitor - per-tick orchestration of scoring, alerting and score history."""
import logging
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta

from models.metrics import ScoreHistoryEntry
from monitor.cadence import should_snapshot
from utils.retry import PersistenceError, RetryPolicy

logger = logging.getLogger("tokenhealth.monitor")


class HealthMonitor:
    def __init__(self, engine, store, config=None, retry=None):
        self.engine = engine
        self.store = store
        self.config = config or {}
        engine_cfg = self.config.get("engine", {})
        self.workers = max(1, int(engine_cfg.get("workers", 4)))
        self.state_ttl = timedelta(hours=engine_cfg.get("state_ttl_hours", 48))
        self.retry = retry or RetryPolicy.from_config(self.config)
        self._first_seen = {}
        self._last_snapshot = {}
        self._lock = threading.Lock()
        self.history_failures = 0

    def process(self, snapshot):
        """Run one tick for one entity. Returns the engine's EvaluationResult."""
        result = self.engine.evaluate(snapshot)
        if result.stale:
            return result
        self._record_history(snapshot, result)
        return result

    def process_batch(self, snapshots):
        """Process many snapshots, sharded by entity so each entity stays in order."""
        shards = OrderedDict()
        for s in snapshots:
            shards.setdefault(s.entity_id, []).append(s)
        if not shards:
            return []

        results = []
        if self.workers == 1 or len(shards) == 1:
            for shard in shards.values():
                results.extend(self._process_shard(shard))
            return results

        with ThreadPoolExecutor(max_workers=min(self.workers, len(shards))) as executor:
            futures = [executor.submit(self._process_shard, shard) for shard in shards.values()]
            for future in as_completed(futures):
                results.extend(future.result())
        return results

    def _process_shard(self, shard):
        results = []
        for s in shard:
            try:
                results.append(self.process(s))
            except Exception as e:
                logger.error(f"Tick failed for {s.entity_id} @ {s.observed_at.isoformat()}: {e}")
        return results

    def entity_age(self, snapshot):
        first_seen = snapshot.first_seen_at
        if first_seen is None:
            with self._lock:
                first_seen = self._first_seen.setdefault(snapshot.entity_id, snapshot.observed_at)
        return max(snapshot.observed_at - first_seen, timedelta(0))

    def _last_snapshot_time(self, entity_id):
        if entity_id not in self._last_snapshot:
            self._last_snapshot[entity_id] = self.store.get_last_snapshot_time(entity_id)
        return self._last_snapshot[entity_id]

    def _record_history(self, snapshot, result):
        now = snapshot.observed_at
        age = self.entity_age(snapshot)
        if not should_snapshot(age, self._last_snapshot_time(snapshot.entity_id), now):
            return False

        entry = ScoreHistoryEntry.from_snapshot(snapshot.normalized(), result.score, result.band.label)
        try:
            self.retry.call(self.store.save_score_entry, entry,
                            description=f"save score snapshot {snapshot.entity_id}")
        except PersistenceError as e:
            self.history_failures += 1
            logger.error(str(e))
            return False
        self._last_snapshot[snapshot.entity_id] = now
        logger.debug(f"Score snapshot {snapshot.entity_id} @ {now.isoformat()}: {result.score:.2f}")
        return True

    def evict_stale(self, now):
        """Forget entities not seen within the state TTL."""
        evicted = self.engine.gate.evict(now, self.state_ttl)
        with self._lock:
            known = set(self._first_seen) | set(self._last_snapshot) | set(self.engine.tracked_entities())
            stale = [
                entity for entity in known
                if (self.engine.last_seen(entity) is None
                    or now - self.engine.last_seen(entity) > self.state_ttl)
            ]
            for entity in stale:
                self._first_seen.pop(entity, None)
                self._last_snapshot.pop(entity, None)
                self.engine.forget(entity)
        return evicted

    def cleanup(self, now=None):
        """Apply retention windows to the stores."""
        retention = self.config.get("retention", {})
        return {
            "alerts": self.store.cleanup_alerts(retention.get("alerts_days", 7), now=now),
            "score_history": self.store.cleanup_score_history(
                retention.get("score_history_days", 30), now=now),
        }
