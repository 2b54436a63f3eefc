"""Background scheduler: poll the metrics source and run ticks periodically."""
import logging
import threading
import time
from datetime import datetime, timezone

import schedule

logger = logging.getLogger("tokenhealth.scheduler")


class MonitorScheduler:
    def __init__(self, monitor, source, rules_manager=None, dispatcher=None,
                 interval_seconds=30, maintenance_minutes=60):
        self.monitor = monitor
        self.source = source
        self.rules_manager = rules_manager
        self.dispatcher = dispatcher
        self.interval = interval_seconds
        self.maintenance_minutes = maintenance_minutes
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._callbacks = []
        self._consecutive_failures = 0

    def on_tick(self, callback):
        """Register callback called with the results of each successful tick."""
        self._callbacks.append(callback)

    def start(self):
        """Start background processing."""
        if self._running:
            return
        self._running = True

        self._scheduler.every(self.interval).seconds.do(self._tick_job)
        self._scheduler.every(self.maintenance_minutes).minutes.do(self._maintenance_job)

        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self):
        """Stop processing and drain pending alert writes."""
        self._running = False
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=10)
            self._thread = None
        if self.dispatcher:
            self.dispatcher.close()
        logger.info("Scheduler stopped")

    def run_once(self):
        """Single tick in the calling thread."""
        return self._tick_job()

    def _run_loop(self):
        self._tick_job()
        while self._running:
            self._scheduler.run_pending()
            time.sleep(1)

    def _tick_job(self):
        try:
            if self.rules_manager:
                self.rules_manager.maybe_reload()
            snapshots = self.source.poll()
            results = self.monitor.process_batch(snapshots)
            self._consecutive_failures = 0
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Tick failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive tick failures!")
            return []

        if snapshots:
            fired = sum(len(r.fired) for r in results)
            logger.info(f"Processed {len(snapshots)} snapshots, {fired} alert(s) fired")
        for cb in self._callbacks:
            try:
                cb(results)
            except Exception as e:
                logger.warning(f"Callback error: {e}")
        return results

    def _maintenance_job(self):
        now = datetime.now(timezone.utc)
        try:
            self.monitor.evict_stale(now)
            self.monitor.cleanup(now)
        except Exception as e:
            logger.error(f"Maintenance failed: {e}")
