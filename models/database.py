"""SQLite storage for fired alerts and score history."""
import json
import sqlite3
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

from models.alerts import AlertRecord
from models.enums import AlertStatus
from models.metrics import ScoreHistoryEntry, format_timestamp, parse_timestamp

logger = logging.getLogger("tokenhealth.db")

SCHEMA_VERSION = 1


class Database:
    def __init__(self, db_path="data/tokenhealth.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.Lock()

    def connect(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        version = self.conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise RuntimeError(
                f"Database {self.db_path} has schema v{version}, this build supports v{SCHEMA_VERSION}"
            )
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_id TEXT NOT NULL,
                rule_id TEXT NOT NULL,
                rule_kind TEXT NOT NULL,
                rule_name TEXT NOT NULL,
                severity TEXT NOT NULL,
                health_score REAL,
                band TEXT,
                message TEXT,
                metadata TEXT,
                fired_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                resolved_at TEXT,
                UNIQUE(entity_id, rule_id, fired_at)
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_entity_rule
                ON alerts(entity_id, rule_id);

            CREATE INDEX IF NOT EXISTS idx_alerts_fired
                ON alerts(fired_at DESC);

            CREATE TABLE IF NOT EXISTS score_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_id TEXT NOT NULL,
                snapshot_time TEXT NOT NULL,
                health_score REAL NOT NULL,
                band TEXT,
                liquidity_usd REAL,
                holders_count INTEGER,
                fresh_ratio REAL,
                sniper_ratio REAL,
                insider_ratio REAL,
                top10_share REAL,
                UNIQUE(entity_id, snapshot_time)
            );

            CREATE INDEX IF NOT EXISTS idx_score_history_entity_time
                ON score_history(entity_id, snapshot_time DESC);
        """)
        self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        self.conn.commit()

    # --- Alerts ---

    def save_alert(self, record: AlertRecord) -> bool:
        """Insert an alert. Returns False when (entity, rule, fired_at) already exists."""
        with self._lock:
            cur = self.conn.execute("""
                INSERT OR IGNORE INTO alerts
                (entity_id, rule_id, rule_kind, rule_name, severity, health_score, band,
                 message, metadata, fired_at, status, resolved_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.entity_id, record.rule_id, record.rule_kind, record.rule_name,
                record.severity, record.health_score, record.band, record.message,
                json.dumps(record.metadata), format_timestamp(record.fired_at),
                record.status,
                format_timestamp(record.resolved_at) if record.resolved_at else None,
            ))
            self.conn.commit()
        if cur.rowcount == 0:
            logger.debug(f"Duplicate alert ignored: {record.entity_id}/{record.rule_id} @ {record.fired_at}")
            return False
        record.id = cur.lastrowid
        return True

    def get_alerts(self, entity_id, limit=50):
        rows = self.conn.execute("""
            SELECT * FROM alerts WHERE entity_id = ?
            ORDER BY fired_at DESC LIMIT ?
        """, (entity_id, limit)).fetchall()
        return [self._alert_from_row(r) for r in rows]

    def get_recent_alerts(self, limit=50):
        rows = self.conn.execute("""
            SELECT * FROM alerts ORDER BY fired_at DESC LIMIT ?
        """, (limit,)).fetchall()
        return [self._alert_from_row(r) for r in rows]

    def get_last_fired_times(self):
        """Latest fired_at per (entity_id, rule_id), used to warm-start the gate."""
        rows = self.conn.execute("""
            SELECT entity_id, rule_id, MAX(fired_at) AS last_fired
            FROM alerts GROUP BY entity_id, rule_id
        """).fetchall()
        return {(r["entity_id"], r["rule_id"]): parse_timestamp(r["last_fired"]) for r in rows}

    def get_entity_watermarks(self):
        """Latest persisted tick time per entity across alerts and score history."""
        rows = self.conn.execute("""
            SELECT entity_id, MAX(ts) AS last_tick FROM (
                SELECT entity_id, fired_at AS ts FROM alerts
                UNION ALL
                SELECT entity_id, snapshot_time AS ts FROM score_history
            ) GROUP BY entity_id
        """).fetchall()
        return {r["entity_id"]: parse_timestamp(r["last_tick"]) for r in rows}

    def resolve_alerts(self, entity_id, rule_id, resolved_at) -> int:
        with self._lock:
            cur = self.conn.execute("""
                UPDATE alerts SET status = ?, resolved_at = ?
                WHERE entity_id = ? AND rule_id = ? AND status = ?
            """, (
                AlertStatus.RESOLVED.value, format_timestamp(resolved_at),
                entity_id, rule_id, AlertStatus.ACTIVE.value,
            ))
            self.conn.commit()
        return cur.rowcount

    def get_alert_stats(self, days=30, now=None):
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        rows = self.conn.execute("""
            SELECT rule_kind, status, COUNT(*) as count
            FROM alerts
            WHERE fired_at >= ?
            GROUP BY rule_kind, status
        """, (format_timestamp(cutoff),)).fetchall()
        stats = {}
        for r in rows:
            stats.setdefault(r["rule_kind"], {})[r["status"]] = r["count"]
        return stats

    def cleanup_alerts(self, days=7, now=None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        with self._lock:
            cur = self.conn.execute(
                "DELETE FROM alerts WHERE fired_at < ?", (format_timestamp(cutoff),)
            )
            self.conn.commit()
        if cur.rowcount:
            logger.info(f"Cleaned up {cur.rowcount} alerts older than {days}d")
        return cur.rowcount

    @staticmethod
    def _alert_from_row(row):
        d = dict(row)
        return AlertRecord(
            id=d["id"],
            entity_id=d["entity_id"],
            rule_id=d["rule_id"],
            rule_kind=d["rule_kind"],
            rule_name=d["rule_name"],
            severity=d["severity"],
            health_score=d["health_score"],
            band=d["band"] or "",
            message=d["message"] or "",
            metadata=json.loads(d["metadata"]) if d["metadata"] else {},
            fired_at=parse_timestamp(d["fired_at"]),
            status=d["status"],
            resolved_at=parse_timestamp(d["resolved_at"]),
        )

    # --- Score History ---

    def save_score_entry(self, entry: ScoreHistoryEntry) -> bool:
        """Insert a history entry. Returns False when (entity, snapshot_time) already exists."""
        with self._lock:
            cur = self.conn.execute("""
                INSERT OR IGNORE INTO score_history
                (entity_id, snapshot_time, health_score, band, liquidity_usd, holders_count,
                 fresh_ratio, sniper_ratio, insider_ratio, top10_share)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.entity_id, format_timestamp(entry.snapshot_time), entry.health_score,
                entry.band, entry.liquidity_usd, entry.holders_count, entry.fresh_ratio,
                entry.sniper_ratio, entry.insider_ratio, entry.top10_share,
            ))
            self.conn.commit()
        return cur.rowcount > 0

    def get_score_history(self, entity_id, limit=500):
        """Entries for an entity, oldest first."""
        rows = self.conn.execute("""
            SELECT * FROM score_history WHERE entity_id = ?
            ORDER BY snapshot_time DESC LIMIT ?
        """, (entity_id, limit)).fetchall()
        entries = []
        for r in reversed(rows):
            d = dict(r)
            d.pop("id")
            d["snapshot_time"] = parse_timestamp(d["snapshot_time"])
            entries.append(ScoreHistoryEntry(**d))
        return entries

    def get_last_snapshot_time(self, entity_id):
        row = self.conn.execute("""
            SELECT MAX(snapshot_time) AS last_snapshot
            FROM score_history WHERE entity_id = ?
        """, (entity_id,)).fetchone()
        return parse_timestamp(row["last_snapshot"]) if row else None

    def get_snapshot_stats(self):
        row = self.conn.execute("""
            SELECT
                COUNT(*) as total_snapshots,
                COUNT(DISTINCT entity_id) as unique_entities,
                MIN(snapshot_time) as earliest_snapshot,
                MAX(snapshot_time) as latest_snapshot
            FROM score_history
        """).fetchone()
        return dict(row)

    def cleanup_score_history(self, days=30, now=None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        with self._lock:
            cur = self.conn.execute(
                "DELETE FROM score_history WHERE snapshot_time < ?", (format_timestamp(cutoff),)
            )
            self.conn.commit()
        if cur.rowcount:
            logger.info(f"Cleaned up {cur.rowcount} score snapshots older than {days}d")
        return cur.rowcount
