"""Dataclasses for token metric snapshots and score history entries."""
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional


def parse_timestamp(value):
    """Parse ISO strings or epoch seconds into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp(ts):
    """Fixed-width UTC ISO string, safe for lexical ordering in SQLite."""
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _clamp(value, low, high=None):
    value = _optional_float(value)
    if value is None:
        return None
    if value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def _optional_float(value):
    """float(value), or None when missing or not finite."""
    if value is None or value == "":
        return None
    value = float(value)
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class MetricSnapshot:
    entity_id: str
    observed_at: datetime
    liquidity_usd: Optional[float] = None
    holders_count: Optional[int] = None
    fresh_ratio: Optional[float] = None
    sniper_ratio: Optional[float] = None
    insider_ratio: Optional[float] = None
    top10_share: Optional[float] = None
    symbol: str = ""
    first_seen_at: Optional[datetime] = None

    def normalized(self):
        """Copy with every present metric clamped into its valid range."""
        holders = _clamp(self.holders_count, 0)
        return replace(
            self,
            liquidity_usd=_clamp(self.liquidity_usd, 0.0),
            holders_count=int(holders) if holders is not None else None,
            fresh_ratio=_clamp(self.fresh_ratio, 0.0, 1.0),
            sniper_ratio=_clamp(self.sniper_ratio, 0.0, 1.0),
            insider_ratio=_clamp(self.insider_ratio, 0.0, 1.0),
            top10_share=_clamp(self.top10_share, 0.0, 1.0),
        )

    def metric_fields(self):
        """Metric values keyed by rule field name. Missing metrics are None."""
        return {
            "liquidity_usd": self.liquidity_usd,
            "holders_count": self.holders_count,
            "fresh_ratio": self.fresh_ratio,
            "sniper_ratio": self.sniper_ratio,
            "insider_ratio": self.insider_ratio,
            "top10_share": self.top10_share,
        }

    def to_dict(self):
        d = {
            "entity_id": self.entity_id,
            "observed_at": format_timestamp(self.observed_at),
            "symbol": self.symbol,
            "first_seen_at": format_timestamp(self.first_seen_at) if self.first_seen_at else None,
        }
        d.update(self.metric_fields())
        return d

    @classmethod
    def from_dict(cls, d):
        """Build from a flat dict (JSON line, DB row). Requires entity_id and observed_at."""
        entity_id = d.get("entity_id") or d.get("mint")
        if not entity_id:
            raise ValueError("snapshot is missing entity_id")
        observed_at = parse_timestamp(d.get("observed_at") or d.get("timestamp"))
        if observed_at is None:
            raise ValueError(f"snapshot for {entity_id} is missing observed_at")

        holders = _optional_float(d.get("holders_count"))
        return cls(
            entity_id=str(entity_id),
            observed_at=observed_at,
            liquidity_usd=_optional_float(d.get("liquidity_usd")),
            holders_count=int(holders) if holders is not None else None,
            fresh_ratio=_optional_float(d.get("fresh_ratio")),
            sniper_ratio=_optional_float(d.get("sniper_ratio")),
            insider_ratio=_optional_float(d.get("insider_ratio")),
            top10_share=_optional_float(d.get("top10_share")),
            symbol=d.get("symbol") or "",
            first_seen_at=parse_timestamp(d.get("first_seen_at")),
        )


@dataclass(frozen=True)
class ScoreHistoryEntry:
    entity_id: str
    snapshot_time: datetime
    health_score: float
    band: str
    liquidity_usd: Optional[float] = None
    holders_count: Optional[int] = None
    fresh_ratio: Optional[float] = None
    sniper_ratio: Optional[float] = None
    insider_ratio: Optional[float] = None
    top10_share: Optional[float] = None

    @classmethod
    def from_snapshot(cls, snapshot, score, band):
        return cls(
            entity_id=snapshot.entity_id,
            snapshot_time=snapshot.observed_at,
            health_score=score,
            band=band,
            **snapshot.metric_fields(),
        )
