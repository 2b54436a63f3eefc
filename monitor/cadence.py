"""Score-history cadence: young tokens are snapshotted often, older ones less."""
from datetime import timedelta

from utils.constants import SNAPSHOT_INTERVAL_MATURE, SNAPSHOT_TIERS


def snapshot_interval(entity_age):
    """<=2h: 5 min, <=24h: 15 min, older: 60 min."""
    for max_age, interval in SNAPSHOT_TIERS:
        if entity_age <= max_age:
            return interval
    return SNAPSHOT_INTERVAL_MATURE


def should_snapshot(entity_age, last_snapshot_time, now):
    if last_snapshot_time is None:
        return True
    return now - last_snapshot_time >= snapshot_interval(max(entity_age, timedelta(0)))
