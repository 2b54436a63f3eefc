"""Monitoring loop: sources, cadence, orchestration and scheduling."""
from monitor.cadence import snapshot_interval, should_snapshot
from monitor.monitor import HealthMonitor
from monitor.scheduler import MonitorScheduler
from monitor.source import JsonlMetricsSource, MetricsSource
