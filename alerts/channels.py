"""Alert notification channels."""
import json
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.console import Console


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, alert) -> None: ...


class ConsoleChannel:
    """Print alerts to terminal with rich formatting."""

    severity_styles = {
        "CRITICAL": "bold white on red",
        "WARNING": "bold yellow",
        "INFO": "bold blue",
    }

    def __init__(self, console=None):
        self.console = console or Console()

    def send(self, alert):
        style = self.severity_styles.get(alert.severity, "")
        self.console.print(f"[{alert.severity}] {alert.rule_name}", style=style, markup=False)
        self.console.print(alert.message, markup=False, highlight=False)


class FileChannel:
    """Append alerts to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = Path(log_path)

    def send(self, alert):
        entry = {
            "fired_at": alert.fired_at.isoformat(),
            "entity_id": alert.entity_id,
            "rule_id": alert.rule_id,
            "rule_kind": alert.rule_kind,
            "severity": alert.severity,
            "health_score": alert.health_score,
            "band": alert.band,
            "metadata": alert.metadata,
            "message": alert.message,
        }
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a") as f:
            f.write(json.dumps(entry) + "\n")
