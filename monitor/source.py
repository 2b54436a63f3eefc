"""Metric snapshot sources."""
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from models.metrics import MetricSnapshot

logger = logging.getLogger("tokenhealth.source")


@runtime_checkable
class MetricsSource(Protocol):
    def poll(self) -> list: ...


class JsonlMetricsSource:
    """Tails a JSON-lines file; each line is one snapshot object.

    poll() returns snapshots appended since the previous call. Malformed lines
    are logged and skipped. A partially written last line is left for the
    next poll.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._offset = 0

    def poll(self):
        if not self.path.exists():
            logger.debug(f"Source file not found yet: {self.path}")
            return []
        if self.path.stat().st_size < self._offset:
            logger.warning(f"{self.path} shrank, reading from the start")
            self._offset = 0

        with open(self.path, "rb") as f:
            f.seek(self._offset)
            chunk = f.read()

        end = chunk.rfind(b"\n") + 1
        self._offset += end
        return self._parse(chunk[:end].decode("utf-8", errors="replace").splitlines())

    def read_all(self):
        with open(self.path, encoding="utf-8") as f:
            return self._parse(f.read().splitlines())

    def _parse(self, lines):
        snapshots = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                snapshots.append(MetricSnapshot.from_dict(json.loads(line)))
            except (ValueError, TypeError, AttributeError, ArithmeticError, OSError) as e:
                logger.warning(f"Skipping malformed snapshot line in {self.path}: {e}")
        return snapshots
