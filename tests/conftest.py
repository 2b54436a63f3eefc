"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from models.metrics import MetricSnapshot
from datetime import datetime, timedelta, timezone

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    os.unlink(db_path)


def make_snapshot(entity_id="MintAAAA1111BBBB2222", minutes=0, **metrics):
    """Snapshot observed `minutes` after T0. Defaults describe a healthy token."""
    values = {
        "liquidity_usd": 50_000.0,
        "holders_count": 200,
        "fresh_ratio": 0.5,
        "sniper_ratio": 0.05,
        "insider_ratio": 0.05,
        "top10_share": 0.3,
        "symbol": "TEST",
    }
    values.update(metrics)
    return MetricSnapshot(entity_id=entity_id, observed_at=T0 + timedelta(minutes=minutes), **values)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def sample_snapshot():
    """Create a realistic test snapshot."""
    return make_snapshot()


@pytest.fixture
def rules_file(tmp_path):
    """Write a rules YAML and return its path."""
    def _write(text):
        path = tmp_path / "rules.yaml"
        path.write_text(text)
        return path
    return _write
