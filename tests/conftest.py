"""Shared fixtures: temporary database, fake clock, fake renderer."""

import shutil
import sys
import tempfile
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import db


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    temp_dir = tempfile.mkdtemp()

    # Override db paths
    original_get_app_dir = db.get_app_dir
    db.get_app_dir = lambda: Path(temp_dir)
    db.DB_PATH = None  # Reset cached path

    # Initialize fresh db
    db.init_db()

    yield temp_dir

    # Restore
    db.get_app_dir = original_get_app_dir
    db.DB_PATH = None

    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


class FakeClock:
    """Callable clock returning a settable Unix time."""

    def __init__(self, now: int = 1000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class FakeRenderer:
    """Writes a placeholder file and records what it was given."""

    def __init__(self):
        self.calls = []

    def __call__(self, output_path, invoice, entries, business_info, bill_to_info):
        self.calls.append({
            'output_path': output_path,
            'invoice': invoice,
            'entries': list(entries),
            'business_info': business_info,
            'bill_to_info': bill_to_info,
        })
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"%PDF-1.4 fake")
        return output_path


@pytest.fixture
def renderer():
    return FakeRenderer()
