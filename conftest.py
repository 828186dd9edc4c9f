"""Root conftest.py -- ensures `overdue_reminder` is importable from tests."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add the project root to sys.path so `from overdue_reminder.models import ...` works.
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def now() -> datetime:
    """The run clock used across tests: 2026-10-19 09:00."""
    return datetime(2026, 10, 19, 9, 0)


@pytest.fixture
def config(tmp_path):
    """Pure-default config, isolated from any project config.yaml."""
    from overdue_reminder.config import ReminderConfig

    cfg = ReminderConfig()
    cfg.output.eml_dir = str(tmp_path / "eml")
    return cfg
