"""
Overdue Reminder -- Configuration Module

Centralizes all configuration for the monthly overdue reminder job.
Loads defaults from dataclasses, then overlays any overrides from config.yaml.

Usage:
    from overdue_reminder.config import get_config
    cfg = get_config()                         # loads config.yaml if present
    cfg = get_config("path/to/custom.yaml")    # loads a specific file
    print(cfg.fallback_sender.id)              # -5
    print(cfg.email.subject)                   # "Monthly Overdue Invoice Reminder"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml

from .models import FailureMode, SenderPolicy

# ---------------------------------------------------------------------------
# Path constants -- everything relative to the project root
# ---------------------------------------------------------------------------
_THIS_DIR = Path(__file__).resolve().parent          # overdue_reminder/
PROJECT_ROOT = _THIS_DIR.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.yaml"
PACKAGE_TEMPLATE_DIR = _THIS_DIR / "templates"


# ===================================================================
# 1. Fallback Sender
# ===================================================================

@dataclass
class FallbackSender:
    """Administrative identity used when no active rep is resolvable."""
    id: str = "-5"
    name: str = "Accounts Receivable"
    email: str = "ar@example.com"


# ===================================================================
# 2. Overdue Query
# ===================================================================

@dataclass
class InvoiceQuery:
    """Filter for the overdue invoice search.

    ``due_range`` is a relative date range: ``last_month`` means due on or
    before the last day of the previous calendar month, ``today`` means due
    on or before the run date.
    """
    mainline_only: bool = True
    active_customers_only: bool = True
    due_range: str = "last_month"
    statuses: list[str] = field(default_factory=lambda: ["open"])


# ===================================================================
# 3. Email Content
# ===================================================================

@dataclass
class EmailSettings:
    """Subject, attachment and body template for the reminder."""
    subject: str = "Monthly Overdue Invoice Reminder"
    attachment_name: str = "Overdue_Invoices.csv"
    template_dir: str = ""              # empty -> packaged templates/
    template_file: str = "overdue_reminder.txt"

    @property
    def resolved_template_dir(self) -> Path:
        if not self.template_dir:
            return PACKAGE_TEMPLATE_DIR
        p = Path(self.template_dir)
        if not p.is_absolute():
            p = PROJECT_ROOT / p
        return p


# ===================================================================
# 4. SMTP Settings
# ===================================================================

@dataclass
class SMTPSettings:
    """SMTP relay used for real sends (not used by --dry-run)."""
    host: str = "smtp.gmail.com"
    port: int = 587
    use_tls: bool = True
    timeout: int = 30
    username: str = ""        # set via env var SMTP_USERNAME
    password: str = ""        # set via env var SMTP_PASSWORD

    def __post_init__(self):
        self.username = self.username or os.environ.get("SMTP_USERNAME", "")
        self.password = self.password or os.environ.get("SMTP_PASSWORD", "")


# ===================================================================
# 5. Run Behaviour
# ===================================================================

@dataclass
class RunSettings:
    """Failure handling, sender selection and lookup caching."""
    failure_mode: FailureMode = FailureMode.SKIP_AND_LOG
    sender_policy: SenderPolicy = SenderPolicy.FIRST_INVOICE
    cache_lookups: bool = True


# ===================================================================
# 6. Data Files / Output
# ===================================================================

@dataclass
class DataFilePaths:
    """Paths to input data files (relative to project root unless absolute)."""
    workbook: str = "data/overdue_invoices.xlsx"

    def resolve(self, rel_path: str) -> Path:
        p = Path(rel_path)
        if not p.is_absolute():
            p = PROJECT_ROOT / p
        return p


@dataclass
class OutputConfig:
    """Where dry-run .eml files are written."""
    eml_dir: str = "output/eml"

    def resolve(self, rel_path: str) -> Path:
        p = Path(rel_path)
        if not p.is_absolute():
            p = PROJECT_ROOT / p
        return p


# ===================================================================
# Master Config
# ===================================================================

@dataclass
class ReminderConfig:
    """Top-level configuration container for the overdue reminder job."""
    fallback_sender: FallbackSender = field(default_factory=FallbackSender)
    query: InvoiceQuery = field(default_factory=InvoiceQuery)
    email: EmailSettings = field(default_factory=EmailSettings)
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    run: RunSettings = field(default_factory=RunSettings)
    data_files: DataFilePaths = field(default_factory=DataFilePaths)
    output: OutputConfig = field(default_factory=OutputConfig)


# ===================================================================
# YAML Loading
# ===================================================================

_TRUE_STRINGS = {"true", "t", "yes", "y", "on", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "off", "0", ""}


def _coerce(current, value):
    """Convert a YAML value to the type of the attribute it replaces.

    Raises:
        ValueError: If the value cannot be read as that type.
    """
    if value is None:
        return value
    if isinstance(current, Enum) and not isinstance(value, Enum):
        return type(current)(str(value).strip().lower())
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        s = str(value).strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
        raise ValueError(f"Expected a boolean, got {value!r}")
    if isinstance(current, int) and not isinstance(value, int):
        try:
            return int(str(value).strip())
        except ValueError as exc:
            raise ValueError(f"Expected an integer, got {value!r}") from exc
    if isinstance(current, list) and not isinstance(value, list):
        # `statuses: open` written as a scalar
        return [str(value)]
    if isinstance(current, str) and not isinstance(value, str):
        # ids like -5 come back from YAML as ints
        return str(value)
    return value


def _apply_yaml_to_config(cfg: ReminderConfig, data: dict) -> None:
    """Apply a parsed YAML dict onto a ReminderConfig instance."""
    _section_map = {
        "fallback_sender": cfg.fallback_sender,
        "query": cfg.query,
        "email": cfg.email,
        "smtp": cfg.smtp,
        "run": cfg.run,
        "data_files": cfg.data_files,
        "output": cfg.output,
    }

    for section_key, section_obj in _section_map.items():
        if section_key in data and isinstance(data[section_key], dict):
            for attr, val in data[section_key].items():
                if hasattr(section_obj, attr):
                    setattr(section_obj, attr, _coerce(getattr(section_obj, attr), val))


def get_config(yaml_path: Optional[str | Path] = None) -> ReminderConfig:
    """Build a ReminderConfig, optionally overlaying values from a YAML file.

    Args:
        yaml_path: Path to a config.yaml file.  If None, looks for the
                   default config.yaml at the project root.  If that file
                   doesn't exist, returns pure defaults.

    Returns:
        Fully populated ReminderConfig instance.

    Raises:
        FileNotFoundError: If an explicit ``yaml_path`` does not exist.
        ValueError: If an enum setting has an unknown value.
    """
    cfg = ReminderConfig()

    if yaml_path is not None and not Path(yaml_path).exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    path = Path(yaml_path) if yaml_path else DEFAULT_CONFIG_PATH
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        _apply_yaml_to_config(cfg, data)

    return cfg
