"""Data root, configuration, timezone and path helpers for Meter."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from meter.fileio import read_yaml, write_yaml_atomic


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
INVOICE_FORMATS = {"pdf", "text"}


def data_root() -> Path:
    """Get the data root (holds db.sqlite, config.yaml, hooks.yaml, logs/, invoices/)."""
    return Path(
        os.environ.get("METER_HOME", str(Path.home() / ".meter"))
    ).expanduser().resolve()


# ── Path helpers ──────────────────────────────────────────────

def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "config.yaml"


def hooks_config_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "hooks.yaml"


def log_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "logs" / "meter.log"


# ── Config ────────────────────────────────────────────────────


@dataclass
class Config:
    """Settings read from config.yaml. Unknown keys are ignored; missing keys use defaults."""

    root: Path
    timezone: str = "UTC"
    database: Path | None = None
    invoice_dir: Path | None = None
    invoice_format: str = "pdf"
    tick_seconds: float = 0.25
    notifications: bool = True
    log_level: str = "INFO"
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, root: Path, d: dict[str, Any]) -> Config:
        if not d or not isinstance(d, dict):
            return cls(root=root)
        database = d.get("database")
        invoice_dir = d.get("invoice_dir")
        fmt = str(d.get("invoice_format", "pdf")).lower()
        if fmt not in INVOICE_FORMATS:
            fmt = "pdf"
        try:
            tick = float(d.get("tick_seconds", 0.25))
        except (TypeError, ValueError):
            tick = 0.25
        known = {
            "timezone", "database", "invoice_dir", "invoice_format",
            "tick_seconds", "notifications", "log_level",
        }
        return cls(
            root=root,
            timezone=str(d.get("timezone", "UTC")),
            database=Path(database).expanduser() if database else None,
            invoice_dir=Path(invoice_dir).expanduser() if invoice_dir else None,
            invoice_format=fmt,
            tick_seconds=tick if tick > 0 else 0.25,
            notifications=bool(d.get("notifications", True)),
            log_level=str(d.get("log_level", "INFO")).upper(),
            extra={k: v for k, v in d.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "timezone": self.timezone,
            "invoice_format": self.invoice_format,
            "tick_seconds": self.tick_seconds,
            "notifications": self.notifications,
            "log_level": self.log_level,
        }
        if self.database is not None:
            d["database"] = str(self.database)
        if self.invoice_dir is not None:
            d["invoice_dir"] = str(self.invoice_dir)
        return d

    @property
    def db_path(self) -> Path:
        return self.database or self.root / "db.sqlite"

    @property
    def invoices_path(self) -> Path:
        return self.invoice_dir or self.root / "invoices"

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")


def load_config(root: Path | None = None) -> Config:
    """Load config.yaml from the data root, defaulting every missing value."""
    if root is None:
        root = data_root()
    return Config.from_dict(root, read_yaml(config_path(root)))


def write_default_config(root: Path | None = None) -> Path:
    """Write a config.yaml with defaults unless one already exists."""
    if root is None:
        root = data_root()
    path = config_path(root)
    if not path.exists():
        write_yaml_atomic(path, Config(root=root).to_dict())
    return path


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Get user's timezone from config.yaml, defaulting to UTC."""
    return load_config(root).tz


def now_local(root: Path | None = None) -> datetime:
    """Get current datetime in user's timezone."""
    return datetime.now(get_user_timezone(root))


# ── Logging ───────────────────────────────────────────────────


def setup_logging(root: Path | None = None, level: str = "INFO", console: bool = False) -> logging.Logger:
    """Configure the package logger: a file handler under logs/, optional stderr."""
    if root is None:
        root = data_root()
    logger = logging.getLogger("meter")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)
    path = log_path(root)

    # One file handler per process, pointed at the current data root
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler) and handler.baseFilename != os.path.abspath(path):
            logger.removeHandler(handler)
            handler.close()

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    has_console = any(not isinstance(h, logging.FileHandler) for h in logger.handlers)
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
