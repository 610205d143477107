"""Shared test fixtures for Meter tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from meter.notify import Notifier
from meter.store import Store


T0 = datetime(2026, 3, 10, 9, 0, 0, tzinfo=timezone.utc)


class Clock:
    """Controllable clock: call it for "now", advance it by seconds or minutes."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, minutes=minutes)
        return self.now


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.notifications: list[tuple[str, str]] = []
        self.events: list[tuple[str, dict]] = []

    def notify(self, title: str, message: str) -> None:
        self.notifications.append((title, message))

    def emit(self, hook_point: str, context: dict) -> None:
        self.events.append((hook_point, context))

    def hook_points(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary data root with a config.yaml."""
    root = tmp_path / "meter-home"
    root.mkdir(parents=True)

    config = {
        "timezone": "UTC",
        "invoice_format": "text",
        "tick_seconds": 0.01,
        "notifications": False,
    }
    (root / "config.yaml").write_text(
        yaml.dump(config, default_flow_style=False), encoding="utf-8"
    )

    os.environ["METER_HOME"] = str(root)
    yield root
    if "METER_HOME" in os.environ:
        del os.environ["METER_HOME"]


@pytest.fixture
def store(workspace: Path) -> Store:
    s = Store(workspace / "db.sqlite")
    yield s
    s.close()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def session(store, clock, notifier, workspace):
    from meter.session import Session

    return Session(
        store,
        notifier=notifier,
        clock=clock,
        invoice_dir=workspace / "invoices",
        invoice_format="text",
    )
