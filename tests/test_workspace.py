"""Tests for meter/workspace.py — data root, config and logging."""

import logging
from pathlib import Path

import yaml

from meter.fileio import read_yaml, write_yaml_atomic
from meter.workspace import (
    Config,
    data_root,
    get_user_timezone,
    load_config,
    log_path,
    setup_logging,
    write_default_config,
)


def test_data_root_from_env(workspace):
    assert data_root() == workspace.resolve()


def test_data_root_default(monkeypatch):
    monkeypatch.delenv("METER_HOME", raising=False)
    assert data_root() == (Path.home() / ".meter").resolve()


def test_load_config_from_workspace(workspace):
    config = load_config(workspace)
    assert config.invoice_format == "text"
    assert config.tick_seconds == 0.01
    assert config.notifications is False
    assert config.db_path == workspace / "db.sqlite"
    assert config.invoices_path == workspace / "invoices"


def test_missing_config_uses_defaults(tmp_path):
    config = load_config(tmp_path)
    assert config == Config(root=tmp_path)
    assert config.invoice_format == "pdf"
    assert config.timezone == "UTC"


def test_config_sanitizes_bad_values(tmp_path):
    (tmp_path / "config.yaml").write_text(
        yaml.dump({
            "invoice_format": "docx",
            "tick_seconds": "soon",
            "timezone": "Mars/Olympus_Mons",
            "database": "~/elsewhere/meter.db",
            "theme": "dark",
        }),
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.invoice_format == "pdf"
    assert config.tick_seconds == 0.25
    assert str(config.tz) == "UTC"
    assert config.db_path == Path.home() / "elsewhere" / "meter.db"
    assert config.extra == {"theme": "dark"}


def test_timezone(tmp_path):
    write_yaml_atomic(tmp_path / "config.yaml", {"timezone": "America/New_York"})
    assert str(get_user_timezone(tmp_path)) == "America/New_York"


def test_write_default_config_does_not_overwrite(workspace, tmp_path):
    path = write_default_config(tmp_path)
    assert read_yaml(path)["invoice_format"] == "pdf"

    before = (workspace / "config.yaml").read_text(encoding="utf-8")
    write_default_config(workspace)
    assert (workspace / "config.yaml").read_text(encoding="utf-8") == before


def test_setup_logging_follows_data_root(tmp_path):
    first = tmp_path / "one"
    second = tmp_path / "two"
    logger = setup_logging(first, "DEBUG")
    logger = setup_logging(second, "INFO")
    logging.getLogger("meter.test").info("hello from the second root")

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    file_handlers[0].flush()
    assert "hello from the second root" in log_path(second).read_text(encoding="utf-8")
    assert logger.level == logging.INFO
