"""Tests for meter/notify.py — desktop notifications and hook dispatch."""

import subprocess
from unittest.mock import patch

import yaml

from meter.notify import WORK_COMPLETE_MESSAGE, DesktopNotifier, NullNotifier


def test_null_notifier_is_silent():
    n = NullNotifier()
    n.notify_work_complete()
    n.emit("on_timer_start", {"id": 1})


def test_macos_uses_osascript():
    n = DesktopNotifier()
    n.system = "Darwin"
    with patch("meter.notify.subprocess.run") as run:
        n.notify_work_complete()
    cmd = run.call_args[0][0]
    assert cmd[0] == "osascript"
    assert WORK_COMPLETE_MESSAGE[1] in cmd[2]
    assert 'with title "Meter"' in cmd[2]


def test_linux_uses_notify_send_when_available():
    n = DesktopNotifier()
    n.system = "Linux"
    with patch("meter.notify.shutil.which", return_value="/usr/bin/notify-send"), \
         patch("meter.notify.subprocess.run") as run:
        n.notify("Meter", 'Say "hi"')
    assert run.call_args[0][0] == ["notify-send", "Meter", 'Say "hi"']


def test_no_backend_does_nothing():
    n = DesktopNotifier()
    n.system = "Windows"
    with patch("meter.notify.subprocess.run") as run:
        n.notify_work_complete()
    run.assert_not_called()


def test_disabled_notifier_does_not_run():
    n = DesktopNotifier(enabled=False)
    n.system = "Darwin"
    with patch("meter.notify.subprocess.run") as run:
        n.notify_work_complete()
    run.assert_not_called()


def test_notification_failure_is_swallowed():
    n = DesktopNotifier()
    n.system = "Darwin"
    with patch("meter.notify.subprocess.run", side_effect=subprocess.TimeoutExpired("osascript", 5)):
        n.notify_work_complete()


def test_emit_runs_hooks(workspace):
    out = workspace / "events.jsonl"
    (workspace / "hooks.yaml").write_text(
        yaml.dump({"on_timer_start": [f"cat >> {out}"]}), encoding="utf-8"
    )
    DesktopNotifier(workspace).emit("on_timer_start", {"project": "acme"})
    assert '"project": "acme"' in out.read_text(encoding="utf-8")


def test_emit_survives_broken_hooks_file(workspace):
    (workspace / "hooks.yaml").write_text("on_timer_start: [unclosed", encoding="utf-8")
    DesktopNotifier(workspace).emit("on_timer_start", {})
