"""Desktop notifications and hook dispatch for Pomodoro and timer events."""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess
from pathlib import Path
from typing import Any

import yaml

from meter.hooks import run_hooks

logger = logging.getLogger(__name__)

WORK_COMPLETE_MESSAGE = ("Meter", "Work period complete! Time for a break.")
BREAK_COMPLETE_MESSAGE = ("Meter", "Break is over. Ready to get back to work?")


class Notifier:
    """Fire-and-forget sink for notifications and lifecycle events."""

    def notify(self, title: str, message: str) -> None:
        pass

    def emit(self, hook_point: str, context: dict[str, Any]) -> None:
        pass

    def notify_work_complete(self) -> None:
        self.notify(*WORK_COMPLETE_MESSAGE)

    def notify_break_complete(self) -> None:
        self.notify(*BREAK_COMPLETE_MESSAGE)


class NullNotifier(Notifier):
    pass


class DesktopNotifier(Notifier):
    """osascript on macOS, notify-send on Linux, plus hooks.yaml commands."""

    def __init__(self, root: Path | None = None, enabled: bool = True) -> None:
        self.root = root
        self.enabled = enabled
        self.system = platform.system()

    def _command(self, title: str, message: str) -> list[str] | None:
        if self.system == "Darwin":
            script = (
                f'display notification "{_quote(message)}" '
                f'with title "{_quote(title)}" sound name "Glass"'
            )
            return ["osascript", "-e", script]
        if self.system == "Linux" and shutil.which("notify-send"):
            return ["notify-send", title, message]
        return None

    def notify(self, title: str, message: str) -> None:
        if not self.enabled:
            return
        cmd = self._command(title, message)
        if cmd is None:
            logger.debug("No notification backend on %s", self.system)
            return
        try:
            subprocess.run(cmd, capture_output=True, timeout=5, check=False)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Notification failed: %s", e)

    def emit(self, hook_point: str, context: dict[str, Any]) -> None:
        try:
            run_hooks(hook_point, context, self.root)
        except (OSError, yaml.YAMLError) as e:
            logger.debug("Hooks for %s failed: %s", hook_point, e)


def _quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
