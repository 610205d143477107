"""Lifecycle hooks for Meter.

Shell commands listed in <data root>/hooks.yaml run when a timer starts or
stops, when a Pomodoro interval ends and after an invoice is written:

    on_timer_stop:
      - "cat >> ~/meter-stops.jsonl"
    post_invoice:
      - command: "scripts/upload.sh"
        timeout: 60

Each command receives the event as one JSON object on stdin, with the
hook point under "hook_point". Commands run from the data root.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from meter.fileio import read_yaml
from meter.workspace import data_root, hooks_config_path

logger = logging.getLogger(__name__)


HOOK_POINTS = (
    "on_timer_start",
    "on_timer_stop",
    "on_work_complete",
    "on_break_complete",
    "post_invoice",
)

DEFAULT_TIMEOUT = 30
OUTPUT_CAP = 4096


@dataclass(frozen=True)
class Hook:
    command: str
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def parse(cls, raw: Any) -> Hook | None:
        """A hooks.yaml list item: a bare command or {command, timeout}."""
        if isinstance(raw, str):
            return cls(raw) if raw.strip() else None
        if not isinstance(raw, dict):
            return None
        command = raw.get("command")
        if not isinstance(command, str) or not command.strip():
            return None
        try:
            timeout = float(raw.get("timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError):
            timeout = DEFAULT_TIMEOUT
        return cls(command, timeout if timeout > 0 else DEFAULT_TIMEOUT)


@dataclass
class HookResult:
    command: str
    hook_point: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "command": self.command,
            "hook_point": self.hook_point,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }
        if self.error is not None:
            d["error"] = self.error
        return d


def load_hooks_config(root: Path | None = None) -> dict[str, Any]:
    """Load hooks.yaml; a missing file means no hooks."""
    return read_yaml(hooks_config_path(root or data_root()))


def hooks_for(hook_point: str, config: dict[str, Any]) -> list[Hook]:
    """Usable hooks registered under one hook point, in file order."""
    if hook_point not in HOOK_POINTS:
        return []
    raw = config.get(hook_point)
    if not isinstance(raw, list):
        return []
    return [hook for hook in map(Hook.parse, raw) if hook is not None]


def run_hook(hook: Hook, hook_point: str, payload: str, root: Path) -> HookResult:
    try:
        proc = subprocess.run(
            hook.command,
            shell=True,
            input=payload,
            capture_output=True,
            text=True,
            timeout=hook.timeout,
            cwd=str(root),
        )
    except subprocess.TimeoutExpired:
        logger.warning("Hook %r for %s timed out", hook.command, hook_point)
        return HookResult(hook.command, hook_point, -1, error=f"Hook timed out after {hook.timeout:g}s")
    except OSError as e:
        logger.warning("Hook %r for %s failed: %s", hook.command, hook_point, e)
        return HookResult(hook.command, hook_point, -1, error=str(e))

    if proc.returncode != 0:
        logger.warning("Hook %r for %s exited with %d", hook.command, hook_point, proc.returncode)
    return HookResult(
        hook.command,
        hook_point,
        proc.returncode,
        stdout=proc.stdout[:OUTPUT_CAP],
        stderr=proc.stderr[:OUTPUT_CAP],
    )


def run_hooks(
    hook_point: str,
    context: dict[str, Any],
    root: Path | None = None,
) -> list[dict[str, Any]]:
    """Run every hook registered for hook_point, one after another.

    Returns one result dict per hook that ran (command, exit_code, stdout,
    stderr and, on timeout or spawn failure, error).
    """
    root = root or data_root()
    hooks = hooks_for(hook_point, load_hooks_config(root))
    if not hooks:
        return []
    payload = json.dumps({"hook_point": hook_point, **context}, ensure_ascii=False, default=str)
    logger.debug("Running %d hook(s) for %s", len(hooks), hook_point)
    return [run_hook(hook, hook_point, payload, root).to_dict() for hook in hooks]
