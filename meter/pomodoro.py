"""Pomodoro work/break cycle for Meter.

The scheduler is a plain state machine advanced by wall-clock ticks and by
operator acknowledgments. It does no I/O: `update` returns a Notice and the
session performs the matching store mutation or notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from meter.models import PomodoroConfig

logger = logging.getLogger(__name__)


class PomodoroState(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    WORK_COMPLETE = "work_complete"
    ON_BREAK = "on_break"
    BREAK_COMPLETE = "break_complete"


class PomodoroEvent(str, Enum):
    TIMER_STARTED = "timer_started"
    TIMER_STOPPED = "timer_stopped"
    ENABLED = "enabled"
    DISABLED = "disabled"
    ACKNOWLEDGED = "acknowledged"
    TICK = "tick"


class Notice(str, Enum):
    """What the caller has to act on after a transition."""

    WORK_COMPLETE = "work_complete"  # stop the active timer, notify
    BREAK_STARTED = "break_started"
    BREAK_COMPLETE = "break_complete"  # notify
    RESUME_READY = "resume_ready"  # pre-fill project/description


@dataclass
class PomodoroTimer:
    state: PomodoroState = PomodoroState.IDLE
    interval_start: datetime | None = None
    cycles_completed: int = 0
    last_project: str | None = None
    last_description: str | None = None

    def remember(self, project: str, description: str) -> None:
        self.last_project = project
        self.last_description = description

    def reset(self) -> None:
        """Back to Idle; the resume memory survives."""
        self.state = PomodoroState.IDLE
        self.interval_start = None
        self.cycles_completed = 0

    def is_long_break_next(self, config: PomodoroConfig) -> bool:
        return self.cycles_completed + 1 >= config.cycles_before_long

    def break_minutes(self, config: PomodoroConfig) -> int:
        return config.long_break if self.is_long_break_next(config) else config.short_break

    def interval_seconds(self, config: PomodoroConfig) -> int | None:
        """Length of the running interval; None outside Working/OnBreak."""
        if self.state == PomodoroState.WORKING:
            return config.work_duration * 60
        if self.state == PomodoroState.ON_BREAK:
            return self.break_minutes(config) * 60
        return None

    def elapsed_seconds(self, now: datetime) -> int | None:
        if self.interval_start is None:
            return None
        return int((now - self.interval_start).total_seconds())

    def remaining_seconds(self, config: PomodoroConfig, now: datetime) -> int | None:
        total = self.interval_seconds(config)
        elapsed = self.elapsed_seconds(now)
        if total is None or elapsed is None:
            return None
        return max(0, total - elapsed)


def update(
    timer: PomodoroTimer,
    event: PomodoroEvent,
    config: PomodoroConfig,
    now: datetime,
) -> Notice | None:
    """Apply one event to the timer. Returns a notice the caller must act on."""
    if event == PomodoroEvent.TIMER_STOPPED or event == PomodoroEvent.DISABLED:
        if timer.state != PomodoroState.IDLE:
            logger.info("Pomodoro reset to idle (%s)", event.value)
        timer.reset()
        return None

    if event in (PomodoroEvent.TIMER_STARTED, PomodoroEvent.ENABLED):
        if config.enabled:
            timer.state = PomodoroState.WORKING
            timer.interval_start = now
            logger.info("Pomodoro work interval started")
        return None

    if event == PomodoroEvent.ACKNOWLEDGED:
        return _acknowledge(timer, config, now)

    if event == PomodoroEvent.TICK:
        return _tick(timer, config, now)

    return None


def _acknowledge(timer: PomodoroTimer, config: PomodoroConfig, now: datetime) -> Notice | None:
    if timer.state == PomodoroState.WORK_COMPLETE:
        timer.state = PomodoroState.ON_BREAK
        timer.interval_start = now
        logger.info("Pomodoro break started (%d min)", timer.break_minutes(config))
        return Notice.BREAK_STARTED

    if timer.state == PomodoroState.BREAK_COMPLETE:
        timer.cycles_completed += 1
        if timer.cycles_completed >= config.cycles_before_long:
            timer.cycles_completed = 0
        timer.state = PomodoroState.IDLE
        timer.interval_start = None
        return Notice.RESUME_READY

    return None


def _tick(timer: PomodoroTimer, config: PomodoroConfig, now: datetime) -> Notice | None:
    if not config.enabled:
        return None
    total = timer.interval_seconds(config)
    elapsed = timer.elapsed_seconds(now)
    if total is None or elapsed is None or elapsed < total:
        return None

    if timer.state == PomodoroState.WORKING:
        timer.state = PomodoroState.WORK_COMPLETE
        timer.interval_start = None
        logger.info("Pomodoro work interval complete")
        return Notice.WORK_COMPLETE

    timer.state = PomodoroState.BREAK_COMPLETE
    timer.interval_start = None
    logger.info("Pomodoro break complete")
    return Notice.BREAK_COMPLETE


def format_remaining(seconds: int) -> str:
    """MM:SS countdown, e.g. 44:59."""
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"
