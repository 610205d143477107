"""Tests for meter/pomodoro.py — the work/break state machine."""

from datetime import datetime, timedelta, timezone

from meter.models import PomodoroConfig
from meter.pomodoro import (
    Notice,
    PomodoroEvent,
    PomodoroState,
    PomodoroTimer,
    format_remaining,
    update,
)


T = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
ON = PomodoroConfig(enabled=True, work_duration=45, short_break=15, long_break=60, cycles_before_long=4)


def _working(config=ON) -> PomodoroTimer:
    timer = PomodoroTimer()
    update(timer, PomodoroEvent.TIMER_STARTED, config, T)
    return timer


def test_timer_start_enters_working_when_enabled():
    timer = _working()
    assert timer.state == PomodoroState.WORKING
    assert timer.interval_start == T


def test_timer_start_ignored_when_disabled():
    timer = _working(PomodoroConfig())
    assert timer.state == PomodoroState.IDLE


def test_tick_before_interval_end_is_quiet():
    timer = _working()
    assert update(timer, PomodoroEvent.TICK, ON, T + timedelta(minutes=44, seconds=59)) is None
    assert timer.state == PomodoroState.WORKING


def test_work_interval_completes():
    timer = _working()
    notice = update(timer, PomodoroEvent.TICK, ON, T + timedelta(minutes=45))
    assert notice == Notice.WORK_COMPLETE
    assert timer.state == PomodoroState.WORK_COMPLETE
    assert timer.interval_start is None
    # No repeat while waiting for acknowledgment
    assert update(timer, PomodoroEvent.TICK, ON, T + timedelta(hours=3)) is None


def test_full_cycle_short_break():
    timer = _working()
    update(timer, PomodoroEvent.TICK, ON, T + timedelta(minutes=45))
    assert not timer.is_long_break_next(ON)
    assert timer.break_minutes(ON) == 15

    t1 = T + timedelta(minutes=46)
    assert update(timer, PomodoroEvent.ACKNOWLEDGED, ON, t1) == Notice.BREAK_STARTED
    assert timer.state == PomodoroState.ON_BREAK
    assert timer.remaining_seconds(ON, t1) == 15 * 60

    assert update(timer, PomodoroEvent.TICK, ON, t1 + timedelta(minutes=15)) == Notice.BREAK_COMPLETE
    assert timer.state == PomodoroState.BREAK_COMPLETE

    assert update(timer, PomodoroEvent.ACKNOWLEDGED, ON, t1 + timedelta(minutes=16)) == Notice.RESUME_READY
    assert timer.state == PomodoroState.IDLE
    assert timer.cycles_completed == 1


def test_long_break_after_configured_cycles_then_counter_resets():
    timer = PomodoroTimer(cycles_completed=3)
    update(timer, PomodoroEvent.TIMER_STARTED, ON, T)
    update(timer, PomodoroEvent.TICK, ON, T + timedelta(minutes=45))
    assert timer.is_long_break_next(ON)
    assert timer.break_minutes(ON) == 60

    update(timer, PomodoroEvent.ACKNOWLEDGED, ON, T + timedelta(minutes=45))
    update(timer, PomodoroEvent.TICK, ON, T + timedelta(minutes=105))
    update(timer, PomodoroEvent.ACKNOWLEDGED, ON, T + timedelta(minutes=106))
    assert timer.cycles_completed == 0


def test_acknowledge_outside_prompt_states_does_nothing():
    timer = _working()
    assert update(timer, PomodoroEvent.ACKNOWLEDGED, ON, T) is None
    assert timer.state == PomodoroState.WORKING


def test_stop_and_disable_reset_but_keep_resume_memory():
    timer = _working()
    timer.remember("acme", "design")
    timer.cycles_completed = 2
    update(timer, PomodoroEvent.TIMER_STOPPED, ON, T)
    assert timer.state == PomodoroState.IDLE
    assert timer.cycles_completed == 0
    assert timer.last_project == "acme"

    timer = _working()
    update(timer, PomodoroEvent.DISABLED, ON, T)
    assert timer.state == PomodoroState.IDLE


def test_tick_does_nothing_when_disabled():
    timer = _working()
    assert update(timer, PomodoroEvent.TICK, PomodoroConfig(), T + timedelta(hours=5)) is None
    assert timer.state == PomodoroState.WORKING


def test_remaining_seconds():
    timer = _working()
    assert timer.remaining_seconds(ON, T + timedelta(minutes=10)) == 35 * 60
    assert timer.remaining_seconds(ON, T + timedelta(hours=2)) == 0
    assert PomodoroTimer().remaining_seconds(ON, T) is None


def test_format_remaining():
    assert format_remaining(45 * 60 - 1) == "44:59"
    assert format_remaining(0) == "00:00"
    assert format_remaining(-5) == "00:00"
