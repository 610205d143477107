#!/usr/bin/env python3
"""Meter TUI — interactive time tracker powered by Textual.

Keys are mapped to session messages by `handle_key`; the screen is re-rendered
from the session after every dispatch. Rendering never mutates the session.
"""

from __future__ import annotations

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.widgets import Header, Static

from meter.forms import EditingTimerInput, FieldForm
from meter.messages import (
    AcknowledgePomodoro,
    AddClient,
    CancelDelete,
    CancelEdit,
    ClearProjectRate,
    ClearStatus,
    ConfirmDelete,
    CycleInvoiceClient,
    DeleteClient,
    DeleteEntry,
    EditClient,
    EditEntry,
    EditInvoiceRange,
    EditPomodoroConfig,
    EditProjectRate,
    EditSettings,
    FocusTimerInput,
    GenerateInvoice,
    InputBackspace,
    InputChar,
    InvoiceMode,
    MarkEntryBilled,
    Message,
    NextField,
    NextInvoiceMode,
    PrevField,
    PrevInvoiceMode,
    Quit,
    Screen,
    SCREEN_ORDER,
    SelectNext,
    SelectPrevious,
    StopTimer,
    SubmitEdit,
    SwitchScreen,
    Tick,
    TimerField,
    ToggleBilledFilter,
    ToggleEntrySelection,
    ToggleHelp,
    TogglePomodoro,
    UnbillEntry,
)
from meter.pomodoro import PomodoroState, format_remaining
from meter.render import line_total_text, summary_currency
from meter.session import Session


SCREEN_KEYS = {str(i + 1): screen for i, screen in enumerate(SCREEN_ORDER)}

SCREEN_TITLES = {
    Screen.TIMER: "Timer",
    Screen.ENTRIES: "Entries",
    Screen.INVOICE: "Invoice",
    Screen.PROJECTS: "Projects",
    Screen.POMODORO: "Pomodoro",
    Screen.CLIENTS: "Clients",
    Screen.SETTINGS: "Settings",
}

HELP_TEXT = """\
Meter — keys

Global:    1-7 switch screen   ? help   q quit   Esc clear status
Timer:     s start/stop   Enter/Tab edit project   p toggle Pomodoro
           Space start break (work complete)   s resume (break complete)
Entries:   j/k move   e edit   d delete   b bill   u unbill   f unbilled only
Invoice:   j/k mode (or entry)   Tab/h/l mode   Space select entry
           r custom range   c cycle client   Enter generate
Projects:  j/k move   e/Enter edit rate   c clear rate
Pomodoro:  j/k move   e/Enter edit   p toggle
Clients:   j/k move   a add   e/Enter edit   d delete
Settings:  e/Enter edit
Forms:     Tab/Shift+Tab field   Enter save   Esc cancel

Press any key to close."""


# ── Key mapping ───────────────────────────────────────────────


def handle_key(session: Session, key: str, character: str | None = None) -> Message | None:
    """Map a key event to a message based on the current session state."""
    char = character if character and character.isprintable() else None

    if char == "?" and not session.is_editing:
        return ToggleHelp()
    if session.show_help:
        return ToggleHelp()

    if session.pending_delete is not None:
        if char in ("y", "Y"):
            return ConfirmDelete()
        if char in ("n", "N") or key == "escape":
            return CancelDelete()
        return None

    if isinstance(session.mode, FieldForm):
        return _form_key(key, char)

    if char == "q":
        return Quit()
    if char in SCREEN_KEYS:
        return SwitchScreen(SCREEN_KEYS[char])
    if key == "escape":
        return ClearStatus()

    handler = SCREEN_HANDLERS.get(session.screen)
    return handler(session, key, char) if handler else None


def _form_key(key: str, char: str | None) -> Message | None:
    if key == "enter":
        return SubmitEdit()
    if key == "escape":
        return CancelEdit()
    if key in ("tab", "down"):
        return NextField()
    if key in ("shift+tab", "up"):
        return PrevField()
    if key == "backspace":
        return InputBackspace()
    if char is not None:
        return InputChar(char)
    return None


def _is_up(key: str, char: str | None) -> bool:
    return char == "k" or key == "up"


def _is_down(key: str, char: str | None) -> bool:
    return char == "j" or key == "down"


def _timer_keys(session: Session, key: str, char: str | None) -> Message | None:
    state = session.pomodoro.state
    if state == PomodoroState.WORK_COMPLETE:
        return AcknowledgePomodoro() if char == " " else None
    if state == PomodoroState.BREAK_COMPLETE:
        return AcknowledgePomodoro() if char in ("s", "S", " ") else None
    if state == PomodoroState.ON_BREAK:
        return None

    if char in ("s", "S"):
        if session.active_entry is not None:
            return StopTimer()
        return FocusTimerInput(TimerField.PROJECT)
    if char in ("p", "P"):
        return TogglePomodoro()
    if key in ("enter", "tab") and session.active_entry is None:
        return FocusTimerInput(TimerField.PROJECT)
    return None


def _entries_keys(session: Session, key: str, char: str | None) -> Message | None:
    if _is_down(key, char) or char == "G":
        return SelectNext()
    if _is_up(key, char) or char == "g":
        return SelectPrevious()
    if char in ("f", "F"):
        return ToggleBilledFilter()

    entry = session.selected_entry_row()
    if entry is None:
        return None
    if char in ("e", "E"):
        return EditEntry(entry.id)
    if char in ("d", "D"):
        return DeleteEntry(entry.id)
    if char in ("b", "B") and not entry.billed:
        return MarkEntryBilled(entry.id)
    if char == "u" and entry.billed:
        return UnbillEntry(entry.id)
    return None


def _invoice_keys(session: Session, key: str, char: str | None) -> Message | None:
    selecting = session.invoice_mode == InvoiceMode.SELECT_ENTRIES
    if key == "tab" or char == "l" or key == "right":
        return NextInvoiceMode()
    if key == "shift+tab" or char == "h" or key == "left":
        return PrevInvoiceMode()
    if _is_down(key, char):
        return SelectNext() if selecting else NextInvoiceMode()
    if _is_up(key, char):
        return SelectPrevious() if selecting else PrevInvoiceMode()
    if char == " " and selecting:
        row = session.invoice_cursor_row()
        return ToggleEntrySelection(row.id) if row else None
    if char in ("c", "C"):
        return CycleInvoiceClient()
    if char in ("r", "R"):
        return EditInvoiceRange()
    if key == "enter":
        if session.invoice_mode == InvoiceMode.CUSTOM_RANGE and session.custom_start is None:
            return EditInvoiceRange()
        return GenerateInvoice()
    return None


def _projects_keys(session: Session, key: str, char: str | None) -> Message | None:
    if _is_down(key, char):
        return SelectNext()
    if _is_up(key, char):
        return SelectPrevious()
    project = session.selected_project_row()
    if project is None:
        return None
    if char in ("e", "E") or key == "enter":
        return EditProjectRate(project.id)
    if char in ("c", "C"):
        return ClearProjectRate(project.id)
    return None


def _pomodoro_keys(session: Session, key: str, char: str | None) -> Message | None:
    if _is_down(key, char):
        return SelectNext()
    if _is_up(key, char):
        return SelectPrevious()
    if char in ("p", "P"):
        return TogglePomodoro()
    if char in ("e", "E") or key == "enter":
        row = session.pomodoro_row()
        if row == "enabled":
            return TogglePomodoro()
        return EditPomodoroConfig(row)
    return None


def _clients_keys(session: Session, key: str, char: str | None) -> Message | None:
    if _is_down(key, char):
        return SelectNext()
    if _is_up(key, char):
        return SelectPrevious()
    if char in ("a", "A", "n"):
        return AddClient()
    client = session.selected_client_row()
    if client is None:
        return None
    if char in ("e", "E") or key == "enter":
        return EditClient(client.id)
    if char in ("d", "D"):
        return DeleteClient(client.id)
    return None


def _settings_keys(session: Session, key: str, char: str | None) -> Message | None:
    if char in ("e", "E") or key == "enter":
        return EditSettings()
    return None


SCREEN_HANDLERS = {
    Screen.TIMER: _timer_keys,
    Screen.ENTRIES: _entries_keys,
    Screen.INVOICE: _invoice_keys,
    Screen.PROJECTS: _projects_keys,
    Screen.POMODORO: _pomodoro_keys,
    Screen.CLIENTS: _clients_keys,
    Screen.SETTINGS: _settings_keys,
}


# ── Rendering ─────────────────────────────────────────────────


def _hms(seconds: int) -> str:
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _cursor(selected: bool) -> str:
    return "> " if selected else "  "


def render_tabs(session: Session) -> str:
    parts = []
    for key, screen in SCREEN_KEYS.items():
        title = SCREEN_TITLES[screen]
        parts.append(f"[{key}] {title.upper() if screen == session.screen else title}")
    return "  ".join(parts)


def render_form(form: FieldForm) -> str:
    lines = [f"── {form.title} ──"]
    for label, value, focused in form.rows():
        lines.append(f"{_cursor(focused)}{label}: {value}{'_' if focused else ''}")
    lines.append("")
    lines.append("Tab next field · Enter save · Esc cancel")
    return "\n".join(lines)


def render_pomodoro_line(session: Session) -> str:
    config = session.pomodoro_config
    if not config.enabled:
        return "Pomodoro: off"
    timer = session.pomodoro
    state = timer.state
    line = f"Pomodoro: {state.value.replace('_', ' ')} · cycle {timer.cycles_completed + 1}/{config.cycles_before_long}"
    remaining = session.pomodoro_remaining()
    if remaining is not None:
        line += f" · {format_remaining(remaining)} left"
    if state == PomodoroState.WORK_COMPLETE:
        kind = "long" if timer.is_long_break_next(config) else "short"
        line += f"\nPress [Space] to start {kind} break ({timer.break_minutes(config)} min)"
    elif state == PomodoroState.BREAK_COMPLETE:
        line += "\nPress [s] to resume work"
    return line


def render_timer(session: Session) -> str:
    lines = []
    entry = session.active_entry
    if entry is not None:
        lines.append(f"Tracking: {entry.project} — {entry.description}")
        lines.append(f"Elapsed:  {_hms(session.elapsed_seconds())}")
        lines.append("")
        lines.append("[s] stop")
    else:
        lines.append("No active timer")
        lines.append("")
        form = session.timer_form
        editing = session.mode is form
        for label, value, focused in form.rows():
            active = editing and focused
            lines.append(f"{_cursor(active)}{label}: {value}{'_' if active else ''}")
        lines.append("")
        lines.append("Enter start" if editing else "[s] new timer")
    lines.append("")
    lines.append(render_pomodoro_line(session))
    return "\n".join(lines)


def render_entries(session: Session) -> str:
    title = "Unbilled entries" if session.show_only_unbilled else "All entries"
    lines = [title, ""]
    if not session.entries:
        lines.append("No entries.")
    for i, e in enumerate(session.entries):
        start = e.start.astimezone(session.tz).strftime("%Y-%m-%d %H:%M") if e.start else ""
        flag = "running" if e.is_running else ("billed" if e.billed else "")
        lines.append(
            f"{_cursor(i == session.selected_entry)}{e.id:>4}  {e.project[:18]:<18} "
            f"{e.description[:24]:<24} {start}  {e.hours():>6.2f}h  {flag}"
        )
    return "\n".join(lines)


def render_invoice(session: Session) -> str:
    lines = ["Invoice period", ""]
    for mode in InvoiceMode:
        label = mode.label
        if mode == InvoiceMode.CUSTOM_RANGE and session.custom_start and session.custom_end:
            label += f" ({session.custom_start.isoformat()} to {session.custom_end.isoformat()})"
        lines.append(f"{_cursor(mode == session.invoice_mode)}{label}")
    client = session.invoice_client()
    lines.append("")
    lines.append(f"Bill to: {client.name if client else '(none)'}")

    if session.invoice_mode == InvoiceMode.SELECT_ENTRIES:
        lines.append("")
        if not session.invoice_entries:
            lines.append("No billed entries.")
        for i, e in enumerate(session.invoice_entries):
            mark = "[x]" if e.id in session.selected_entry_ids else "[ ]"
            lines.append(
                f"{_cursor(i == session.invoice_cursor)}{mark} {e.id:>4}  {e.project[:18]:<18} "
                f"{e.description[:24]:<24} {e.hours():>6.2f}h"
            )

    summary = session.invoice_preview()
    cur = summary_currency(summary)
    lines.append("")
    lines.append("Preview")
    if not summary.lines:
        lines.append("  No billed entries for this selection.")
    for line in summary.lines:
        lines.append(f"  {line.project}: {line_total_text(line)}")
    lines.append(f"  Subtotal: {cur}{summary.subtotal:.2f}")
    if summary.tax_rate > 0:
        lines.append(f"  Tax ({summary.tax_rate:.1f}%): {cur}{summary.tax_amount:.2f}")
    lines.append(f"  Total: {cur}{summary.total:.2f}  (due {summary.due_date.isoformat()})")
    if session.last_invoice is not None:
        lines.append("")
        lines.append(f"Last: #{session.last_invoice.invoice_number} → {session.last_invoice.file_path}")
    return "\n".join(lines)


def render_projects(session: Session) -> str:
    lines = ["Projects", ""]
    if not session.projects:
        lines.append("No projects yet. Start a timer to create one.")
    for i, p in enumerate(session.projects):
        lines.append(f"{_cursor(i == session.selected_project)}{p.name:<24} {p.formatted_rate() or 'no rate'}")
    return "\n".join(lines)


def render_pomodoro(session: Session) -> str:
    config = session.pomodoro_config
    values = {
        "enabled": "on" if config.enabled else "off",
        "work_duration": f"{config.work_duration} min",
        "short_break": f"{config.short_break} min",
        "long_break": f"{config.long_break} min",
        "cycles_before_long": str(config.cycles_before_long),
    }
    labels = {
        "enabled": "Enabled",
        "work_duration": "Work",
        "short_break": "Short break",
        "long_break": "Long break",
        "cycles_before_long": "Cycles before long break",
    }
    lines = ["Pomodoro settings", ""]
    for name, value in values.items():
        lines.append(f"{_cursor(session.pomodoro_row() == name)}{labels[name]:<26} {value}")
    lines.append("")
    lines.append(render_pomodoro_line(session))
    return "\n".join(lines)


def render_clients(session: Session) -> str:
    lines = ["Clients", ""]
    if not session.clients:
        lines.append("No clients. Press [a] to add one.")
    for i, c in enumerate(session.clients):
        lines.append(f"{_cursor(i == session.selected_client)}{c.name}")
    client = session.selected_client_row()
    if client is not None:
        lines.append("")
        if client.contact_person:
            lines.append(f"Attn: {client.contact_person}")
        lines.extend(client.formatted_address().splitlines())
        if client.email:
            lines.append(client.email)
    return "\n".join(lines)


def render_settings(session: Session) -> str:
    s = session.invoice_settings
    lines = ["Invoice settings", ""]
    lines.append(f"Business:  {s.business_name or '(not set)'}")
    for ln in s.formatted_address().splitlines():
        lines.append(f"           {ln}")
    lines.append(f"Email:     {s.email}")
    lines.append(f"Phone:     {s.phone}")
    lines.append(f"Tax ID:    {s.tax_id}")
    lines.append(f"Terms:     {s.default_payment_terms}")
    lines.append(f"Tax rate:  {s.default_tax_rate:g}%")
    if s.payment_instructions:
        lines.append(f"Payment:   {s.payment_instructions}")
    lines.append("")
    lines.append("[e] edit")
    return "\n".join(lines)


SCREEN_RENDERERS = {
    Screen.TIMER: render_timer,
    Screen.ENTRIES: render_entries,
    Screen.INVOICE: render_invoice,
    Screen.PROJECTS: render_projects,
    Screen.POMODORO: render_pomodoro,
    Screen.CLIENTS: render_clients,
    Screen.SETTINGS: render_settings,
}


def render_body(session: Session) -> str:
    if session.show_help:
        return HELP_TEXT
    body = SCREEN_RENDERERS[session.screen](session)
    mode = session.mode
    if isinstance(mode, FieldForm) and not isinstance(mode, EditingTimerInput):
        body += "\n\n" + render_form(mode)
    if session.pending_delete is not None:
        kind, item_id = session.pending_delete
        body += f"\n\nDelete {kind} {item_id}? (y/n)"
    return body


def render_status(session: Session) -> str:
    if session.status:
        return session.status
    if session.active_entry is not None:
        return f"● {session.active_entry.project} {_hms(session.elapsed_seconds())}"
    return "? help · q quit"


# ── App ───────────────────────────────────────────────────────


CSS = """
Screen {
    layout: vertical;
}

#tabs {
    height: 1;
    padding: 0 1;
    background: $primary-background;
}

#body {
    height: 1fr;
    padding: 1 2;
}

#status-bar {
    dock: bottom;
    height: 1;
    background: $primary-background;
    color: $text-muted;
    padding: 0 2;
}
"""


class MeterApp(App):
    """Meter — consulting-hours tracker."""

    TITLE = "Meter"
    CSS = CSS
    AUTO_FOCUS = None
    ENABLE_COMMAND_PALETTE = False

    def __init__(self, session: Session, tick_seconds: float = 0.25) -> None:
        super().__init__()
        self.session = session
        self.tick_seconds = tick_seconds

    def compose(self) -> ComposeResult:
        yield Header()
        yield Vertical(
            Static(id="tabs", markup=False),
            Static(id="body", markup=False),
            id="main-layout",
        )
        yield Static(id="status-bar", markup=False)

    def on_mount(self) -> None:
        self.set_interval(self.tick_seconds, self._tick)
        self._refresh_view()

    def _tick(self) -> None:
        self.session.dispatch(Tick())
        self._refresh_view()

    def on_key(self, event: events.Key) -> None:
        msg = handle_key(self.session, event.key, event.character)
        if msg is None:
            return
        event.prevent_default()
        event.stop()
        self.session.dispatch(msg)
        if not self.session.running:
            self.exit()
            return
        self._refresh_view()

    def _refresh_view(self) -> None:
        self.sub_title = SCREEN_TITLES[self.session.screen]
        self.query_one("#tabs", Static).update(render_tabs(self.session))
        self.query_one("#body", Static).update(render_body(self.session))
        self.query_one("#status-bar", Static).update(render_status(self.session))
