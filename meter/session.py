"""Interactive session state and the message reducer.

`Session` is the single source of truth for what an interactive front end is
doing: which screen is showing, which form is open, the mirror of the active
timer and the Pomodoro cycle. `update` applies one message and may return a
follow-up; `dispatch` pumps that chain until it runs dry.

Every store call may raise StoreError. Reducers catch it, log it, set a status
line and leave domain state as it was.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Callable

from meter import pomodoro
from meter.forms import (
    EditingClient,
    EditingEntry,
    EditingInvoiceRange,
    EditingPomodoroField,
    EditingRate,
    EditingSettings,
    EditingTimerInput,
    FieldForm,
    Mode,
    Normal,
)
from meter.invoice import (
    InvoiceSummary,
    ProjectRate,
    aggregate_invoice,
    current_month_range,
    day_range,
    generate_invoice,
    period_label,
    prior_month_range,
    project_rates,
)
from meter.messages import (
    SCREEN_ORDER,
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
    RefreshActiveTimer,
    RefreshClients,
    RefreshEntries,
    RefreshInvoiceEntries,
    RefreshPomodoroConfig,
    RefreshProjects,
    Screen,
    SelectInvoiceClient,
    SelectNext,
    SelectPrevious,
    SetCustomRange,
    StartTimer,
    StopTimer,
    SubmitEdit,
    SwitchScreen,
    Tick,
    ToggleBilledFilter,
    ToggleEntrySelection,
    ToggleHelp,
    TogglePomodoro,
    UnbillEntry,
)
from meter.models import (
    DEFAULT_DESCRIPTION,
    Client,
    Entry,
    InvoiceRecord,
    InvoiceSettings,
    PomodoroConfig,
    Project,
    utcnow,
)
from meter.notify import Notifier, NullNotifier
from meter.pomodoro import Notice, PomodoroEvent, PomodoroState, PomodoroTimer
from meter.render import RenderError
from meter.store import Store, StoreError

logger = logging.getLogger(__name__)

INVOICE_MODES = list(InvoiceMode)
POMODORO_ROWS = ("enabled",) + EditingPomodoroField.fields
MAX_CHAIN = 32


class Session:
    """All interactive state plus the reducer that mutates it."""

    def __init__(
        self,
        store: Store,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo = timezone.utc,
        invoice_dir: Path | None = None,
        invoice_format: str = "pdf",
    ) -> None:
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.clock = clock
        self.tz = tz
        self.invoice_dir = invoice_dir or Path("invoices")
        self.invoice_format = invoice_format

        # navigation & UI
        self.screen = Screen.TIMER
        self.running = True
        self.show_help = False
        self.status: str | None = None
        self.pending_delete: tuple[str, int] | None = None
        self.mode: Mode = Normal()

        # timer
        self.active_entry: Entry | None = None
        self.timer_form = EditingTimerInput()

        # entries
        self.entries: list[Entry] = []
        self.selected_entry = 0
        self.show_only_unbilled = False

        # projects
        self.projects: list[Project] = []
        self.selected_project = 0
        self.project_rates: dict[str, ProjectRate] = {}

        # invoice
        self.invoice_mode = InvoiceMode.CURRENT_MONTH
        self.custom_start = None
        self.custom_end = None
        self.invoice_entries: list[Entry] = []
        self.invoice_cursor = 0
        self.selected_entry_ids: set[int] = set()
        self.invoice_client_id: int | None = None
        self.last_invoice: InvoiceRecord | None = None

        # clients & settings
        self.clients: list[Client] = []
        self.selected_client = 0
        self.invoice_settings = InvoiceSettings()

        # pomodoro
        self.pomodoro_config = PomodoroConfig()
        self.pomodoro = PomodoroTimer()
        self.pomodoro_cursor = 0

        self._routes: list[tuple[tuple[type, ...], Callable[[Message], Message | None]]] = [
            ((Tick,), self._update_tick),
            ((InputChar, InputBackspace, NextField, PrevField, SubmitEdit, CancelEdit), self._update_form),
            ((SwitchScreen, Quit, ToggleHelp, ClearStatus, SelectNext, SelectPrevious), self._update_navigation),
            ((StartTimer, StopTimer, FocusTimerInput), self._update_timer),
            (
                (ToggleBilledFilter, EditEntry, DeleteEntry, ConfirmDelete, CancelDelete,
                 MarkEntryBilled, UnbillEntry),
                self._update_entries,
            ),
            (
                (NextInvoiceMode, PrevInvoiceMode, ToggleEntrySelection, CycleInvoiceClient,
                 SelectInvoiceClient, SetCustomRange, EditInvoiceRange, GenerateInvoice),
                self._update_invoice,
            ),
            ((EditProjectRate, ClearProjectRate), self._update_projects),
            ((TogglePomodoro, AcknowledgePomodoro, EditPomodoroConfig), self._update_pomodoro),
            ((AddClient, EditClient, DeleteClient), self._update_clients),
            ((EditSettings,), self._update_settings),
            (
                (RefreshEntries, RefreshActiveTimer, RefreshProjects, RefreshClients,
                 RefreshPomodoroConfig, RefreshInvoiceEntries),
                self._update_refresh,
            ),
        ]

        self._load_initial()

    @classmethod
    def from_config(cls, store: Store, config, notifier: Notifier | None = None) -> Session:
        return cls(
            store,
            notifier=notifier,
            tz=config.tz,
            invoice_dir=config.invoices_path,
            invoice_format=config.invoice_format,
        )

    def _load_initial(self) -> None:
        # Pomodoro always starts idle; an interval start is never persisted.
        try:
            self.active_entry = self.store.get_active_entry()
            self.pomodoro_config = self.store.get_pomodoro_config()
            self.invoice_settings = self.store.get_invoice_settings()
            self.entries = self._load_entries()
            self.clients = self.store.list_clients()
            self.projects = self.store.list_projects()
        except StoreError as e:
            self._store_failed("load data", e)

    # ── Timer input buffers ───────────────────────────────────

    @property
    def project_input(self) -> str:
        return self.timer_form.value("project")

    @project_input.setter
    def project_input(self, value: str) -> None:
        self.timer_form.set("project", value)

    @property
    def description_input(self) -> str:
        return self.timer_form.value("description")

    @description_input.setter
    def description_input(self, value: str) -> None:
        self.timer_form.set("description", value)

    @property
    def is_editing(self) -> bool:
        return self.mode.is_editing

    # ── Dispatch ──────────────────────────────────────────────

    def update(self, msg: Message) -> Message | None:
        """Apply one message. Returns the follow-up message, if any."""
        for types, reducer in self._routes:
            if isinstance(msg, types):
                return reducer(msg)
        logger.warning("Unhandled message %r", msg)
        return None

    def dispatch(self, msg: Message | None) -> None:
        """Apply msg and every follow-up it produces."""
        for _ in range(MAX_CHAIN):
            if msg is None:
                return
            msg = self.update(msg)
        logger.error("Message chain exceeded %d steps; last was %r", MAX_CHAIN, msg)

    def _store_failed(self, action: str, error: Exception) -> None:
        logger.warning("Failed to %s: %s", action, error)
        self.status = f"Failed to {action}: {error}"

    # ── Navigation & UI ───────────────────────────────────────

    def _update_navigation(self, msg: Message) -> Message | None:
        if isinstance(msg, SwitchScreen):
            self.screen = msg.screen
            self.mode = Normal()
            self.pending_delete = None
            if msg.screen == Screen.ENTRIES:
                return RefreshEntries()
            if msg.screen == Screen.INVOICE:
                return RefreshInvoiceEntries()
            if msg.screen == Screen.PROJECTS:
                return RefreshProjects()
            if msg.screen == Screen.POMODORO:
                return RefreshPomodoroConfig()
            if msg.screen == Screen.CLIENTS:
                return RefreshClients()
            if msg.screen == Screen.SETTINGS:
                try:
                    self.invoice_settings = self.store.get_invoice_settings()
                except StoreError as e:
                    self._store_failed("load settings", e)
            return None

        if isinstance(msg, Quit):
            self.running = False
        elif isinstance(msg, ToggleHelp):
            self.show_help = not self.show_help
        elif isinstance(msg, ClearStatus):
            self.status = None
        elif isinstance(msg, SelectNext):
            self._move_cursor(1)
        elif isinstance(msg, SelectPrevious):
            self._move_cursor(-1)
        return None

    def _move_cursor(self, step: int) -> None:
        def clamp(index: int, length: int) -> int:
            if length == 0:
                return 0
            return max(0, min(index + step, length - 1))

        if self.screen == Screen.ENTRIES:
            self.selected_entry = clamp(self.selected_entry, len(self.entries))
        elif self.screen == Screen.INVOICE:
            self.invoice_cursor = clamp(self.invoice_cursor, len(self.invoice_entries))
        elif self.screen == Screen.PROJECTS:
            self.selected_project = clamp(self.selected_project, len(self.projects))
        elif self.screen == Screen.CLIENTS and self.clients:
            self.selected_client = (self.selected_client + step) % len(self.clients)
        elif self.screen == Screen.POMODORO:
            self.pomodoro_cursor = (self.pomodoro_cursor + step) % len(POMODORO_ROWS)

    def next_screen(self, step: int = 1) -> Screen:
        index = SCREEN_ORDER.index(self.screen)
        return SCREEN_ORDER[(index + step) % len(SCREEN_ORDER)]

    # ── Timer ─────────────────────────────────────────────────

    def _update_timer(self, msg: Message) -> Message | None:
        if isinstance(msg, StartTimer):
            return self._start_timer()
        if isinstance(msg, StopTimer):
            return self._stop_timer()
        if isinstance(msg, FocusTimerInput):
            self.timer_form.focus(msg.field.value)
            self.mode = self.timer_form
        return None

    def _start_timer(self) -> Message | None:
        project = self.project_input.strip()
        if not project or self.active_entry is not None:
            return None
        description = self.description_input.strip() or DEFAULT_DESCRIPTION
        now = self.clock()
        try:
            entry = self.store.start_timer(project, description, at=now)
        except StoreError as e:
            self._store_failed("start timer", e)
            return None

        self.active_entry = entry
        self.pomodoro.remember(project, description)
        self.timer_form.reset()
        self.mode = Normal()
        self.status = "Timer started"
        pomodoro.update(self.pomodoro, PomodoroEvent.TIMER_STARTED, self.pomodoro_config, now)
        self.notifier.emit("on_timer_start", entry.to_dict())
        return RefreshActiveTimer()

    def _stop_timer(self) -> Message | None:
        if self.active_entry is None:
            return None
        now = self.clock()
        try:
            stopped = self.store.stop_active_timer(at=now)
        except StoreError as e:
            self._store_failed("stop timer", e)
            return None

        self.active_entry = None
        pomodoro.update(self.pomodoro, PomodoroEvent.TIMER_STOPPED, self.pomodoro_config, now)
        if stopped is None:
            self.status = "Timer already stopped"
        else:
            self.status = "Timer stopped"
            self.notifier.emit("on_timer_stop", stopped.to_dict())
        return RefreshEntries()

    def _update_tick(self, msg: Message) -> Message | None:
        now = self.clock()
        try:
            config = self.store.get_pomodoro_config()
        except StoreError as e:
            self._store_failed("read pomodoro settings", e)
            return None
        self.pomodoro_config = config
        if not self._refresh_active(now):
            return None

        before = dataclasses.replace(self.pomodoro)
        notice = pomodoro.update(self.pomodoro, PomodoroEvent.TICK, config, now)
        if notice == Notice.WORK_COMPLETE:
            return self._work_complete(now, before)
        if notice == Notice.BREAK_COMPLETE:
            self.notifier.notify_break_complete()
            self.notifier.emit("on_break_complete", {"cycles_completed": self.pomodoro.cycles_completed})
            self.status = "Break complete! Press [s] to resume work"
        return None

    def _work_complete(self, now: datetime, before: PomodoroTimer) -> Message | None:
        """Stop the store timer at the end of a work interval.

        If the stop fails, the Pomodoro timer goes back to `before` (still
        Working), so the next Tick retries and nothing is announced.
        """
        try:
            stopped = self.store.stop_active_timer(at=now)
        except StoreError as e:
            self.pomodoro = before
            self._store_failed("stop timer", e)
            return None
        entry = self.active_entry
        if entry is not None:
            self.pomodoro.remember(entry.project, entry.description)
        self.active_entry = None
        self.notifier.notify_work_complete()
        self.notifier.emit(
            "on_work_complete",
            {"entry": stopped.to_dict() if stopped else None,
             "cycles_completed": self.pomodoro.cycles_completed},
        )
        if stopped is not None:
            self.status = "Work period complete! Press [Space] to start break"
        return RefreshEntries()

    def _refresh_active(self, now: datetime) -> bool:
        """Re-read the active entry and reconcile Pomodoro with outside changes."""
        previous = self.active_entry
        try:
            active = self.store.get_active_entry()
        except StoreError as e:
            self._store_failed("read active timer", e)
            return False
        self.active_entry = active

        config = self.pomodoro_config
        state = self.pomodoro.state
        if not config.enabled:
            if state != PomodoroState.IDLE:
                pomodoro.update(self.pomodoro, PomodoroEvent.DISABLED, config, now)
        elif active is not None and (previous is None or previous.id != active.id):
            logger.info("Timer %d started elsewhere", active.id)
            self.pomodoro.remember(active.project, active.description)
            pomodoro.update(self.pomodoro, PomodoroEvent.TIMER_STARTED, config, now)
        elif active is None and previous is not None and state == PomodoroState.WORKING:
            logger.info("Timer %d stopped elsewhere", previous.id)
            pomodoro.update(self.pomodoro, PomodoroEvent.TIMER_STOPPED, config, now)
        return True

    # ── Entries ───────────────────────────────────────────────

    def _update_entries(self, msg: Message) -> Message | None:
        if isinstance(msg, ToggleBilledFilter):
            self.show_only_unbilled = not self.show_only_unbilled
            self.selected_entry = 0
            return RefreshEntries()

        if isinstance(msg, EditEntry):
            entry = self._find_entry(msg.entry_id)
            if entry is None:
                self.status = f"Entry {msg.entry_id} no longer exists"
                return RefreshEntries()
            self.mode = EditingEntry(entry, self.tz)
            return None

        if isinstance(msg, DeleteEntry):
            self.pending_delete = ("entry", msg.entry_id)
            return None

        if isinstance(msg, CancelDelete):
            self.pending_delete = None
            return None

        if isinstance(msg, ConfirmDelete):
            return self._confirm_delete()

        if isinstance(msg, MarkEntryBilled):
            return self._set_billed(msg.entry_id, True)

        if isinstance(msg, UnbillEntry):
            return self._set_billed(msg.entry_id, False)
        return None

    def _find_entry(self, entry_id: int) -> Entry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        try:
            return self.store.get_entry(entry_id)
        except StoreError as e:
            self._store_failed("load entry", e)
            return None

    def _confirm_delete(self) -> Message | None:
        if self.pending_delete is None:
            return None
        kind, item_id = self.pending_delete
        self.pending_delete = None
        try:
            if kind == "client":
                deleted = self.store.delete_client(item_id)
            else:
                deleted = self.store.delete_entry(item_id)
        except StoreError as e:
            self._store_failed(f"delete {kind}", e)
            return None

        label = kind.capitalize()
        if not deleted:
            self.status = f"{label} {item_id} no longer exists"
        else:
            self.status = f"{label} {item_id} deleted"
        if kind == "client":
            if self.invoice_client_id == item_id:
                self.invoice_client_id = None
            self.selected_client = max(0, self.selected_client - 1)
            return RefreshClients()
        self.selected_entry = max(0, self.selected_entry - 1)
        return RefreshEntries()

    def _set_billed(self, entry_id: int, billed: bool) -> Message | None:
        try:
            if billed:
                changed = self.store.mark_billed(entry_id)
            else:
                changed = self.store.unmark_billed(entry_id)
            current = None if changed else self.store.get_entry(entry_id)
        except StoreError as e:
            self._store_failed("update entry", e)
            return None

        if changed:
            self.status = f"Entry {entry_id} marked as billed" if billed else f"Entry {entry_id} unbilled"
        elif current is None:
            self.status = f"Entry {entry_id} no longer exists"
        elif current.is_running:
            self.status = "Cannot bill a running entry"
        return RefreshEntries()

    # ── Invoice ───────────────────────────────────────────────

    def _update_invoice(self, msg: Message) -> Message | None:
        if isinstance(msg, (NextInvoiceMode, PrevInvoiceMode)):
            step = 1 if isinstance(msg, NextInvoiceMode) else -1
            index = INVOICE_MODES.index(self.invoice_mode)
            self.invoice_mode = INVOICE_MODES[(index + step) % len(INVOICE_MODES)]
            self.invoice_cursor = 0
            if self.invoice_mode == InvoiceMode.SELECT_ENTRIES:
                return RefreshInvoiceEntries()
            return None

        if isinstance(msg, ToggleEntrySelection):
            if msg.entry_id in self.selected_entry_ids:
                self.selected_entry_ids.discard(msg.entry_id)
            else:
                self.selected_entry_ids.add(msg.entry_id)
            return None

        if isinstance(msg, CycleInvoiceClient):
            self.invoice_client_id = self._next_client_id()
            return None

        if isinstance(msg, SelectInvoiceClient):
            if msg.client_id is None or any(c.id == msg.client_id for c in self.clients):
                self.invoice_client_id = msg.client_id
            else:
                self.status = f"Client {msg.client_id} no longer exists"
            return None

        if isinstance(msg, SetCustomRange):
            if msg.end < msg.start:
                self.status = "Invalid range: end is before start"
                return None
            self.custom_start = msg.start
            self.custom_end = msg.end
            self.invoice_mode = InvoiceMode.CUSTOM_RANGE
            self.status = f"Range set to {msg.start.isoformat()} - {msg.end.isoformat()}"
            return None

        if isinstance(msg, EditInvoiceRange):
            self.mode = EditingInvoiceRange(self.custom_start, self.custom_end)
            return None

        if isinstance(msg, GenerateInvoice):
            return self._generate_invoice()
        return None

    def _next_client_id(self) -> int | None:
        """None -> first client -> ... -> last client -> None."""
        if not self.clients:
            return None
        if self.invoice_client_id is None:
            return self.clients[0].id
        ids = [c.id for c in self.clients]
        if self.invoice_client_id not in ids:
            return None
        index = ids.index(self.invoice_client_id)
        return ids[index + 1] if index + 1 < len(ids) else None

    def invoice_range(self) -> tuple[datetime, datetime] | None:
        """UTC bounds for the current date-based invoice mode."""
        now = self.clock()
        if self.invoice_mode == InvoiceMode.CURRENT_MONTH:
            return current_month_range(now)
        if self.invoice_mode == InvoiceMode.PRIOR_MONTH:
            return prior_month_range(now)
        if self.invoice_mode == InvoiceMode.CUSTOM_RANGE and self.custom_start and self.custom_end:
            return day_range(self.custom_start, self.custom_end)
        return None

    def _selected_invoice_entries(self) -> list[Entry]:
        return [e for e in self.invoice_entries if e.id in self.selected_entry_ids]

    def _generate_invoice(self) -> Message | None:
        now = self.clock()
        if self.invoice_mode == InvoiceMode.SELECT_ENTRIES:
            entries = self._selected_invoice_entries()
            if not entries:
                self.status = "No entries selected"
                return None
            period = ""
        else:
            bounds = self.invoice_range()
            if bounds is None:
                self.status = "Set a custom range first"
                return None
            try:
                entries = self.store.list_entries_in_range(*bounds, billed=True)
            except StoreError as e:
                self._store_failed("load entries", e)
                return None
            period = period_label(*bounds)

        try:
            record, _ = generate_invoice(
                self.store,
                entries,
                self.invoice_dir,
                self.invoice_format,
                client=self.invoice_client(),
                now=now,
                period=period,
                tz=self.tz,
            )
        except (StoreError, RenderError) as e:
            logger.warning("Invoice generation failed: %s", e)
            self.status = f"Failed to write invoice: {e}"
            return None

        self.last_invoice = record
        self.selected_entry_ids.clear()
        self.status = f"Invoice #{record.invoice_number} written to {record.file_path}"
        self.notifier.emit("post_invoice", record.to_dict())
        return None

    # ── Projects ──────────────────────────────────────────────

    def _find_project(self, project_id: int) -> Project | None:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def _update_projects(self, msg: Message) -> Message | None:
        project = self._find_project(msg.project_id)
        if project is None:
            self.status = f"Project {msg.project_id} no longer exists"
            return RefreshProjects()

        if isinstance(msg, EditProjectRate):
            self.mode = EditingRate(project)
            return None

        try:
            self.store.set_project_rate(project.name, None, project.currency)
        except StoreError as e:
            self._store_failed("clear rate", e)
            return None
        self.status = f"Rate cleared for '{project.name}'"
        return RefreshProjects()

    # ── Pomodoro ──────────────────────────────────────────────

    def _update_pomodoro(self, msg: Message) -> Message | None:
        now = self.clock()
        if isinstance(msg, TogglePomodoro):
            enabled = not self.pomodoro_config.enabled
            try:
                self.store.set_pomodoro_enabled(enabled)
            except StoreError as e:
                self._store_failed("update pomodoro settings", e)
                return None
            self.pomodoro_config.enabled = enabled
            if enabled:
                self.status = "Pomodoro mode enabled"
                if self.active_entry is not None:
                    self.pomodoro.remember(self.active_entry.project, self.active_entry.description)
                    pomodoro.update(self.pomodoro, PomodoroEvent.ENABLED, self.pomodoro_config, now)
            else:
                self.status = "Pomodoro mode disabled"
                pomodoro.update(self.pomodoro, PomodoroEvent.DISABLED, self.pomodoro_config, now)
            return None

        if isinstance(msg, AcknowledgePomodoro):
            notice = pomodoro.update(self.pomodoro, PomodoroEvent.ACKNOWLEDGED, self.pomodoro_config, now)
            if notice == Notice.BREAK_STARTED:
                kind = "long" if self.pomodoro.is_long_break_next(self.pomodoro_config) else "short"
                minutes = self.pomodoro.break_minutes(self.pomodoro_config)
                self.status = f"Starting {kind} break ({minutes} min)"
            elif notice == Notice.RESUME_READY:
                if self.pomodoro.last_project:
                    self.project_input = self.pomodoro.last_project
                if self.pomodoro.last_description:
                    self.description_input = self.pomodoro.last_description
                self.status = "Ready to start next work period"
            return None

        if isinstance(msg, EditPomodoroConfig):
            field = msg.field if msg.field in EditingPomodoroField.fields else None
            self.mode = EditingPomodoroField(self.pomodoro_config, field)
        return None

    # ── Clients ───────────────────────────────────────────────

    def _update_clients(self, msg: Message) -> Message | None:
        if isinstance(msg, AddClient):
            self.mode = EditingClient()
            return None

        client = next((c for c in self.clients if c.id == msg.client_id), None)
        if client is None:
            self.status = f"Client {msg.client_id} no longer exists"
            return RefreshClients()
        if isinstance(msg, EditClient):
            self.mode = EditingClient(client)
        elif isinstance(msg, DeleteClient):
            self.pending_delete = ("client", client.id)
        return None

    # ── Settings ──────────────────────────────────────────────

    def _update_settings(self, msg: Message) -> Message | None:
        self.mode = EditingSettings(self.invoice_settings)
        return None

    # ── Forms ─────────────────────────────────────────────────

    def _update_form(self, msg: Message) -> Message | None:
        form = self.mode
        if not isinstance(form, FieldForm):
            return None

        if isinstance(msg, InputChar):
            form.insert(msg.char)
        elif isinstance(msg, InputBackspace):
            form.backspace()
        elif isinstance(msg, NextField):
            form.next_field()
        elif isinstance(msg, PrevField):
            form.prev_field()
        elif isinstance(msg, CancelEdit):
            self.mode = Normal()
        elif isinstance(msg, SubmitEdit):
            return self._submit(form)
        return None

    def _submit(self, form: FieldForm) -> Message | None:
        if isinstance(form, EditingTimerInput):
            return StartTimer()
        if isinstance(form, EditingEntry):
            return self._save_entry(form)
        if isinstance(form, EditingRate):
            return self._save_rate(form)
        if isinstance(form, EditingPomodoroField):
            return self._save_pomodoro_config(form)
        if isinstance(form, EditingClient):
            return self._save_client(form)
        if isinstance(form, EditingSettings):
            return self._save_settings(form)
        if isinstance(form, EditingInvoiceRange):
            parsed = form.parsed()
            if parsed is None:
                self.status = "Invalid range: use YYYY-MM-DD with start on or before end"
                return None
            self.mode = Normal()
            return SetCustomRange(*parsed)
        return None

    def _save_entry(self, form: EditingEntry) -> Message | None:
        entry = form.apply()
        if not entry.project.strip():
            entry.project = form.entry.project
        self.mode = Normal()
        try:
            updated = self.store.update_entry(entry)
        except StoreError as e:
            self._store_failed("update entry", e)
            return RefreshEntries()
        if updated:
            self.status = f"Entry {entry.id} updated"
        else:
            self.status = f"Entry {entry.id} no longer exists"
        return RefreshEntries()

    def _save_rate(self, form: EditingRate) -> Message | None:
        name = form.project.name
        self.mode = Normal()
        try:
            self.store.set_project_rate(name, form.parsed_rate(), form.parsed_currency())
        except StoreError as e:
            self._store_failed("update rate", e)
            return None
        self.status = f"Rate updated for '{name}'"
        return RefreshProjects()

    def _save_pomodoro_config(self, form: EditingPomodoroField) -> Message | None:
        config = form.apply()
        config.enabled = self.pomodoro_config.enabled
        self.mode = Normal()
        try:
            self.store.set_pomodoro_config(config)
        except StoreError as e:
            self._store_failed("save pomodoro settings", e)
            return None
        self.pomodoro_config = config
        self.status = "Pomodoro settings saved"
        return None

    def _save_client(self, form: EditingClient) -> Message | None:
        client = form.apply()
        if not client.name:
            self.status = "Client name is required"
            return None
        self.mode = Normal()
        try:
            if form.adding:
                self.store.add_client(client)
                self.status = f"Client '{client.name}' added"
            elif self.store.update_client(client):
                self.status = f"Client '{client.name}' updated"
            else:
                self.status = f"Client {client.id} no longer exists"
        except StoreError as e:
            self._store_failed("save client", e)
        return RefreshClients()

    def _save_settings(self, form: EditingSettings) -> Message | None:
        settings = form.apply()
        self.mode = Normal()
        try:
            self.store.set_invoice_settings(settings)
        except StoreError as e:
            self._store_failed("save settings", e)
            return None
        self.invoice_settings = settings
        self.status = "Settings saved"
        return None

    # ── Refresh ───────────────────────────────────────────────

    def _load_entries(self) -> list[Entry]:
        return self.store.list_entries(billed=False if self.show_only_unbilled else None)

    def _update_refresh(self, msg: Message) -> Message | None:
        try:
            if isinstance(msg, RefreshEntries):
                self.entries = self._load_entries()
                if self.selected_entry >= len(self.entries):
                    self.selected_entry = max(0, len(self.entries) - 1)
            elif isinstance(msg, RefreshActiveTimer):
                self._refresh_active(self.clock())
            elif isinstance(msg, RefreshProjects):
                self.projects = self.store.list_projects()
                if self.selected_project >= len(self.projects):
                    self.selected_project = max(0, len(self.projects) - 1)
            elif isinstance(msg, RefreshClients):
                self.clients = self.store.list_clients()
                if self.selected_client >= len(self.clients):
                    self.selected_client = max(0, len(self.clients) - 1)
            elif isinstance(msg, RefreshPomodoroConfig):
                self.pomodoro_config = self.store.get_pomodoro_config()
            elif isinstance(msg, RefreshInvoiceEntries):
                self.invoice_entries = self.store.list_entries(billed=True)
                self.project_rates = project_rates(self.store.list_projects())
                self.clients = self.store.list_clients()
                self.invoice_settings = self.store.get_invoice_settings()
                known = {e.id for e in self.invoice_entries}
                self.selected_entry_ids &= known
                if self.invoice_cursor >= len(self.invoice_entries):
                    self.invoice_cursor = max(0, len(self.invoice_entries) - 1)
        except StoreError as e:
            self._store_failed("refresh", e)
        return None

    # ── Read-only accessors ───────────────────────────────────

    def selected_entry_row(self) -> Entry | None:
        if 0 <= self.selected_entry < len(self.entries):
            return self.entries[self.selected_entry]
        return None

    def selected_project_row(self) -> Project | None:
        if 0 <= self.selected_project < len(self.projects):
            return self.projects[self.selected_project]
        return None

    def selected_client_row(self) -> Client | None:
        if 0 <= self.selected_client < len(self.clients):
            return self.clients[self.selected_client]
        return None

    def invoice_cursor_row(self) -> Entry | None:
        if 0 <= self.invoice_cursor < len(self.invoice_entries):
            return self.invoice_entries[self.invoice_cursor]
        return None

    def invoice_client(self) -> Client | None:
        if self.invoice_client_id is None:
            return None
        return next((c for c in self.clients if c.id == self.invoice_client_id), None)

    def elapsed_seconds(self) -> int:
        if self.active_entry is None:
            return 0
        return self.active_entry.duration_seconds(self.clock())

    def pomodoro_remaining(self) -> int | None:
        return self.pomodoro.remaining_seconds(self.pomodoro_config, self.clock())

    def pomodoro_row(self) -> str:
        return POMODORO_ROWS[self.pomodoro_cursor]

    def invoice_preview(self) -> InvoiceSummary:
        """What GenerateInvoice would bill, from the cached billed entries."""
        if self.invoice_mode == InvoiceMode.SELECT_ENTRIES:
            entries = self._selected_invoice_entries()
        else:
            bounds = self.invoice_range()
            if bounds is None:
                entries = []
            else:
                start, end = bounds
                entries = [e for e in self.invoice_entries if e.end is not None and start <= e.end <= end]
        return aggregate_invoice(
            entries,
            self.project_rates,
            self.invoice_settings.default_tax_rate,
            self.invoice_settings,
            client=self.invoice_client(),
            issued=self.clock().date(),
        )
