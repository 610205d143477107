"""Messages understood by the session reducer.

Every user intent and every periodic event is one of these small frozen
dataclasses. Front ends build them; `Session.update` consumes them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Union


class Screen(str, Enum):
    TIMER = "timer"
    ENTRIES = "entries"
    INVOICE = "invoice"
    PROJECTS = "projects"
    POMODORO = "pomodoro"
    CLIENTS = "clients"
    SETTINGS = "settings"


SCREEN_ORDER = list(Screen)


class InvoiceMode(str, Enum):
    CURRENT_MONTH = "current_month"
    PRIOR_MONTH = "prior_month"
    CUSTOM_RANGE = "custom_range"
    SELECT_ENTRIES = "select_entries"

    @property
    def label(self) -> str:
        return {
            InvoiceMode.CURRENT_MONTH: "Current month",
            InvoiceMode.PRIOR_MONTH: "Prior month",
            InvoiceMode.CUSTOM_RANGE: "Custom range",
            InvoiceMode.SELECT_ENTRIES: "Selected entries",
        }[self]


class TimerField(str, Enum):
    PROJECT = "project"
    DESCRIPTION = "description"


# ── Navigation & UI ───────────────────────────────────────────


@dataclass(frozen=True)
class SwitchScreen:
    screen: Screen


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class ToggleHelp:
    pass


@dataclass(frozen=True)
class ClearStatus:
    pass


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class SelectNext:
    pass


@dataclass(frozen=True)
class SelectPrevious:
    pass


# ── Timer ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class StartTimer:
    pass


@dataclass(frozen=True)
class StopTimer:
    pass


@dataclass(frozen=True)
class FocusTimerInput:
    field: TimerField = TimerField.PROJECT


# ── Form editing ──────────────────────────────────────────────


@dataclass(frozen=True)
class InputChar:
    char: str


@dataclass(frozen=True)
class InputBackspace:
    pass


@dataclass(frozen=True)
class NextField:
    pass


@dataclass(frozen=True)
class PrevField:
    pass


@dataclass(frozen=True)
class SubmitEdit:
    pass


@dataclass(frozen=True)
class CancelEdit:
    pass


# ── Entries ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ToggleBilledFilter:
    pass


@dataclass(frozen=True)
class EditEntry:
    entry_id: int


@dataclass(frozen=True)
class DeleteEntry:
    entry_id: int


@dataclass(frozen=True)
class ConfirmDelete:
    pass


@dataclass(frozen=True)
class CancelDelete:
    pass


@dataclass(frozen=True)
class MarkEntryBilled:
    entry_id: int


@dataclass(frozen=True)
class UnbillEntry:
    entry_id: int


# ── Invoice ───────────────────────────────────────────────────


@dataclass(frozen=True)
class NextInvoiceMode:
    pass


@dataclass(frozen=True)
class PrevInvoiceMode:
    pass


@dataclass(frozen=True)
class ToggleEntrySelection:
    entry_id: int


@dataclass(frozen=True)
class CycleInvoiceClient:
    pass


@dataclass(frozen=True)
class SelectInvoiceClient:
    client_id: int | None


@dataclass(frozen=True)
class SetCustomRange:
    start: date
    end: date


@dataclass(frozen=True)
class EditInvoiceRange:
    pass


@dataclass(frozen=True)
class GenerateInvoice:
    pass


# ── Projects ──────────────────────────────────────────────────


@dataclass(frozen=True)
class EditProjectRate:
    project_id: int


@dataclass(frozen=True)
class ClearProjectRate:
    project_id: int


# ── Pomodoro ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TogglePomodoro:
    pass


@dataclass(frozen=True)
class AcknowledgePomodoro:
    pass


@dataclass(frozen=True)
class EditPomodoroConfig:
    field: str | None = None


# ── Clients & settings ────────────────────────────────────────


@dataclass(frozen=True)
class AddClient:
    pass


@dataclass(frozen=True)
class EditClient:
    client_id: int


@dataclass(frozen=True)
class DeleteClient:
    client_id: int


@dataclass(frozen=True)
class EditSettings:
    pass


# ── Refresh ───────────────────────────────────────────────────


@dataclass(frozen=True)
class RefreshEntries:
    pass


@dataclass(frozen=True)
class RefreshActiveTimer:
    pass


@dataclass(frozen=True)
class RefreshProjects:
    pass


@dataclass(frozen=True)
class RefreshClients:
    pass


@dataclass(frozen=True)
class RefreshPomodoroConfig:
    pass


@dataclass(frozen=True)
class RefreshInvoiceEntries:
    pass


Message = Union[
    SwitchScreen, Quit, ToggleHelp, ClearStatus, Tick, SelectNext, SelectPrevious,
    StartTimer, StopTimer, FocusTimerInput,
    InputChar, InputBackspace, NextField, PrevField, SubmitEdit, CancelEdit,
    ToggleBilledFilter, EditEntry, DeleteEntry, ConfirmDelete, CancelDelete,
    MarkEntryBilled, UnbillEntry,
    NextInvoiceMode, PrevInvoiceMode, ToggleEntrySelection, CycleInvoiceClient,
    SelectInvoiceClient, SetCustomRange, EditInvoiceRange, GenerateInvoice,
    EditProjectRate, ClearProjectRate,
    TogglePomodoro, AcknowledgePomodoro, EditPomodoroConfig,
    AddClient, EditClient, DeleteClient, EditSettings,
    RefreshEntries, RefreshActiveTimer, RefreshProjects, RefreshClients,
    RefreshPomodoroConfig, RefreshInvoiceEntries,
]
