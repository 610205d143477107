"""Input modes for the interactive session.

The session is always in exactly one mode. `Normal` accepts navigation keys;
every other mode is a FieldForm that owns the text buffers of one editing
flow, the focused field and a per-field keystroke filter.
"""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Any

from meter.models import (
    CLIENT_FIELDS,
    DEFAULT_CURRENCY,
    DEFAULT_DESCRIPTION,
    Client,
    Entry,
    InvoiceSettings,
    PomodoroConfig,
    Project,
)

ENTRY_TIME_FORMAT = "%Y-%m-%d %H:%M"
RANGE_DATE_FORMAT = "%Y-%m-%d"

DIGITS = "digits"
DECIMAL = "decimal"
DATE = "date"


def accepts(kind: str | None, buffer: str, char: str) -> bool:
    """Keystroke filter: digits only, decimal with a single dot, or a date."""
    if len(char) != 1 or not char.isprintable():
        return False
    if kind == DIGITS:
        return char.isdigit()
    if kind == DECIMAL:
        return char.isdigit() or (char == "." and "." not in buffer)
    if kind == DATE:
        return char.isdigit() or char == "-"
    return True


class Mode:
    is_editing = False
    title = ""


class Normal(Mode):
    def __repr__(self) -> str:
        return "Normal()"


class FieldForm(Mode):
    """Text buffers for an ordered set of fields with one focused field."""

    is_editing = True
    fields: tuple[str, ...] = ()
    labels: dict[str, str] = {}
    filters: dict[str, str] = {}

    def __init__(self, values: dict[str, str] | None = None, field: str | None = None) -> None:
        self.buffers: dict[str, str] = {f: "" for f in self.fields}
        if values:
            for key, value in values.items():
                if key in self.buffers:
                    self.buffers[key] = value
        self.index = 0
        if field is not None:
            self.focus(field)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(field={self.field!r})"

    @property
    def field(self) -> str:
        return self.fields[self.index]

    def label(self, field: str) -> str:
        return self.labels.get(field, field.replace("_", " ").capitalize())

    def value(self, field: str) -> str:
        return self.buffers[field]

    def set(self, field: str, value: str) -> None:
        self.buffers[field] = value

    def focus(self, field: str) -> None:
        self.index = self.fields.index(field)

    def insert(self, char: str) -> bool:
        """Append char to the focused buffer if its filter accepts it."""
        current = self.buffers[self.field]
        if not accepts(self.filters.get(self.field), current, char):
            return False
        self.buffers[self.field] = current + char
        return True

    def backspace(self) -> None:
        self.buffers[self.field] = self.buffers[self.field][:-1]

    def next_field(self) -> None:
        self.index = (self.index + 1) % len(self.fields)

    def prev_field(self) -> None:
        self.index = (self.index - 1) % len(self.fields)

    def rows(self) -> list[tuple[str, str, bool]]:
        """(label, buffer, focused) for rendering."""
        return [(self.label(f), self.buffers[f], i == self.index) for i, f in enumerate(self.fields)]


# ── Timer ─────────────────────────────────────────────────────


class EditingTimerInput(FieldForm):
    """Project and description for the next timer. Kept across mode changes."""

    title = "Start timer"
    fields = ("project", "description")

    def __init__(self, field: str | None = None) -> None:
        super().__init__({"description": DEFAULT_DESCRIPTION}, field)

    def reset(self) -> None:
        self.buffers = {"project": "", "description": DEFAULT_DESCRIPTION}
        self.index = 0


# ── Entries ───────────────────────────────────────────────────


def format_local(dt: datetime | None, tz: tzinfo) -> str:
    if dt is None:
        return ""
    return dt.astimezone(tz).strftime(ENTRY_TIME_FORMAT)


def parse_local(text: str, tz: tzinfo) -> datetime | None:
    """Parse a local "%Y-%m-%d %H:%M" string into UTC, or None if malformed."""
    try:
        naive = datetime.strptime(text.strip(), ENTRY_TIME_FORMAT)
    except ValueError:
        return None
    return naive.replace(tzinfo=tz).astimezone(timezone.utc)


class EditingEntry(FieldForm):
    title = "Edit entry"
    fields = ("project", "description", "start", "end")
    labels = {"start": "Start (YYYY-MM-DD HH:MM)", "end": "End (empty = running)"}

    def __init__(self, entry: Entry, tz: tzinfo) -> None:
        super().__init__({
            "project": entry.project,
            "description": entry.description,
            "start": format_local(entry.start, tz),
            "end": format_local(entry.end, tz),
        })
        self.entry = entry
        self.tz = tz

    def apply(self) -> Entry:
        """Entry with the buffers applied.

        A malformed start or end leaves the previous value in place; an empty
        end clears it. An end before the start is treated as malformed too,
        and if the previous end is still before the new start, the start
        falls back as well.
        """
        start = parse_local(self.buffers["start"], self.tz) or self.entry.start
        if not self.buffers["end"].strip():
            end = None
        else:
            end = parse_local(self.buffers["end"], self.tz) or self.entry.end
        if end is not None and start is not None and end < start:
            end = self.entry.end
            if end is not None and end < start:
                start = self.entry.start
        return Entry(
            id=self.entry.id,
            project=self.buffers["project"],
            description=self.buffers["description"],
            start=start,
            end=end,
            billed=self.entry.billed,
        )


# ── Projects ──────────────────────────────────────────────────


class EditingRate(FieldForm):
    title = "Edit rate"
    fields = ("rate", "currency")
    labels = {"rate": "Hourly rate"}
    filters = {"rate": DECIMAL}

    def __init__(self, project: Project) -> None:
        super().__init__({
            "rate": f"{project.rate:.2f}" if project.rate is not None else "",
            "currency": project.currency or DEFAULT_CURRENCY,
        })
        self.project = project

    def parsed_rate(self) -> float | None:
        try:
            return float(self.buffers["rate"])
        except ValueError:
            return None

    def parsed_currency(self) -> str | None:
        return self.buffers["currency"] or None


# ── Pomodoro ──────────────────────────────────────────────────


class EditingPomodoroField(FieldForm):
    title = "Pomodoro settings"
    fields = ("work_duration", "short_break", "long_break", "cycles_before_long")
    labels = {
        "work_duration": "Work (min)",
        "short_break": "Short break (min)",
        "long_break": "Long break (min)",
        "cycles_before_long": "Cycles before long break",
    }
    filters = {f: DIGITS for f in fields}

    def __init__(self, config: PomodoroConfig, field: str | None = None) -> None:
        super().__init__({f: str(getattr(config, f)) for f in self.fields}, field)
        self.config = config

    def apply(self) -> PomodoroConfig:
        """Config with every buffer that parses to a positive int applied."""
        values: dict[str, Any] = {"enabled": self.config.enabled}
        for f in self.fields:
            previous = getattr(self.config, f)
            try:
                parsed = int(self.buffers[f])
            except ValueError:
                parsed = 0
            values[f] = parsed if parsed > 0 else previous
        return PomodoroConfig(**values)


# ── Clients & settings ────────────────────────────────────────


class EditingClient(FieldForm):
    title = "Client"
    fields = CLIENT_FIELDS
    labels = {
        "contact_person": "Contact",
        "address_street": "Street",
        "address_city": "City",
        "address_state": "State",
        "address_postal": "Postal code",
        "address_country": "Country",
    }

    def __init__(self, client: Client | None = None) -> None:
        values = {f: getattr(client, f) for f in CLIENT_FIELDS} if client else None
        super().__init__(values)
        self.client_id = client.id if client else None

    @property
    def adding(self) -> bool:
        return self.client_id is None

    def apply(self) -> Client:
        return Client(id=self.client_id or 0, **{f: self.buffers[f].strip() for f in CLIENT_FIELDS})


class EditingSettings(FieldForm):
    title = "Invoice settings"
    fields = (
        "business_name",
        "address_street",
        "address_city",
        "address_state",
        "address_postal",
        "address_country",
        "email",
        "phone",
        "tax_id",
        "default_payment_terms",
        "default_tax_rate",
        "payment_instructions",
    )
    labels = {
        "address_street": "Street",
        "address_city": "City",
        "address_state": "State",
        "address_postal": "Postal code",
        "address_country": "Country",
        "tax_id": "Tax ID",
        "default_payment_terms": "Payment terms",
        "default_tax_rate": "Tax rate (%)",
    }
    filters = {"default_tax_rate": DECIMAL}

    def __init__(self, settings: InvoiceSettings) -> None:
        values = {f: str(getattr(settings, f)) for f in self.fields if f != "default_tax_rate"}
        values["default_tax_rate"] = f"{settings.default_tax_rate:g}"
        super().__init__(values)

    def apply(self) -> InvoiceSettings:
        values: dict[str, Any] = {f: self.buffers[f] for f in self.fields if f != "default_tax_rate"}
        try:
            values["default_tax_rate"] = float(self.buffers["default_tax_rate"])
        except ValueError:
            values["default_tax_rate"] = 0.0
        return InvoiceSettings(**values)


# ── Invoice range ─────────────────────────────────────────────


class EditingInvoiceRange(FieldForm):
    title = "Custom range"
    fields = ("start", "end")
    labels = {"start": "From (YYYY-MM-DD)", "end": "To (YYYY-MM-DD)"}
    filters = {"start": DATE, "end": DATE}

    def __init__(self, start: date | None = None, end: date | None = None) -> None:
        super().__init__({
            "start": start.isoformat() if start else "",
            "end": end.isoformat() if end else "",
        })

    def parsed(self) -> tuple[date, date] | None:
        """(start, end) if both parse and start <= end, else None."""
        try:
            start = datetime.strptime(self.buffers["start"], RANGE_DATE_FORMAT).date()
            end = datetime.strptime(self.buffers["end"], RANGE_DATE_FORMAT).date()
        except ValueError:
            return None
        if end < start:
            return None
        return start, end
