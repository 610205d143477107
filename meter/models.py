"""Typed dataclasses for the Meter data model.

Records map to SQLite rows via from_row and to JSON-friendly dicts via to_dict.
Timestamps are aware UTC datetimes in memory and ISO-8601 strings on disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping


DEFAULT_DESCRIPTION = "Work session"
DEFAULT_CURRENCY = "$"


# ── Timestamps ────────────────────────────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_iso(dt: datetime) -> str:
    """Serialize an instant as a seconds-precision UTC ISO string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def parse_iso(s: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _address_lines(street: str, city: str, state: str, postal: str, country: str) -> str:
    lines = []
    if street:
        lines.append(street)
    locality = city
    region = " ".join(p for p in (state, postal) if p)
    if locality and region:
        locality = f"{locality}, {region}"
    elif region:
        locality = region
    if locality:
        lines.append(locality)
    if country:
        lines.append(country)
    return "\n".join(lines)


# ── Entries ───────────────────────────────────────────────────


@dataclass
class Entry:
    """A single work interval. end=None means the timer is still running."""

    id: int = 0
    project: str = ""
    description: str = DEFAULT_DESCRIPTION
    start: datetime | None = None
    end: datetime | None = None
    billed: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Entry:
        return cls(
            id=int(row["id"]),
            project=str(row["project"]),
            description=str(row["description"]),
            start=parse_iso(row["start"]),
            end=parse_iso(row["end"]) if row["end"] else None,
            billed=bool(row["billed"]),
        )

    @property
    def is_running(self) -> bool:
        return self.end is None

    def duration_seconds(self, now: datetime | None = None) -> int:
        """Whole seconds between start and end (or now, for a running entry)."""
        if self.start is None:
            return 0
        end = self.end or now or utcnow()
        return int((end - self.start).total_seconds())

    def hours(self) -> float:
        """Billable hours; running entries count for nothing."""
        if self.end is None:
            return 0.0
        return self.duration_seconds() / 3600.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project": self.project,
            "description": self.description,
            "start": to_iso(self.start) if self.start else None,
            "end": to_iso(self.end) if self.end else None,
            "billed": self.billed,
            "hours": round(self.hours(), 4),
        }


# ── Projects ──────────────────────────────────────────────────


@dataclass
class Project:
    id: int = 0
    name: str = ""
    rate: float | None = None
    currency: str = DEFAULT_CURRENCY

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Project:
        rate = row["rate"]
        return cls(
            id=int(row["id"]),
            name=str(row["name"]),
            rate=float(rate) if rate is not None else None,
            currency=str(row["currency"] or DEFAULT_CURRENCY),
        )

    def formatted_rate(self) -> str | None:
        """e.g. "$150.00/hr"; None when no rate is set."""
        if self.rate is None:
            return None
        return f"{self.currency or DEFAULT_CURRENCY}{self.rate:.2f}/hr"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "rate": self.rate, "currency": self.currency}


# ── Clients & settings ────────────────────────────────────────


CLIENT_FIELDS = (
    "name",
    "contact_person",
    "address_street",
    "address_city",
    "address_state",
    "address_postal",
    "address_country",
    "email",
)


@dataclass
class Client:
    id: int = 0
    name: str = ""
    contact_person: str = ""
    address_street: str = ""
    address_city: str = ""
    address_state: str = ""
    address_postal: str = ""
    address_country: str = ""
    email: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Client:
        return cls(id=int(row["id"]), **{f: str(row[f] or "") for f in CLIENT_FIELDS})

    def formatted_address(self) -> str:
        return _address_lines(
            self.address_street, self.address_city, self.address_state,
            self.address_postal, self.address_country,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id}
        d.update({f: getattr(self, f) for f in CLIENT_FIELDS})
        return d


SETTINGS_TEXT_FIELDS = (
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
    "payment_instructions",
)


@dataclass
class InvoiceSettings:
    """Issuer details printed on every invoice. One row per database."""

    business_name: str = ""
    address_street: str = ""
    address_city: str = ""
    address_state: str = ""
    address_postal: str = ""
    address_country: str = ""
    email: str = ""
    phone: str = ""
    tax_id: str = ""
    default_payment_terms: str = "Net 30"
    default_tax_rate: float = 0.0
    payment_instructions: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> InvoiceSettings:
        values: dict[str, Any] = {f: str(row[f] or "") for f in SETTINGS_TEXT_FIELDS}
        values["default_tax_rate"] = float(row["default_tax_rate"] or 0.0)
        return cls(**values)

    def formatted_address(self) -> str:
        return _address_lines(
            self.address_street, self.address_city, self.address_state,
            self.address_postal, self.address_country,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {f: getattr(self, f) for f in SETTINGS_TEXT_FIELDS}
        d["default_tax_rate"] = self.default_tax_rate
        return d


# ── Pomodoro ──────────────────────────────────────────────────


@dataclass
class PomodoroConfig:
    enabled: bool = False
    work_duration: int = 45
    short_break: int = 15
    long_break: int = 60
    cycles_before_long: int = 4

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PomodoroConfig:
        return cls(
            enabled=bool(row["enabled"]),
            work_duration=int(row["work_duration"]),
            short_break=int(row["short_break"]),
            long_break=int(row["long_break"]),
            cycles_before_long=int(row["cycles_before_long"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "work_duration": self.work_duration,
            "short_break": self.short_break,
            "long_break": self.long_break,
            "cycles_before_long": self.cycles_before_long,
        }


# ── Invoice history ───────────────────────────────────────────


@dataclass(frozen=True)
class InvoiceRecord:
    """Historical record of a generated invoice. Never mutated."""

    invoice_number: int
    date_issued: str
    due_date: str
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    file_path: str
    client_id: int | None = None
    id: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> InvoiceRecord:
        return cls(
            id=int(row["id"]),
            invoice_number=int(row["invoice_number"]),
            client_id=row["client_id"],
            date_issued=str(row["date_issued"]),
            due_date=str(row["due_date"]),
            subtotal=float(row["subtotal"]),
            tax_rate=float(row["tax_rate"]),
            tax_amount=float(row["tax_amount"]),
            total=float(row["total"]),
            file_path=str(row["file_path"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "clientId": self.client_id,
            "dateIssued": self.date_issued,
            "dueDate": self.due_date,
            "subtotal": self.subtotal,
            "taxRate": self.tax_rate,
            "taxAmount": self.tax_amount,
            "total": self.total,
            "filePath": self.file_path,
        }
