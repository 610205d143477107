"""Invoice aggregation for Meter.

Groups billed entries by project, prices them at each project's hourly rate,
applies tax and derives the due date from the payment terms. Aggregation is
pure; `generate_invoice` adds rendering and the history record.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Iterable

from meter.models import (
    DEFAULT_CURRENCY,
    Client,
    Entry,
    InvoiceRecord,
    InvoiceSettings,
    Project,
    utcnow,
)

logger = logging.getLogger(__name__)

PAYMENT_TERM_DAYS = (("net 30", 30), ("net 15", 15), ("net 60", 60))


# ── Types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectRate:
    rate: float
    currency: str = DEFAULT_CURRENCY


@dataclass
class ProjectLine:
    """One project's share of an invoice."""

    project: str
    hours: float = 0.0
    rate: float | None = None
    currency: str = DEFAULT_CURRENCY
    entries: list[Entry] = field(default_factory=list)

    @property
    def priced(self) -> bool:
        return self.rate is not None

    @property
    def cost(self) -> float | None:
        if self.rate is None:
            return None
        return self.hours * self.rate


@dataclass
class InvoiceSummary:
    lines: list[ProjectLine]
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    issued: date
    due_date: date
    settings: InvoiceSettings
    client: Client | None = None
    invoice_number: int = 0
    period: str = ""

    @property
    def total_hours(self) -> float:
        return sum(line.hours for line in self.lines)

    @property
    def has_rates(self) -> bool:
        return any(line.priced for line in self.lines)

    def line(self, project: str) -> ProjectLine | None:
        for ln in self.lines:
            if ln.project == project:
                return ln
        return None


# ── Aggregation ───────────────────────────────────────────────


def due_days(payment_terms: str) -> int:
    """Days until payment is due: Net 30/15/60, anything else is due on receipt."""
    terms = (payment_terms or "").lower()
    for needle, days in PAYMENT_TERM_DAYS:
        if needle in terms:
            return days
    return 0


def due_date_for(payment_terms: str, issued: date) -> date:
    return issued + timedelta(days=due_days(payment_terms))


def project_rates(projects: Iterable[Project]) -> dict[str, ProjectRate]:
    """Rate table for every project that has a rate (0.0 included)."""
    return {
        p.name: ProjectRate(rate=p.rate, currency=p.currency or DEFAULT_CURRENCY)
        for p in projects
        if p.rate is not None
    }


def aggregate_invoice(
    entries: Iterable[Entry],
    rates: dict[str, ProjectRate],
    tax_rate: float,
    settings: InvoiceSettings,
    client: Client | None = None,
    issued: date | None = None,
    invoice_number: int = 0,
    period: str = "",
) -> InvoiceSummary:
    """Group entries per project and compute subtotal, tax, total and due date.

    Running entries contribute nothing. Projects without a rate contribute
    hours only; a rate of 0.0 still counts as priced.
    """
    grouped: dict[str, ProjectLine] = {}
    seconds: dict[str, int] = defaultdict(int)

    for entry in entries:
        if entry.end is None:
            continue
        line = grouped.get(entry.project)
        if line is None:
            rate = rates.get(entry.project)
            line = ProjectLine(
                project=entry.project,
                rate=rate.rate if rate else None,
                currency=rate.currency if rate else DEFAULT_CURRENCY,
            )
            grouped[entry.project] = line
        line.entries.append(entry)
        seconds[entry.project] += entry.duration_seconds()

    subtotal = 0.0
    for name, line in grouped.items():
        line.hours = seconds[name] / 3600.0
        if line.cost is not None:
            subtotal += line.cost

    tax_amount = subtotal * (tax_rate / 100.0)
    if issued is None:
        issued = utcnow().date()

    return InvoiceSummary(
        lines=list(grouped.values()),
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
        issued=issued,
        due_date=due_date_for(settings.default_payment_terms, issued),
        settings=settings,
        client=client,
        invoice_number=invoice_number,
        period=period,
    )


# ── Periods ───────────────────────────────────────────────────


def month_range(year: int, month: int) -> tuple[datetime, datetime]:
    """UTC [first instant of the month, first instant of the next month]."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def current_month_range(now: datetime) -> tuple[datetime, datetime]:
    start, _ = month_range(now.year, now.month)
    return start, now


def prior_month_range(now: datetime) -> tuple[datetime, datetime]:
    last_of_prior = now.date().replace(day=1) - timedelta(days=1)
    return month_range(last_of_prior.year, last_of_prior.month)


def day_range(start: date, end: date) -> tuple[datetime, datetime]:
    """Inclusive calendar-day range in UTC."""
    return (
        datetime.combine(start, time(0, 0, 0), tzinfo=timezone.utc),
        datetime.combine(end, time(23, 59, 59), tzinfo=timezone.utc),
    )


def period_label(start: datetime, end: datetime) -> str:
    if start.day == 1 and (end - start).days >= 27 and end.day == 1:
        return f"{start.year}-{start.month:02d}"
    return f"{start.date().isoformat()} to {end.date().isoformat()}"


# ── Generation ────────────────────────────────────────────────


def invoice_path(directory: Path, invoice_number: int, fmt: str = "pdf") -> Path:
    ext = "pdf" if fmt == "pdf" else "txt"
    return directory / f"invoice_{invoice_number:04d}.{ext}"


def generate_invoice(
    store,
    entries: list[Entry],
    directory: Path,
    fmt: str = "pdf",
    client: Client | None = None,
    now: datetime | None = None,
    period: str = "",
    tz=None,
) -> tuple[InvoiceRecord, InvoiceSummary]:
    """Aggregate, render, then record. Nothing is recorded if rendering fails.

    Raises StoreError or RenderError.
    """
    from meter.render import write_invoice

    now = now or utcnow()
    settings = store.get_invoice_settings()
    number = store.get_next_invoice_number()
    rates = project_rates(store.list_projects())

    summary = aggregate_invoice(
        entries,
        rates,
        settings.default_tax_rate,
        settings,
        client=client,
        issued=now.date(),
        invoice_number=number,
        period=period,
    )
    path = write_invoice(summary, invoice_path(directory, number, fmt), fmt, tz=tz)

    record = store.record_invoice(InvoiceRecord(
        invoice_number=number,
        client_id=client.id if client else None,
        date_issued=summary.issued.isoformat(),
        due_date=summary.due_date.isoformat(),
        subtotal=summary.subtotal,
        tax_rate=summary.tax_rate,
        tax_amount=summary.tax_amount,
        total=summary.total,
        file_path=str(path),
    ))
    logger.info("Invoice #%d written to %s", number, path)
    return record, summary
