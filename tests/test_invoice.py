"""Tests for meter/invoice.py — aggregation, due dates and periods."""

from datetime import date, datetime, timedelta, timezone

import pytest

from meter.invoice import (
    ProjectRate,
    aggregate_invoice,
    current_month_range,
    day_range,
    due_days,
    generate_invoice,
    invoice_path,
    month_range,
    period_label,
    prior_month_range,
    project_rates,
)
from meter.models import Client, Entry, InvoiceSettings, Project
from meter.render import RenderError, render_text


T = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _entry(project: str, minutes: int, offset_hours: int = 0, id: int = 0) -> Entry:
    start = T + timedelta(hours=offset_hours)
    return Entry(id=id, project=project, description="work", start=start,
                 end=start + timedelta(minutes=minutes), billed=True)


# ── Aggregation ───────────────────────────────────────────────


def test_aggregate_groups_and_prices_per_project():
    entries = [_entry("acme", 90), _entry("acme", 30, 2), _entry("globex", 60, 4)]
    rates = {"acme": ProjectRate(100.0), "globex": ProjectRate(50.0)}

    summary = aggregate_invoice(entries, rates, 10.0, InvoiceSettings(), issued=date(2026, 3, 10))

    acme = summary.line("acme")
    assert acme.hours == 2.0
    assert acme.cost == 200.0
    assert len(acme.entries) == 2
    assert summary.line("globex").cost == 50.0
    assert summary.subtotal == 250.0
    assert summary.tax_amount == pytest.approx(25.0)
    assert summary.total == pytest.approx(275.0)
    assert summary.total_hours == 3.0


def test_unpriced_project_contributes_hours_only():
    entries = [_entry("acme", 60), _entry("pro-bono", 120, 2)]
    summary = aggregate_invoice(entries, {"acme": ProjectRate(80.0)}, 0.0, InvoiceSettings())
    assert summary.line("pro-bono").priced is False
    assert summary.line("pro-bono").cost is None
    assert summary.line("pro-bono").hours == 2.0
    assert summary.subtotal == 80.0
    assert summary.has_rates


def test_zero_rate_counts_as_priced():
    summary = aggregate_invoice([_entry("acme", 60)], {"acme": ProjectRate(0.0)}, 0.0, InvoiceSettings())
    assert summary.line("acme").priced
    assert summary.line("acme").cost == 0.0


def test_running_entries_contribute_nothing():
    running = Entry(id=9, project="acme", start=T)
    summary = aggregate_invoice([running, _entry("acme", 60)], {"acme": ProjectRate(100.0)}, 0.0, InvoiceSettings())
    assert summary.line("acme").hours == 1.0
    assert summary.subtotal == 100.0


def test_project_with_only_running_entries_gets_no_line():
    running = Entry(id=9, project="globex", start=T)
    summary = aggregate_invoice([running, _entry("acme", 60)], {"globex": ProjectRate(100.0)}, 0.0, InvoiceSettings())
    assert [line.project for line in summary.lines] == ["acme"]
    assert summary.line("globex") is None
    assert "Project: globex" not in render_text(summary)


def test_mixed_priced_and_unpriced_with_tax():
    entries = [_entry("ProjA", 120), _entry("ProjA", 60, 3), _entry("ProjB", 180, 5)]
    summary = aggregate_invoice(entries, {"ProjA": ProjectRate(100.0)}, 10.0, InvoiceSettings())

    assert summary.line("ProjA").hours == 3.0
    assert summary.line("ProjA").cost == 300.0
    assert summary.line("ProjB").hours == 3.0
    assert summary.line("ProjB").cost is None
    assert summary.subtotal == 300.0
    assert summary.tax_amount == pytest.approx(30.0)
    assert summary.total == pytest.approx(330.0)

    text = render_text(summary)
    assert "  Subtotal: 3.00 hrs x $100.00 = $300.00" in text
    assert "  Subtotal: 3.00 hrs\n" in text
    assert "Tax (10.0%): $30.00" in text
    assert "TOTAL DUE: $330.00" in text


def test_empty_invoice_is_all_zero():
    summary = aggregate_invoice([], {}, 20.0, InvoiceSettings())
    assert summary.lines == []
    assert summary.subtotal == 0.0
    assert summary.total == 0.0
    assert not summary.has_rates


def test_due_date_follows_payment_terms():
    issued = date(2026, 3, 10)
    for terms, days in (("Net 30", 30), ("net 15", 15), ("NET 60 days", 60), ("Due on receipt", 0), ("", 0)):
        summary = aggregate_invoice([], {}, 0.0, InvoiceSettings(default_payment_terms=terms), issued=issued)
        assert summary.due_date == issued + timedelta(days=days)
        assert due_days(terms) == days


def test_project_rates_skips_unpriced():
    rates = project_rates([Project(name="a", rate=10.0, currency="€"), Project(name="b")])
    assert rates == {"a": ProjectRate(10.0, "€")}


# ── Periods ───────────────────────────────────────────────────


def test_month_range_wraps_december():
    start, end = month_range(2025, 12)
    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_current_and_prior_month():
    assert current_month_range(T) == (datetime(2026, 3, 1, tzinfo=timezone.utc), T)
    start, end = prior_month_range(datetime(2026, 1, 15, tzinfo=timezone.utc))
    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_day_range_is_inclusive():
    start, end = day_range(date(2026, 3, 1), date(2026, 3, 31))
    assert start == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 31, 23, 59, 59, tzinfo=timezone.utc)


def test_period_label():
    assert period_label(*month_range(2026, 2)) == "2026-02"
    assert period_label(*day_range(date(2026, 3, 1), date(2026, 3, 15))) == "2026-03-01 to 2026-03-15"


def test_invoice_path(tmp_path):
    assert invoice_path(tmp_path, 7).name == "invoice_0007.pdf"
    assert invoice_path(tmp_path, 12, "text").name == "invoice_0012.txt"


# ── Generation ────────────────────────────────────────────────


def test_generate_invoice_writes_file_and_records_history(store, tmp_path):
    store.set_project_rate("acme", 100.0)
    store.set_invoice_settings(InvoiceSettings(business_name="Jane Doe", default_tax_rate=10.0))
    client = store.add_client(Client(name="Acme Corp"))
    entry = store.add_entry("acme", "design", T, T + timedelta(hours=2), billed=True)

    record, summary = generate_invoice(
        store, [entry], tmp_path / "out", "text", client=client, now=T, period="2026-03"
    )

    assert record.invoice_number == 1
    assert record.client_id == client.id
    assert record.subtotal == 200.0
    assert record.total == pytest.approx(220.0)
    assert record.due_date == "2026-04-09"
    path = tmp_path / "out" / "invoice_0001.txt"
    assert record.file_path == str(path)
    assert "Acme Corp" in path.read_text(encoding="utf-8")
    assert summary.invoice_number == 1
    assert [r.invoice_number for r in store.list_invoices()] == [1]

    record2, _ = generate_invoice(store, [entry], tmp_path / "out", "text", now=T)
    assert record2.invoice_number == 2


def test_generate_invoice_records_nothing_when_rendering_fails(store, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(RenderError):
        generate_invoice(store, [], blocker / "invoices", "text", now=T)
    assert store.list_invoices() == []
    assert store.get_next_invoice_number() == 1
