"""Tests for meter/models.py — records, timestamps and formatting."""

from datetime import datetime, timedelta, timezone

from meter.models import (
    Client,
    Entry,
    InvoiceRecord,
    InvoiceSettings,
    PomodoroConfig,
    Project,
    parse_iso,
    to_iso,
)


T = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def test_to_iso_drops_microseconds_and_normalizes_to_utc():
    local = datetime(2026, 3, 10, 11, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
    assert to_iso(local) == "2026-03-10T09:00:00+00:00"


def test_parse_iso_accepts_zulu_and_naive():
    assert parse_iso("2026-03-10T09:00:00Z") == T
    assert parse_iso("2026-03-10T09:00:00") == T
    assert parse_iso(to_iso(T)) == T


def test_entry_running_has_no_billable_hours():
    e = Entry(id=1, project="acme", start=T)
    assert e.is_running
    assert e.hours() == 0.0
    assert e.duration_seconds(T + timedelta(minutes=5)) == 300


def test_entry_finished_hours():
    e = Entry(id=1, project="acme", start=T, end=T + timedelta(minutes=90))
    assert not e.is_running
    assert e.hours() == 1.5
    d = e.to_dict()
    assert d["start"] == "2026-03-10T09:00:00+00:00"
    assert d["hours"] == 1.5
    assert d["billed"] is False


def test_entry_default_description():
    assert Entry(project="x").description == "Work session"


def test_project_formatted_rate():
    assert Project(name="a", rate=150.0).formatted_rate() == "$150.00/hr"
    assert Project(name="a", rate=90.5, currency="€").formatted_rate() == "€90.50/hr"
    assert Project(name="a").formatted_rate() is None
    assert Project(name="a", rate=0.0).formatted_rate() == "$0.00/hr"


def test_client_formatted_address():
    c = Client(
        name="Acme",
        address_street="1 Main St",
        address_city="Springfield",
        address_state="IL",
        address_postal="62701",
        address_country="USA",
    )
    assert c.formatted_address() == "1 Main St\nSpringfield, IL 62701\nUSA"
    assert Client(name="Solo", address_city="Paris").formatted_address() == "Paris"
    assert Client(name="Empty").formatted_address() == ""


def test_invoice_settings_defaults():
    s = InvoiceSettings()
    assert s.default_payment_terms == "Net 30"
    assert s.default_tax_rate == 0.0


def test_pomodoro_config_defaults():
    c = PomodoroConfig()
    assert c.enabled is False
    assert (c.work_duration, c.short_break, c.long_break, c.cycles_before_long) == (45, 15, 60, 4)


def test_invoice_record_to_dict_uses_camel_case():
    r = InvoiceRecord(
        invoice_number=7,
        date_issued="2026-03-10",
        due_date="2026-04-09",
        subtotal=100.0,
        tax_rate=10.0,
        tax_amount=10.0,
        total=110.0,
        file_path="/tmp/invoice_0007.txt",
    )
    d = r.to_dict()
    assert d["invoiceNumber"] == 7
    assert d["dueDate"] == "2026-04-09"
    assert d["clientId"] is None
