"""Tests for meter/render.py — text and PDF invoice documents."""

from datetime import date, datetime, timedelta, timezone

import pytest

from meter.invoice import ProjectRate, aggregate_invoice
from meter.models import Client, Entry, InvoiceSettings
from meter.render import RenderError, render_pdf, render_text, write_invoice


T = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

SETTINGS = InvoiceSettings(
    business_name="Jane Doe Consulting",
    address_street="12 Elm St",
    address_city="Portland",
    address_state="OR",
    address_postal="97201",
    email="jane@example.test",
    tax_id="99-1234567",
    payment_instructions="Wire to IBAN XX00 0000\nReference the invoice number",
)


def _summary(tax_rate: float = 0.0, client: Client | None = None):
    entries = [
        Entry(id=1, project="acme", description="Architecture review", start=T, end=T + timedelta(hours=2)),
        Entry(id=2, project="internal", description="Notes & <misc>", start=T, end=T + timedelta(minutes=30)),
    ]
    return aggregate_invoice(
        entries,
        {"acme": ProjectRate(150.0)},
        tax_rate,
        SETTINGS,
        client=client,
        issued=date(2026, 3, 31),
        invoice_number=42,
        period="2026-03",
    )


def test_text_invoice_layout():
    client = Client(name="Acme Corp", contact_person="Wile E.", address_city="Phoenix")
    text = render_text(_summary(client=client))

    assert text.startswith("INVOICE #0042")
    assert "From:\n  Jane Doe Consulting\n  12 Elm St\n  Portland, OR 97201" in text
    assert "Tax ID: 99-1234567" in text
    assert "Bill To:\n  Acme Corp\n  Attn: Wile E.\n  Phoenix" in text
    assert "Invoice Date: 2026-03-31" in text
    assert "Due Date: 2026-04-30" in text
    assert "Terms: Net 30" in text
    assert "Period: 2026-03" in text
    assert "Rate: $150.00/hr" in text
    assert "2.00 hrs x $150.00 = $300.00" in text
    assert "Subtotal: 0.50 hrs" in text
    assert "TOTAL DUE: $300.00" in text
    assert "Payment Instructions\nWire to IBAN XX00 0000" in text


def test_text_invoice_tax_line_only_when_taxed():
    assert "Tax (" not in render_text(_summary())
    text = render_text(_summary(tax_rate=8.5))
    assert "Tax (8.5%): $25.50" in text
    assert "TOTAL DUE: $325.50" in text


def test_text_invoice_without_client_has_no_bill_to():
    assert "Bill To:" not in render_text(_summary())


def test_text_invoice_times_use_timezone():
    tz = timezone(timedelta(hours=-5))
    assert "2026-03-10 04:00 - 2026-03-10 06:00" in render_text(_summary(), tz)


def test_pdf_invoice_is_a_pdf():
    data = render_pdf(_summary(tax_rate=5.0, client=Client(name="Acme & Sons")))
    assert data.startswith(b"%PDF")
    assert len(data) > 1000


def test_write_invoice_both_formats(tmp_path):
    pdf = write_invoice(_summary(), tmp_path / "invoice_0042.pdf", "pdf")
    assert pdf.read_bytes().startswith(b"%PDF")
    txt = write_invoice(_summary(), tmp_path / "invoice_0042.txt", "text")
    assert txt.read_text(encoding="utf-8").startswith("INVOICE #0042")
    assert not list(tmp_path.glob(".tmp_*"))


def test_write_invoice_wraps_io_errors(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(RenderError):
        write_invoice(_summary(), blocker / "invoice.txt", "text")
