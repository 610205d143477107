"""Invoice renderers: plain text and PDF (ReportLab)."""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from meter.fileio import write_bytes_atomic, write_text_atomic
from meter.invoice import InvoiceSummary, ProjectLine
from meter.models import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)


class RenderError(Exception):
    """The invoice document could not be produced or written."""


def _local(dt: datetime, tz: tzinfo | None, fmt: str) -> str:
    return dt.astimezone(tz or timezone.utc).strftime(fmt)


def summary_currency(summary: InvoiceSummary) -> str:
    """The single currency of the priced lines, or the default symbol."""
    currencies = {ln.currency for ln in summary.lines if ln.priced}
    return currencies.pop() if len(currencies) == 1 else DEFAULT_CURRENCY


def line_total_text(line: ProjectLine) -> str:
    if line.rate is None:
        return f"{line.hours:.2f} hrs"
    return (
        f"{line.hours:.2f} hrs x {line.currency}{line.rate:.2f} = "
        f"{line.currency}{line.cost:.2f}"
    )


# ── Plain text ────────────────────────────────────────────────


def render_text(summary: InvoiceSummary, tz: tzinfo | None = None) -> str:
    settings = summary.settings
    cur = summary_currency(summary)
    lines = [f"INVOICE #{summary.invoice_number:04d}", "=" * 50, ""]

    if settings.business_name:
        lines.append("From:")
        lines.append(f"  {settings.business_name}")
        for ln in settings.formatted_address().splitlines():
            lines.append(f"  {ln}")
        for value in (settings.email, settings.phone):
            if value:
                lines.append(f"  {value}")
        if settings.tax_id:
            lines.append(f"  Tax ID: {settings.tax_id}")
        lines.append("")

    if summary.client is not None:
        client = summary.client
        lines.append("Bill To:")
        lines.append(f"  {client.name}")
        if client.contact_person:
            lines.append(f"  Attn: {client.contact_person}")
        for ln in client.formatted_address().splitlines():
            lines.append(f"  {ln}")
        if client.email:
            lines.append(f"  {client.email}")
        lines.append("")

    lines.append(f"Invoice Date: {summary.issued.isoformat()}")
    lines.append(f"Due Date: {summary.due_date.isoformat()}")
    lines.append(f"Terms: {settings.default_payment_terms}")
    if summary.period:
        lines.append(f"Period: {summary.period}")
    lines.append("")

    for line in summary.lines:
        lines.append(f"Project: {line.project}")
        if line.rate is not None:
            lines.append(f"Rate: {line.currency}{line.rate:.2f}/hr")
        lines.append("-" * 40)
        for entry in line.entries:
            lines.append(
                f"  {entry.description:<20} | "
                f"{_local(entry.start, tz, '%Y-%m-%d %H:%M')} - "
                f"{_local(entry.end, tz, '%Y-%m-%d %H:%M')} | "
                f"{entry.hours():>6.2f} hrs"
            )
        lines.append(f"  Subtotal: {line_total_text(line)}")
        lines.append("")

    lines.append("=" * 50)
    lines.append(f"Total hours: {summary.total_hours:.2f}")
    lines.append(f"Subtotal: {cur}{summary.subtotal:.2f}")
    if summary.tax_rate > 0:
        lines.append(f"Tax ({summary.tax_rate:.1f}%): {cur}{summary.tax_amount:.2f}")
    lines.append(f"TOTAL DUE: {cur}{summary.total:.2f}")

    if settings.payment_instructions:
        lines.append("")
        lines.append("Payment Instructions")
        lines.extend(settings.payment_instructions.splitlines())

    return "\n".join(lines) + "\n"


# ── PDF ───────────────────────────────────────────────────────


def render_pdf(summary: InvoiceSummary, tz: tzinfo | None = None) -> bytes:
    styles = getSampleStyleSheet()
    normal = styles["Normal"]
    small = styles["BodyText"]
    heading = styles["Heading2"]
    project_style = styles["Heading3"]
    settings = summary.settings
    cur = summary_currency(summary)

    def para(text: str, style=normal) -> Paragraph:
        return Paragraph(escape(text), style)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        title=f"Invoice #{summary.invoice_number:04d}",
        leftMargin=0.8 * inch,
        rightMargin=0.8 * inch,
    )
    elements: list = [Paragraph(f"INVOICE #{summary.invoice_number:04d}", styles["Title"])]

    if settings.business_name:
        elements.append(Paragraph("<b>From:</b>", normal))
        elements.append(para(settings.business_name))
        for ln in settings.formatted_address().splitlines():
            elements.append(para(ln, small))
        for value in (settings.email, settings.phone):
            if value:
                elements.append(para(value, small))
        if settings.tax_id:
            elements.append(para(f"Tax ID: {settings.tax_id}", small))
        elements.append(Spacer(1, 0.15 * inch))

    if summary.client is not None:
        client = summary.client
        elements.append(Paragraph("<b>Bill To:</b>", normal))
        elements.append(para(client.name))
        if client.contact_person:
            elements.append(para(f"Attn: {client.contact_person}", small))
        for ln in client.formatted_address().splitlines():
            elements.append(para(ln, small))
        if client.email:
            elements.append(para(client.email, small))
        elements.append(Spacer(1, 0.15 * inch))

    elements.append(para(f"Invoice Date: {summary.issued.isoformat()}"))
    elements.append(para(f"Due Date: {summary.due_date.isoformat()}"))
    elements.append(para(f"Terms: {settings.default_payment_terms}"))
    if summary.period:
        elements.append(para(f"Period: {summary.period}"))
    elements.append(Spacer(1, 0.25 * inch))
    elements.append(Paragraph("Services", heading))

    for line in summary.lines:
        elements.append(para(f"Project: {line.project}", project_style))
        if line.rate is not None:
            elements.append(para(f"Rate: {line.currency}{line.rate:.2f}/hr", small))
        rows = [["Description", "Start", "End", "Hours"]]
        for entry in line.entries:
            rows.append([
                entry.description,
                _local(entry.start, tz, "%m/%d %H:%M"),
                _local(entry.end, tz, "%m/%d %H:%M"),
                f"{entry.hours():.2f}",
            ])
        table = Table(rows, colWidths=[3.2 * inch, 1.2 * inch, 1.2 * inch, 0.8 * inch])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.grey),
            ("ALIGN", (3, 0), (3, -1), "RIGHT"),
        ]))
        elements.append(table)
        elements.append(Paragraph(f"<b>{escape(line_total_text(line))}</b>", normal))
        elements.append(Spacer(1, 0.2 * inch))

    elements.append(Spacer(1, 0.2 * inch))
    elements.append(para(f"Subtotal: {cur}{summary.subtotal:.2f}"))
    if summary.tax_rate > 0:
        elements.append(para(f"Tax ({summary.tax_rate:.1f}%): {cur}{summary.tax_amount:.2f}"))
    elements.append(Paragraph(f"<b>TOTAL DUE: {escape(cur)}{summary.total:.2f}</b>", heading))

    if settings.payment_instructions:
        elements.append(Spacer(1, 0.4 * inch))
        elements.append(Paragraph("Payment Instructions", heading))
        for ln in settings.payment_instructions.splitlines():
            elements.append(para(ln, small))

    doc.build(elements)
    return buffer.getvalue()


# ── Output ────────────────────────────────────────────────────


def write_invoice(summary: InvoiceSummary, path: Path, fmt: str = "pdf", tz: tzinfo | None = None) -> Path:
    """Render the summary and write it atomically to path. Raises RenderError."""
    try:
        if fmt == "pdf":
            write_bytes_atomic(path, render_pdf(summary, tz))
        else:
            write_text_atomic(path, render_text(summary, tz))
    except RenderError:
        raise
    except Exception as e:
        logger.error("Failed to render invoice #%d: %s", summary.invoice_number, e)
        raise RenderError(str(e)) from e
    return path
