"""
Overdue invoice CSV attachment.

One header row and one row per invoice in the group:

    Customer,Email,Invoice Number,Amount,Days Overdue
    Acme,ap@acme.test,501,1000,30

Fields are written with the ``csv`` module (minimal quoting), so a customer
name containing a comma, quote or newline is quoted and reads back intact.
"""

from __future__ import annotations

import csv
import io

from .models import Attachment, CustomerGroup, EnrichedInvoice

CSV_HEADER = ["Customer", "Email", "Invoice Number", "Amount", "Days Overdue"]
CSV_CONTENT_TYPE = "text/csv"
DEFAULT_ATTACHMENT_NAME = "Overdue_Invoices.csv"


def format_amount(amount: float) -> str:
    """Plain amount text: whole numbers without decimals, no currency sign.

    >>> format_amount(1000.0)
    '1000'
    >>> format_amount(1250.5)
    '1250.5'
    """
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def invoice_row(enriched: EnrichedInvoice) -> list[str]:
    return [
        enriched.customer_name,
        enriched.customer_email,
        enriched.invoice_number,
        format_amount(enriched.amount),
        str(enriched.days_overdue),
    ]


def render_csv(group: CustomerGroup) -> str:
    """Render the group's invoices as CSV text with a header row."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for enriched in group.invoices:
        writer.writerow(invoice_row(enriched))
    return buf.getvalue()


def build_attachment(group: CustomerGroup, name: str = DEFAULT_ATTACHMENT_NAME) -> Attachment:
    """Wrap the rendered CSV as a UTF-8 ``text/csv`` attachment."""
    return Attachment(
        name=name,
        content=render_csv(group),
        content_type=CSV_CONTENT_TYPE,
        encoding="utf-8",
    )
