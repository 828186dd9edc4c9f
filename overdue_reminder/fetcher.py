"""
Invoice Fetcher

Runs the overdue query against an ``InvoiceSource`` and turns its rows into
frozen ``Invoice`` objects.  The sequence is lazy: rows are converted as the
caller iterates.

Failure handling follows the run's ``FailureMode``:

    query fails      SKIP_AND_LOG -> logged, nothing is yielded
                     ABORT_BATCH  -> BatchAborted
    one bad row      SKIP_AND_LOG -> logged, row skipped
                     ABORT_BATCH  -> BatchAborted
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterator

from .aging import due_cutoff
from .config import InvoiceQuery
from .errors import BatchAborted
from .models import FailureMode, Invoice
from .sources import InvoiceSource, clean_id, parse_amount, parse_date

logger = logging.getLogger(__name__)


def invoice_from_row(row: dict) -> Invoice:
    """Build an Invoice from one search result row.

    Raises:
        ValueError: If the id, customer id, amount or due date is unusable.
    """
    invoice_id = clean_id(row.get("id"))
    customer_id = clean_id(row.get("customer_id"))
    if not invoice_id:
        raise ValueError("Row has no invoice id")
    if not customer_id:
        raise ValueError(f"Invoice {invoice_id} has no customer id")

    return Invoice(
        id=invoice_id,
        tran_id=str(row.get("tran_id") or ""),
        customer_id=customer_id,
        customer_name=str(row.get("customer_name") or ""),
        sales_rep_id=clean_id(row.get("sales_rep_id")),
        amount=parse_amount(row.get("amount")),
        due_date=parse_date(row.get("due_date")),
    )


def fetch_overdue_invoices(
    source: InvoiceSource,
    query: InvoiceQuery,
    *,
    today: date | datetime | None = None,
    failure_mode: FailureMode = FailureMode.SKIP_AND_LOG,
) -> Iterator[Invoice]:
    """Yield every open, mainline, overdue invoice of an active customer.

    Args:
        source: The invoice store to query.
        query: Filter settings; ``query.due_range`` is resolved against
            ``today`` to the inclusive due-date cutoff.
        today: Run date.  Defaults to the current date.
        failure_mode: Whether failures are logged and skipped or abort
            the batch.

    Yields:
        Invoice objects in the order the source returns them.
    """
    today = today or date.today()
    abort = failure_mode is FailureMode.ABORT_BATCH

    try:
        cutoff = due_cutoff(query.due_range, today)
        rows = iter(source.search(query, cutoff))
    except Exception as exc:
        if abort:
            raise BatchAborted(f"Overdue invoice query failed: {exc}") from exc
        logger.error("Overdue invoice query failed, no invoices fetched: %s", exc)
        return

    logger.info("Fetching invoices due on or before %s", cutoff.isoformat())

    while True:
        try:
            row = next(rows)
        except StopIteration:
            return
        except Exception as exc:
            if abort:
                raise BatchAborted(f"Overdue invoice query failed: {exc}") from exc
            logger.error("Overdue invoice query failed mid-stream: %s", exc)
            return

        try:
            invoice = invoice_from_row(row)
        except (ValueError, TypeError) as exc:
            if abort:
                raise BatchAborted(f"Malformed invoice row {row!r}: {exc}") from exc
            logger.warning("Skipping malformed invoice row %r: %s", row, exc)
            continue

        yield invoice
