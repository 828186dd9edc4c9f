"""Overdue Reminder -- Batch Job.

The four entry points an orchestrator drives, in order:

    1. get_input_data()     lazy sequence of overdue invoices
    2. map(invoice)         enrich one invoice, emit (customer key, record)
    3. reduce(key, values)  one reminder email per customer
    4. summarize()          final statistics, logged

Between map and reduce sits the shuffle: every mapped pair is merged by
key, and reduce only starts once the whole input is exhausted.  ``run()``
drives all of it in-process; a scheduler with its own workers can call the
entry points directly instead.

Usage::

    from overdue_reminder.job import OverdueReminderJob
    from overdue_reminder.sources import WorkbookStore
    from overdue_reminder.transport import OutboxTransport

    store = WorkbookStore("data/overdue_invoices.xlsx")
    job = OverdueReminderJob(store, store, OutboxTransport())
    summary = job.run()
    print(summary.summary())
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Iterator

from .aggregator import emit, shuffle
from .config import ReminderConfig, get_config
from .enricher import Enricher
from .errors import BatchAborted
from .fetcher import fetch_overdue_invoices
from .models import CustomerGroup, EnrichedInvoice, FailureMode, Invoice, JobSummary
from .notifier import Notifier
from .sources import InvoiceSource, RecordLookup
from .transport import EmailTransport

logger = logging.getLogger(__name__)


class OverdueReminderJob:
    """Monthly overdue invoice reminder batch.

    Args:
        source: Runs the overdue invoice query.
        lookup: Customer and employee point lookups.
        transport: Sends the composed reminders.
        config: Job configuration; defaults to ``get_config()``.
        now: The run's clock.  Days overdue and the due-date cutoff are
            computed against it.  Defaults to ``datetime.now()`` at
            construction.
    """

    def __init__(
        self,
        source: InvoiceSource,
        lookup: RecordLookup,
        transport: EmailTransport,
        config: ReminderConfig | None = None,
        now: datetime | date | None = None,
    ) -> None:
        self.source = source
        self.config = config or get_config()
        self.now = now or datetime.now()
        self.enricher = Enricher(
            lookup,
            failure_mode=self.config.run.failure_mode,
            cache_lookups=self.config.run.cache_lookups,
        )
        self.notifier = Notifier(transport, config=self.config)
        self.stats = JobSummary()

    @property
    def failure_mode(self) -> FailureMode:
        return self.config.run.failure_mode

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------

    def get_input_data(self) -> Iterator[Invoice]:
        """Lazy sequence of every invoice the overdue query returns."""
        for invoice in fetch_overdue_invoices(
            self.source,
            self.config.query,
            today=self.now,
            failure_mode=self.failure_mode,
        ):
            self.stats.invoices_fetched += 1
            yield invoice

    def map(self, invoice: Invoice) -> tuple[str, EnrichedInvoice] | None:
        """Enrich one invoice and key it by customer.

        Returns None when the invoice could not be enriched (SKIP_AND_LOG).
        """
        try:
            enriched = self.enricher.enrich(invoice, self.now)
        except BatchAborted:
            raise
        except Exception as exc:
            self.stats.enrichment_failures += 1
            if self.failure_mode is FailureMode.ABORT_BATCH:
                raise BatchAborted(f"Enriching invoice {invoice.id} failed: {exc}") from exc
            logger.error("Enriching invoice %s failed, dropping it: %s", invoice.id, exc)
            return None

        self.stats.invoices_enriched += 1
        return emit(enriched)

    def reduce(self, key: str, values: Iterable[EnrichedInvoice]) -> bool:
        """Send the reminder for one customer.  True when an email went out."""
        group = CustomerGroup(customer_id=key)
        for enriched in values:
            group.add(enriched)
        if group.invoices:
            self.stats.groups += 1

        if self.notifier.notify(group):
            self.stats.emails_sent += 1
            return True
        if group.invoices:
            self.stats.emails_failed += 1
        return False

    def summarize(self) -> JobSummary:
        """Close out the run statistics and log them."""
        self.stats.completed_at = datetime.now()
        self.stats.lookup_failures = self.enricher.lookup_failures
        logger.info(
            "Overdue reminder run complete: %d invoices, %d customers, "
            "%d emails sent, %d failed, %d enrichment failures, %d lookup failures (%.1fs)",
            self.stats.invoices_fetched,
            self.stats.groups,
            self.stats.emails_sent,
            self.stats.emails_failed,
            self.stats.enrichment_failures,
            self.stats.lookup_failures,
            self.stats.duration_seconds,
        )
        return self.stats

    # -------------------------------------------------------------------
    # Local driver
    # -------------------------------------------------------------------

    def run(self) -> JobSummary:
        """Run every stage in-process and return the summary.

        Raises:
            BatchAborted: Only under FailureMode.ABORT_BATCH.
        """
        self.stats = JobSummary(started_at=datetime.now())
        logger.info("Overdue reminder run started (failure mode: %s)",
                    self.failure_mode.value)

        try:
            invoices: Iterable[Invoice] = self.get_input_data()
            if self.config.run.cache_lookups:
                invoices = list(invoices)
                self.enricher.prefetch(invoices)

            mapped = (self.map(invoice) for invoice in invoices)
            pairs = (pair for pair in mapped if pair is not None)
            groups = shuffle(pairs)

            for key, group in groups.items():
                self.reduce(key, group.invoices)
        except BatchAborted:
            self.stats.aborted = True
            self.summarize()
            raise

        return self.summarize()
