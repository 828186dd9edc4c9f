"""Data models for the monthly overdue invoice reminder.

All models are plain dataclasses with type hints.  Invoices are frozen
once fetched; enriched invoices and customer groups are transient and
live only for the duration of one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Placeholders
# ---------------------------------------------------------------------------

NOT_AVAILABLE = "Not Available"
ERROR_RETRIEVING_DATA = "Error Retrieving Data"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FailureMode(Enum):
    """What a stage does when something goes wrong.

    SKIP_AND_LOG   log the failure and carry on with the next record/group
    ABORT_BATCH    raise BatchAborted and stop the run
    """

    SKIP_AND_LOG = "skip_and_log"
    ABORT_BATCH = "abort_batch"


class SenderPolicy(Enum):
    """How the sender of a customer group is chosen."""

    FIRST_INVOICE = "first_invoice"
    UNANIMOUS = "unanimous"


# ---------------------------------------------------------------------------
# Core Data Models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Invoice:
    """A single open, overdue mainline invoice returned by the query."""

    id: str                                 # internal id, printed in the CSV
    customer_id: str
    customer_name: str
    amount: float
    due_date: date
    tran_id: str = ""                       # document number, informational
    sales_rep_id: str = ""                  # rep on the invoice itself


@dataclass
class Customer:
    """Customer fields looked up per invoice."""

    id: str
    name: str = ""
    email: str = ""
    sales_rep_id: str = ""
    sales_rep_name: str = ""


@dataclass
class SalesRep:
    """Employee record of a customer's assigned sales representative."""

    id: str
    name: str = ""
    email: str = ""
    is_inactive: bool = True


@dataclass
class EnrichedInvoice:
    """An invoice plus everything the notifier needs about its customer and rep."""

    invoice: Invoice
    customer_email: str = NOT_AVAILABLE
    sales_rep_id: str = ""
    sales_rep_name: str = ""
    sales_rep_email: str = ""
    sales_rep_inactive: bool = True
    days_overdue: int = 0

    @property
    def customer_id(self) -> str:
        return self.invoice.customer_id

    @property
    def customer_name(self) -> str:
        return self.invoice.customer_name

    @property
    def invoice_number(self) -> str:
        return self.invoice.id

    @property
    def amount(self) -> float:
        return self.invoice.amount

    @property
    def has_active_rep(self) -> bool:
        """True when a rep is assigned and that rep is not inactive."""
        return bool(self.sales_rep_id.strip()) and not self.sales_rep_inactive


@dataclass(frozen=True)
class Sender:
    """The identity an outgoing reminder is authored by."""

    id: str
    name: str
    email: str = ""
    is_fallback: bool = False


@dataclass
class CustomerGroup:
    """All overdue invoices for one customer; drives exactly one email."""

    customer_id: str
    customer_name: str = ""
    customer_email: str = ""
    invoices: list[EnrichedInvoice] = field(default_factory=list)
    chosen_sender: Sender | None = None

    def add(self, enriched: EnrichedInvoice) -> None:
        """Append an invoice, keeping every member on the same customer."""
        if enriched.customer_id != self.customer_id:
            raise ValueError(
                f"Invoice {enriched.invoice_number} belongs to customer "
                f"{enriched.customer_id}, not {self.customer_id}"
            )
        if not self.invoices:
            self.customer_name = self.customer_name or enriched.customer_name
            self.customer_email = self.customer_email or enriched.customer_email
        self.invoices.append(enriched)

    @property
    def first_invoice(self) -> EnrichedInvoice | None:
        return self.invoices[0] if self.invoices else None

    @property
    def total_amount(self) -> float:
        return sum(inv.amount for inv in self.invoices)

    def __len__(self) -> int:
        return len(self.invoices)


@dataclass(frozen=True)
class Attachment:
    """An in-memory file attached to an outgoing email."""

    name: str
    content: str
    content_type: str = "text/csv"
    encoding: str = "utf-8"

    @property
    def payload(self) -> bytes:
        return self.content.encode(self.encoding)


@dataclass
class OutgoingEmail:
    """A fully composed reminder handed to an EmailTransport."""

    author: str                             # sender id (rep id or fallback id)
    recipient: str                          # customer email
    subject: str
    body: str
    author_name: str = ""
    author_email: str = ""
    recipient_id: str = ""                  # customer id (grouping key)
    attachments: list[Attachment] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to a plain dict for logging and review."""
        return {
            "author": self.author,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "recipient": self.recipient,
            "recipient_id": self.recipient_id,
            "subject": self.subject,
            "attachments": [a.name for a in self.attachments],
        }


@dataclass
class JobSummary:
    """Statistics for one run of the batch."""

    invoices_fetched: int = 0
    invoices_enriched: int = 0
    enrichment_failures: int = 0
    lookup_failures: int = 0
    groups: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    aborted: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Run time in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines = [
            f"Invoices fetched : {self.invoices_fetched}",
            f"Invoices enriched: {self.invoices_enriched}",
            f"Enrich failures  : {self.enrichment_failures}",
            f"Lookup failures  : {self.lookup_failures}",
            f"Customer groups  : {self.groups}",
            f"Emails sent      : {self.emails_sent}",
            f"Emails failed    : {self.emails_failed}",
        ]
        if self.aborted:
            lines.append("Run aborted")
        return "\n".join(lines)
