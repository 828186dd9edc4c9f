"""Monthly Overdue Invoice Reminder.

Fetches open overdue invoices, groups them by customer, and emails each
customer a reminder with a CSV of their overdue invoices, sent from the
customer's active sales rep or a fallback administrative sender.
"""

from .models import (
    Attachment,
    Customer,
    CustomerGroup,
    EnrichedInvoice,
    FailureMode,
    Invoice,
    JobSummary,
    OutgoingEmail,
    SalesRep,
    Sender,
    SenderPolicy,
)
from .errors import BatchAborted, RecordNotFound, ReminderError, SourceError, TransportError
from .job import OverdueReminderJob

__all__ = [
    "Attachment",
    "BatchAborted",
    "Customer",
    "CustomerGroup",
    "EnrichedInvoice",
    "FailureMode",
    "Invoice",
    "JobSummary",
    "OutgoingEmail",
    "OverdueReminderJob",
    "RecordNotFound",
    "ReminderError",
    "SalesRep",
    "Sender",
    "SenderPolicy",
    "SourceError",
    "TransportError",
]
