"""
Overdue Reminder -- Notifier

Turns one CustomerGroup into one reminder email and hands it to the
transport.

Responsibilities:
  1. Render the overdue invoice CSV attachment
  2. Choose the sender (customer's active rep, or the fallback sender)
  3. Render the plain-text body from the Jinja2 template
  4. Build the OutgoingEmail and send it

Usage:
    from overdue_reminder.notifier import Notifier
    from overdue_reminder.transport import OutboxTransport

    outbox = OutboxTransport()
    notifier = Notifier(outbox, config=get_config())
    notifier.notify(group)
    print(outbox.sent[0].author)
"""

from __future__ import annotations

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .config import FallbackSender, ReminderConfig, get_config
from .csv_report import build_attachment
from .errors import BatchAborted
from .models import CustomerGroup, FailureMode, OutgoingEmail, Sender, SenderPolicy
from .transport import EmailTransport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sender selection
# ---------------------------------------------------------------------------

def fallback_identity(fallback: FallbackSender) -> Sender:
    return Sender(
        id=str(fallback.id),
        name=fallback.name,
        email=fallback.email,
        is_fallback=True,
    )


def choose_sender(
    group: CustomerGroup,
    fallback: FallbackSender,
    policy: SenderPolicy = SenderPolicy.FIRST_INVOICE,
) -> Sender:
    """Pick who the reminder for ``group`` comes from.

    FIRST_INVOICE: the first invoice's rep, when that rep id is non-empty
    and the rep is not inactive.  The other invoices are not consulted.

    UNANIMOUS: the rep only when every invoice in the group resolved to the
    same active rep.

    Anything else gets the fallback sender.

    Raises:
        ValueError: If the group has no invoices.
    """
    first = group.first_invoice
    if first is None:
        raise ValueError(f"Customer group {group.customer_id} has no invoices")

    use_rep = first.has_active_rep
    if use_rep and policy is SenderPolicy.UNANIMOUS:
        rep_ids = {inv.sales_rep_id for inv in group.invoices}
        if len(rep_ids) > 1 or not all(inv.has_active_rep for inv in group.invoices):
            logger.warning(
                "Customer %s: invoices disagree on sales rep %s, using fallback sender",
                group.customer_id, sorted(rep_ids),
            )
            use_rep = False

    if not use_rep:
        return fallback_identity(fallback)

    return Sender(
        id=first.sales_rep_id,
        name=first.sales_rep_name,
        email=first.sales_rep_email,
    )


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------

class Notifier:
    """Composes and sends one reminder per customer group.

    Attributes:
        transport: Where composed emails are sent.
        config: Subject, attachment name, fallback sender and run policy.
        env: The Jinja2 Environment for the body template.
    """

    def __init__(
        self,
        transport: EmailTransport,
        config: ReminderConfig | None = None,
        template_dir: str | Path | None = None,
    ) -> None:
        self.transport = transport
        self.config = config or get_config()

        if template_dir is None:
            self.template_dir = self.config.email.resolved_template_dir
        else:
            self.template_dir = Path(template_dir)

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,  # plain-text body
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def render_body(self, customer_name: str, signature_name: str) -> str:
        """Render the reminder body for one customer."""
        template = self.env.get_template(self.config.email.template_file)
        return template.render(
            customer_name=customer_name,
            signature_name=signature_name,
        )

    def compose(self, group: CustomerGroup) -> OutgoingEmail | None:
        """Build the reminder for ``group``; None for an empty group.

        Also records the chosen sender on the group.
        """
        if not group.invoices:
            return None

        sender = choose_sender(
            group,
            self.config.fallback_sender,
            self.config.run.sender_policy,
        )
        group.chosen_sender = sender

        attachment = build_attachment(group, self.config.email.attachment_name)
        body = self.render_body(group.customer_name, sender.name)

        return OutgoingEmail(
            author=sender.id,
            author_name=sender.name,
            author_email=sender.email,
            recipient=group.customer_email,
            recipient_id=group.customer_id,
            subject=self.config.email.subject,
            body=body,
            attachments=[attachment],
        )

    def notify(self, group: CustomerGroup) -> bool:
        """Compose and send the reminder for ``group``.

        Returns True when an email was handed to the transport.  Render
        and send failures are logged and return False, or raise
        BatchAborted under ABORT_BATCH.
        """
        try:
            message = self.compose(group)
            if message is None:
                logger.info("Customer %s has no invoices, nothing sent", group.customer_id)
                return False
            self.transport.send(message)
        except Exception as exc:
            if self.config.run.failure_mode is FailureMode.ABORT_BATCH:
                raise BatchAborted(
                    f"Reminder for customer {group.customer_id} failed: {exc}"
                ) from exc
            logger.error(
                "Reminder for customer %s (%s) failed, skipping: %s",
                group.customer_id, group.customer_name, exc,
            )
            return False

        logger.info(
            "Sent reminder to %s <%s>: %d invoices, sender %s%s",
            group.customer_name, message.recipient, len(group),
            message.author, " (fallback)" if group.chosen_sender.is_fallback else "",
        )
        return True
