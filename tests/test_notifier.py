"""Tests for overdue_reminder.notifier -- sender selection and composition.

Covers:
- choose_sender under FIRST_INVOICE and UNANIMOUS
- Body rendering from the packaged Jinja2 template
- compose() subject, recipient, author and CSV attachment
- notify() success, empty groups and transport failures per failure mode
"""

from datetime import date

import pytest

from overdue_reminder.config import FallbackSender, ReminderConfig
from overdue_reminder.errors import BatchAborted, TransportError
from overdue_reminder.models import (
    CustomerGroup,
    EnrichedInvoice,
    FailureMode,
    Invoice,
    SenderPolicy,
)
from overdue_reminder.notifier import Notifier, choose_sender, fallback_identity
from overdue_reminder.transport import OutboxTransport


FALLBACK = FallbackSender(id="-5", name="Accounts Receivable", email="ar@example.com")


def _make_enriched(invoice_id="501", rep_id="55", inactive=False, **overrides) -> EnrichedInvoice:
    inv = Invoice(
        id=invoice_id,
        customer_id="9",
        customer_name="Acme",
        amount=1000.0,
        due_date=date(2026, 9, 19),
    )
    defaults = dict(
        invoice=inv,
        customer_email="ap@acme.test",
        sales_rep_id=rep_id,
        sales_rep_name="Rita Rep",
        sales_rep_email="rita@vendor.test",
        sales_rep_inactive=inactive,
        days_overdue=30,
    )
    defaults.update(overrides)
    return EnrichedInvoice(**defaults)


def _make_group(*members) -> CustomerGroup:
    group = CustomerGroup(customer_id="9")
    for m in members or (_make_enriched(),):
        group.add(m)
    return group


class _FailingTransport:
    def send(self, message):
        raise TransportError("relay down")


# ============================================================================
# Sender selection
# ============================================================================

class TestChooseSender:
    @pytest.mark.parametrize("rep_id,inactive,expected", [
        ("", False, "-5"),
        ("", True, "-5"),
        ("123", True, "-5"),
        ("123", False, "123"),
    ])
    def test_first_invoice_rule(self, rep_id, inactive, expected):
        group = _make_group(_make_enriched(rep_id=rep_id, inactive=inactive))
        assert choose_sender(group, FALLBACK).id == expected

    def test_rep_identity(self):
        sender = choose_sender(_make_group(), FALLBACK)
        assert sender.name == "Rita Rep"
        assert sender.email == "rita@vendor.test"
        assert sender.is_fallback is False

    def test_fallback_identity(self):
        group = _make_group(_make_enriched(rep_id=""))
        sender = choose_sender(group, FALLBACK)
        assert sender == fallback_identity(FALLBACK)
        assert sender.is_fallback is True
        assert sender.name == "Accounts Receivable"

    def test_first_invoice_ignores_later_invoices(self):
        group = _make_group(
            _make_enriched("501", rep_id="55"),
            _make_enriched("502", rep_id="", inactive=True),
        )
        assert choose_sender(group, FALLBACK).id == "55"

        group = _make_group(
            _make_enriched("501", rep_id=""),
            _make_enriched("502", rep_id="55"),
        )
        assert choose_sender(group, FALLBACK).id == "-5"

    def test_unanimous_agreeing_group(self):
        group = _make_group(_make_enriched("501"), _make_enriched("502"))
        assert choose_sender(group, FALLBACK, SenderPolicy.UNANIMOUS).id == "55"

    def test_unanimous_disagreeing_group(self):
        group = _make_group(
            _make_enriched("501", rep_id="55"),
            _make_enriched("502", rep_id="66"),
        )
        assert choose_sender(group, FALLBACK, SenderPolicy.UNANIMOUS).id == "-5"

    def test_unanimous_with_inactive_member(self):
        group = _make_group(
            _make_enriched("501", rep_id="55"),
            _make_enriched("502", rep_id="55", inactive=True),
        )
        assert choose_sender(group, FALLBACK, SenderPolicy.UNANIMOUS).id == "-5"

    def test_empty_group(self):
        with pytest.raises(ValueError, match="no invoices"):
            choose_sender(CustomerGroup(customer_id="9"), FALLBACK)


# ============================================================================
# Composition
# ============================================================================

class TestCompose:
    @pytest.fixture
    def notifier(self, config):
        return Notifier(OutboxTransport(), config=config)

    def test_body(self, notifier):
        body = notifier.render_body("Acme", "Rita Rep")
        assert body.startswith("Dear Acme,")
        assert "list of overdue invoices for your review" in body
        assert "Best regards," in body
        assert body.rstrip().endswith("Rita Rep")

    def test_message_fields(self, notifier):
        group = _make_group()
        msg = notifier.compose(group)
        assert msg.author == "55"
        assert msg.author_name == "Rita Rep"
        assert msg.recipient == "ap@acme.test"
        assert msg.recipient_id == "9"
        assert msg.subject == "Monthly Overdue Invoice Reminder"
        assert group.chosen_sender.id == "55"

    def test_attachment(self, notifier):
        msg = notifier.compose(_make_group())
        assert len(msg.attachments) == 1
        att = msg.attachments[0]
        assert att.name == "Overdue_Invoices.csv"
        assert att.content.splitlines()[1] == "Acme,ap@acme.test,501,1000,30"

    def test_fallback_signature(self, notifier):
        msg = notifier.compose(_make_group(_make_enriched(rep_id="")))
        assert msg.author == "-5"
        assert msg.body.rstrip().endswith("Accounts Receivable")

    def test_configured_subject_and_fallback(self, config):
        config.email.subject = "Past due invoices"
        config.fallback_sender.id = "42"
        notifier = Notifier(OutboxTransport(), config=config)
        msg = notifier.compose(_make_group(_make_enriched(rep_id="")))
        assert msg.subject == "Past due invoices"
        assert msg.author == "42"

    def test_custom_template_dir(self, config, tmp_path):
        (tmp_path / "overdue_reminder.txt").write_text(
            "Hi {{ customer_name }} -- {{ signature_name }}", encoding="utf-8"
        )
        notifier = Notifier(OutboxTransport(), config=config, template_dir=tmp_path)
        assert notifier.render_body("Acme", "Rita") == "Hi Acme -- Rita"

    def test_empty_group(self, notifier):
        assert notifier.compose(CustomerGroup(customer_id="9")) is None


# ============================================================================
# notify()
# ============================================================================

class TestNotify:
    def test_sends_one_email(self, config):
        outbox = OutboxTransport()
        assert Notifier(outbox, config=config).notify(_make_group()) is True
        assert len(outbox.sent) == 1

    def test_empty_group_sends_nothing(self, config):
        outbox = OutboxTransport()
        assert Notifier(outbox, config=config).notify(CustomerGroup(customer_id="9")) is False
        assert outbox.sent == []

    def test_transport_failure_skipped(self, config):
        notifier = Notifier(_FailingTransport(), config=config)
        assert notifier.notify(_make_group()) is False

    def test_transport_failure_aborts(self, config):
        config.run.failure_mode = FailureMode.ABORT_BATCH
        notifier = Notifier(_FailingTransport(), config=config)
        with pytest.raises(BatchAborted, match="relay down"):
            notifier.notify(_make_group())
