"""
Overdue Reminder -- Email Transports

``EmailTransport.send(message)`` is fire-and-forget: it returns nothing and
raises ``TransportError`` when the message cannot be handed off.

Transports:
    SMTPTransport    sends through an SMTP relay (STARTTLS + login)
    OutboxTransport  keeps messages in memory and, when ``eml_dir`` is set,
                     writes each one as an .eml file for manual review
"""

from __future__ import annotations

import logging
import re
import smtplib
import ssl
from dataclasses import replace
from datetime import datetime, timezone
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import format_datetime, formataddr
from pathlib import Path
from typing import Protocol

from .config import SMTPSettings
from .errors import TransportError
from .models import OutgoingEmail

logger = logging.getLogger(__name__)


class EmailTransport(Protocol):
    def send(self, message: OutgoingEmail) -> None: ...


# ---------------------------------------------------------------------------
# MIME building
# ---------------------------------------------------------------------------

def build_mime_message(message: OutgoingEmail) -> MIMEMultipart:
    """Build a multipart/mixed message: plain-text body plus attachments."""
    msg = MIMEMultipart("mixed")
    msg["From"] = (
        formataddr((message.author_name, message.author_email))
        if message.author_name
        else message.author_email
    )
    msg["To"] = message.recipient
    msg["Subject"] = message.subject
    msg["Date"] = format_datetime(datetime.now(timezone.utc))
    msg["X-Sender-Id"] = message.author
    if message.recipient_id:
        msg["X-Customer-Id"] = message.recipient_id

    msg.attach(MIMEText(message.body, "plain", "utf-8"))

    for att in message.attachments:
        maintype, _, subtype = att.content_type.partition("/")
        part = MIMEBase(maintype, subtype or "octet-stream", charset=att.encoding)
        part.set_payload(att.payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=att.name)
        msg.attach(part)

    return msg


# ---------------------------------------------------------------------------
# SMTP
# ---------------------------------------------------------------------------

class SMTPTransport:
    """Send reminders through an SMTP relay, one connection per message.

    A sender without an email address (a rep whose employee record has
    none) is sent from ``fallback_email``; the display name and
    ``X-Sender-Id`` still name the chosen sender.
    """

    def __init__(self, settings: SMTPSettings, fallback_email: str = "") -> None:
        self.settings = settings
        self.fallback_email = fallback_email

    def send(self, message: OutgoingEmail) -> None:
        if "@" not in (message.recipient or ""):
            raise TransportError(
                f"Customer {message.recipient_id}: no usable recipient address "
                f"({message.recipient!r})"
            )
        if "@" not in (message.author_email or ""):
            if "@" not in self.fallback_email:
                raise TransportError(f"Sender {message.author} has no email address")
            logger.info("Sender %s has no email address, sending from %s",
                        message.author, self.fallback_email)
            message = replace(message, author_email=self.fallback_email)

        msg = build_mime_message(message)
        cfg = self.settings
        try:
            with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout) as server:
                if cfg.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if cfg.username:
                    server.login(cfg.username, cfg.password)
                server.sendmail(message.author_email, [message.recipient], msg.as_string())
        except smtplib.SMTPAuthenticationError as exc:
            raise TransportError(
                f"SMTP authentication failed for {cfg.username}. Check SMTP_USERNAME/SMTP_PASSWORD."
            ) from exc
        except smtplib.SMTPRecipientsRefused as exc:
            raise TransportError(f"Recipients refused: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"SMTP send to {message.recipient} failed: {exc}") from exc

        logger.debug("SMTP sent '%s' to %s", message.subject, message.recipient)


# ---------------------------------------------------------------------------
# Outbox (dry run)
# ---------------------------------------------------------------------------

class OutboxTransport:
    """Collects messages instead of sending them.

    Attributes:
        sent: Every message passed to ``send``, in order.
        eml_dir: When set, each message is also written there as an .eml.
        written: Paths of the .eml files written.
    """

    def __init__(self, eml_dir: str | Path | None = None) -> None:
        self.sent: list[OutgoingEmail] = []
        self.eml_dir = Path(eml_dir) if eml_dir else None
        self.written: list[Path] = []

    def send(self, message: OutgoingEmail) -> None:
        if self.eml_dir is not None:
            self.written.append(self._write_eml(message))
        self.sent.append(message)

    def _write_eml(self, message: OutgoingEmail) -> Path:
        self.eml_dir.mkdir(parents=True, exist_ok=True)
        key = message.recipient_id or message.recipient or "unknown"
        safe = re.sub(r"[^\w.-]+", "_", key)
        path = self.eml_dir / f"{len(self.sent) + 1:04d}_customer_{safe}.eml"
        try:
            path.write_text(build_mime_message(message).as_string(), encoding="utf-8")
        except OSError as exc:
            raise TransportError(f"Cannot write {path}: {exc}") from exc
        return path
