"""
auth/mailer.py -- Outbound message-send capability.

CredentialService depends only on the Mailer protocol: send(to, subject,
body) either returns or raises DeliveryError. Two implementations:

  SmtpMailer     -- smtplib over STARTTLS with a bounded socket timeout. A
                    timeout is reported as DeliveryError, exactly like a
                    refused connection or a rejected recipient, so the
                    caller's rollback path covers both.
  LoggingMailer  -- development stand-in used when SMTP_HOST is empty. It
                    logs recipient and subject; the body (which holds the
                    reset link) is logged at DEBUG only.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Protocol

from auth.errors import DeliveryError
from core.config import Settings

logger = logging.getLogger("credgate.mailer")


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class SmtpMailer:
    """Send plain-text mail through an SMTP relay."""

    def __init__(self, settings: Settings) -> None:
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._username = settings.smtp_username
        self._password = settings.smtp_password
        self._use_tls = settings.smtp_use_tls
        self._timeout = settings.email_timeout_seconds
        self._sender = formataddr((settings.from_name, settings.from_email))

    def send(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self._sender
        msg["To"] = to
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username:
                    server.login(self._username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            # OSError covers refused connections and socket timeouts.
            raise DeliveryError(f"SMTP delivery to {self._host}:{self._port} failed") from exc
        logger.info("Mail sent: subject=%r", subject)


class LoggingMailer:
    """Write messages to the log instead of sending them. Development only."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Mail (not sent, no SMTP_HOST configured): to=%s subject=%r", to, subject)
        logger.debug("Mail body:\n%s", body)


def build_mailer(settings: Settings) -> Mailer:
    """Return the mailer for this configuration.

    Production without SMTP_HOST is a startup error: forgot-password would
    otherwise report success while no mail ever leaves the process.
    """
    if settings.smtp_host:
        return SmtpMailer(settings)
    if settings.is_production:
        raise ValueError("SMTP_HOST is required when ENVIRONMENT=production.")
    logger.warning("SMTP_HOST not set -- password reset mail will only be logged.")
    return LoggingMailer()
