"""Outbound e-mail for share links and one-time codes.

The services take a ``Notifier`` at construction and only ever call
``send``; delivery is best-effort, so implementations report failure by
returning ``False`` and callers log it without rolling anything back.
"""
import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import httpx

from docshare.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, to_email: str, subject: str, body: str) -> bool: ...


def _is_html(body: str) -> bool:
    return body.lstrip().startswith("<")


class LoggingNotifier:
    """Development notifier: records the send in the log instead of delivering it."""

    def send(self, to_email: str, subject: str, body: str) -> bool:
        logger.info(f"Mail delivery disabled; would have sent '{subject}' to {to_email}")
        return True


class SmtpNotifier:
    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.timeout = settings.smtp_timeout_seconds
        self.sender = settings.mail_from

    def send(self, to_email: str, subject: str, body: str) -> bool:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to_email
        message.attach(MIMEText(body, "html" if _is_html(body) else "plain"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, [to_email], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"SMTP delivery to {to_email} failed: {e}")
            return False
        return True


class HttpMailNotifier:
    """SendGrid-style JSON mail API."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None):
        self.url = settings.mail_api_url
        self.api_key = settings.mail_api_key
        self.sender = settings.mail_from
        self.client = client or httpx.Client(timeout=settings.mail_api_timeout_seconds)

    def send(self, to_email: str, subject: str, body: str) -> bool:
        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/html" if _is_html(body) else "text/plain", "value": body}],
        }
        try:
            response = self.client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Mail API request for {to_email} failed: {e}")
            return False
        if response.status_code >= 400:
            logger.warning(f"Mail API rejected message to {to_email}: {response.status_code} {response.text}")
            return False
        return True


@dataclass
class SentMessage:
    to_email: str
    subject: str
    body: str


@dataclass
class RecordingNotifier:
    """Keeps every message in memory; ``fail`` simulates a bounced delivery."""

    fail: bool = False
    sent: list[SentMessage] = field(default_factory=list)

    def send(self, to_email: str, subject: str, body: str) -> bool:
        self.sent.append(SentMessage(to_email, subject, body))
        return not self.fail


def build_notifier(settings: Settings | None = None) -> Notifier:
    settings = settings or get_settings()
    backend = settings.notifier_backend.lower()
    if backend == "smtp":
        return SmtpNotifier(settings)
    if backend == "http":
        return HttpMailNotifier(settings)
    return LoggingNotifier()


def deliver(notifier: Notifier, to_email: str, subject: str, body: str) -> bool:
    """Send without letting a transport failure escape to the caller."""
    try:
        delivered = notifier.send(to_email, subject, body)
    except Exception as e:  # noqa: BLE001
        logger.warning(f"Notifier raised while sending '{subject}' to {to_email}: {e}")
        return False
    if not delivered:
        logger.warning(f"Notification '{subject}' to {to_email} was not delivered")
    return delivered
