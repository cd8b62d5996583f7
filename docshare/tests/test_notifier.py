import json
import smtplib

import httpx

from docshare.core.config import Settings
from docshare.services import notifier as notifier_module
from docshare.services.notifier import (
    HttpMailNotifier,
    LoggingNotifier,
    RecordingNotifier,
    SmtpNotifier,
    build_notifier,
    deliver,
)


def test_build_notifier_selects_backend():
    assert isinstance(build_notifier(Settings(notifier_backend="log")), LoggingNotifier)
    assert isinstance(build_notifier(Settings(notifier_backend="SMTP")), SmtpNotifier)
    assert isinstance(build_notifier(Settings(notifier_backend="http")), HttpMailNotifier)


def test_http_notifier_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    settings = Settings(mail_api_key="key-123", mail_from="docs@example.com")
    client = httpx.Client(transport=httpx.MockTransport(handler))
    sender = HttpMailNotifier(settings, client=client)

    assert sender.send("alice@example.com", "Hello", "<p>hi</p>") is True
    request = seen[0]
    assert request.headers["authorization"] == "Bearer key-123"
    body = json.loads(request.content)
    assert body["personalizations"][0]["to"][0]["email"] == "alice@example.com"
    assert body["content"][0]["type"] == "text/html"


def test_http_notifier_reports_rejection():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(401, text="bad key")))
    sender = HttpMailNotifier(Settings(), client=client)

    assert sender.send("alice@example.com", "Hello", "plain text") is False


def test_smtp_notifier_reports_connection_failure(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("no server")

    monkeypatch.setattr(notifier_module.smtplib, "SMTP", refuse)
    sender = SmtpNotifier(Settings(smtp_host="mail.invalid"))

    assert sender.send("alice@example.com", "Hello", "plain text") is False


def test_smtp_notifier_sends_multipart(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            self.host = host

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            pass

        def login(self, username, password):
            sent.append(("login", username))

        def sendmail(self, sender, recipients, message):
            sent.append(("mail", sender, recipients, message))

    monkeypatch.setattr(notifier_module.smtplib, "SMTP", FakeSMTP)
    sender = SmtpNotifier(Settings(smtp_host="mail.example.com", smtp_username="bot", mail_from="docs@example.com"))

    assert sender.send("alice@example.com", "Your OTP code", "Your one-time code is: 123456") is True
    assert sent[0] == ("login", "bot")
    assert sent[1][2] == ["alice@example.com"]
    assert "Your OTP code" in sent[1][3]


def test_deliver_swallows_transport_errors():
    class Exploding:
        def send(self, to_email, subject, body):
            raise smtplib.SMTPServerDisconnected("gone")

    assert deliver(Exploding(), "alice@example.com", "Hello", "body") is False
    assert deliver(RecordingNotifier(fail=True), "alice@example.com", "Hello", "body") is False
    assert deliver(RecordingNotifier(), "alice@example.com", "Hello", "body") is True
