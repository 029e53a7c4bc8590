import smtplib

import pytest
import requests

from datekey.errors import ConfigurationError
from datekey_gateway.config import MailSettings
from datekey_gateway.mailer import (
    HttpApiMailer,
    MailDeliveryError,
    RecordingMailer,
    SmtpMailer,
    get_mailer,
)

SMTP = MailSettings(
    transport="smtp",
    mail_from="bot@example.com",
    smtp_host="smtp.example.com",
    smtp_user="bot@example.com",
    smtp_password="pw",
)
HTTP = MailSettings(
    transport="http",
    mail_from="bot@example.com",
    api_url="https://mail.example.com/emails",
    api_key="re_test",
)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def send_message(self, msg):
        self.sent.append(msg)


class FailingSMTP(FakeSMTP):
    def send_message(self, msg):
        raise smtplib.SMTPRecipientsRefused({})


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []
    yield


def test_smtp_send(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    message_id = SmtpMailer(SMTP).send(["a@example.com", "b@example.com"], "Hello", text="plain", html="<b>rich</b>")

    server = FakeSMTP.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.calls == ["starttls", ("login", "bot@example.com"), "quit"]
    msg = server.sent[0]
    assert msg["To"] == "a@example.com, b@example.com"
    assert msg["Subject"] == "Hello"
    assert msg["Message-ID"] == message_id
    assert message_id.endswith("@example.com>")
    assert msg.is_multipart()


def test_smtp_html_only(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    SmtpMailer(SMTP).send(["a@example.com"], "Hello", html="<p>hi</p>")
    assert FakeSMTP.instances[0].sent[0].get_content_type() == "text/html"


def test_smtp_failure(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", FailingSMTP)
    with pytest.raises(MailDeliveryError):
        SmtpMailer(SMTP).send(["a@example.com"], "Hello", text="x")


def test_smtp_requires_host():
    with pytest.raises(ConfigurationError):
        SmtpMailer(MailSettings(transport="smtp", mail_from="bot@example.com"))


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body if body is not None else {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return self.response


def test_http_send():
    session = FakeSession(FakeResponse(body={"id": "msg_123"}))
    message_id = HttpApiMailer(HTTP, session=session).send(["a@example.com"], "Hello", text="plain")
    assert message_id == "msg_123"
    post = session.posts[0]
    assert post["url"] == "https://mail.example.com/emails"
    assert post["headers"] == {"Authorization": "Bearer re_test"}
    assert post["json"] == {"from": "bot@example.com", "to": ["a@example.com"], "subject": "Hello", "text": "plain"}


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=422, body={"message": "bad"}),
    FakeResponse(body={}),
    FakeResponse(body=["not", "an", "object"]),
    FakeResponse(body="msg_123"),
])
def test_http_failure(response):
    with pytest.raises(MailDeliveryError):
        HttpApiMailer(HTTP, session=FakeSession(response)).send(["a@example.com"], "Hello", text="x")


def test_recording_mailer():
    mailer = RecordingMailer()
    assert mailer.send(["a@example.com"], "s", text="t") == "<recorded-1@datekey.local>"
    assert mailer.send(["b@example.com"], "s", html="h") == "<recorded-2@datekey.local>"
    assert [m["to"] for m in mailer.sent] == [["a@example.com"], ["b@example.com"]]
    with pytest.raises(MailDeliveryError):
        RecordingMailer(fail_with="down").send(["a@example.com"], "s", text="t")


def test_get_mailer():
    assert get_mailer(MailSettings()) is None
    assert isinstance(get_mailer(MailSettings(transport="memory")), RecordingMailer)
    assert isinstance(get_mailer(SMTP), SmtpMailer)
    assert isinstance(get_mailer(HTTP), HttpApiMailer)
    with pytest.raises(ConfigurationError):
        get_mailer(MailSettings(transport="http", mail_from="bot@example.com"))
