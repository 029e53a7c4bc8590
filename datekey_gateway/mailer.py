"""
Outbound mail for the gated message-dispatch route.

The gateway only needs ``send(to, subject, text, html) -> message_id``;
transports are interchangeable behind the ``Mailer`` interface.
"""

import smtplib
import threading
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Dict, List, Optional

import requests

from datekey.errors import ConfigurationError, DownstreamActionFailure

from .config import MailSettings


class MailDeliveryError(DownstreamActionFailure):
    """The transport refused or failed to deliver a message."""


class Mailer(ABC):
    """Abstract interface for sending one message."""

    @abstractmethod
    def send(
        self,
        to: List[str],
        subject: str,
        text: Optional[str] = None,
        html: Optional[str] = None
    ) -> str:
        """
        Send a message.

        Returns:
            The transport's message id

        Raises:
            MailDeliveryError: If the message could not be delivered
        """
        pass


class SmtpMailer(Mailer):
    """SMTP transport (STARTTLS or implicit TLS)."""

    def __init__(self, settings: MailSettings):
        if not settings.smtp_host:
            raise ConfigurationError("SMTP_HOST is required for the smtp mail transport")
        if not settings.mail_from:
            raise ConfigurationError("MAIL_FROM is required for the smtp mail transport")
        self._settings = settings

    def _build(self, to: List[str], subject: str, text: Optional[str], html: Optional[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._settings.mail_from
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        domain = self._settings.mail_from.rsplit("@", 1)[-1] or None
        msg["Message-ID"] = make_msgid(domain=domain)
        if text is not None:
            msg.set_content(text)
            if html is not None:
                msg.add_alternative(html, subtype="html")
        else:
            msg.set_content(html or "", subtype="html")
        return msg

    def send(self, to, subject, text=None, html=None) -> str:
        s = self._settings
        msg = self._build(to, subject, text, html)
        try:
            if s.smtp_ssl:
                server = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.timeout)
            else:
                server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.timeout)
            with server:
                if s.smtp_starttls and not s.smtp_ssl:
                    server.starttls()
                if s.smtp_user:
                    server.login(s.smtp_user, s.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(f"SMTP delivery failed: {e}") from e
        return msg["Message-ID"]


class HttpApiMailer(Mailer):
    """
    HTTP mail API transport.

    POSTs ``{from, to, subject, text, html}`` with a bearer token and reads
    the message id from the ``id`` field of the JSON reply (Resend-style).
    """

    def __init__(self, settings: MailSettings, session: Optional[requests.Session] = None):
        if not settings.api_url or not settings.api_key:
            raise ConfigurationError("MAIL_API_URL and MAIL_API_KEY are required for the http mail transport")
        if not settings.mail_from:
            raise ConfigurationError("MAIL_FROM is required for the http mail transport")
        self._settings = settings
        self._session = session or requests.Session()

    def send(self, to, subject, text=None, html=None) -> str:
        s = self._settings
        payload: Dict[str, object] = {"from": s.mail_from, "to": to, "subject": subject}
        if text is not None:
            payload["text"] = text
        if html is not None:
            payload["html"] = html
        try:
            r = self._session.post(
                s.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {s.api_key}"},
                timeout=s.timeout
            )
            r.raise_for_status()
            body = r.json()
        except (requests.RequestException, ValueError) as e:
            raise MailDeliveryError(f"Mail API delivery failed: {e}") from e
        if not isinstance(body, dict):
            raise MailDeliveryError("Mail API reply is not a JSON object")
        message_id = body.get("id")
        if not message_id:
            raise MailDeliveryError("Mail API reply carried no message id")
        return str(message_id)


class RecordingMailer(Mailer):
    """
    In-memory mailer for development/testing.

    Records every message instead of delivering it. ``fail_with`` makes
    every send raise, to exercise the failure path.
    """

    def __init__(self, fail_with: Optional[str] = None):
        self.sent: List[Dict[str, object]] = []
        self.fail_with = fail_with
        self._lock = threading.Lock()

    def send(self, to, subject, text=None, html=None) -> str:
        if self.fail_with:
            raise MailDeliveryError(self.fail_with)
        with self._lock:
            message_id = f"<recorded-{len(self.sent) + 1}@datekey.local>"
            self.sent.append({"id": message_id, "to": list(to), "subject": subject, "text": text, "html": html})
        return message_id


def get_mailer(settings: MailSettings) -> Optional[Mailer]:
    """
    Factory function to create the configured transport.

    Returns:
        A Mailer, or None when no transport is configured

    Raises:
        ConfigurationError: If the selected transport is missing settings
    """
    if settings.transport == "smtp":
        return SmtpMailer(settings)
    if settings.transport == "http":
        return HttpApiMailer(settings)
    if settings.transport == "memory":
        return RecordingMailer()
    return None
