# digitalflow/services/email/provider.py
"""Outbound email transports.

Every transport exposes ``is_configured`` (checked by the worker before it
tries to send) and ``send(to, subject, html)`` which raises on any delivery
problem.
"""

from __future__ import annotations

import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Optional, Protocol

from digitalflow.core.config import Settings
from digitalflow.core.errors import TransportNotConfiguredError

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def html_to_text(html: str) -> str:
    return _TAG_RE.sub("", html or "")


class EmailTransport(Protocol):
    name: str

    @property
    def is_configured(self) -> bool: ...

    def send(self, to: str, subject: str, html: str) -> Any: ...


def _sender(settings: Settings, fallback: Optional[str] = None) -> str:
    address = settings.EMAIL_FROM or fallback or ""
    if settings.EMAIL_FROM_NAME and address:
        return formataddr((settings.EMAIL_FROM_NAME, address))
    return address


class SmtpTransport:
    name = "smtp"

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.SMTP_USER and self.settings.SMTP_PASSWORD)

    def _connect(self) -> smtplib.SMTP:
        host, port = self.settings.SMTP_HOST, self.settings.SMTP_PORT
        timeout = self.settings.SMTP_TIMEOUT_SECONDS
        if self.settings.smtp_use_ssl:
            return smtplib.SMTP_SSL(host, port, timeout=timeout)
        client = smtplib.SMTP(host, port, timeout=timeout)
        client.starttls()
        return client

    def send(self, to: str, subject: str, html: str) -> dict:
        if not self.is_configured:
            raise TransportNotConfiguredError("SMTP credentials are missing")

        message = EmailMessage()
        message["From"] = _sender(self.settings, fallback=self.settings.SMTP_USER)
        message["To"] = to
        message["Subject"] = subject
        message.set_content(html_to_text(html))
        message.add_alternative(html, subtype="html")

        with self._connect() as client:
            client.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD)
            refused = client.send_message(message)

        if refused:
            raise RuntimeError(f"SMTP refused recipients: {refused}")
        logger.info("SMTP → email envoyé à %s", to)
        return {"status": "sent", "message_id": message.get("Message-ID")}


class ResendTransport:
    name = "resend"

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.RESEND_API_KEY and self.settings.EMAIL_FROM)

    def send(self, to: str, subject: str, html: str) -> dict:
        if not self.is_configured:
            raise TransportNotConfiguredError("RESEND_API_KEY or EMAIL_FROM missing")

        import resend

        resend.api_key = self.settings.RESEND_API_KEY
        # Resend Python est sync côté HTTP
        response = resend.Emails.send({
            "from": _sender(self.settings),
            "to": [to],
            "subject": subject,
            "html": html,
            "text": html_to_text(html),
        })
        logger.info("Resend → email envoyé à %s (id=%s)", to, response.get("id") if isinstance(response, dict) else None)
        return response


class SendGridTransport:
    name = "sendgrid"

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.SENDGRID_API_KEY and self.settings.EMAIL_FROM)

    def send(self, to: str, subject: str, html: str) -> dict:
        if not self.is_configured:
            raise TransportNotConfiguredError("SENDGRID_API_KEY or EMAIL_FROM missing")

        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        message = Mail(
            from_email=self.settings.EMAIL_FROM,  # must match a verified sender
            to_emails=to,
            subject=subject,
            html_content=html,
        )
        resp = SendGridAPIClient(self.settings.SENDGRID_API_KEY).send(message)
        msg_id = resp.headers.get("X-Message-Id") or resp.headers.get("x-message-id")
        logger.info("SendGrid → status=%s message_id=%s", resp.status_code, msg_id)
        if resp.status_code >= 400:
            body = resp.body.decode() if hasattr(resp.body, "decode") else str(resp.body)
            logger.error("SendGrid error body: %s", body)
            raise RuntimeError(f"SendGrid error {resp.status_code}: {body}")
        return {"status": resp.status_code, "message_id": msg_id}


_TRANSPORTS = {
    "smtp": SmtpTransport,
    "resend": ResendTransport,
    "sendgrid": SendGridTransport,
}


def build_transport(settings: Settings) -> Optional[EmailTransport]:
    """Instantiate the transport named by ``MAIL_PROVIDER``; ``None`` when unknown."""

    transport_cls = _TRANSPORTS.get(settings.MAIL_PROVIDER)
    if transport_cls is None:
        logger.error("MAIL_PROVIDER inconnu: %s", settings.MAIL_PROVIDER)
        return None

    transport = transport_cls(settings)
    if not transport.is_configured:
        logger.warning("Transport email '%s' non configuré: les envois échoueront.", transport.name)
    return transport
