# Overview: Outbound notification (estimate email) behind a small notifier interface.

"""
Notification is best-effort and happens after the document is committed.

A notifier exposes send(OutgoingEmail) and raises NotificationError when
delivery fails. Callers turn that into a SendResult instead of unwinding
any database writes.

Backends (MAIL_BACKEND):
- "smtp": delivers through MAIL_SERVER with smtplib
- "log":  writes the rendered message to the app logger (development)

Tests install their own notifier with set_notifier(app, notifier).
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr

from flask import Flask, current_app, render_template

from smartbuild.money import format_currency

NOTIFIER_EXTENSION_KEY = "smartbuild.notifier"


class NotificationError(Exception):
    """Delivery failed. The message was not accepted by the mail backend."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    body: dict
    text: str
    html: str
    sender_name: str | None = None
    reply_to: str | None = None


@dataclass
class SendResult:
    sent: bool
    error: str | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"sent": self.sent, "error": self.error}


class Notifier:
    def send(self, message: OutgoingEmail) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Development backend: nothing leaves the process."""

    def send(self, message: OutgoingEmail) -> None:
        current_app.logger.info(
            "Email (log backend) to=%s subject=%r\n%s",
            message.to, message.subject, message.text,
        )


class SmtpNotifier(Notifier):
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        use_tls: bool,
        default_sender: str,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_sender = default_sender
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SmtpNotifier":
        return cls(
            host=config["MAIL_SERVER"],
            port=config["MAIL_PORT"],
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            use_tls=config.get("MAIL_USE_TLS", True),
            default_sender=config["MAIL_DEFAULT_SENDER"],
        )

    def build_message(self, message: OutgoingEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((message.sender_name or "", self.default_sender))
        msg["To"] = message.to
        msg["Subject"] = message.subject
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        msg.set_content(message.text)
        msg.add_alternative(message.html, subtype="html")
        return msg

    def send(self, message: OutgoingEmail) -> None:
        msg = self.build_message(message)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError("Failed to send email", details={"reason": str(exc)}) from exc


def set_notifier(app: Flask, notifier: Notifier) -> None:
    app.extensions[NOTIFIER_EXTENSION_KEY] = notifier


def get_notifier() -> Notifier:
    """The app's notifier, built from MAIL_BACKEND on first use."""
    notifier = current_app.extensions.get(NOTIFIER_EXTENSION_KEY)
    if notifier is not None:
        return notifier

    backend = (current_app.config.get("MAIL_BACKEND") or "log").lower()
    if backend == "smtp":
        notifier = SmtpNotifier.from_config(current_app.config)
    elif backend == "log":
        notifier = LogNotifier()
    else:
        raise ValueError(f"Unknown MAIL_BACKEND: {backend}")

    current_app.extensions[NOTIFIER_EXTENSION_KEY] = notifier
    return notifier


def estimate_view_url(estimate_id: int) -> str:
    base_url = (current_app.config.get("APP_BASE_URL") or "").rstrip("/")
    return f"{base_url}/estimates/{estimate_id}"


def _long_date(value) -> str:
    # "March 5, 2026"
    return f"{value:%B} {value.day}, {value.year}"


def build_estimate_email(estimate, organization) -> OutgoingEmail:
    """
    Render the "new estimate" email for the estimate's client.

    The caller has already checked that the client has an email address.
    """
    business_name = organization.display_name if organization else "Your Business"
    body = {
        "client_name": estimate.client.name,
        "estimate_number": estimate.estimate_number,
        "estimate_title": estimate.title,
        "total": format_currency(estimate.total),
        "valid_until": _long_date(estimate.valid_until) if estimate.valid_until else None,
        "view_url": estimate_view_url(estimate.id),
        "business_name": business_name,
    }
    return OutgoingEmail(
        to=estimate.client.email.strip(),
        subject=f"Estimate {estimate.estimate_number} from {business_name}",
        body=body,
        text=render_template("email/estimate.txt", **body),
        html=render_template("email/estimate.html", **body),
        sender_name=business_name,
        reply_to=organization.business_email if organization else None,
    )


def dispatch(message: OutgoingEmail, notifier: Notifier | None = None) -> SendResult:
    """Send and report; never raises for delivery failures."""
    notifier = notifier or get_notifier()
    try:
        notifier.send(message)
    except NotificationError as exc:
        current_app.logger.warning("Failed to send email to %s: %s", message.to, exc.details or exc)
        return SendResult(
            sent=False,
            error="Failed to send email. Please check your email configuration.",
            details=exc.details,
        )
    current_app.logger.info("Sent %r to %s", message.subject, message.to)
    return SendResult(sent=True)
