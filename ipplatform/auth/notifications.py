"""
IP Platform - Notification Sink

Fire-and-forget outbound email for account lifecycle events.

Callers never let a delivery failure roll back a state transition: use
notify(), which logs and swallows sink errors. Inside a request the sink is
a BackgroundNotifier, so delivery happens after the response is sent.
"""

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Optional, Protocol

from fastapi import BackgroundTasks

from ipplatform.config import settings


logger = logging.getLogger(__name__)

SIGNATURE = "\n\n-- IP Intelligence Platform Team"


class NotificationSink(Protocol):
    def send(self, to_address: str, subject: str, body: str) -> None:
        ...


class LoggingNotifier:
    """Development sink: records messages in the log instead of sending them."""

    def send(self, to_address: str, subject: str, body: str) -> None:
        logger.info("Notification to %s: %s", to_address, subject)


class SmtpNotifier:
    """
    SMTP delivery.

    Opens one connection per message; volume is a handful of lifecycle mails.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_address: str = "noreply@ipplatform.local",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def send(self, to_address: str, subject: str, body: str) -> None:
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = to_address

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)


class BackgroundNotifier:
    """
    Request-scoped sink that defers delivery until after the response is sent.

    send() only schedules the message; the wrapped sink runs as a background
    task, so a slow or unreachable mail relay never delays the caller.
    """

    def __init__(self, sink: NotificationSink, background_tasks: BackgroundTasks):
        self.sink = sink
        self.background_tasks = background_tasks

    def send(self, to_address: str, subject: str, body: str) -> None:
        self.background_tasks.add_task(self._deliver, to_address, subject, body)

    def _deliver(self, to_address: str, subject: str, body: str) -> None:
        try:
            self.sink.send(to_address, subject, body)
        except Exception:
            logger.warning("Deferred notification '%s' to %s failed", subject, to_address, exc_info=True)


def build_notifier() -> NotificationSink:
    """Pick the sink from settings: SMTP when a host is configured."""
    if settings.SMTP_HOST:
        return SmtpNotifier(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            from_address=settings.MAIL_FROM,
        )
    return LoggingNotifier()


def notify(sink: NotificationSink, to_address: str, subject: str, body: str) -> None:
    """Send best-effort; failures are logged and never propagate."""
    try:
        sink.send(to_address, subject, body + SIGNATURE)
    except Exception:
        logger.warning("Notification '%s' to %s failed", subject, to_address, exc_info=True)


# =============================================================================
# MESSAGES
# =============================================================================

def welcome_message(name: str) -> tuple[str, str]:
    return (
        "Welcome to IP Intelligence Platform",
        f"Hi {name},\n\n"
        "Your account has been created successfully. You can now log in and "
        "start exploring global IP data.\n\n"
        f"{settings.FRONTEND_URL}/login",
    )


def analyst_pending_message(name: str) -> tuple[str, str]:
    return (
        "Your analyst application has been received",
        f"Hi {name},\n\n"
        "Thanks for registering as an analyst. Please upload your identity "
        "documents and submit your application so an administrator can review it.",
    )


def application_submitted_message(name: str) -> tuple[str, str]:
    return (
        "Your analyst application is under review",
        f"Hi {name},\n\n"
        "We received your documents. You will get an email once an "
        "administrator has made a decision.",
    )


def application_approved_message(name: str) -> tuple[str, str]:
    return (
        "Your analyst application was approved",
        f"Hi {name},\n\n"
        "Your analyst account is now active. You can log in here:\n"
        f"{settings.FRONTEND_URL}/login",
    )


def application_rejected_message(name: str, reason: str) -> tuple[str, str]:
    return (
        "Your analyst application was not approved",
        f"Hi {name},\n\n"
        f"Unfortunately your analyst application was rejected.\n\nReason: {reason}",
    )


def password_reset_message(token: str, expires_minutes: int) -> tuple[str, str]:
    reset_link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    return (
        "Reset your IP Platform password",
        "Hi,\n\n"
        "You requested a password reset for your IP Intelligence Platform account.\n\n"
        f"Use the link below to reset your password (valid for {expires_minutes} minutes):\n"
        f"{reset_link}\n\n"
        "If you didn't request this, you can safely ignore this email.",
    )
