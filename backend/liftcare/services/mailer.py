from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from ..config import settings

logger = logging.getLogger(__name__)


def _send_email(recipient: str, subject: str, body: str) -> bool:
    if not settings.smtp_host or not settings.smtp_from:
        logger.warning("SMTP not configured; printing email to log.")
        logger.info("Email to %s | %s\n%s", recipient, subject, body)
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((settings.smtp_from_name or settings.app_name, settings.smtp_from))
    message["To"] = recipient
    message.set_content(body)

    try:
        smtp_class = smtplib.SMTP_SSL if settings.smtp_use_ssl else smtplib.SMTP
        with smtp_class(settings.smtp_host, settings.smtp_port, timeout=15) as smtp:
            if settings.smtp_use_tls and not settings.smtp_use_ssl:
                smtp.starttls()
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - network failures
        logger.error("Failed to send email to %s: %s", recipient, exc)
        return False
    return True


def send_welcome_email(recipient: str, name: str, password: str) -> bool:
    subject = f"Welcome to {settings.app_name}"
    body = (
        f"Hello {name},\n\n"
        f"An account has been created for you on {settings.app_name}.\n\n"
        f"Login: {settings.public_base_url}\n"
        f"Username: {recipient}\n"
        f"Temporary password: {password}\n\n"
        "Please change your password after signing in."
    )
    return _send_email(recipient, subject, body)


def send_notification_email(recipient: str, name: str, title: str, message: str) -> bool:
    subject = f"{settings.app_name}: {title}"
    body = f"Hello {name},\n\n{message}\n\n{settings.public_base_url}"
    return _send_email(recipient, subject, body)
