"""
SMTP email client for invitations and session notifications.

If email is not configured, the client logs the message instead of sending.
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from retailiq.config import EmailConfig, settings
from retailiq.logger import get_logger

logger = get_logger(__name__)


class EmailClient:
    """SMTP email sender with graceful fallback to logging."""

    def __init__(self, config: Optional[EmailConfig] = None) -> None:
        self.config = config or settings.email

    def _build(self, to_email: str, subject: str, html: str, text: Optional[str]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.config.sender_name, self.config.sender))
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(text or subject)
        message.add_alternative(html, subtype="html")
        return message

    def send(self, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
        """Send an HTML email (with a plain-text part) or log it if SMTP is not configured."""
        if not self.config.is_configured:
            logger.warning("Email not configured; logging email instead")
            logger.info("Email to %s | %s", to_email, subject)
            return

        message = self._build(to_email, subject, html, text)
        smtp_cls = smtplib.SMTP_SSL if self.config.use_ssl else smtplib.SMTP
        try:
            with smtp_cls(self.config.smtp_host, self.config.smtp_port) as server:
                if not self.config.use_ssl:
                    server.starttls()
                server.login(self.config.smtp_username, self.config.smtp_password)
                server.send_message(message)
            logger.info("Sent email to %s", to_email)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email: %s", exc)
            raise
