"""Email dispatcher for verification and password reset flows."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

from .config import Settings

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Deliver token links out of band.

    Delivery is fire-and-forget: failures are logged and never reach the
    caller. Without an SMTP host the message is written to the log instead,
    which is what local development relies on.
    """

    def __init__(
        self,
        *,
        base_url: str,
        reset_url: str,
        sender: str,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.reset_url = reset_url
        self.sender = sender
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotifier":
        return cls(
            base_url=settings.email_base_url,
            reset_url=settings.reset_password_url,
            sender=settings.email_sender,
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
        )

    def send_verification_email(self, email: str, token: str) -> None:
        link = self._link(f"{self.base_url}/signup/verify", token)
        subject = "Verify your storefront account"
        body = (
            "Hello,\n\n"
            "Thanks for signing up. Please verify your email address by opening the link below:\n"
            f"{link}\n\n"
            "The link expires shortly. If it does, sign up again with the same email to get a new one.\n\n"
            "If you did not create this account, you can ignore this email."
        )
        self._dispatch(email, subject, body)

    def send_forgot_password_email(self, email: str, token: str) -> None:
        link = self._link(self.reset_url, token)
        subject = "Reset your storefront password"
        body = (
            "Hello,\n\n"
            "A password reset was requested for your account.\n"
            f"Use the following link to choose a new password:\n{link}\n\n"
            "If you did not request this, you can safely ignore this message."
        )
        self._dispatch(email, subject, body)

    def _link(self, url: str, token: str) -> str:
        return f"{url}?{urlencode({'token': token})}"

    def _dispatch(self, recipient: str, subject: str, body: str) -> None:
        if not self.smtp_host:
            logger.warning("SMTP host not configured; logging message instead.")
            logger.info("Email to %s\nSubject: %s\n%s", recipient, subject, body)
            return

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(body)

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
                smtp.starttls()
                if self.smtp_user and self.smtp_password:
                    smtp.login(self.smtp_user, self.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", recipient, exc)
            return
        logger.info("email %r sent to %s", subject, recipient)
