# authcore/adapters/outbound/notifications/email_notifier.py

import asyncio
import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.mime.text import MIMEText
from typing import Optional

from authcore.application.ports.outbound import ILoginNotifier

logger = logging.getLogger(__name__)


class SmtpLoginNotifier(ILoginNotifier):
    """
    Sends a "new login" email over SMTP.

    When no SMTP host is configured the message is only logged, which is the
    behaviour wanted in development and tests.
    """

    def __init__(
            self,
            *,
            smtp_host: Optional[str] = None,
            smtp_port: int = 587,
            smtp_user: Optional[str] = None,
            smtp_password: Optional[str] = None,
            smtp_use_tls: bool = True,
            from_email: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user

    @classmethod
    def from_settings(cls, settings) -> "SmtpLoginNotifier":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.EMAIL_FROM,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    @staticmethod
    def _redact_email(email: str) -> str:
        if "@" not in email:
            return "redacted"
        local, domain = email.split("@", 1)
        return f"{local[:2]}***@{domain}"

    async def send_login_alert(
            self,
            email: str,
            user_agent: Optional[str],
            ip_address: Optional[str],
            session_id: str,
    ) -> None:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        body = (
            f"A new login to your account was detected.\n\n"
            f"Time: {timestamp}\n"
            f"Device: {user_agent or 'unknown'}\n"
            f"IP address: {ip_address or 'unknown'}\n\n"
            f"If this wasn't you, reset your password and sign out of all devices."
        )

        if not self.is_configured:
            logger.info(
                f"Login alert (email not configured) to={self._redact_email(email)} session={session_id}"
            )
            return

        await asyncio.to_thread(self._send, email, "New login detected", body)
        logger.info(f"Login alert sent to {self._redact_email(email)}")

    def _send(self, to_email: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_email, [to_email], msg.as_string())
