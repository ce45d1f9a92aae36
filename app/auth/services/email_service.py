from __future__ import annotations

import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

from app.auth.core.logging_config import redact_email

logger = logging.getLogger(__name__)


class EmailService:
    """
    Verification mail over SMTP.
    When SMTP_HOST is not configured the message is logged instead of sent (dev mode).
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_secure: bool = False,
        from_email: str = "miservicio <noreply@miservicio.com>",
        frontend_url: str = "http://localhost:3000",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_secure = smtp_secure
        self.from_email = from_email
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> "EmailService":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_secure=settings.smtp_secure,
            from_email=settings.smtp_from,
            frontend_url=settings.frontend_url,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host)

    def verification_url(self, token: str) -> str:
        return f"{self.frontend_url}/auth/verify-email?{urlencode({'token': token})}"

    def render_verification(self, token: str, display_name: Optional[str] = None):
        url = self.verification_url(token)
        greeting = f"Hi {display_name}!" if display_name else "Welcome!"
        text_body = (
            "Verify your email address\n\n"
            f"Open the following link to verify your account:\n{url}\n\n"
            "This link expires in 24 hours."
        )
        safe_url = html.escape(url, quote=True)
        html_body = (
            "<!DOCTYPE html><html><body>"
            f"<h2>{html.escape(greeting)}</h2>"
            "<p>Please confirm your email address to finish signing up.</p>"
            f'<p><a href="{safe_url}">Verify my email</a></p>'
            f"<p>If the button does not work, paste this link into your browser:<br>{safe_url}</p>"
            "<p>This link expires in 24 hours. If you did not request it, ignore this email.</p>"
            "</body></html>"
        )
        return "Verify your email address", html_body, text_body

    def send_verification_email(
        self, to_email: str, token: str, display_name: Optional[str] = None
    ) -> None:
        """Raises on SMTP failure; callers running it in the background log and drop it."""
        subject, html_body, text_body = self.render_verification(token, display_name)

        if not self.is_configured:
            logger.info(
                "email dev mode: to=%s subject=%s link=%s",
                redact_email(to_email),
                subject,
                self.verification_url(token),
            )
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        if self.smtp_secure:
            server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30)
        with server:
            if not self.smtp_secure:
                server.starttls(context=context)
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)
        logger.info("verification email sent to=%s", redact_email(to_email))
