"""Transactional email (verification and password reset links).

Delivery is fire-and-forget: failures are logged and never reach the caller.
Without an SMTP host configured, messages are logged instead of sent.
"""

import asyncio
import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from authcore.config.settings import settings
from authcore.features.account.models import Account
from authcore.features.auth.jwt_utils import create_email_verification_token, create_password_reset_token

logger = logging.getLogger(__name__)


class EmailService:
    """SMTP email sender."""

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int | None = None,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_starttls: bool | None = None,
        mail_from: str | None = None,
        frontend_url: str | None = None,
    ):
        self.smtp_host = smtp_host or settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port
        self.smtp_user = smtp_user or settings.smtp_user
        self.smtp_password = smtp_password or settings.smtp_password
        self.smtp_starttls = settings.smtp_starttls if smtp_starttls is None else smtp_starttls
        self.mail_from = mail_from or settings.mail_from
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.mail_from)

    def _send(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.mail_from
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        if self.smtp_starttls:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.mail_from, to_email, msg.as_string())
        else:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.mail_from, to_email, msg.as_string())

    async def _deliver(self, to_email: str, subject: str, text_body: str, html_body: str) -> bool:
        if not self.is_configured:
            # Dev mode: log the subject only, links carry live tokens
            logger.info(f"SMTP not configured, email to {to_email} not sent: {subject}")
            return False

        try:
            await asyncio.to_thread(self._send, to_email, subject, text_body, html_body)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {type(e).__name__}: {e}")
            return False

        logger.info(f"Email sent to {to_email}: {subject}")
        return True

    async def send_verification(self, account: Account) -> bool:
        """Send an email verification link to a new account."""
        token = create_email_verification_token(account.id, account.email)
        link = f"{self.frontend_url}/verify-email?token={token}"
        name, href = html.escape(account.first_name), html.escape(link)
        text_body = (
            f"Hi {account.first_name},\n\n"
            f"Please confirm your email address by opening the link below:\n{link}\n\n"
            f"The link expires in {settings.email_verification_token_expire_hours} hours."
        )
        html_body = (
            f"<p>Hi {name},</p>"
            f'<p>Please confirm your email address: <a href="{href}">Verify email</a></p>'
            f"<p>The link expires in {settings.email_verification_token_expire_hours} hours.</p>"
        )
        return await self._deliver(account.email, "Verify your email address", text_body, html_body)

    async def send_password_reset(self, account: Account) -> bool:
        """Send a password reset link, valid until it expires or the password changes."""
        token = create_password_reset_token(account.id, account.hashed_password)
        link = f"{self.frontend_url}/reset-password?token={token}"
        name, href = html.escape(account.first_name), html.escape(link)
        text_body = (
            f"Hi {account.first_name},\n\n"
            f"Use the link below to choose a new password:\n{link}\n\n"
            f"The link expires in {settings.password_reset_token_expire_minutes} minutes. "
            f"If you did not ask for a reset, ignore this email."
        )
        html_body = (
            f"<p>Hi {name},</p>"
            f'<p><a href="{href}">Reset your password</a></p>'
            f"<p>The link expires in {settings.password_reset_token_expire_minutes} minutes. "
            f"If you did not ask for a reset, ignore this email.</p>"
        )
        return await self._deliver(account.email, "Reset your password", text_body, html_body)


email_service = EmailService()
