"""
Email service for sending verification and password reset links.

Supports multiple email transports, selected by EMAIL_PROVIDER:
- sendgrid: SendGrid HTTPS API (httpx)
- smtp: SMTP (aiosmtplib)
- console: prints the message (development)
"""

import logging
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr

import aiosmtplib
import httpx

from lawpal.core.config import Settings, settings

logger = logging.getLogger("lawpal.email")

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(Exception):
    """Raised when a transport could not hand the message off."""


class EmailProvider(ABC):
    """Abstract base class for email transports."""

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> None:
        """Send an email, raising EmailDeliveryError on failure."""
        pass


class SMTPProvider(EmailProvider):
    """SMTP email provider using aiosmtplib."""

    def __init__(self, config: Settings):
        self.config = config

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> None:
        if not self.config.SMTP_HOST:
            raise EmailDeliveryError("SMTP_HOST not configured")

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.config.EMAIL_FROM
        message["To"] = to

        if text_body:
            message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.config.SMTP_HOST,
                port=self.config.SMTP_PORT,
                username=self.config.SMTP_USER,
                password=self.config.SMTP_PASSWORD,
                start_tls=True,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP send failed: {e}") from e


class SendGridProvider(EmailProvider):
    """SendGrid API email provider."""

    def __init__(self, config: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _sender(self) -> dict[str, str]:
        # EMAIL_FROM may be "Name <address>" or a bare address
        name, address = parseaddr(self.config.EMAIL_FROM)
        return {"email": address or self.config.EMAIL_FROM, "name": name or self.config.PROJECT_NAME}

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> None:
        if not self.config.SENDGRID_API_KEY:
            raise EmailDeliveryError("SENDGRID_API_KEY not configured")

        content = []
        if text_body:
            content.append({"type": "text/plain", "value": text_body})
        content.append({"type": "text/html", "value": html_body})

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=15.0) as client:
                response = await client.post(
                    SENDGRID_SEND_URL,
                    headers={
                        "Authorization": f"Bearer {self.config.SENDGRID_API_KEY}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "personalizations": [{"to": [{"email": to}], "subject": subject}],
                        "from": self._sender(),
                        "content": content,
                    },
                )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"SendGrid request failed: {e}") from e

        if response.status_code not in (200, 202):
            raise EmailDeliveryError(f"SendGrid API failed: {response.status_code} - {response.text}")


class ConsoleProvider(EmailProvider):
    """Console email provider for development/testing."""

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> None:
        print(f"\n{'=' * 60}")
        print(f"EMAIL TO: {to}")
        print(f"SUBJECT: {subject}")
        print(f"{'=' * 60}")
        print(text_body or html_body)
        print(f"{'=' * 60}\n")


_LINK_EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #111">
  <h2>{heading}</h2>
  <p>{intro}</p>
  <p>
    <a href="{link}" style="display:inline-block;padding:10px 16px;background:#2563eb;color:#fff;border-radius:8px;text-decoration:none">{button}</a>
  </p>
  <p>If the button doesn't work, copy and paste this link into your browser:</p>
  <p style="word-break: break-all;">{link}</p>
  <p style="color:#666">{expiry} If you didn't request this, you can ignore this email.</p>
</div>
"""

_LINK_EMAIL_TEXT = """
{heading}

{intro}

{link}

{expiry} If you didn't request this, you can ignore this email.
"""


class EmailService:
    """
    Service for sending verification and password reset emails.

    The transport is chosen by EMAIL_PROVIDER only; a chosen transport that
    is missing its credentials fails on send instead of falling back.
    """

    PROVIDERS = ("sendgrid", "smtp", "console")

    def __init__(self, config: Settings | None = None, provider: EmailProvider | None = None):
        self.config = config or settings
        self._provider = provider

    def _get_provider(self) -> EmailProvider:
        """Get the configured email provider."""
        if self._provider is None:
            provider_type = self.config.EMAIL_PROVIDER.lower()

            if provider_type == "sendgrid":
                self._provider = SendGridProvider(self.config)
            elif provider_type == "smtp":
                self._provider = SMTPProvider(self.config)
            elif provider_type == "console":
                self._provider = ConsoleProvider()
            else:
                raise EmailDeliveryError(
                    f"Unknown EMAIL_PROVIDER '{self.config.EMAIL_PROVIDER}' (expected one of {', '.join(self.PROVIDERS)})"
                )
            logger.info("Using %s email transport", provider_type)

        return self._provider

    async def _send_link(self, to: str, subject: str, **parts: str) -> None:
        html_body = _LINK_EMAIL_HTML.format(**parts)
        text_body = _LINK_EMAIL_TEXT.format(**parts)
        await self._get_provider().send_email(to, subject, html_body, text_body)

    async def send_verification_email(self, email: str, link: str) -> None:
        """
        Send an email verification link.

        Raises:
            EmailDeliveryError: If the transport fails.
        """
        await self._send_link(
            email,
            f"Verify your {self.config.PROJECT_NAME} account",
            heading="Verify your email",
            intro=f"Welcome to {self.config.PROJECT_NAME}! Please verify your email address to activate your account.",
            button="Verify Email",
            link=link,
            expiry=f"This link expires in {self.config.VERIFICATION_TOKEN_EXPIRE_HOURS} hours.",
        )

    async def send_password_reset_email(self, email: str, link: str) -> None:
        """
        Send a password reset link.

        Raises:
            EmailDeliveryError: If the transport fails.
        """
        await self._send_link(
            email,
            f"Reset your {self.config.PROJECT_NAME} password",
            heading="Reset your password",
            intro=(
                f"We received a request to reset your {self.config.PROJECT_NAME} password. "
                "If this was you, click the button below."
            ),
            button="Reset Password",
            link=link,
            expiry=f"This link expires in {self.config.RESET_TOKEN_EXPIRE_MINUTES} minutes.",
        )


# Global instance
email_service = EmailService()
