"""
Email Gateway

SMTP delivery through aiosmtplib. Every send is bounded by a timeout; any
failure surfaces as DeliveryError.
"""
import asyncio
from email.message import EmailMessage
from email.utils import make_msgid

import aiosmtplib

from notifyhub.config import Settings
from notifyhub.errors import DeliveryError


class SMTPEmailGateway:
    """Sends one HTML email per call over a fresh SMTP connection."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
        sender: str = "noreply@localhost",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.sender = sender

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPEmailGateway":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            timeout=settings.SMTP_TIMEOUT,
            sender=settings.mail_from,
        )

    def build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(html, subtype="html")
        return msg

    async def send(self, to: str, subject: str, html: str) -> str:
        """
        Send an email and return its Message-ID.

        Raises:
            DeliveryError: on SMTP errors, connection errors or timeout
        """
        if not to:
            raise DeliveryError("No recipient address")

        msg = self.build_message(to, subject, html)
        try:
            await asyncio.wait_for(
                aiosmtplib.send(
                    msg,
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    use_tls=self.use_tls,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise DeliveryError(f"SMTP send timed out after {self.timeout}s") from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP error: {e!s}") from e

        return msg["Message-ID"]

    async def verify(self) -> bool:
        """Check that the SMTP server accepts a connection (and login, if configured)."""
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.use_tls,
            timeout=self.timeout,
        )
        try:
            await smtp.connect()
            if self.username:
                await smtp.login(self.username, self.password or "")
            await smtp.quit()
            return True
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError):
            return False
