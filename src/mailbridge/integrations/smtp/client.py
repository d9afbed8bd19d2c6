"""SMTP relay client for password-authenticated mailboxes.

``smtplib`` is blocking, so every session runs in a worker thread. A fresh
authenticated connection is opened per operation.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid

import structlog

from mailbridge.core.exceptions import (
    AuthExpired,
    ProviderRequestError,
    ProviderUnavailable,
    RelayConnectionError,
)
from mailbridge.schemas.integration import ProviderType, SmtpSecurity

logger = structlog.get_logger(__name__)

PROVIDER = ProviderType.SMTP.value


@dataclass(frozen=True)
class SmtpRelayConfig:
    """Connection settings for one relay.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        username: Login name.
        password: Plaintext password (decrypted just before use).
        security: ``ssl`` for implicit TLS, ``tls`` for STARTTLS with
            certificate checks, ``none`` for unverified opportunistic TLS.
        timeout: Socket timeout in seconds.
    """

    host: str
    port: int
    username: str
    password: str
    security: SmtpSecurity = "tls"
    timeout: float = 30.0

    def __repr__(self) -> str:
        return (
            f"SmtpRelayConfig(host={self.host!r}, port={self.port}, "
            f"username={self.username!r}, security={self.security!r})"
        )


def build_relay_message(
    sender_email: str,
    sender_name: str | None,
    to: str,
    subject: str | None,
    body_html: str,
) -> EmailMessage:
    """Build an HTML message with ``"Display Name" <address>`` in From."""
    message = EmailMessage()
    message["From"] = formataddr((sender_name or sender_email, sender_email))
    message["To"] = to
    message["Subject"] = subject or ""
    message["Date"] = formatdate(localtime=False)
    message["Message-ID"] = make_msgid(domain=sender_email.rpartition("@")[2] or None)
    message.set_content(body_html, subtype="html", charset="utf-8")
    return message


def _unverified_context() -> ssl.SSLContext:
    """TLS context that encrypts without checking the relay certificate."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class SmtpRelayClient:
    """Async facade over a blocking SMTP session."""

    def __init__(self, config: SmtpRelayConfig) -> None:
        self.config = config

    def _connect(self) -> smtplib.SMTP:
        config = self.config
        if config.security == "ssl":
            return smtplib.SMTP_SSL(
                config.host,
                config.port,
                timeout=config.timeout,
                context=ssl.create_default_context(),
            )

        smtp = smtplib.SMTP(config.host, config.port, timeout=config.timeout)
        try:
            smtp.ehlo()
            if config.security == "tls":
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            elif smtp.has_extn("starttls"):
                smtp.starttls(context=_unverified_context())
                smtp.ehlo()
        except BaseException:
            smtp.close()
            raise
        return smtp

    def _verify_sync(self) -> None:
        with self._connect() as smtp:
            smtp.login(self.config.username, self.config.password)
            smtp.noop()

    def _send_sync(self, message: EmailMessage) -> None:
        with self._connect() as smtp:
            smtp.login(self.config.username, self.config.password)
            smtp.send_message(message)

    async def verify(self) -> None:
        """Open a session and log in without sending anything.

        Raises:
            RelayConnectionError: If the relay cannot be reached or rejects
                the credentials.
        """
        try:
            await asyncio.to_thread(self._verify_sync)
        except smtplib.SMTPAuthenticationError as e:
            raise RelayConnectionError(
                "SMTP relay rejected the credentials", provider=PROVIDER
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise RelayConnectionError(
                f"Could not connect to SMTP relay {self.config.host}:{self.config.port}: {e}",
                provider=PROVIDER,
            ) from e
        await logger.ainfo("smtp_relay_verified", host=self.config.host, port=self.config.port)

    async def send(self, message: EmailMessage) -> str:
        """Send a message through the relay.

        Returns:
            The ``Message-ID`` header of the sent message.

        Raises:
            AuthExpired: If the relay no longer accepts the stored credentials.
            ProviderRequestError: If the relay refused the sender or recipients.
            ProviderUnavailable: On connection failures and transient errors.
        """
        try:
            await asyncio.to_thread(self._send_sync, message)
        except smtplib.SMTPAuthenticationError as e:
            raise AuthExpired("SMTP relay rejected the stored credentials", provider=PROVIDER) from e
        except (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused) as e:
            raise ProviderRequestError(f"SMTP relay refused the message: {e}", provider=PROVIDER) from e
        except smtplib.SMTPResponseException as e:
            if e.smtp_code >= 500:
                raise ProviderRequestError(
                    f"SMTP relay rejected the message: {e.smtp_code}",
                    provider=PROVIDER,
                    status_code=e.smtp_code,
                ) from e
            raise ProviderUnavailable(
                f"SMTP relay temporary failure: {e.smtp_code}",
                provider=PROVIDER,
                status_code=e.smtp_code,
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise ProviderUnavailable(f"SMTP relay unavailable: {e}", provider=PROVIDER) from e
        return str(message["Message-ID"])
