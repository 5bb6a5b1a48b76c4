"""Email channel — sends OTP codes through the tenant's own SMTP account."""

from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

import aiosmtplib

from otp_gateway.channels.base import DeliveryChannel, DeliveryResult, FailureReason, OtpMessage
from otp_gateway.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpProvider:
    hostname: str
    port: int
    use_tls: bool = False

    @property
    def start_tls(self) -> bool:
        return not self.use_tls


PROVIDERS: dict[str, SmtpProvider] = {
    "gmail": SmtpProvider("smtp.gmail.com", 587),
    "outlook": SmtpProvider("smtp-mail.outlook.com", 587),
    "hotmail": SmtpProvider("smtp-mail.outlook.com", 587),
    "office365": SmtpProvider("smtp.office365.com", 587),
    "yahoo": SmtpProvider("smtp.mail.yahoo.com", 465, use_tls=True),
    "zoho": SmtpProvider("smtp.zoho.com", 465, use_tls=True),
}

CUSTOM_PROVIDER = "custom"

# Remediation hints surfaced when a well-known provider rejects the login.
AUTH_HINTS: dict[str, list[str]] = {
    "gmail": [
        "The App Password may have been entered incorrectly (16 characters, no spaces)",
        "2-Step Verification may not be enabled on the Gmail account",
        "Google Account security settings may be blocking the sign-in attempt",
        "Create a new API key with a fresh App Password",
    ],
    "yahoo": [
        "Yahoo Mail requires an app password generated under Account Security",
        "Create a new API key with a fresh app password",
    ],
    "outlook": [
        "SMTP AUTH may be disabled for this mailbox",
        "Accounts with two-step verification need an app password",
    ],
    "office365": [
        "SMTP AUTH may be disabled for this mailbox by the tenant administrator",
        "Security defaults can block basic authentication",
    ],
}
AUTH_HINTS["hotmail"] = AUTH_HINTS["outlook"]

_AUTH_MARKERS = (
    "535",
    "534",
    "authentication failed",
    "password not accepted",
    "invalid login",
    "invalid credentials",
    "username and password not accepted",
)
_TLS_MARKERS = ("ssl", "tls", "certificate")


def supported_providers() -> list[str]:
    return [*PROVIDERS, CUSTOM_PROVIDER]


def resolve_provider(provider: str) -> SmtpProvider:
    """Map a provider tag to SMTP connection details.

    Unknown tags fall back to the ``custom`` SMTP server from settings.
    """
    known = PROVIDERS.get(provider.lower())
    if known is not None:
        return known
    return SmtpProvider(settings.smtp_host, settings.smtp_port, use_tls=settings.smtp_use_tls)


@dataclass(frozen=True)
class EmailCredential:
    """Decrypted sender account of a tenant."""

    address: str
    secret: str
    provider: str = "gmail"

    def __repr__(self) -> str:
        return f"EmailCredential(address={self.address!r}, provider={self.provider!r})"


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_smtp_error(exc: BaseException, provider: str) -> DeliveryResult:
    """Turn a provider exception into a classified ``DeliveryResult``."""
    text = str(exc).lower()
    chain = _exception_chain(exc)

    if any(isinstance(e, aiosmtplib.SMTPAuthenticationError) for e in chain) or (
        isinstance(exc, aiosmtplib.SMTPResponseException) and exc.code in (534, 535)
    ) or any(marker in text for marker in _AUTH_MARKERS):
        return DeliveryResult.failed(
            FailureReason.AUTHENTICATION_FAILED,
            provider_message=str(exc),
            hints=AUTH_HINTS.get(provider.lower(), []),
        )

    if any(isinstance(e, TimeoutError) for e in chain):
        return DeliveryResult.failed(FailureReason.TIMEOUT, provider_message=str(exc) or "timed out")

    if any(isinstance(e, ssl.SSLError) for e in chain) or any(m in text for m in _TLS_MARKERS):
        return DeliveryResult.failed(FailureReason.TLS_ERROR, provider_message=str(exc))

    return DeliveryResult.failed(FailureReason.UNCLASSIFIED, provider_message=str(exc))


class EmailChannel(DeliveryChannel):
    """Sends OTP emails over async SMTP using a tenant credential."""

    def __init__(self, credential: EmailCredential, timeout: float | None = None) -> None:
        self._credential = credential
        self._smtp = resolve_provider(credential.provider)
        self._timeout = timeout if timeout is not None else settings.delivery_timeout_seconds

    @property
    def name(self) -> str:
        return "email"

    def build_message(self, recipient: str, message: OtpMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = self._credential.address
        msg["To"] = recipient
        msg.set_content(message.text)
        msg.add_alternative(message.html, subtype="html")
        return msg

    async def send(self, recipient: str, message: OtpMessage) -> DeliveryResult:
        logger.info(
            "Sending OTP email to %s via %s (%s:%s)",
            recipient,
            self._credential.provider,
            self._smtp.hostname,
            self._smtp.port,
        )
        try:
            msg = self.build_message(recipient, message)
            _errors, response = await aiosmtplib.send(
                msg,
                hostname=self._smtp.hostname,
                port=self._smtp.port,
                username=self._credential.address,
                password=self._credential.secret,
                use_tls=self._smtp.use_tls,
                start_tls=self._smtp.start_tls,
                timeout=self._timeout,
            )
        except (
            aiosmtplib.SMTPException, ssl.SSLError, OSError, asyncio.TimeoutError, ValueError
        ) as exc:
            result = classify_smtp_error(exc, self._credential.provider)
            logger.warning(
                "OTP email to %s failed (%s): %s", recipient, result.failure, exc
            )
            return result

        logger.info("OTP email sent to %s", recipient)
        return DeliveryResult.ok(message_id=response)
