"""Base channel — abstract interface every delivery channel must implement."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum


class FailureReason(StrEnum):
    AUTHENTICATION_FAILED = "authentication_failed"
    TIMEOUT = "timeout"
    TLS_ERROR = "tls_error"
    NOT_IMPLEMENTED = "not_implemented"
    UNCLASSIFIED = "unclassified"


@dataclass
class OtpMessage:
    """What gets delivered: the code and how long it stays valid."""

    code: str
    ttl_minutes: int
    subject: str = "Your Verification Code"

    @property
    def text(self) -> str:
        return (
            f"Your verification code is: {self.code}. "
            f"It will expire in {self.ttl_minutes} minutes."
        )

    @property
    def html(self) -> str:
        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            "<h2>Verification Code</h2>"
            "<p>Your verification code is:</p>"
            '<h1 style="font-size: 36px; letter-spacing: 5px; font-weight: bold; color: #4a6ee0;">'
            f"{self.code}</h1>"
            f"<p>This code will expire in {self.ttl_minutes} minutes.</p>"
            "<p>If you didn't request this code, you can ignore this message.</p>"
            "</div>"
        )


@dataclass
class DeliveryResult:
    """Value object returned by a channel after a send attempt."""

    delivered: bool
    failure: FailureReason | None = None
    provider_message: str | None = None
    hints: list[str] = field(default_factory=list)
    message_id: str | None = None

    @classmethod
    def ok(cls, message_id: str | None = None) -> "DeliveryResult":
        return cls(delivered=True, message_id=message_id)

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        provider_message: str | None = None,
        hints: list[str] | None = None,
    ) -> "DeliveryResult":
        return cls(
            delivered=False,
            failure=reason,
            provider_message=provider_message,
            hints=list(hints or []),
        )


class DeliveryChannel(ABC):
    """Abstract base class for all OTP delivery channels.

    ``send`` never raises for provider problems: every failure comes
    back as a ``DeliveryResult`` with a classified ``failure`` reason.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel tag stored on the attempt (``email``, ``sms``)."""

    @abstractmethod
    async def send(self, recipient: str, message: OtpMessage) -> DeliveryResult:
        """Deliver *message* to *recipient*.

        Parameters
        ----------
        recipient:
            Free-form address: an email address or a phone number.
        message:
            The code and its validity window.
        """
