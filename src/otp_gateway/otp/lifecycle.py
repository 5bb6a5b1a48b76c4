"""OTP lifecycle manager — send and verify, driven by the status table.

Flow
----
send:   create ``pending`` → deliver → ``sent`` (+1 usage) or ``failed``
verify: newest attempt with the submitted code → ``delivered`` or ``expired``

Every status change is a conditional update (see
``OtpAttemptRepository.transition``), so two concurrent verifications
of the same code can never both succeed.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import re
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.channels.base import DeliveryChannel, DeliveryResult, FailureReason, OtpMessage
from otp_gateway.channels.email import EmailChannel, EmailCredential
from otp_gateway.channels.sms import SmsChannel
from otp_gateway.config import settings
from otp_gateway.database.repository import OtpAttemptRepository
from otp_gateway.errors import (
    AlreadyUsed,
    AuthError,
    ChannelNotImplemented,
    DeliveryFailed,
    Expired,
    InvalidCode,
    NotFound,
    OtpGatewayError,
    StorageError,
    ValidationError,
)
from otp_gateway.models.otp_attempt import OtpAttempt
from otp_gateway.models.tenant import Tenant
from otp_gateway.otp.generator import generate_code
from otp_gateway.otp.states import Channel, OtpStatus, ensure_utc, utcnow
from otp_gateway.services.credentials import CredentialVault
from otp_gateway.services.usage import UsageAccounting

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[Tenant, Channel], DeliveryChannel]

# CR/LF and other control characters would end up in mail headers.
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_FAILURE_MESSAGES = {
    FailureReason.AUTHENTICATION_FAILED: "Email authentication failed",
    FailureReason.TIMEOUT: "Email provider did not respond in time",
    FailureReason.TLS_ERROR: "Secure connection to the email provider failed",
    FailureReason.UNCLASSIFIED: "Failed to send OTP via email",
}


@dataclass
class SendOutcome:
    attempt_id: int
    recipient: str
    channel: Channel
    expires_at: datetime


@dataclass
class VerifyOutcome:
    attempt_id: int
    recipient: str
    delivered_at: datetime


class OtpLifecycleManager:
    """Creates OTP attempts, delivers them and verifies submitted codes.

    The account scope is always the tenant's owning account, so an
    attempt is only ever visible to the (tenant, account) that created it.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        vault: CredentialVault | None = None,
        channel_factory: ChannelFactory | None = None,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[], str] | None = None,
        ttl_seconds: int | None = None,
        delivery_timeout: float | None = None,
    ) -> None:
        self._session = session
        self._attempts = OtpAttemptRepository(session)
        self._usage = UsageAccounting(session)
        self._vault = vault or CredentialVault()
        self._channel_factory = channel_factory
        self._clock = clock
        self._generate = code_generator or (lambda: generate_code(length=settings.otp_length))
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.otp_ttl_seconds)
        self._delivery_timeout = (
            delivery_timeout if delivery_timeout is not None else settings.delivery_timeout_seconds
        )

    # ── Send ─────────────────────────────────────────────

    async def request_send(
        self, tenant: Tenant, recipient: str, channel: str | None = None
    ) -> SendOutcome:
        """Generate, persist and deliver a new code for *recipient*.

        Raises a classified ``OtpGatewayError`` on any failure.  A failed
        delivery keeps its attempt row (status ``failed``).
        """
        recipient = (recipient or "").strip()
        if not recipient:
            raise ValidationError("Recipient is required")
        if _CONTROL_CHARS.search(recipient):
            raise ValidationError("Recipient contains invalid characters")
        try:
            channel_tag = Channel((channel or Channel.EMAIL).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unsupported channel {channel!r}", supported=[c.value for c in Channel]
            ) from None
        if not tenant.active:
            raise AuthError("Invalid or inactive API key")
        if channel_tag == Channel.EMAIL and not tenant.has_email_credential:
            raise ValidationError("Email configuration not found or incomplete")

        now = self._clock()
        attempt = OtpAttempt(
            tenant_id=tenant.id,
            account_id=tenant.account_id,
            recipient=recipient,
            channel=channel_tag,
            code=self._generate(),
            expires_at=now + self._ttl,
            status=OtpStatus.PENDING,
            created_at=now,
        )
        async with self._storage():
            await self._attempts.add(attempt)
            await self._session.commit()
        logger.info(
            "OTP attempt %s created for %s via %s (tenant %s)",
            attempt.id, recipient, channel_tag, tenant.id,
        )

        try:
            delivery_channel = self._channel_for(tenant, channel_tag)
        except OtpGatewayError:
            await self._mark(attempt.id, OtpStatus.FAILED)
            raise

        message = OtpMessage(code=attempt.code, ttl_minutes=int(self._ttl.total_seconds() // 60))
        result = await self._deliver(delivery_channel, recipient, message)

        if not result.delivered:
            await self._mark(attempt.id, OtpStatus.FAILED)
            raise self._failure_error(result, tenant.provider)

        async with self._storage():
            if await self._attempts.transition(attempt.id, OtpStatus.SENT, expected=OtpStatus.PENDING):
                await self._usage.increment_sent_count(tenant.id)
            else:
                logger.warning("Attempt %s left pending state during delivery", attempt.id)
            await self._session.commit()

        logger.info("OTP attempt %s sent to %s", attempt.id, recipient)
        return SendOutcome(
            attempt_id=attempt.id,
            recipient=recipient,
            channel=channel_tag,
            expires_at=attempt.expires_at,
        )

    def _channel_for(self, tenant: Tenant, channel: Channel) -> DeliveryChannel:
        if self._channel_factory is not None:
            return self._channel_factory(tenant, channel)
        if channel == Channel.SMS:
            return SmsChannel()
        secret = self._vault.decrypt(tenant.sender_secret, bound_to=tenant.key)
        credential = EmailCredential(
            address=tenant.sender_email, secret=secret, provider=tenant.provider
        )
        return EmailChannel(credential, timeout=self._delivery_timeout)

    async def _deliver(
        self, channel: DeliveryChannel, recipient: str, message: OtpMessage
    ) -> DeliveryResult:
        try:
            return await asyncio.wait_for(
                channel.send(recipient, message), timeout=self._delivery_timeout
            )
        except TimeoutError:
            logger.warning("Delivery to %s via %s timed out", recipient, channel.name)
            return DeliveryResult.failed(
                FailureReason.TIMEOUT,
                provider_message=f"No response within {self._delivery_timeout:g}s",
            )
        except Exception as exc:
            logger.exception("Delivery to %s via %s raised", recipient, channel.name)
            return DeliveryResult.failed(FailureReason.UNCLASSIFIED, provider_message=str(exc))

    @staticmethod
    def _failure_error(result: DeliveryResult, provider: str) -> OtpGatewayError:
        if result.failure == FailureReason.NOT_IMPLEMENTED:
            return ChannelNotImplemented("SMS channel is not implemented yet")
        reason = result.failure or FailureReason.UNCLASSIFIED
        message = _FAILURE_MESSAGES.get(reason, _FAILURE_MESSAGES[FailureReason.UNCLASSIFIED])
        if reason == FailureReason.AUTHENTICATION_FAILED and provider:
            message = f"{provider.capitalize()} authentication failed"
        return DeliveryFailed(
            message,
            reason=reason.value,
            provider_message=result.provider_message,
            hints=result.hints,
        )

    # ── Verify ───────────────────────────────────────────

    async def verify(self, tenant: Tenant, recipient: str, code: str) -> VerifyOutcome:
        """Consume *code* for *recipient*; succeeds at most once per code."""
        recipient = (recipient or "").strip()
        submitted = (code or "").strip().upper()
        if not recipient or not submitted:
            raise ValidationError("Recipient and OTP are required")

        async with self._storage():
            attempts = await self._attempts.list_for_scope(tenant.id, tenant.account_id, recipient)
        if not attempts:
            raise NotFound("No OTP found for this recipient")

        match = next(
            (a for a in attempts if hmac.compare_digest(a.code.encode(), submitted.encode())),
            None,
        )
        if match is None:
            logger.info("Wrong code submitted for %s (tenant %s)", recipient, tenant.id)
            raise InvalidCode()

        return await self._consume(match)

    async def _consume(self, attempt: OtpAttempt) -> VerifyOutcome:
        if attempt.status == OtpStatus.DELIVERED:
            raise AlreadyUsed()
        if attempt.status == OtpStatus.EXPIRED:
            raise Expired()
        if attempt.status != OtpStatus.SENT:
            # pending or failed: the code was never confirmed delivered
            raise InvalidCode("OTP was not delivered. Please request a new one.")

        now = self._clock()
        if ensure_utc(attempt.expires_at) <= now:
            async with self._storage():
                await self._attempts.transition(attempt.id, OtpStatus.EXPIRED, expected=OtpStatus.SENT)
                await self._session.commit()
            logger.info("OTP attempt %s expired", attempt.id)
            raise Expired()

        async with self._storage():
            won = await self._attempts.transition(
                attempt.id, OtpStatus.DELIVERED, expected=OtpStatus.SENT, delivered_at=now
            )
            await self._session.commit()
        if won:
            logger.info("OTP attempt %s verified", attempt.id)
            return VerifyOutcome(attempt_id=attempt.id, recipient=attempt.recipient, delivered_at=now)

        async with self._storage():
            current = await self._attempts.get(attempt.id)
        if current is not None and current.status == OtpStatus.EXPIRED:
            raise Expired()
        logger.info("OTP attempt %s lost a concurrent verification", attempt.id)
        raise AlreadyUsed()

    # ── Storage helpers ──────────────────────────────────

    async def _mark(self, attempt_id: int, status: OtpStatus) -> None:
        async with self._storage():
            await self._attempts.transition(attempt_id, status)
            await self._session.commit()

    @asynccontextmanager
    async def _storage(self) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("Storage failure: %s", exc)
            await self._session.rollback()
            raise StorageError("Storage is unavailable, please retry later") from exc
