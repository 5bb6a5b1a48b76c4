"""SMS channel — placeholder until an SMS provider is wired in."""

from __future__ import annotations

import logging

from otp_gateway.channels.base import DeliveryChannel, DeliveryResult, FailureReason, OtpMessage

logger = logging.getLogger(__name__)


class SmsChannel(DeliveryChannel):
    """Always reports ``not_implemented``.

    Callers rely on the failure so that no usage is charged for an
    SMS that was never sent.
    """

    @property
    def name(self) -> str:
        return "sms"

    async def send(self, recipient: str, message: OtpMessage) -> DeliveryResult:
        logger.info("SMS delivery requested for %s but the channel is not implemented", recipient)
        return DeliveryResult.failed(
            FailureReason.NOT_IMPLEMENTED,
            provider_message="SMS channel is not implemented yet",
        )
