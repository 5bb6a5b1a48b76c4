"""Error taxonomy — every failure an integrator can branch on.

Each error carries a stable machine-readable ``code`` plus a human
``message``.  The HTTP layer turns them into the uniform
``{"success": false, "message": ..., "error": <code>}`` envelope.
"""

from __future__ import annotations

from typing import Any


class OtpGatewayError(Exception):
    """Base class for all classified failures."""

    code = "error"
    status_code = 200

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "error": self.code,
        }
        payload.update(self.extra)
        return payload


class ValidationError(OtpGatewayError):
    code = "validation_error"


class AuthError(OtpGatewayError):
    """Bad, missing or inactive API key / account token."""

    code = "auth_error"
    status_code = 403

    def __init__(self, message: str, *, missing: bool = False, **extra: Any) -> None:
        super().__init__(message, **extra)
        if missing:
            self.status_code = 401


class NotFound(OtpGatewayError):
    code = "not_found"


class Expired(OtpGatewayError):
    code = "expired"

    def __init__(self, message: str = "OTP has expired. Please request a new one.", **extra: Any) -> None:
        super().__init__(message, expired=True, **extra)


class AlreadyUsed(OtpGatewayError):
    code = "already_used"

    def __init__(self, message: str = "OTP has already been used.", **extra: Any) -> None:
        super().__init__(message, **extra)


class InvalidCode(OtpGatewayError):
    code = "invalid_code"

    def __init__(self, message: str = "Invalid OTP. Please check and try again.", **extra: Any) -> None:
        super().__init__(message, **extra)


class DeliveryFailed(OtpGatewayError):
    """The channel could not deliver the code; the attempt is stored as failed."""

    code = "delivery_failed"

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        provider_message: str | None = None,
        hints: list[str] | None = None,
    ) -> None:
        extra: dict[str, Any] = {"reason": reason}
        if provider_message:
            extra["details"] = provider_message
        if hints:
            extra["hints"] = hints
        super().__init__(message, **extra)
        self.reason = reason
        self.provider_message = provider_message
        self.hints = hints or []


class ChannelNotImplemented(OtpGatewayError):
    code = "not_implemented"


class StorageError(OtpGatewayError):
    code = "storage_error"
    status_code = 500


class GenerationError(OtpGatewayError):
    code = "generation_error"
    status_code = 500


class CredentialError(OtpGatewayError):
    """Stored delivery credential could not be decrypted or is tampered."""

    code = "credential_error"
