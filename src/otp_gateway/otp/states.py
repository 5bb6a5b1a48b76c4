"""OTP status enum and the explicit transition table."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum


class Channel(StrEnum):
    EMAIL = "email"
    SMS = "sms"


class OtpStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"
    EXPIRED = "expired"


# Every legal move.  Anything missing here (e.g. pending → delivered,
# delivered → pending) is rejected by ``check_transition``.
TRANSITIONS: dict[OtpStatus, frozenset[OtpStatus]] = {
    OtpStatus.PENDING: frozenset({OtpStatus.SENT, OtpStatus.FAILED}),
    OtpStatus.SENT: frozenset({OtpStatus.DELIVERED, OtpStatus.EXPIRED}),
    OtpStatus.FAILED: frozenset(),
    OtpStatus.DELIVERED: frozenset(),
    OtpStatus.EXPIRED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


class IllegalTransition(ValueError):
    """Raised for a status change the lifecycle does not allow."""

    def __init__(self, current: OtpStatus, target: OtpStatus) -> None:
        super().__init__(f"Illegal OTP status transition {current} → {target}")
        self.current = current
        self.target = target


def can_transition(current: OtpStatus, target: OtpStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: OtpStatus, target: OtpStatus) -> None:
    if not can_transition(current, target):
        raise IllegalTransition(current, target)


def sources_for(target: OtpStatus) -> list[OtpStatus]:
    """All statuses that may legally move to *target*.

    Used as the ``WHERE status IN (...)`` guard of conditional updates.
    """
    return [s for s, targets in TRANSITIONS.items() if target in targets]


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
