"""Tests for the OTP status transition table."""

import pytest

from otp_gateway.otp.states import (
    TERMINAL_STATES,
    IllegalTransition,
    OtpStatus,
    can_transition,
    check_transition,
    sources_for,
)


@pytest.mark.parametrize(
    "current, target",
    [
        (OtpStatus.PENDING, OtpStatus.SENT),
        (OtpStatus.PENDING, OtpStatus.FAILED),
        (OtpStatus.SENT, OtpStatus.DELIVERED),
        (OtpStatus.SENT, OtpStatus.EXPIRED),
    ],
)
def test_legal_transitions(current, target):
    assert can_transition(current, target)
    check_transition(current, target)


@pytest.mark.parametrize(
    "current, target",
    [
        (OtpStatus.PENDING, OtpStatus.DELIVERED),
        (OtpStatus.DELIVERED, OtpStatus.PENDING),
        (OtpStatus.DELIVERED, OtpStatus.SENT),
        (OtpStatus.FAILED, OtpStatus.SENT),
        (OtpStatus.EXPIRED, OtpStatus.DELIVERED),
    ],
)
def test_illegal_transitions_raise(current, target):
    assert not can_transition(current, target)
    with pytest.raises(IllegalTransition):
        check_transition(current, target)


def test_terminal_states():
    assert TERMINAL_STATES == {OtpStatus.FAILED, OtpStatus.DELIVERED, OtpStatus.EXPIRED}


def test_sources_for_targets():
    assert sources_for(OtpStatus.DELIVERED) == [OtpStatus.SENT]
    assert sources_for(OtpStatus.EXPIRED) == [OtpStatus.SENT]
    assert sources_for(OtpStatus.SENT) == [OtpStatus.PENDING]
    assert sources_for(OtpStatus.PENDING) == []
