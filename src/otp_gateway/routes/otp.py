"""OTP router — send/verify for client apps, logs and usage for accounts.

Endpoints
---------
POST /api/send-otp       (x-api-key)      → generate + deliver an OTP
POST /api/verify-otp     (x-api-key)      → verify a submitted OTP
GET  /api/otp-logs       (Bearer token)   → the account's OTP history
GET  /api/usage          (Bearer token)   → sent-OTP counters

Logical failures keep HTTP 200 and report ``success: false``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.database.engine import get_session
from otp_gateway.database.repository import OtpAttemptRepository
from otp_gateway.models.otp_attempt import OtpAttempt
from otp_gateway.models.tenant import Tenant
from otp_gateway.otp.lifecycle import OtpLifecycleManager, SendOutcome, VerifyOutcome
from otp_gateway.routes.deps import current_account_id, get_lifecycle, tenant_from_header
from otp_gateway.services.usage import UsageAccounting

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["otp"])


# ── Request models ───────────────────────────────────────

class SendOtpRequest(BaseModel):
    recipient: str = ""
    channel: str = "email"


class VerifyOtpRequest(BaseModel):
    recipient: str = ""
    otp: str = ""


# ── Response builders (shared with the direct-URL routes) ─

def send_response(outcome: SendOutcome) -> dict:
    return {
        "success": True,
        "message": "OTP sent successfully",
        "recipient": outcome.recipient,
        "channel": outcome.channel.value,
        "expiry": outcome.expires_at.isoformat(),
    }


def verify_response(outcome: VerifyOutcome) -> dict:
    return {
        "success": True,
        "message": "OTP verified successfully",
        "verified": True,
        "recipient": outcome.recipient,
    }


def serialize_attempt(attempt: OtpAttempt) -> dict:
    """Log entry for account dashboards; the code itself is never returned."""
    return {
        "id": attempt.id,
        "apiKey": attempt.tenant_id,
        "recipient": attempt.recipient,
        "channel": attempt.channel.value,
        "status": attempt.status.value,
        "otpExpiry": attempt.expires_at.isoformat(),
        "sentAt": attempt.created_at.isoformat() if attempt.created_at else None,
        "deliveredAt": attempt.delivered_at.isoformat() if attempt.delivered_at else None,
    }


# ── Endpoints ────────────────────────────────────────────

@router.post("/send-otp")
async def send_otp(
    body: SendOtpRequest,
    tenant: Tenant = Depends(tenant_from_header),
    lifecycle: OtpLifecycleManager = Depends(get_lifecycle),
):
    """Generate an OTP for ``recipient`` and deliver it over ``channel``."""
    outcome = await lifecycle.request_send(tenant, body.recipient, body.channel)
    return send_response(outcome)


@router.post("/verify-otp")
async def verify_otp(
    body: VerifyOtpRequest,
    tenant: Tenant = Depends(tenant_from_header),
    lifecycle: OtpLifecycleManager = Depends(get_lifecycle),
):
    """Verify (and consume) an OTP for ``recipient``."""
    outcome = await lifecycle.verify(tenant, body.recipient, body.otp)
    return verify_response(outcome)


@router.get("/otp-logs")
async def get_otp_logs(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    """Return the authenticated account's OTP attempts, newest first."""
    attempts = await OtpAttemptRepository(session).list_for_account(
        account_id, limit=limit, offset=offset
    )
    return {
        "success": True,
        "message": "OTP logs retrieved successfully",
        "otpLogs": [serialize_attempt(a) for a in attempts],
    }


@router.get("/usage")
async def get_api_usage(
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    """Return sent-OTP counters for the authenticated account's API keys."""
    report = await UsageAccounting(session).report(account_id)
    return {
        "success": True,
        "message": "API usage retrieved successfully",
        "apiUsage": {
            "numberOfSentOTPs": report.count,
            "createdAt": report.tenant_created_at.isoformat(),
            "tenants": [
                {
                    "id": t.tenant_id,
                    "numberOfSentOTPs": t.count,
                    "active": t.active,
                    "createdAt": t.tenant_created_at.isoformat(),
                }
                for t in report.tenants
            ],
        },
    }
