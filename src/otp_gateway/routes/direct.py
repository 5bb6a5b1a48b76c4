"""Direct-URL router — API key embedded in the path.

Endpoints (GET and POST)
------------------------
/api/{api_key}/send/{recipient}
/api/{api_key}/verify/{recipient}/{otp}

Legacy form (POST only)
-----------------------
/api/otp/send/{api_key}/{recipient}
/api/otp/verify/{api_key}/{recipient}/{otp}

Meant for integrations that can only fire a URL.  The key is a bearer
secret sitting in the URL, so it leaks into any log that records paths;
the request logger in ``main`` masks it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from otp_gateway.models.tenant import Tenant
from otp_gateway.otp.lifecycle import OtpLifecycleManager
from otp_gateway.routes.deps import get_lifecycle, tenant_from_path
from otp_gateway.routes.otp import send_response, verify_response

router = APIRouter(prefix="/api", tags=["direct"])


@router.api_route("/otp/send/{api_key}/{recipient}", methods=["POST"])
@router.api_route("/{api_key}/send/{recipient}", methods=["GET", "POST"])
async def direct_send(
    recipient: str,
    channel: str = Query("email"),
    tenant: Tenant = Depends(tenant_from_path),
    lifecycle: OtpLifecycleManager = Depends(get_lifecycle),
):
    outcome = await lifecycle.request_send(tenant, recipient, channel)
    return send_response(outcome)


@router.api_route("/otp/verify/{api_key}/{recipient}/{otp}", methods=["POST"])
@router.api_route("/{api_key}/verify/{recipient}/{otp}", methods=["GET", "POST"])
async def direct_verify(
    recipient: str,
    otp: str,
    tenant: Tenant = Depends(tenant_from_path),
    lifecycle: OtpLifecycleManager = Depends(get_lifecycle),
):
    outcome = await lifecycle.verify(tenant, recipient, otp)
    return verify_response(outcome)
