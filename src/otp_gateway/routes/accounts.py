"""Account router — registration, login and API-key management.

Endpoints
---------
POST   /api/user/register                       → create account, return token
POST   /api/user/login                          → return token
POST   /api/user/create-api-key        (Bearer) → issue a key with its email sender
GET    /api/user/api-keys              (Bearer) → list keys (secrets never returned)
POST   /api/user/api-key/{id}/deactivate (Bearer) → switch a key off
DELETE /api/user/api-key/{id}          (Bearer) → delete by id or key string
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.channels.email import supported_providers
from otp_gateway.config import settings
from otp_gateway.database.engine import get_session
from otp_gateway.database.repository import AccountRepository, TenantRepository
from otp_gateway.errors import AuthError, NotFound, ValidationError
from otp_gateway.models.account import Account
from otp_gateway.models.tenant import Tenant
from otp_gateway.routes.deps import current_account_id, mask_key
from otp_gateway.services.credentials import CredentialVault
from otp_gateway.services.security import (
    create_access_token,
    generate_api_key,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["accounts"])

GMAIL_APP_PASSWORD_WARNING = (
    "IMPORTANT: For Gmail accounts, you must use an App Password instead of your "
    "regular password. Regular passwords won't work due to Gmail's security policies."
)


# ── Request models ───────────────────────────────────────

class RegisterRequest(BaseModel):
    companyName: str = ""
    email: str = ""
    password: str = ""
    contactNumber: str = ""
    taxIdentificationNumber: str = ""
    businessPan: str = ""
    registeredBusinessId: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class CreateApiKeyRequest(BaseModel):
    email: str = ""
    emailPassword: str = ""
    emailService: str = "gmail"


def _serialize_tenant(tenant: Tenant) -> dict:
    return {
        "id": tenant.id,
        "key": tenant.key,
        "email": tenant.sender_email,
        "service": tenant.provider,
        "active": tenant.active,
        "numberOfSentOTPs": tenant.sent_count,
        "createdAt": tenant.created_at.isoformat() if tenant.created_at else None,
    }


# ── Authentication ───────────────────────────────────────

@router.post("/register")
async def register(body: RegisterRequest, session: AsyncSession = Depends(get_session)):
    """Create a company account and return a bearer token."""
    if not body.email or not body.password or not body.companyName:
        raise HTTPException(status_code=400, detail="Missing required fields")

    accounts = AccountRepository(session)
    if await accounts.find_by_email(body.email) is not None:
        raise HTTPException(status_code=409, detail="User already exists")

    account = await accounts.add(
        Account(
            company_name=body.companyName,
            email=body.email,
            password_hash=hash_password(body.password),
            contact_number=body.contactNumber,
            tax_identification_number=body.taxIdentificationNumber,
            business_pan=body.businessPan,
            registered_business_id=body.registeredBusinessId,
        )
    )
    logger.info("Registered account %s (%s)", account.id, account.email)
    return {
        "success": True,
        "message": "User registered successfully",
        "token": create_access_token(account.id),
    }


@router.post("/login")
async def login(body: LoginRequest, session: AsyncSession = Depends(get_session)):
    """Exchange email + password for a bearer token."""
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    account = await AccountRepository(session).find_by_email(body.email)
    if account is None or not verify_password(body.password, account.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "success": True,
        "message": "Logged in successfully",
        "token": create_access_token(account.id),
    }


# ── API keys ─────────────────────────────────────────────

@router.post("/create-api-key")
async def create_api_key(
    body: CreateApiKeyRequest,
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    """Issue a new API key that sends OTPs from the given email account."""
    if not body.email or not body.emailPassword:
        raise ValidationError("Email and password are required for OTP sending")
    service = (body.emailService or "gmail").strip().lower()
    if service not in supported_providers():
        raise ValidationError(
            f"Unsupported email service {body.emailService!r}",
            supported=supported_providers(),
        )
    if await AccountRepository(session).get(account_id) is None:
        raise AuthError("Account no longer exists")

    key = generate_api_key()
    tenant = await TenantRepository(session).add(
        Tenant(
            account_id=account_id,
            key=key,
            sender_email=body.email,
            sender_secret=CredentialVault().encrypt(body.emailPassword, bound_to=key),
            provider=service,
        )
    )
    logger.info("API key %s issued for account %s", mask_key(key), account_id)

    base_url = f"{settings.api_base_url.rstrip('/')}/api/{key}"
    response = {
        "success": True,
        "message": "API key created successfully",
        "apiKey": _serialize_tenant(tenant),
        "apiEndpoints": {
            "baseUrl": base_url,
            "usage": {
                "send": f"{base_url}/send/{{recipient}}",
                "verify": f"{base_url}/verify/{{recipient}}/{{otp}}",
            },
        },
    }
    if service == "gmail" and body.email.lower().endswith("@gmail.com"):
        response["gmailWarning"] = GMAIL_APP_PASSWORD_WARNING
    return response


@router.get("/api-keys")
async def get_api_keys(
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    tenants = await TenantRepository(session).list_for_account(account_id)
    return {
        "success": True,
        "message": "API keys retrieved successfully",
        "apiKeys": [_serialize_tenant(t) for t in tenants],
    }


async def _owned_tenant(session: AsyncSession, account_id: int, api_key_id: str) -> Tenant:
    tenants = TenantRepository(session)
    tenant = await tenants.find_owned(account_id, api_key_id)
    if tenant is not None:
        return tenant
    if await tenants.exists(api_key_id):
        raise AuthError("You don't have permission to modify this API key.")
    raise NotFound("API key not found. Please check the key ID and try again.")


@router.post("/api-key/{api_key_id}/deactivate")
async def deactivate_api_key(
    api_key_id: str,
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    """Switch a key off; its OTP history and counters are kept."""
    tenant = await _owned_tenant(session, account_id, api_key_id)
    await TenantRepository(session).deactivate(tenant)
    logger.info("API key %s deactivated", mask_key(tenant.key))
    return {"success": True, "message": "API key deactivated successfully"}


@router.delete("/api-key/{api_key_id}")
async def delete_api_key(
    api_key_id: str,
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    tenant = await _owned_tenant(session, account_id, api_key_id)
    await TenantRepository(session).delete(tenant)
    logger.info("API key %s deleted", mask_key(tenant.key))
    return {"success": True, "message": "API key deleted successfully"}
