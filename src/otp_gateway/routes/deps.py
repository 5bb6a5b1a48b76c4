"""Request dependencies — API-key and account-token authentication."""

from __future__ import annotations

import logging
import re

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.database.engine import get_session
from otp_gateway.database.repository import TenantRepository
from otp_gateway.errors import AuthError
from otp_gateway.models.tenant import Tenant
from otp_gateway.otp.lifecycle import OtpLifecycleManager
from otp_gateway.services.security import decode_access_token

logger = logging.getLogger(__name__)

API_KEY_PATTERN = re.compile(r"^[a-f0-9]{32}$")

_bearer_scheme = HTTPBearer(auto_error=False)


def mask_key(key: str) -> str:
    """Show only the edges of an API key: ``ab12…9f0e``."""
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}…{key[-4:]}"


async def _resolve_tenant(session: AsyncSession, key: str | None) -> Tenant:
    if not key:
        raise AuthError("API key is required", missing=True)
    tenant = await TenantRepository(session).find_active_by_key(key.strip())
    if tenant is None:
        logger.info("Rejected API key %s", mask_key(key))
        raise AuthError("Invalid or inactive API key")
    return tenant


async def tenant_from_header(
    x_api_key: str | None = Header(None, alias="x-api-key"),
    session: AsyncSession = Depends(get_session),
) -> Tenant:
    """Authenticate a client application by its ``x-api-key`` header."""
    return await _resolve_tenant(session, x_api_key)


async def tenant_from_path(
    api_key: str,
    session: AsyncSession = Depends(get_session),
) -> Tenant:
    """Authenticate by the key embedded in the URL path.

    Low-friction integration mode: the key travels in the URL, so it
    can end up in proxy logs and referrers.
    """
    if not API_KEY_PATTERN.match(api_key or ""):
        raise AuthError("Invalid or inactive API key")
    return await _resolve_tenant(session, api_key)


async def current_account_id(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> int:
    """Account id from a valid ``Authorization: Bearer <token>`` header."""
    if creds is None or not creds.credentials:
        raise AuthError("Access denied. No token provided.", missing=True)
    return decode_access_token(creds.credentials)


def get_lifecycle(session: AsyncSession = Depends(get_session)) -> OtpLifecycleManager:
    return OtpLifecycleManager(session)
