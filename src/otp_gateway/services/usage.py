"""Usage accounting — per-tenant sent-OTP counter and its report."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.database.repository import TenantRepository
from otp_gateway.errors import NotFound

logger = logging.getLogger(__name__)


@dataclass
class TenantUsage:
    tenant_id: int
    key: str
    count: int
    active: bool
    tenant_created_at: datetime


@dataclass
class UsageReport:
    """Usage of an account's first API key plus a per-key breakdown."""

    count: int
    tenant_created_at: datetime
    tenants: list[TenantUsage]


class UsageAccounting:
    """Increments and reports the sent counter stored on each tenant."""

    def __init__(self, session: AsyncSession) -> None:
        self._tenants = TenantRepository(session)

    async def increment_sent_count(self, tenant_id: int) -> None:
        """Add one successful send to *tenant_id*.

        Runs as a single storage-level increment, so concurrent sends
        never lose updates.  Call exactly once per confirmed delivery.
        """
        updated = await self._tenants.increment_sent_count(tenant_id)
        if updated != 1:
            # The key was deleted between delivery and accounting.
            logger.warning("Usage not recorded: tenant %s no longer exists", tenant_id)
            return
        logger.debug("Usage incremented for tenant %s", tenant_id)

    async def report(self, account_id: int) -> UsageReport:
        tenants = await self._tenants.list_for_account(account_id)
        if not tenants:
            raise NotFound("No API usage record found for this user")

        breakdown = [
            TenantUsage(
                tenant_id=t.id,
                key=t.key,
                count=t.sent_count or 0,
                active=t.active,
                tenant_created_at=t.created_at,
            )
            for t in tenants
        ]
        first = breakdown[0]
        return UsageReport(
            count=first.count,
            tenant_created_at=first.tenant_created_at,
            tenants=breakdown,
        )
