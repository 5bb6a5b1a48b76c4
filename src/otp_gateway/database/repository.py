"""Repositories — data access layer for accounts, billing, tenants and OTP attempts."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.models.account import Account
from otp_gateway.models.billing import Plan, Transaction, Wallet
from otp_gateway.models.otp_attempt import OtpAttempt
from otp_gateway.models.tenant import Tenant
from otp_gateway.otp.states import OtpStatus, check_transition, sources_for


class AccountRepository:
    """Encapsulates all database queries related to accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, account_id: int) -> Account | None:
        return await self._session.get(Account, account_id)

    async def find_by_email(self, email: str) -> Account | None:
        stmt = select(Account).where(Account.email == email.strip().lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, account: Account) -> Account:
        account.email = account.email.strip().lower()
        self._session.add(account)
        await self._session.flush()
        return account

    async def set_plan(self, account_id: int, plan_id: int) -> int:
        stmt = update(Account).where(Account.id == account_id).values(plan_id=plan_id)
        result = await self._session.execute(stmt)
        return result.rowcount


class BillingRepository:
    """Read access to plans, wallets and wallet transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_plans(self) -> Sequence[Plan]:
        result = await self._session.execute(select(Plan).order_by(Plan.id))
        return result.scalars().all()

    async def get_plan(self, plan_id: int) -> Plan | None:
        return await self._session.get(Plan, plan_id)

    async def find_wallet(self, account_id: int) -> Wallet | None:
        stmt = select(Wallet).where(Wallet.account_id == account_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_transactions(self, account_id: int) -> Sequence[Transaction]:
        """Newest first."""
        stmt = (
            select(Transaction)
            .where(Transaction.account_id == account_id)
            .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()


class TenantRepository:
    """Queries over API keys, including the atomic usage counter."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_active_by_key(self, key: str) -> Tenant | None:
        stmt = select(Tenant).where(Tenant.key == key, Tenant.active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, tenant_id: int) -> Tenant | None:
        return await self._session.get(Tenant, tenant_id)

    async def find_owned(self, account_id: int, id_or_key: str) -> Tenant | None:
        """Resolve a tenant by numeric id or by key string, scoped to its owner."""
        if id_or_key.isdigit():
            stmt = select(Tenant).where(
                Tenant.id == int(id_or_key), Tenant.account_id == account_id
            )
            tenant = (await self._session.execute(stmt)).scalar_one_or_none()
            if tenant is not None:
                return tenant
        stmt = select(Tenant).where(Tenant.key == id_or_key, Tenant.account_id == account_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def exists(self, id_or_key: str) -> bool:
        """True when a tenant with this id or key exists under any account."""
        clauses = [Tenant.key == id_or_key]
        if id_or_key.isdigit():
            clauses.append(Tenant.id == int(id_or_key))
        for clause in clauses:
            stmt = select(Tenant.id).where(clause)
            if (await self._session.execute(stmt)).first() is not None:
                return True
        return False

    async def list_for_account(self, account_id: int) -> Sequence[Tenant]:
        stmt = (
            select(Tenant)
            .where(Tenant.account_id == account_id)
            .order_by(Tenant.created_at, Tenant.id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def add(self, tenant: Tenant) -> Tenant:
        self._session.add(tenant)
        await self._session.flush()
        return tenant

    async def deactivate(self, tenant: Tenant) -> None:
        tenant.active = False
        await self._session.flush()

    async def delete(self, tenant: Tenant) -> None:
        await self._session.execute(delete(Tenant).where(Tenant.id == tenant.id))

    async def increment_sent_count(self, tenant_id: int) -> int:
        """Bump the counter in one ``UPDATE`` and return the affected row count."""
        stmt = (
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(sent_count=Tenant.sent_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def read_sent_count(self, tenant_id: int) -> int | None:
        stmt = select(Tenant.sent_count).where(Tenant.id == tenant_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()


class OtpAttemptRepository:
    """Append-only store of OTP attempts.

    Status changes go through :meth:`transition`, a conditional update
    keyed on the legal source states of the target status.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, attempt: OtpAttempt) -> OtpAttempt:
        self._session.add(attempt)
        await self._session.flush()
        return attempt

    async def get(self, attempt_id: int) -> OtpAttempt | None:
        stmt = (
            select(OtpAttempt)
            .where(OtpAttempt.id == attempt_id)
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_for_scope(
        self, tenant_id: int, account_id: int, recipient: str
    ) -> Sequence[OtpAttempt]:
        """All attempts for one (tenant, account, recipient), newest first."""
        stmt = (
            select(OtpAttempt)
            .where(
                OtpAttempt.tenant_id == tenant_id,
                OtpAttempt.account_id == account_id,
                OtpAttempt.recipient == recipient,
            )
            .order_by(OtpAttempt.created_at.desc(), OtpAttempt.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_for_account(self, account_id: int, limit: int = 100, offset: int = 0) -> Sequence[OtpAttempt]:
        stmt = (
            select(OtpAttempt)
            .where(OtpAttempt.account_id == account_id)
            .order_by(OtpAttempt.created_at.desc(), OtpAttempt.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def transition(
        self,
        attempt_id: int,
        target: OtpStatus,
        expected: OtpStatus | None = None,
        delivered_at: datetime | None = None,
    ) -> bool:
        """Compare-and-set the status of one attempt.

        The row only changes when its current status is *expected* (or,
        when omitted, any legal source of *target*).  Returns ``True``
        when this call won the update.  Raises ``IllegalTransition`` if
        *expected* → *target* is not in the transition table.
        """
        if expected is not None:
            check_transition(expected, target)
            sources = [expected]
        else:
            sources = sources_for(target)
        if not sources:
            return False

        values: dict = {"status": target}
        if delivered_at is not None:
            values["delivered_at"] = delivered_at

        stmt = (
            update(OtpAttempt)
            .where(OtpAttempt.id == attempt_id, OtpAttempt.status.in_(sources))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
