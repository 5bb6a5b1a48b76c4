"""Shared fixtures: a fresh in-memory database per test plus seed helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from otp_gateway.channels.base import DeliveryChannel, DeliveryResult, OtpMessage
from otp_gateway.database.engine import build_engine, create_tables
from otp_gateway.models.account import Account
from otp_gateway.models.billing import Plan, Transaction, TransactionType, Wallet
from otp_gateway.models.otp_attempt import OtpAttempt  # noqa: F401  (register table)
from otp_gateway.models.tenant import Tenant
from otp_gateway.services.credentials import CredentialVault
from otp_gateway.services.security import generate_api_key, hash_password

TEST_CREDENTIAL_SECRET = "test-credential-secret"
SENDER_PASSWORD = "abcd efgh ijkl mnop"


class FakeChannel(DeliveryChannel):
    """Records every send and answers with a canned result."""

    def __init__(self, result: DeliveryResult | None = None, name: str = "email") -> None:
        self.result = result or DeliveryResult.ok(message_id="fake-1")
        self.sent: list[tuple[str, OtpMessage]] = []
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def send(self, recipient: str, message: OtpMessage) -> DeliveryResult:
        self.sent.append((recipient, message))
        return self.result


class Clock:
    """Controllable clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables created."""
    engine = build_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def vault():
    return CredentialVault(TEST_CREDENTIAL_SECRET)


@pytest.fixture
def make_account(db_session):
    async def _make(email: str = "owner@acme.example", company: str = "Acme Corp") -> Account:
        account = Account(
            company_name=company,
            email=email,
            password_hash=hash_password("s3cret-pass"),
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


@pytest.fixture
def make_tenant(db_session, vault):
    async def _make(
        account: Account,
        *,
        active: bool = True,
        provider: str = "gmail",
        sender_email: str = "sender@gmail.com",
        secret: str | None = SENDER_PASSWORD,
    ) -> Tenant:
        key = generate_api_key()
        tenant = Tenant(
            account_id=account.id,
            key=key,
            sender_email=sender_email,
            sender_secret=vault.encrypt(secret, bound_to=key) if secret else "",
            provider=provider,
            active=active,
        )
        db_session.add(tenant)
        await db_session.commit()
        return tenant

    return _make


@pytest_asyncio.fixture
async def account(make_account):
    return await make_account()


@pytest_asyncio.fixture
async def tenant(make_tenant, account):
    return await make_tenant(account)


@pytest.fixture
def make_plan(db_session):
    async def _make(name: str = "Starter", price_per_otp: float = 0.05, monthly_limit: int = 1000) -> Plan:
        plan = Plan(name=name, price_per_otp=price_per_otp, monthly_limit=monthly_limit)
        db_session.add(plan)
        await db_session.commit()
        return plan

    return _make


@pytest_asyncio.fixture
async def funded_wallet(db_session, account):
    """A wallet topped up once and charged once."""
    wallet = Wallet(account_id=account.id, balance=75.0)
    db_session.add_all(
        [
            wallet,
            Transaction(
                account_id=account.id,
                amount=100.0,
                type=TransactionType.CREDIT,
                description="Wallet top-up",
                timestamp=datetime(2026, 1, 10, 9, 0, tzinfo=UTC),
            ),
            Transaction(
                account_id=account.id,
                amount=25.0,
                type=TransactionType.DEBIT,
                description="Starter plan",
                timestamp=datetime(2026, 1, 11, 9, 0, tzinfo=UTC),
            ),
        ]
    )
    await db_session.commit()
    return wallet
