"""Seed script — creates demo plans, an account with a wallet, and an API key.

Sender credentials come from the environment::

    SEED_SENDER_EMAIL=you@gmail.com SEED_SENDER_SECRET=app-password python seed.py
"""

import asyncio
import os

from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.database.engine import async_session_factory, init_db
from otp_gateway.database.repository import AccountRepository, BillingRepository, TenantRepository
from otp_gateway.models.account import Account
from otp_gateway.models.billing import Plan, Wallet
from otp_gateway.models.tenant import Tenant
from otp_gateway.services.credentials import CredentialVault
from otp_gateway.services.security import create_access_token, generate_api_key, hash_password

DEMO_EMAIL = "demo@acme.example"
DEMO_PASSWORD = "demo-password"

DEFAULT_PLANS = [
    Plan(name="Starter", price_per_otp=0.05, monthly_limit=1_000, description="For small projects"),
    Plan(name="Growth", price_per_otp=0.03, monthly_limit=10_000, description="For growing products"),
    Plan(name="Scale", price_per_otp=0.02, monthly_limit=100_000, description="High-volume senders"),
]


async def seed() -> None:
    """Insert plans, the demo account with a wallet, and one API key."""
    await init_db()
    async with async_session_factory() as session:
        session: AsyncSession
        accounts = AccountRepository(session)
        account = await accounts.find_by_email(DEMO_EMAIL)
        if account is None:
            account = await accounts.add(
                Account(
                    company_name="Acme Corp",
                    email=DEMO_EMAIL,
                    password_hash=hash_password(DEMO_PASSWORD),
                    contact_number="+15551234567",
                )
            )

        billing = BillingRepository(session)
        if not await billing.list_plans():
            session.add_all(DEFAULT_PLANS)
        if await billing.find_wallet(account.id) is None:
            session.add(Wallet(account_id=account.id, balance=0))

        key = generate_api_key()
        sender = os.environ.get("SEED_SENDER_EMAIL", "sender@acme.example")
        secret = os.environ.get("SEED_SENDER_SECRET", "not-a-real-password")
        await TenantRepository(session).add(
            Tenant(
                account_id=account.id,
                key=key,
                sender_email=sender,
                sender_secret=CredentialVault().encrypt(secret, bound_to=key),
                provider=os.environ.get("SEED_SENDER_PROVIDER", "gmail"),
            )
        )
        await session.commit()

    print(f"✅ Seeded account {DEMO_EMAIL} (password: {DEMO_PASSWORD})")
    print(f"   API key:      {key}")
    print(f"   Bearer token: {create_access_token(account.id)}")


if __name__ == "__main__":
    asyncio.run(seed())
