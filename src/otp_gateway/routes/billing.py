"""Billing router — subscription plans, wallet balance and wallet history.

Endpoints
---------
GET  /api/user/plans                  → all available plans
POST /api/user/update-plan   (Bearer) → select a plan for the account
GET  /api/user/wallet        (Bearer) → wallet balance
GET  /api/user/transactions  (Bearer) → wallet credits and debits, newest first

Read-only apart from the plan selection; wallets are never charged here.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from otp_gateway.database.engine import get_session
from otp_gateway.database.repository import AccountRepository, BillingRepository
from otp_gateway.errors import AuthError, NotFound, ValidationError
from otp_gateway.models.billing import Plan, Transaction
from otp_gateway.routes.deps import current_account_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["billing"])


class UpdatePlanRequest(BaseModel):
    planId: int | None = None


def _serialize_plan(plan: Plan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "pricePerOtp": plan.price_per_otp,
        "monthlyLimit": plan.monthly_limit,
        "description": plan.description,
        "createdAt": plan.created_at.isoformat() if plan.created_at else None,
    }


def _serialize_transaction(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "amount": txn.amount,
        "type": txn.type.value,
        "description": txn.description,
        "timestamp": txn.timestamp.isoformat() if txn.timestamp else None,
    }


@router.get("/plans")
async def get_plans(session: AsyncSession = Depends(get_session)):
    plans = await BillingRepository(session).list_plans()
    return {
        "success": True,
        "message": "Plans retrieved successfully",
        "plans": [_serialize_plan(p) for p in plans],
    }


@router.post("/update-plan")
async def update_plan(
    body: UpdatePlanRequest,
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    """Point the account at another subscription plan."""
    if body.planId is None:
        raise ValidationError("planId is required")
    plan = await BillingRepository(session).get_plan(body.planId)
    if plan is None:
        raise NotFound("Plan not found")
    if not await AccountRepository(session).set_plan(account_id, plan.id):
        raise AuthError("Account no longer exists")

    logger.info("Account %s switched to plan %s (%s)", account_id, plan.id, plan.name)
    return {
        "success": True,
        "message": "Subscription plan updated successfully",
        "plan": _serialize_plan(plan),
    }


@router.get("/wallet")
async def get_wallet(
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    wallet = await BillingRepository(session).find_wallet(account_id)
    if wallet is None:
        raise NotFound("Wallet not found")
    return {
        "success": True,
        "message": "Wallet retrieved successfully",
        "wallet": {
            "balance": wallet.balance,
            "updatedAt": wallet.updated_at.isoformat() if wallet.updated_at else None,
        },
    }


@router.get("/transactions")
async def get_transactions(
    account_id: int = Depends(current_account_id),
    session: AsyncSession = Depends(get_session),
):
    transactions = await BillingRepository(session).list_transactions(account_id)
    return {
        "success": True,
        "message": "Transactions retrieved successfully",
        "transactions": [_serialize_transaction(t) for t in transactions],
    }
