"""End-to-end tests of the HTTP surface through the ASGI app."""

from __future__ import annotations

import re
from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from conftest import TEST_CREDENTIAL_SECRET
from otp_gateway.database.engine import get_session
from otp_gateway.main import app
from otp_gateway.models.account import Account
from otp_gateway.models.billing import Plan, Transaction, TransactionType, Wallet
from otp_gateway.models.otp_attempt import OtpAttempt
from otp_gateway.otp.states import OtpStatus
from otp_gateway.services import credentials

SEND = "otp_gateway.channels.email.aiosmtplib.send"


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch):
    """HTTP client wired to the in-memory database."""
    monkeypatch.setattr(credentials.settings, "credential_secret", TEST_CREDENTIAL_SECRET)

    async def _override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def smtp():
    with patch(SEND, new=AsyncMock(return_value=({}, "OK"))) as send:
        yield send


async def _register(client, email="owner@acme.example") -> str:
    resp = await client.post(
        "/api/user/register",
        json={"companyName": "Acme", "email": email, "password": "s3cret-pass"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


async def _create_key(client, token, email="sender@gmail.com") -> str:
    resp = await client.post(
        "/api/user/create-api-key",
        json={"email": email, "emailPassword": "app-password"},
        headers={"Authorization": f"Bearer {token}"},
    )
    body = resp.json()
    assert body["success"] is True, body
    return body["apiKey"]["key"]


async def _latest_code(session_factory, recipient: str) -> str:
    async with session_factory() as session:
        stmt = (
            select(OtpAttempt.code)
            .where(OtpAttempt.recipient == recipient)
            .order_by(OtpAttempt.id.desc())
        )
        return (await session.execute(stmt)).scalars().first()


@pytest_asyncio.fixture
async def token(client):
    return await _register(client)


@pytest_asyncio.fixture
async def api_key(client, token):
    return await _create_key(client, token)


# ── Health / accounts ────────────────────────────────────

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_register_duplicate_and_login(client, token):
    resp = await client.post(
        "/api/user/register",
        json={"companyName": "Acme", "email": "OWNER@acme.example", "password": "x"},
    )
    assert resp.status_code == 409
    assert resp.json() == {"success": False, "message": "User already exists"}

    resp = await client.post(
        "/api/user/login", json={"email": "owner@acme.example", "password": "s3cret-pass"}
    )
    assert resp.json()["success"] is True
    assert resp.json()["token"]

    resp = await client.post(
        "/api/user/login", json={"email": "owner@acme.example", "password": "wrong"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_register_requires_fields(client):
    resp = await client.post("/api/user/register", json={"email": "x@y.z"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_create_api_key_response(client, token):
    resp = await client.post(
        "/api/user/create-api-key",
        json={"email": "sender@gmail.com", "emailPassword": "app-password"},
        headers={"Authorization": f"Bearer {token}"},
    )
    body = resp.json()
    key = body["apiKey"]["key"]

    assert re.fullmatch(r"[a-f0-9]{32}", key)
    assert body["apiEndpoints"]["usage"]["send"].endswith(f"/api/{key}/send/{{recipient}}")
    assert "App Password" in body["gmailWarning"]
    assert "app-password" not in resp.text

    listed = await client.get("/api/user/api-keys", headers={"Authorization": f"Bearer {token}"})
    assert [k["key"] for k in listed.json()["apiKeys"]] == [key]


@pytest.mark.asyncio
async def test_create_api_key_rejects_unknown_service(client, token):
    resp = await client.post(
        "/api/user/create-api-key",
        json={"email": "a@b.com", "emailPassword": "pw", "emailService": "carrier-pigeon"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "validation_error"


# ── Header-authenticated OTP routes ──────────────────────

@pytest.mark.asyncio
async def test_send_and_verify_with_header_key(client, session_factory, api_key, smtp):
    headers = {"x-api-key": api_key}

    resp = await client.post("/api/send-otp", json={"recipient": "a@b.com"}, headers=headers)
    body = resp.json()
    assert body["success"] is True
    assert body["channel"] == "email"
    assert smtp.call_args.kwargs["password"] == "app-password"

    code = await _latest_code(session_factory, "a@b.com")
    resp = await client.post(
        "/api/verify-otp", json={"recipient": "a@b.com", "otp": code}, headers=headers
    )
    assert resp.json()["success"] is True
    assert resp.json()["verified"] is True

    resp = await client.post(
        "/api/verify-otp", json={"recipient": "a@b.com", "otp": code}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "already_used"


@pytest.mark.asyncio
async def test_logical_failures_keep_status_200(client, api_key, smtp):
    headers = {"x-api-key": api_key}

    resp = await client.post("/api/send-otp", json={}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["error"] == "validation_error"

    resp = await client.post(
        "/api/verify-otp", json={"recipient": "nobody@b.com", "otp": "ABC123"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["error"] == "not_found"

    resp = await client.post(
        "/api/send-otp", json={"recipient": "+15551234567", "channel": "sms"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["error"] == "not_implemented"

    resp = await client.post(
        "/api/send-otp", json={"recipient": "a@b.com\r\nBcc: x@y.com"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_delivery_failure_envelope(client, api_key):
    error = aiosmtplib.SMTPAuthenticationError(535, "Username and Password not accepted")
    with patch(SEND, new=AsyncMock(side_effect=error)):
        resp = await client.post(
            "/api/send-otp", json={"recipient": "a@b.com"}, headers={"x-api-key": api_key}
        )

    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "delivery_failed"
    assert body["reason"] == "authentication_failed"
    assert body["message"] == "Gmail authentication failed"
    assert "Username and Password not accepted" in body["details"]
    assert body["hints"]


@pytest.mark.asyncio
async def test_api_key_authentication(client, api_key):
    resp = await client.post("/api/send-otp", json={"recipient": "a@b.com"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "auth_error"

    resp = await client.post(
        "/api/send-otp", json={"recipient": "a@b.com"}, headers={"x-api-key": "f" * 32}
    )
    assert resp.status_code == 403


# ── Direct-URL routes ────────────────────────────────────

@pytest.mark.asyncio
async def test_direct_url_send_and_verify(client, session_factory, api_key, smtp):
    resp = await client.get(f"/api/{api_key}/send/a@b.com")
    assert resp.json()["success"] is True

    code = await _latest_code(session_factory, "a@b.com")
    resp = await client.get(f"/api/{api_key}/verify/a@b.com/{code}")
    assert resp.json()["success"] is True

    resp = await client.post(f"/api/{api_key}/verify/a@b.com/{code}")
    assert resp.json()["error"] == "already_used"


@pytest.mark.asyncio
async def test_legacy_direct_routes(client, session_factory, api_key, smtp):
    resp = await client.post(f"/api/otp/send/{api_key}/a@b.com")
    assert resp.json()["success"] is True

    code = await _latest_code(session_factory, "a@b.com")
    resp = await client.post(f"/api/otp/verify/{api_key}/a@b.com/{code}")
    assert resp.json()["success"] is True


@pytest.mark.asyncio
async def test_direct_url_rejects_malformed_key(client):
    resp = await client.get("/api/NOT-A-HEX-KEY-NOT-A-HEX-KEY-1234/send/a@b.com")
    assert resp.status_code == 403
    assert resp.json()["success"] is False


# ── Account-authenticated reads ──────────────────────────

@pytest.mark.asyncio
async def test_usage_and_logs(client, session_factory, token, api_key, smtp):
    auth = {"Authorization": f"Bearer {token}"}
    await client.post("/api/send-otp", json={"recipient": "a@b.com"}, headers={"x-api-key": api_key})
    await client.post(
        "/api/send-otp",
        json={"recipient": "+15551234567", "channel": "sms"},
        headers={"x-api-key": api_key},
    )

    usage = (await client.get("/api/usage", headers=auth)).json()
    assert usage["success"] is True
    assert usage["apiUsage"]["numberOfSentOTPs"] == 1
    assert len(usage["apiUsage"]["tenants"]) == 1

    logs = (await client.get("/api/otp-logs", headers=auth)).json()["otpLogs"]
    assert [log["status"] for log in logs] == [OtpStatus.FAILED.value, OtpStatus.SENT.value]
    assert all("code" not in log and "otp" not in log for log in logs)


@pytest.mark.asyncio
async def test_usage_without_keys_is_not_found(client, token):
    resp = await client.get("/api/usage", headers={"Authorization": f"Bearer {token}"})
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_account_routes_require_token(client):
    resp = await client.get("/api/otp-logs")
    assert resp.status_code == 401

    resp = await client.get("/api/usage", headers={"Authorization": "Bearer not.a.token"})
    assert resp.status_code == 403


# ── Key management ───────────────────────────────────────

@pytest.mark.asyncio
async def test_deactivated_key_cannot_send(client, token, api_key, smtp):
    auth = {"Authorization": f"Bearer {token}"}
    resp = await client.post(f"/api/user/api-key/{api_key}/deactivate", headers=auth)
    assert resp.json()["success"] is True

    resp = await client.post(
        "/api/send-otp", json={"recipient": "a@b.com"}, headers={"x-api-key": api_key}
    )
    assert resp.status_code == 403
    smtp.assert_not_called()


@pytest.mark.asyncio
async def test_delete_key_ownership(client, token, api_key):
    intruder = await _register(client, email="intruder@globex.example")

    resp = await client.delete(
        f"/api/user/api-key/{api_key}", headers={"Authorization": f"Bearer {intruder}"}
    )
    assert resp.json()["error"] == "auth_error"

    resp = await client.delete(
        "/api/user/api-key/999999", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.json()["error"] == "not_found"

    resp = await client.delete(
        f"/api/user/api-key/{api_key}", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.json()["success"] is True

    listed = await client.get("/api/user/api-keys", headers={"Authorization": f"Bearer {token}"})
    assert listed.json()["apiKeys"] == []


# ── Billing ──────────────────────────────────────────────

async def _account_id(session_factory, email="owner@acme.example") -> int:
    async with session_factory() as session:
        stmt = select(Account.id).where(Account.email == email)
        return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_plans_are_public_and_selectable(client, session_factory, token):
    async with session_factory() as session:
        session.add_all(
            [
                Plan(name="Starter", price_per_otp=0.05, monthly_limit=1000),
                Plan(name="Growth", price_per_otp=0.03, monthly_limit=10000),
            ]
        )
        await session.commit()

    plans = (await client.get("/api/user/plans")).json()["plans"]
    assert [p["name"] for p in plans] == ["Starter", "Growth"]
    growth = plans[1]

    auth = {"Authorization": f"Bearer {token}"}
    resp = await client.post("/api/user/update-plan", json={"planId": growth["id"]}, headers=auth)
    assert resp.json()["success"] is True
    assert resp.json()["plan"]["name"] == "Growth"

    account_id = await _account_id(session_factory)
    async with session_factory() as session:
        assert (await session.get(Account, account_id)).plan_id == growth["id"]

    resp = await client.post("/api/user/update-plan", json={"planId": 999999}, headers=auth)
    assert resp.status_code == 200
    assert resp.json()["error"] == "not_found"

    resp = await client.post("/api/user/update-plan", json={"planId": growth["id"]})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_wallet_and_transactions(client, session_factory, token):
    auth = {"Authorization": f"Bearer {token}"}

    resp = await client.get("/api/user/wallet", headers=auth)
    assert resp.json() == {"success": False, "message": "Wallet not found", "error": "not_found"}
    assert (await client.get("/api/user/transactions", headers=auth)).json()["transactions"] == []

    account_id = await _account_id(session_factory)
    async with session_factory() as session:
        session.add_all(
            [
                Wallet(account_id=account_id, balance=40.0),
                Transaction(account_id=account_id, amount=40.0, type=TransactionType.CREDIT),
            ]
        )
        await session.commit()

    wallet = (await client.get("/api/user/wallet", headers=auth)).json()["wallet"]
    assert wallet["balance"] == 40.0

    [txn] = (await client.get("/api/user/transactions", headers=auth)).json()["transactions"]
    assert txn["type"] == "credit"
    assert txn["amount"] == 40.0
