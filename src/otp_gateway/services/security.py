"""Account security helpers — password hashing and bearer tokens."""

from __future__ import annotations

import datetime as dt
import secrets

import jwt
from passlib.context import CryptContext

from otp_gateway.config import settings
from otp_gateway.errors import AuthError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def generate_api_key() -> str:
    """A fresh 32-character lowercase hex key."""
    return secrets.token_hex(16)


def create_access_token(account_id: int, now: dt.datetime | None = None) -> str:
    now = now or dt.datetime.now(dt.UTC)
    payload = {
        "sub": str(account_id),
        "iat": int(now.timestamp()),
        "exp": int((now + dt.timedelta(hours=settings.jwt_expires_hours)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """Return the account id carried by *token*.

    Raises ``AuthError`` when the token is malformed, tampered or expired.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid or expired token.") from exc

    try:
        return int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise AuthError("Invalid or expired token.") from exc
