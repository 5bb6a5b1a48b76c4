"""Credential vault — encrypts tenant email secrets at rest with AES-GCM.

Ciphertexts are bound to the owning API key (used as associated data),
so a secret copied onto another tenant row fails to decrypt.  Any
decryption failure raises ``CredentialError``; the stored value is
never used as-is.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from otp_gateway.config import settings
from otp_gateway.errors import CredentialError

logger = logging.getLogger(__name__)

_NONCE_BYTES = 12
_SALT = b"otp-gateway/credentials/v1"


class CredentialVault:
    """Encrypt / decrypt short secrets with a key derived from a passphrase."""

    def __init__(self, secret: str | None = None) -> None:
        passphrase = (secret or settings.credential_secret).encode("utf-8")
        key = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_SALT,
            info=b"email-credential",
        ).derive(passphrase)
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str, bound_to: str) -> str:
        nonce = os.urandom(_NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), bound_to.encode("utf-8"))
        return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str, bound_to: str) -> str:
        try:
            raw = base64.urlsafe_b64decode(token.encode("ascii"))
            if len(raw) <= _NONCE_BYTES:
                raise ValueError("ciphertext too short")
            nonce, ciphertext = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
            plaintext = self._aead.decrypt(nonce, ciphertext, bound_to.encode("utf-8"))
        except (InvalidTag, ValueError, binascii.Error, UnicodeEncodeError) as exc:
            logger.error("Stored credential failed to decrypt: %s", type(exc).__name__)
            raise CredentialError(
                "Stored email credential could not be decrypted. "
                "Create a new API key with fresh credentials."
            ) from exc
        return plaintext.decode("utf-8")
