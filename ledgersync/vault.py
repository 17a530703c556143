"""Credential vault: AES-256-GCM encryption of provider secrets at rest.

Blob layout (base64-encoded): 16-byte nonce || 16-byte GCM tag || ciphertext.
The AES key is the SHA-256 digest of the configured master secret.

``encrypt_token`` / ``decrypt_token`` are migration wrappers.  Rows written
before encryption was enabled still hold plaintext tokens, so while legacy
compatibility mode is on, a value that fails to decrypt is returned as-is.
That fallback is a compatibility shim, not a security boundary; turn it off
(``LEDGERSYNC_LEGACY_PLAINTEXT_TOKENS=false``) once every row is migrated.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ledgersync.errors import ConfigError, DecryptionError

logger = logging.getLogger(__name__)

NONCE_LENGTH = 16
TAG_LENGTH = 16


class CredentialVault:
    """Symmetric vault bound to one master secret."""

    def __init__(self, master_secret: str = "", *, legacy_plaintext: bool = True) -> None:
        self._key = hashlib.sha256(master_secret.encode("utf-8")).digest() if master_secret else None
        self.legacy_plaintext = legacy_plaintext

    @property
    def configured(self) -> bool:
        return self._key is not None

    def _aead(self) -> AESGCM:
        if self._key is None:
            raise ConfigError("Encryption key is not configured (set LEDGERSYNC_ENCRYPTION_KEY)")
        return AESGCM(self._key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` with a fresh random nonce."""
        aead = self._aead()
        nonce = os.urandom(NONCE_LENGTH)
        sealed = aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag; store it ahead of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by :meth:`encrypt`."""
        aead = self._aead()
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e
        if len(raw) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Ciphertext is too short")

        nonce = raw[:NONCE_LENGTH]
        tag = raw[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
        ciphertext = raw[NONCE_LENGTH + TAG_LENGTH:]
        try:
            plaintext = aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("Authentication tag did not verify") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not UTF-8") from e

    def encrypt_token(self, token: str) -> str:
        """Encrypt if a key is configured, else store as-is with a warning."""
        if not self.configured:
            logger.warning(
                "Token encryption unavailable - storing as-is. Set LEDGERSYNC_ENCRYPTION_KEY to enable."
            )
            return token
        return self.encrypt(token)

    def decrypt_token(self, stored: str | None) -> str | None:
        """Decrypt a stored token, tolerating legacy plaintext when allowed."""
        if not stored:
            return stored
        if not self.configured and self.legacy_plaintext:
            return stored
        try:
            return self.decrypt(stored)
        except (DecryptionError, ConfigError):
            if not self.legacy_plaintext:
                raise
            logger.info("Stored token did not decrypt; treating as legacy plaintext")
            return stored
