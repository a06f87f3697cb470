"""Credential encryption using AES-GCM.

Encrypts tenant secrets (bank API token, fiscal license key, cashier PIN)
at rest. Uses AES-256-GCM for authenticated encryption.

Ciphertext format (a single printable column value):

    v<key_version>:<base64 nonce>:<base64 ciphertext+tag>
"""

import base64
import binascii
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import DecryptionError

KEY_BYTES = 32
NONCE_BYTES = 12


def generate_key() -> str:
    """Generate a new 256-bit encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for AES-256
    """
    return base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("utf-8")


class CredentialVault:
    """AES-256-GCM encryption for tenant credentials.

    Security properties:
    - Confidentiality: AES-256 encryption
    - Integrity: GCM authentication tag
    - Uniqueness: Random 96-bit nonce per encryption

    Usage:
        vault = CredentialVault(settings.encryption_key)
        stored = vault.encrypt("api-token")
        token = vault.decrypt(stored)
    """

    def __init__(self, encryption_key: str, key_version: int = 1):
        """Initialize with base64-encoded encryption key.

        Args:
            encryption_key: Base64-encoded 32-byte key (from generate_key())
            key_version: Version tag written into new ciphertexts
        """
        if not encryption_key:
            raise ValueError("Encryption key is not configured")
        try:
            key = base64.b64decode(encryption_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid encryption key: {e}")
        if len(key) != KEY_BYTES:
            raise ValueError("Key must be 32 bytes (256 bits)")

        self._aesgcm = AESGCM(key)
        self.key_version = key_version

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret.

        Args:
            plaintext: Secret value

        Returns:
            Printable ciphertext token
        """
        nonce = secrets.token_bytes(NONCE_BYTES)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return ":".join([
            f"v{self.key_version}",
            base64.b64encode(nonce).decode("utf-8"),
            base64.b64encode(ciphertext).decode("utf-8"),
        ])

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a secret.

        Args:
            ciphertext: Token produced by encrypt()

        Returns:
            Original plaintext

        Raises:
            DecryptionError: Malformed token, wrong key, or tampered data
        """
        if not ciphertext:
            raise DecryptionError("Ciphertext is empty")

        parts = ciphertext.split(":")
        if len(parts) != 3 or not parts[0].startswith("v"):
            raise DecryptionError("Ciphertext is malformed")

        try:
            nonce = base64.b64decode(parts[1], validate=True)
            data = base64.b64decode(parts[2], validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionError("Ciphertext is not valid base64")
        if len(nonce) != NONCE_BYTES:
            raise DecryptionError("Ciphertext nonce has the wrong length")

        try:
            plaintext = self._aesgcm.decrypt(nonce, data, None)
        except InvalidTag:
            # Wrong key (e.g. after rotation) or tampered data
            raise DecryptionError(
                "Ciphertext was not produced by the configured key"
            )

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted secret is not valid UTF-8")

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        """Decrypt a nullable column; None stays None."""
        if not ciphertext:
            return None
        return self.decrypt(ciphertext)

    def reencrypt(self, ciphertext: str, new_vault: "CredentialVault") -> str:
        """Re-encrypt a secret under a new key.

        Use this during key rotation to migrate stored credentials.

        Args:
            ciphertext: Secret encrypted with this vault's key
            new_vault: Vault holding the new key

        Returns:
            Secret re-encrypted with the new key
        """
        return new_vault.encrypt(self.decrypt(ciphertext))

    @staticmethod
    def key_version_of(ciphertext: str) -> Optional[int]:
        """Key version recorded in a ciphertext, if parseable."""
        prefix = (ciphertext or "").split(":", 1)[0]
        if prefix.startswith("v") and prefix[1:].isdigit():
            return int(prefix[1:])
        return None
