"""Encryption of long-lived secrets at rest.

Secrets are stored as ``<version>$<iv-hex>:<ciphertext-hex>``. The version
prefix names the key in a ``SecretCipher`` keyring, so a new primary key can be
introduced without invalidating secrets written under older keys. Secrets
without a prefix are treated as legacy values and every key is tried.

The cipher is AES-256-GCM with a fresh 96-bit IV per call, so decryption also
detects tampered or truncated ciphertext.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mailbridge.core.config import Settings
from mailbridge.core.exceptions import CredentialError

IV_BYTES = 12
SEPARATOR = ":"
VERSION_SEPARATOR = "$"


def derive_key(material: str | bytes) -> bytes:
    """Derive a 256-bit AES key from configured secret material."""
    if isinstance(material, str):
        material = material.encode("utf-8")
    return hashlib.sha256(material).digest()


class SecretCipher:
    """Versioned AES-GCM cipher over a keyring.

    Attributes:
        primary_version: Key version used for new ciphertexts.
    """

    def __init__(
        self,
        keys: Mapping[int, str | bytes],
        primary_version: int | None = None,
    ) -> None:
        """Initialize the cipher.

        Args:
            keys: Mapping of key version to secret material.
            primary_version: Version used to encrypt (default: highest version).

        Raises:
            ValueError: If the keyring is empty or the primary version is unknown.
        """
        if not keys:
            raise ValueError("SecretCipher requires at least one key")

        self._keys = {version: AESGCM(derive_key(secret)) for version, secret in keys.items()}
        self.primary_version = primary_version if primary_version is not None else max(keys)
        if self.primary_version not in self._keys:
            raise ValueError(f"Primary key version {self.primary_version} is not in the keyring")

    @property
    def versions(self) -> list[int]:
        """Key versions known to this cipher, primary first."""
        others = sorted((v for v in self._keys if v != self.primary_version), reverse=True)
        return [self.primary_version, *others]

    def encrypt(self, plaintext: str) -> str:
        """Encrypt text under the primary key."""
        iv = os.urandom(IV_BYTES)
        ciphertext = self._keys[self.primary_version].encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{self.primary_version}{VERSION_SEPARATOR}{iv.hex()}{SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, secret: str) -> str:
        """Decrypt a secret produced by :meth:`encrypt`.

        Raises:
            CredentialError: If the secret is malformed, names an unknown key
                version, or fails authentication under every candidate key.
        """
        if not isinstance(secret, str) or not secret:
            raise CredentialError("Invalid encrypted text provided for decryption")

        version, body = self._split_version(secret)
        if SEPARATOR not in body:
            raise CredentialError("Invalid encrypted text format: missing IV separator")

        iv_hex, _, ciphertext_hex = body.partition(SEPARATOR)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as e:
            raise CredentialError("Invalid encrypted text format: not hex encoded") from e

        if len(iv) != IV_BYTES or not ciphertext:
            raise CredentialError("Invalid encrypted text format: truncated input")

        candidates = [version] if version is not None else self.versions
        for candidate in candidates:
            try:
                plaintext = self._keys[candidate].decrypt(iv, ciphertext, None)
            except InvalidTag:
                continue
            try:
                return plaintext.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CredentialError("Decrypted secret is not valid UTF-8") from e

        raise CredentialError("Decryption failed: wrong key or corrupted data")

    def needs_rotation(self, secret: str) -> bool:
        """Check whether a secret was written under a non-primary key."""
        version, _ = self._split_version(secret)
        return version != self.primary_version

    def _split_version(self, secret: str) -> tuple[int | None, str]:
        """Split the optional key-version prefix from a secret."""
        if VERSION_SEPARATOR not in secret:
            return None, secret

        prefix, _, body = secret.partition(VERSION_SEPARATOR)
        if not prefix.isdigit():
            raise CredentialError("Invalid encrypted text format: bad key version")

        version = int(prefix)
        if version not in self._keys:
            raise CredentialError(f"Unknown encryption key version: {version}")
        return version, body


class CredentialVault:
    """Boundary through which every stored secret is encrypted and decrypted."""

    def __init__(self, cipher: SecretCipher) -> None:
        self._cipher = cipher

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialVault:
        """Build a vault from the configured keyring."""
        return cls(SecretCipher(settings.keyring(), settings.encryption_primary_version))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret for storage."""
        return self._cipher.encrypt(plaintext)

    def decrypt(self, secret: str) -> str:
        """Decrypt a stored secret.

        Raises:
            CredentialError: If the secret cannot be decrypted.
        """
        return self._cipher.decrypt(secret)

    def encrypt_json(self, payload: Mapping[str, Any]) -> str:
        """Serialize and encrypt a JSON object."""
        return self.encrypt(json.dumps(payload, separators=(",", ":"), sort_keys=True))

    def decrypt_json(self, secret: str) -> dict[str, Any]:
        """Decrypt and parse a JSON object.

        Raises:
            CredentialError: If decryption fails or the payload is not an object.
        """
        try:
            payload = json.loads(self.decrypt(secret))
        except json.JSONDecodeError as e:
            raise CredentialError("Decrypted secret is not valid JSON") from e
        if not isinstance(payload, dict):
            raise CredentialError("Decrypted secret is not a JSON object")
        return payload

    def rotate(self, secret: str) -> str:
        """Re-encrypt a secret under the primary key if it uses an older one."""
        if not self._cipher.needs_rotation(secret):
            return secret
        return self.encrypt(self.decrypt(secret))
