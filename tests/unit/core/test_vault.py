"""Tests for secret encryption at rest."""

from __future__ import annotations

import pytest

from mailbridge.core.config import Settings
from mailbridge.core.exceptions import CredentialError
from mailbridge.core.vault import CredentialVault, SecretCipher, derive_key


class TestDeriveKey:
    """Tests for key derivation."""

    def test_derives_256_bit_key(self) -> None:
        """Derived keys are 32 bytes."""
        assert len(derive_key("secret")) == 32

    def test_str_and_bytes_agree(self) -> None:
        """String and byte material derive the same key."""
        assert derive_key("secret") == derive_key(b"secret")


class TestSecretCipher:
    """Tests for the versioned cipher."""

    def test_roundtrip(self) -> None:
        """decrypt(encrypt(s)) returns s."""
        cipher = SecretCipher({1: "key-one"})
        assert cipher.decrypt(cipher.encrypt("ya29.a0-token")) == "ya29.a0-token"

    def test_roundtrip_unicode(self) -> None:
        """Non-ASCII plaintext survives encryption."""
        cipher = SecretCipher({1: "key-one"})
        assert cipher.decrypt(cipher.encrypt("pässwörd ✓")) == "pässwörd ✓"

    def test_format_is_version_iv_ciphertext(self) -> None:
        """Ciphertext is <version>$<iv-hex>:<ciphertext-hex>."""
        cipher = SecretCipher({3: "key"})
        version, _, body = cipher.encrypt("x").partition("$")
        iv_hex, sep, ct_hex = body.partition(":")

        assert version == "3"
        assert sep == ":"
        assert len(iv_hex) == 24
        bytes.fromhex(iv_hex)
        bytes.fromhex(ct_hex)

    def test_fresh_iv_per_call(self) -> None:
        """Encrypting the same plaintext twice gives different ciphertexts."""
        cipher = SecretCipher({1: "key"})
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_default_primary_is_highest_version(self) -> None:
        """Without an explicit primary, the highest version encrypts."""
        cipher = SecretCipher({1: "a", 4: "b", 2: "c"})
        assert cipher.primary_version == 4
        assert cipher.versions == [4, 2, 1]

    def test_empty_keyring_rejected(self) -> None:
        """A cipher needs at least one key."""
        with pytest.raises(ValueError):
            SecretCipher({})

    def test_unknown_primary_rejected(self) -> None:
        """The primary version must be in the keyring."""
        with pytest.raises(ValueError):
            SecretCipher({1: "a"}, primary_version=2)

    @pytest.mark.parametrize(
        "secret",
        [
            "",
            "no-separator-at-all",
            "1$deadbeef",
            "1$zz:zz",
            "1$00:",
            "1$0011:aabb",
            "x$00:00",
            "9$000000000000000000000000:aabb",
        ],
    )
    def test_malformed_input_raises_credential_error(self, secret: str) -> None:
        """Malformed ciphertext raises CredentialError, never returns garbage."""
        cipher = SecretCipher({1: "key"})
        with pytest.raises(CredentialError):
            cipher.decrypt(secret)

    def test_tampered_ciphertext_rejected(self) -> None:
        """Flipping a ciphertext byte fails authentication."""
        cipher = SecretCipher({1: "key"})
        secret = cipher.encrypt("token")
        last = secret[-1]
        tampered = secret[:-1] + ("0" if last != "0" else "1")

        with pytest.raises(CredentialError):
            cipher.decrypt(tampered)

    def test_wrong_key_rejected(self) -> None:
        """A secret cannot be decrypted with a different key of the same version."""
        secret = SecretCipher({1: "key-a"}).encrypt("token")
        with pytest.raises(CredentialError):
            SecretCipher({1: "key-b"}).decrypt(secret)

    def test_old_version_still_decrypts_after_rotation(self) -> None:
        """Secrets written under an older key stay readable."""
        secret = SecretCipher({1: "old"}).encrypt("token")
        rotated = SecretCipher({1: "old", 2: "new"})

        assert rotated.decrypt(secret) == "token"
        assert rotated.needs_rotation(secret)
        assert not rotated.needs_rotation(rotated.encrypt("token"))

    def test_unprefixed_legacy_secret_tries_every_key(self) -> None:
        """Secrets without a version prefix are tried against all keys."""
        legacy = SecretCipher({1: "old"}).encrypt("token").partition("$")[2]
        cipher = SecretCipher({1: "old", 2: "new"})

        assert cipher.decrypt(legacy) == "token"


class TestCredentialVault:
    """Tests for the vault facade."""

    def test_json_roundtrip(self, vault: CredentialVault) -> None:
        """JSON objects round-trip through the vault."""
        payload = {"access_token": "a", "refresh_token": "r", "scopes": ["x"]}
        assert vault.decrypt_json(vault.encrypt_json(payload)) == payload

    def test_decrypt_json_rejects_non_object(self, vault: CredentialVault) -> None:
        """A JSON array is not a valid token bundle."""
        with pytest.raises(CredentialError):
            vault.decrypt_json(vault.encrypt("[1, 2]"))

    def test_decrypt_json_rejects_non_json(self, vault: CredentialVault) -> None:
        """Plain text is not valid JSON."""
        with pytest.raises(CredentialError):
            vault.decrypt_json(vault.encrypt("not json"))

    def test_rotate_reencrypts_under_primary(self) -> None:
        """rotate() moves old secrets to the primary key."""
        old = CredentialVault(SecretCipher({1: "old"})).encrypt("token")
        vault = CredentialVault(SecretCipher({1: "old", 2: "new"}))

        rotated = vault.rotate(old)

        assert rotated.startswith("2$")
        assert vault.decrypt(rotated) == "token"

    def test_rotate_keeps_current_secret(self) -> None:
        """rotate() leaves primary-key secrets untouched."""
        vault = CredentialVault(SecretCipher({1: "key"}))
        secret = vault.encrypt("token")
        assert vault.rotate(secret) == secret

    def test_from_settings_uses_keyring(self, settings: Settings) -> None:
        """from_settings encrypts under the highest configured version."""
        vault = CredentialVault.from_settings(settings)
        assert vault.encrypt("x").startswith("2$")
