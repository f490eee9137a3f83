"""
Test encryption service functionality.
"""

import pytest
from cryptography.fernet import Fernet

from nudge.services.infrastructure.encryption_service import (
    EncryptionCodec,
    EncryptionError,
    validate_encryption_config,
)


def test_basic_encryption_decryption(codec):
    """Test that encryption and decryption work correctly."""
    encrypted = codec.encrypt("github.com")

    assert encrypted != "github.com"
    assert codec.decrypt(encrypted) == "github.com"


def test_encryption_is_not_deterministic(codec):
    """Equal plaintexts must not be comparable by ciphertext."""
    first = codec.encrypt("someone@example.com")
    second = codec.encrypt("someone@example.com")

    assert first != second
    assert codec.decrypt(first) == codec.decrypt(second)


@pytest.mark.parametrize(
    "value",
    ["adobe.com", "user+tag@example.co.uk", "xn--bcher-kva.example", "very.long." + "x" * 200],
)
def test_encryption_with_different_values(codec, value):
    assert codec.decrypt(codec.encrypt(value)) == value


def test_empty_plaintext_rejected(codec):
    with pytest.raises(EncryptionError):
        codec.encrypt("")


def test_token_from_other_key_rejected(codec):
    other = EncryptionCodec(Fernet.generate_key())

    with pytest.raises(EncryptionError):
        codec.decrypt(other.encrypt("adobe.com"))


def test_garbage_token_rejected(codec):
    with pytest.raises(EncryptionError):
        codec.decrypt("not-a-token")


@pytest.mark.parametrize("key", [None, b"", b"too-short"])
def test_invalid_key_rejected(key):
    with pytest.raises(EncryptionError):
        EncryptionCodec(key)


def test_encryption_config_validation(codec):
    assert validate_encryption_config(codec) is True


def test_encryption_config_validation_without_key(monkeypatch):
    monkeypatch.setattr("nudge.config.settings.ENCRYPTION_KEY", None, raising=False)

    assert validate_encryption_config() is False
