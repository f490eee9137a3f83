"""
Encryption service for domains and account emails stored on user records.
Uses Fernet symmetric encryption: every call draws a fresh random IV, so the
same plaintext never produces the same token twice. Equality checks must
always decrypt first.
"""

from cryptography.fernet import Fernet, InvalidToken

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


class EncryptionCodec:
    """Encrypts short strings into text tokens and back."""

    def __init__(self, key: bytes | None):
        if not key:
            raise EncryptionError("ENCRYPTION_KEY not configured in environment")

        try:
            self._fernet = Fernet(key)
        except Exception as e:
            logger.error("Failed to initialize Fernet cipher", error=str(e))
            raise EncryptionError(f"Invalid encryption key: {e}") from e

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string for storage.

        Args:
            plaintext: Non-empty text to encrypt

        Returns:
            str: URL-safe base64 Fernet token

        Raises:
            EncryptionError: If encryption fails
        """
        if not plaintext or not isinstance(plaintext, str):
            raise EncryptionError("Plaintext must be a non-empty string")

        try:
            return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")
        except Exception as e:
            logger.error("Failed to encrypt value", error=str(e))
            raise EncryptionError(f"Encryption failed: {e}") from e

    def decrypt(self, token: str) -> str:
        """
        Decrypt a stored token.

        Args:
            token: Fernet token produced by encrypt()

        Returns:
            str: Decrypted plain text

        Raises:
            EncryptionError: If decryption fails or token is invalid
        """
        if not token or not isinstance(token, str):
            raise EncryptionError("Encrypted token must be a non-empty string")

        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            logger.error("Token decryption failed - invalid token")
            raise EncryptionError("Invalid or corrupted token") from e
        except Exception as e:
            logger.error("Failed to decrypt value", error=str(e))
            raise EncryptionError(f"Decryption failed: {e}") from e


def codec_from_settings() -> EncryptionCodec:
    return EncryptionCodec(settings.collaborator_config().encryption_key)


def validate_encryption_config(codec: EncryptionCodec | None = None) -> bool:
    """
    Validate that encryption is properly configured.

    Returns:
        bool: True if encryption is configured and working
    """
    try:
        codec = codec or codec_from_settings()
        test_data = "test-encryption.example.com"
        is_valid = codec.decrypt(codec.encrypt(test_data)) == test_data

        if is_valid:
            logger.info("Encryption configuration validated successfully")
        else:
            logger.error("Encryption validation failed - data mismatch")

        return is_valid

    except Exception as e:
        logger.error("Encryption configuration validation failed", error=str(e))
        return False
