"""Encryption for cached API tokens.

Uses Fernet symmetric encryption (AES-128-CBC with HMAC for authenticity)
so access and refresh tokens are not stored in the clear in the local
database.

Usage:
    key = CryptoService.generate_key()  # Put this in ENCRYPTION_KEY
    crypto = CryptoService(key)

    sealed = crypto.encrypt("bearer-token")
    token = crypto.decrypt(sealed)
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


class InvalidKeyError(Exception):
    """Raised when an invalid encryption key is provided."""

    pass


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted."""

    pass


class CryptoService:
    """Fernet wrapper used by the token cache."""

    def __init__(self, key: str):
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key (base64-encoded 32-byte key).

        Raises:
            InvalidKeyError: If the key is empty or malformed.
        """
        if not key:
            raise InvalidKeyError("Encryption key cannot be empty")

        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(f"Invalid encryption key: {e}") from e

    @classmethod
    def from_key(cls, key: Optional[str]) -> Optional["CryptoService"]:
        """Build a service when a key is configured, None otherwise."""
        if not key:
            return None
        return cls(key)

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value produced by encrypt().

        Raises:
            DecryptionError: If the value was tampered with or the key changed.
        """
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as e:
            raise DecryptionError("Stored secret cannot be decrypted with the configured key") from e
        return plaintext.decode("utf-8")
