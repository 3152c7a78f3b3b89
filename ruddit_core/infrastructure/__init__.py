"""Infrastructure services for Ruddit Core.

- crypto: Fernet encryption for cached tokens
- retry: bounded retry policy for upstream requests
"""

from ruddit_core.infrastructure.crypto import CryptoService, DecryptionError, InvalidKeyError
from ruddit_core.infrastructure.retry import NO_RETRY, RetryPolicy

__all__ = [
    "CryptoService",
    "DecryptionError",
    "InvalidKeyError",
    "NO_RETRY",
    "RetryPolicy",
]
