"""Token cache for upstream API credentials.

Holds bearer tokens, their absolute expiry instants and the long-lived
refresh token. Values live in the ``provider_credentials`` table,
encrypted with Fernet when an encryption key is configured. Without a
session factory the cache is purely in-memory.

Usage:
    from ruddit_core.infrastructure.crypto import CryptoService
    from ruddit_core.domain.services.credentials import TokenCache

    cache = TokenCache(session_factory, CryptoService.from_key(settings.encryption_key))

    cache.put_many({
        SERVICE_ACCESS_TOKEN: token,
        SERVICE_TOKEN_EXPIRES_AT: str(expires_at),
    })
    token = cache.get(SERVICE_ACCESS_TOKEN)
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ruddit_core.domain.models import ProviderCredential
from ruddit_core.infra.db import session_scope
from ruddit_core.infrastructure.crypto import CryptoService


PROVIDER_ID = "reddit"

SERVICE_ACCESS_TOKEN = "service_access_token"
SERVICE_TOKEN_EXPIRES_AT = "service_token_expires_at"
USER_ACCESS_TOKEN = "user_access_token"
USER_TOKEN_EXPIRES_AT = "user_token_expires_at"
USER_REFRESH_TOKEN = "user_refresh_token"


class TokenCache:
    """Key/value store for cached tokens."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        crypto: Optional[CryptoService] = None,
        provider_id: str = PROVIDER_ID,
    ):
        """Initialize the cache.

        Args:
            session_factory: Session factory for the local store; None keeps
                the cache in memory for the lifetime of the object.
            crypto: Encrypts stored values when set.
            provider_id: Provider the cached values belong to.
        """
        self.session_factory = session_factory
        self.crypto = crypto
        self.provider_id = provider_id
        self._memory: dict[str, str] = {}

    @property
    def persistent(self) -> bool:
        return self.session_factory is not None

    def get(self, key: str) -> Optional[str]:
        """Get a cached value, None if it was never stored.

        Raises:
            PersistenceError: If the store cannot be read.
            DecryptionError: If the value was encrypted with another key.
        """
        if not self.persistent:
            return self._memory.get(key)

        with session_scope(self.session_factory) as session:
            credential = self._find(session, key)
            if credential is None:
                return None
            return self._unseal(credential)

    def get_int(self, key: str) -> Optional[int]:
        """Get a cached integer (expiry instants), None if absent or malformed."""
        value = self.get(key)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def put(self, key: str, value: str) -> None:
        self.put_many({key: value})

    def put_many(self, values: dict[str, str]) -> None:
        """Store several values in one transaction.

        A token and its expiry are always written together so a reader
        never sees one without the other.
        """
        if not self.persistent:
            self._memory.update(values)
            return

        with session_scope(self.session_factory) as session:
            for key, value in values.items():
                credential = self._find(session, key)
                sealed = self.crypto.encrypt(value) if self.crypto else value

                if credential is not None:
                    credential.secret = sealed
                    credential.encrypted = self.crypto is not None
                    credential.rotated_at = datetime.utcnow()
                    continue

                session.add(
                    ProviderCredential(
                        provider_id=self.provider_id,
                        credential_type=key,
                        secret=sealed,
                        encrypted=self.crypto is not None,
                    )
                )

    def delete(self, *keys: str) -> None:
        if not self.persistent:
            for key in keys:
                self._memory.pop(key, None)
            return

        with session_scope(self.session_factory) as session:
            session.execute(
                delete(ProviderCredential).where(
                    ProviderCredential.provider_id == self.provider_id,
                    ProviderCredential.credential_type.in_(keys),
                )
            )

    def _find(self, session: Session, key: str) -> Optional[ProviderCredential]:
        return session.scalars(
            select(ProviderCredential).where(
                ProviderCredential.provider_id == self.provider_id,
                ProviderCredential.credential_type == key,
            )
        ).first()

    def _unseal(self, credential: ProviderCredential) -> str:
        if not credential.encrypted:
            return credential.secret
        if self.crypto is None:
            # Encrypted earlier but no key configured now: treat as absent
            return ""
        return self.crypto.decrypt(credential.secret)
