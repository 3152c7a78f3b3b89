"""Unit tests for the token cache and token encryption."""

import pytest
from sqlalchemy import select

from ruddit_core.domain.models import ProviderCredential
from ruddit_core.domain.services.credentials import (
    SERVICE_ACCESS_TOKEN,
    SERVICE_TOKEN_EXPIRES_AT,
    USER_REFRESH_TOKEN,
    TokenCache,
)
from ruddit_core.infrastructure.crypto import (
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)


class TestCryptoService:
    """Tests for CryptoService."""

    def test_round_trip(self):
        crypto = CryptoService(CryptoService.generate_key())

        sealed = crypto.encrypt("bearer-abc")

        assert sealed != "bearer-abc"
        assert crypto.decrypt(sealed) == "bearer-abc"

    def test_empty_key_rejected(self):
        with pytest.raises(InvalidKeyError):
            CryptoService("")

    def test_malformed_key_rejected(self):
        with pytest.raises(InvalidKeyError):
            CryptoService("not-a-fernet-key")

    def test_from_key_without_key(self):
        assert CryptoService.from_key("") is None
        assert CryptoService.from_key(None) is None

    def test_wrong_key_fails_to_decrypt(self):
        sealed = CryptoService(CryptoService.generate_key()).encrypt("secret")

        with pytest.raises(DecryptionError):
            CryptoService(CryptoService.generate_key()).decrypt(sealed)


class TestInMemoryTokenCache:
    """Tests for a cache without a session factory."""

    def test_get_put_delete(self):
        cache = TokenCache()

        assert cache.persistent is False
        assert cache.get(SERVICE_ACCESS_TOKEN) is None

        cache.put_many({SERVICE_ACCESS_TOKEN: "tok", SERVICE_TOKEN_EXPIRES_AT: "1700003600"})
        assert cache.get(SERVICE_ACCESS_TOKEN) == "tok"
        assert cache.get_int(SERVICE_TOKEN_EXPIRES_AT) == 1_700_003_600

        cache.delete(SERVICE_ACCESS_TOKEN, SERVICE_TOKEN_EXPIRES_AT)
        assert cache.get(SERVICE_ACCESS_TOKEN) is None

    def test_get_int_malformed(self):
        cache = TokenCache()
        cache.put(SERVICE_TOKEN_EXPIRES_AT, "soon")

        assert cache.get_int(SERVICE_TOKEN_EXPIRES_AT) is None


class TestPersistentTokenCache:
    """Tests for a cache backed by the provider_credentials table."""

    def test_values_survive_new_cache_instance(self, sync_session_factory):
        TokenCache(sync_session_factory).put(USER_REFRESH_TOKEN, "refresh-1")

        assert TokenCache(sync_session_factory).get(USER_REFRESH_TOKEN) == "refresh-1"

    def test_overwrite_rotates(self, token_cache, db_session):
        token_cache.put(SERVICE_ACCESS_TOKEN, "first")
        token_cache.put(SERVICE_ACCESS_TOKEN, "second")

        rows = db_session.scalars(select(ProviderCredential)).all()

        assert len(rows) == 1
        assert rows[0].rotated_at is not None
        assert token_cache.get(SERVICE_ACCESS_TOKEN) == "second"

    def test_encrypted_at_rest(self, sync_session_factory, db_session):
        crypto = CryptoService(CryptoService.generate_key())
        cache = TokenCache(sync_session_factory, crypto)

        cache.put(USER_REFRESH_TOKEN, "refresh-secret")

        row = db_session.scalars(select(ProviderCredential)).one()
        assert row.encrypted is True
        assert "refresh-secret" not in row.secret
        assert cache.get(USER_REFRESH_TOKEN) == "refresh-secret"

    def test_encrypted_value_without_key_reads_as_absent(self, sync_session_factory):
        crypto = CryptoService(CryptoService.generate_key())
        TokenCache(sync_session_factory, crypto).put(USER_REFRESH_TOKEN, "refresh-secret")

        assert not TokenCache(sync_session_factory).get(USER_REFRESH_TOKEN)

    def test_changed_key_raises(self, sync_session_factory):
        TokenCache(sync_session_factory, CryptoService(CryptoService.generate_key())).put(
            USER_REFRESH_TOKEN, "refresh-secret"
        )
        cache = TokenCache(sync_session_factory, CryptoService(CryptoService.generate_key()))

        with pytest.raises(DecryptionError):
            cache.get(USER_REFRESH_TOKEN)

    def test_delete_only_named_keys(self, token_cache):
        token_cache.put_many({SERVICE_ACCESS_TOKEN: "a", USER_REFRESH_TOKEN: "r"})

        token_cache.delete(SERVICE_ACCESS_TOKEN)

        assert token_cache.get(SERVICE_ACCESS_TOKEN) is None
        assert token_cache.get(USER_REFRESH_TOKEN) == "r"

    def test_providers_are_isolated(self, sync_session_factory):
        TokenCache(sync_session_factory, provider_id="reddit").put(SERVICE_ACCESS_TOKEN, "a")

        assert TokenCache(sync_session_factory, provider_id="other").get(SERVICE_ACCESS_TOKEN) is None
