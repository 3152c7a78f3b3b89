"""Unit tests for settings and database setup."""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from ruddit_core.config import LEGACY_UNCONFIGURED, Settings, default_database_url
from ruddit_core.errors import PersistenceError
from ruddit_core.infra.db import create_store_engine, session_scope


class TestSettings:
    """Tests for Settings."""

    @pytest.mark.parametrize("value", ["", "   ", LEGACY_UNCONFIGURED])
    def test_blank_credentials_are_unconfigured(self, value):
        settings = Settings(_env_file=None, reddit_client_id=value, reddit_client_secret=value)

        assert settings.reddit_client_id is None
        assert settings.reddit_client_secret is None

    def test_credentials_are_stripped(self):
        settings = Settings(_env_file=None, reddit_client_id="  abc  ")

        assert settings.reddit_client_id == "abc"

    def test_intent_patterns_lowercased(self):
        settings = Settings(_env_file=None, intent_high=["Looking For"], intent_medium=["ERROR"])

        patterns = settings.intent_patterns()

        assert patterns.high == ("looking for",)
        assert patterns.medium == ("error",)

    def test_retry_policy_from_settings(self):
        settings = Settings(_env_file=None, retry_max_attempts=5, retry_base_delay=0.5, retry_max_delay=8)

        policy = settings.retry_policy()

        assert policy.max_attempts == 5
        assert policy.base_delay == 0.5
        assert policy.max_delay == 8

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("REDDIT_CLIENT_ID", "from-env")
        monkeypatch.setenv("LISTING_LIMIT", "25")

        settings = Settings(_env_file=None)

        assert settings.reddit_client_id == "from-env"
        assert settings.listing_limit == 25

    def test_listing_limit_bounded(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, listing_limit=500)

    def test_default_database_url_uses_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RUDDIT_DATA_DIR", str(tmp_path))

        assert default_database_url() == f"sqlite:///{tmp_path / 'ruddit.db'}"


class TestStoreEngine:
    """Tests for create_store_engine and session_scope."""

    def test_creates_schema_and_parent_dir(self, tmp_path):
        db_path = tmp_path / "nested" / "ruddit.db"

        engine = create_store_engine(f"sqlite:///{db_path}")
        try:
            tables = set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

        assert db_path.exists()
        assert {"reddit_posts", "subreddit_search", "reddit_comments", "provider_credentials"} <= tables

    def test_in_memory_engine_shares_connection(self):
        engine = create_store_engine("sqlite://")
        try:
            with engine.begin() as conn:
                conn.execute(text("CREATE TABLE scratch (x INTEGER)"))
            with engine.connect() as conn:
                assert conn.execute(text("SELECT count(*) FROM scratch")).scalar() == 0
        finally:
            engine.dispose()

    def test_session_scope_wraps_database_errors(self):
        engine = create_store_engine("sqlite://")
        factory = sessionmaker(bind=engine)
        try:
            with pytest.raises(PersistenceError) as exc_info:
                with session_scope(factory) as session:
                    session.execute(text("SELECT * FROM no_such_table"))
        finally:
            engine.dispose()

        assert isinstance(exc_info.value.__cause__, OperationalError)

    def test_session_scope_propagates_other_errors(self):
        engine = create_store_engine("sqlite://")
        factory = sessionmaker(bind=engine)
        try:
            with pytest.raises(KeyError):
                with session_scope(factory):
                    raise KeyError("boom")
        finally:
            engine.dispose()
