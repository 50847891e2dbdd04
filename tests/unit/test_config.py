"""Unit tests for AppSettings and sub-configs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import (
    AppSettings,
    AuthSettings,
    DatabaseSettings,
    HasherSettings,
    SessionSettings,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def with_mongo(monkeypatch):
    """Set the required MONGODB_URI so AppSettings can be instantiated."""
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    return monkeypatch


# ---------------------------------------------------------------------------
# DatabaseSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_loads_mongodb_uri(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        assert DatabaseSettings().mongodb_uri == "mongodb://localhost:27017/"

    def test_default_db_name(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        monkeypatch.delenv("DB_NAME", raising=False)
        assert DatabaseSettings().db_name == "identity-portal"

    def test_missing_mongodb_uri_raises(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        with pytest.raises(PydanticValidationError):
            DatabaseSettings()


# ---------------------------------------------------------------------------
# HasherSettings
# ---------------------------------------------------------------------------


class TestHasherSettings:
    def test_defaults_are_the_minimums(self):
        s = HasherSettings()
        assert (s.time_cost, s.memory_cost, s.parallelism) == (3, 65536, 4)
        assert (s.hash_len, s.salt_len) == (32, 16)

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("HASHER_TIME_COST", "5")
        assert HasherSettings().time_cost == 5

    @pytest.mark.parametrize(
        "var, value",
        [
            ("HASHER_TIME_COST", "2"),
            ("HASHER_MEMORY_COST", "32768"),
            ("HASHER_PARALLELISM", "1"),
            ("HASHER_HASH_LEN", "16"),
            ("HASHER_SALT_LEN", "8"),
        ],
        ids=["time_cost", "memory_cost", "parallelism", "hash_len", "salt_len"],
    )
    def test_below_minimum_rejected(self, monkeypatch, var, value):
        monkeypatch.setenv(var, value)
        with pytest.raises(PydanticValidationError):
            HasherSettings()


# ---------------------------------------------------------------------------
# SessionSettings
# ---------------------------------------------------------------------------


class TestSessionSettings:
    def test_defaults(self, monkeypatch):
        for var in (
            "SESSION_SECRET",
            "SESSION_MAX_AGE_SECONDS",
            "SESSION_UPDATE_AGE_SECONDS",
        ):
            monkeypatch.delenv(var, raising=False)
        s = SessionSettings()
        assert s.session_secret == ""
        assert s.session_max_age_seconds == 86400
        assert s.session_update_age_seconds == 3600


# ---------------------------------------------------------------------------
# AuthSettings
# ---------------------------------------------------------------------------


class TestAuthSettings:
    def test_default_providers(self, monkeypatch):
        monkeypatch.delenv("OAUTH_PROVIDERS", raising=False)
        assert AuthSettings().oauth_providers == (
            "google",
            "github",
            "facebook",
            "linkedin",
            "apple",
        )

    def test_trailing_slash_stripped(self):
        assert AuthSettings(app_url="https://id.example.com/").app_url == "https://id.example.com"

    def test_providers_normalised_and_deduped(self):
        s = AuthSettings(oauth_providers=(" Google", "github", "GOOGLE", ""))
        assert s.oauth_providers == ("google", "github")

    def test_credentials_is_not_a_provider(self):
        with pytest.raises(PydanticValidationError):
            AuthSettings(oauth_providers=("google", "credentials"))

    def test_frozen(self):
        s = AuthSettings()
        with pytest.raises(PydanticValidationError):
            s.app_url = "https://other.example.com"


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "env, expected",
    [("production", True), ("development", False)],
    ids=["production", "development"],
)
def test_is_production(with_mongo, env, expected):
    with_mongo.setenv("ENV", env)
    assert AppSettings().is_production is expected


class TestAppSettings:
    def test_sub_configs_populated(self, with_mongo):
        s = AppSettings()
        for attr in ("db", "hasher", "session", "auth", "oauth", "email", "logging"):
            assert getattr(s, attr) is not None, f"sub-config '{attr}' is None"

    def test_explicit_sub_config_kept(self, with_mongo):
        auth = AuthSettings(oauth_providers=("github",))
        assert AppSettings(auth=auth).auth.oauth_providers == ("github",)
