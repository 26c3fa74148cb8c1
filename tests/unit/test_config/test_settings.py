"""Unit tests for server configuration."""

import pytest

from dataforseo_mcp.config import (
    AuthConfig,
    CacheConfig,
    ServerConfig,
    ServerProfile,
    UpstreamConfig,
    validate_config,
)

ENV_KEYS = [
    "MCP_PROFILE",
    "MCP_TRANSPORT",
    "MCP_SERVER_NAME",
    "MCP_SERVER_HOST",
    "MCP_SERVER_PORT",
    "MCP_ENABLE_CACHE",
    "MCP_ENABLE_AUTH",
    "MCP_ENABLE_ERROR_HANDLER",
    "MCP_ENABLE_ENHANCED_LOGGING",
    "MCP_REQUIRE_AUTH",
    "SHARED_SECRET",
    "DATAFORSEO_USERNAME",
    "DATAFORSEO_PASSWORD",
    "DATAFORSEO_BASE_URL",
    "CACHE_DATABASE_URL",
    "CACHE_TTL_KEYWORD_DAYS",
    "CACHE_BATCH_CHUNK_SIZE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove configuration variables inherited from the shell."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATAFORSEO_USERNAME", "login@example.com")
    monkeypatch.setenv("DATAFORSEO_PASSWORD", "secret")
    return monkeypatch


class TestProfiles:
    """Test predefined profiles."""

    def test_basic_profile(self):
        config = ServerConfig.from_profile(ServerProfile.BASIC)

        assert config.get_enabled_features() == ["error_handler"]
        assert config.cache_config is None
        assert config.upstream_config.has_credentials

    def test_cached_profile(self):
        config = ServerConfig.from_profile(ServerProfile.CACHED)

        assert config.features["cache"] is True
        assert config.features["auth"] is False
        assert config.cache_config.database_url == "sqlite+aiosqlite:///./seo_cache.db"

    def test_complete_profile(self, clean_env):
        clean_env.setenv("SHARED_SECRET", "0123456789abcdef")

        config = ServerConfig.from_profile(ServerProfile.COMPLETE)

        assert set(config.get_enabled_features()) == {
            "cache",
            "auth",
            "error_handler",
            "enhanced_logging",
        }
        assert config.auth_config.shared_secret == "0123456789abcdef"


class TestFromEnv:
    """Test environment loading."""

    def test_defaults_to_cached_profile(self):
        config = ServerConfig.from_env()

        assert config.profile is ServerProfile.CACHED
        assert config.transport == "stdio"
        assert config.logging_config is not None

    def test_unknown_profile_falls_back_to_custom(self, clean_env):
        clean_env.setenv("MCP_PROFILE", "turbo")

        config = ServerConfig.from_env()

        assert config.profile is ServerProfile.CUSTOM
        assert config.upstream_config.username == "login@example.com"

    def test_feature_override(self, clean_env):
        clean_env.setenv("MCP_PROFILE", "BASIC")
        clean_env.setenv("MCP_ENABLE_CACHE", "true")
        clean_env.setenv("CACHE_DATABASE_URL", "postgresql+asyncpg://u:p@db/seo")

        config = ServerConfig.from_env()

        assert config.features["cache"] is True
        assert config.cache_config.database_url == "postgresql+asyncpg://u:p@db/seo"

    def test_server_overrides(self, clean_env):
        clean_env.setenv("MCP_TRANSPORT", "http")
        clean_env.setenv("MCP_SERVER_PORT", "9000")

        config = ServerConfig.from_env()

        assert config.transport == "http"
        assert config.port == 9000

    def test_chunk_size_is_clamped(self, clean_env):
        clean_env.setenv("CACHE_BATCH_CHUNK_SIZE", "500")
        assert CacheConfig.from_env().batch_chunk_size == 50

        assert CacheConfig(batch_chunk_size=0).batch_chunk_size == 1

    def test_ttl_days(self, clean_env):
        clean_env.setenv("CACHE_TTL_KEYWORD_DAYS", "14")

        assert CacheConfig.from_env().ttl_days() == {
            "keyword_data": 14,
            "rankings": 7,
            "domain_overview": 7,
        }


class TestToDict:
    def test_secrets_are_masked(self):
        config = ServerConfig(
            upstream_config=UpstreamConfig(username="u", password="p"),
            auth_config=AuthConfig(shared_secret="top-secret"),
        )

        data = config.to_dict()

        assert data["upstream_config"]["password"] == "***"
        assert data["upstream_config"]["username"] == "u"
        assert data["auth_config"]["shared_secret"] == "***"
        assert config.upstream_config.password == "p"


class TestValidateConfig:
    """Test configuration validation."""

    def test_valid_cached_config(self):
        is_valid, errors = validate_config(ServerConfig.from_profile(ServerProfile.CACHED))

        assert is_valid
        assert errors == []

    def test_invalid_transport_and_name(self):
        config = ServerConfig(name="bad name!", transport="websocket")

        is_valid, errors = validate_config(config)

        assert not is_valid
        assert len(errors) == 2

    def test_unsupported_database_driver(self):
        config = ServerConfig.from_profile(ServerProfile.BASIC)
        config.features["cache"] = True
        config.cache_config = CacheConfig(database_url="mysql://localhost/seo", ttl_keyword_days=0)

        is_valid, errors = validate_config(config)

        assert not is_valid
        assert any("mysql" in error for error in errors)
        assert any("keyword_data" in error for error in errors)

    def test_http_auth_requires_shared_secret(self):
        config = ServerConfig.from_profile(ServerProfile.BASIC)
        config.transport = "http"
        config.features["auth"] = True
        config.auth_config = AuthConfig(shared_secret=None, require_auth=True)

        is_valid, errors = validate_config(config)

        assert not is_valid
        assert any("SHARED_SECRET" in error for error in errors)

    def test_short_shared_secret(self):
        config = ServerConfig.from_profile(ServerProfile.BASIC)
        config.transport = "http"
        config.features["auth"] = True
        config.auth_config = AuthConfig(shared_secret="short")

        _, errors = validate_config(config)

        assert len(errors) == 1

    def test_upstream_settings(self):
        config = ServerConfig(
            upstream_config=UpstreamConfig(base_url="ftp://x", timeout=0, max_retries=0)
        )

        _, errors = validate_config(config)

        assert len(errors) == 3
