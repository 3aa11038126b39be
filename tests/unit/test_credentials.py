"""
Tests for credential resolution.
"""

import json

import pytest

from ai_media_flow.providers.credentials import (
    CachedSecretStore,
    CredentialResolver,
    env_var_for,
    hash_key_for_logging,
    is_valid_key_format,
)


class FakeStore:
    def __init__(self, secrets=None, error=None):
        self.secrets = secrets or {}
        self.error = error
        self.fetches = []

    async def fetch(self, secret_name):
        self.fetches.append(secret_name)
        if self.error is not None:
            raise self.error
        return self.secrets.get(secret_name)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def no_dotenv(tmp_path):
    return tmp_path / ".env"


class TestResolver:
    """Tests for CredentialResolver precedence."""

    @pytest.mark.asyncio
    async def test_override_wins(self, no_dotenv):
        resolver = CredentialResolver(
            overrides={"gemini": "from-request"},
            environ={"GEMINI_API_KEY": "from-env"},
            dotenv_path=no_dotenv,
        )
        assert await resolver.resolve("gemini") == "from-request"

    @pytest.mark.asyncio
    async def test_empty_override_is_ignored(self, no_dotenv):
        resolver = CredentialResolver(
            overrides={"gemini": ""},
            environ={"GEMINI_API_KEY": "from-env"},
            dotenv_path=no_dotenv,
        )
        assert await resolver.resolve("gemini") == "from-env"

    @pytest.mark.asyncio
    async def test_env_before_store(self, no_dotenv):
        store = FakeStore({"openai": "from-store"})
        resolver = CredentialResolver(
            store=CachedSecretStore(store),
            environ={"OPENAI_API_KEY": "from-env"},
            dotenv_path=no_dotenv,
        )
        assert await resolver.resolve("openai") == "from-env"
        assert store.fetches == []

    @pytest.mark.asyncio
    async def test_dotenv_file(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("FAL_KEY=from-dotenv\n")
        resolver = CredentialResolver(environ={}, dotenv_path=path)
        assert await resolver.resolve("fal") == "from-dotenv"

    @pytest.mark.asyncio
    async def test_secret_name_indirection(self, no_dotenv):
        resolver = CredentialResolver(
            environ={"SECRET_NAME_KIMI": "MY_KIMI", "MY_KIMI": "indirect"},
            dotenv_path=no_dotenv,
        )
        assert await resolver.resolve("kimi") == "indirect"

    @pytest.mark.asyncio
    async def test_store_lookup_by_provider(self, no_dotenv):
        store = FakeStore({"claude": "from-store"})
        resolver = CredentialResolver(
            store=CachedSecretStore(store), environ={}, dotenv_path=no_dotenv
        )
        assert await resolver.resolve("claude") == "from-store"

    @pytest.mark.asyncio
    async def test_store_json_secret(self, no_dotenv):
        bundle = json.dumps({"GEMINI_API_KEY": "g-key", "OPENAI_API_KEY": "o-key"})
        store = FakeStore({"app-keys": bundle})
        resolver = CredentialResolver(
            store=CachedSecretStore(store),
            environ={"SECRET_NAME": "app-keys"},
            dotenv_path=no_dotenv,
        )
        assert await resolver.resolve("openai") == "o-key"
        assert await resolver.resolve("kimi") is None

    @pytest.mark.asyncio
    async def test_store_failure_is_absent(self, no_dotenv):
        store = FakeStore(error=ConnectionError("unreachable"))
        resolver = CredentialResolver(
            store=CachedSecretStore(store), environ={}, dotenv_path=no_dotenv
        )
        assert await resolver.resolve("gemini") is None

    @pytest.mark.asyncio
    async def test_absent(self, no_dotenv):
        resolver = CredentialResolver(environ={}, dotenv_path=no_dotenv)
        assert await resolver.resolve("gemini") is None

    def test_base_url(self, no_dotenv):
        resolver = CredentialResolver(
            environ={"KIMI_API_URL": "https://llm.example/v1/chat"}, dotenv_path=no_dotenv
        )
        assert resolver.base_url_for("kimi") == "https://llm.example/v1/chat"
        assert resolver.base_url_for("gemini") is None


class TestCachedSecretStore:
    """Tests for the TTL cache."""

    @pytest.mark.asyncio
    async def test_caches_until_ttl(self):
        store = FakeStore({"gemini": "key"})
        clock = FakeClock()
        cache = CachedSecretStore(store, ttl=300, clock=clock)

        assert await cache.get("gemini") == "key"
        clock.now = 299
        assert await cache.get("gemini") == "key"
        assert store.fetches == ["gemini"]

        clock.now = 301
        await cache.get("gemini")
        assert store.fetches == ["gemini", "gemini"]

    @pytest.mark.asyncio
    async def test_invalidate(self):
        store = FakeStore({"gemini": "key"})
        cache = CachedSecretStore(store)
        await cache.get("gemini")
        cache.invalidate("gemini")
        await cache.get("gemini")
        assert len(store.fetches) == 2


class TestKeyHelpers:
    def test_hash_key_for_logging(self):
        assert hash_key_for_logging("AIzaSyD-1234567890abcd") == "AIzaSyD-...abcd"
        assert hash_key_for_logging("short") == "***"
        assert hash_key_for_logging(None) == "***"

    def test_is_valid_key_format(self):
        assert is_valid_key_format("sk-proj_abc.123456")
        assert not is_valid_key_format("too-short")
        assert not is_valid_key_format("has spaces in it")
        assert not is_valid_key_format("x" * 501)
        assert not is_valid_key_format(None)

    def test_env_var_for(self):
        assert env_var_for("fal") == "FAL_KEY"
        assert env_var_for("mystery") == "MYSTERY_API_KEY"
