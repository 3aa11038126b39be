"""
Credentials - Resolution of backend API keys.

Resolution order for a provider:
1. Explicit per-run override (a key supplied with the run request)
2. os.environ (e.g. GEMINI_API_KEY), then the SECRET_NAME_<PROVIDER>
   indirection naming another variable
3. A .env file, read fresh on every lookup with python-dotenv
4. The managed secret store, cached for a short TTL
5. Absent

Keys are only ever logged through hash_key_for_logging().
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Protocol

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


# Provider ID -> environment variable holding its key
PROVIDER_ENV_MAP: dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "claude": "CLAUDE_API_KEY",
    "kimi": "KIMI_API_KEY",
    "fal": "FAL_KEY",
}

# Provider ID -> environment variable overriding its base URL
PROVIDER_URL_ENV_MAP: dict[str, str] = {
    "kimi": "KIMI_API_URL",
}

DEFAULT_TTL = 300.0

_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")


def hash_key_for_logging(key: str | None) -> str:
    """Mask a key for log output, keeping the first 8 and last 4 characters."""
    if not key or len(key) < 12:
        return "***"
    return f"{key[:8]}...{key[-4:]}"


def is_valid_key_format(key: str | None) -> bool:
    """Cheap sanity check on a user-supplied key before it is used."""
    if not key or not 10 <= len(key) <= 500:
        return False
    return bool(_KEY_PATTERN.match(key))


def env_var_for(provider_id: str) -> str:
    return PROVIDER_ENV_MAP.get(provider_id, f"{provider_id.upper()}_API_KEY")


# ============================================================================
# Secret store
# ============================================================================

class SecretStore(Protocol):
    """A managed secret store (cloud secrets manager, vault, ...)."""

    async def fetch(self, secret_name: str) -> str | None:
        ...


@dataclass
class _CacheEntry:
    value: str | None
    expires_at: float


class CachedSecretStore:
    """
    TTL cache in front of a SecretStore.

    Lookups for the same secret are serialised with a per-name lock so a
    burst of dispatches results in a single store call.
    """

    def __init__(
        self,
        store: SecretStore,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, secret_name: str) -> str | None:
        lock = self._locks.setdefault(secret_name, asyncio.Lock())
        async with lock:
            entry = self._cache.get(secret_name)
            if entry is not None and entry.expires_at > self._clock():
                return entry.value

            value = await self._store.fetch(secret_name)
            self._cache[secret_name] = _CacheEntry(value, self._clock() + self._ttl)
            return value

    def invalidate(self, secret_name: str | None = None) -> None:
        if secret_name is None:
            self._cache.clear()
        else:
            self._cache.pop(secret_name, None)


# ============================================================================
# Resolver
# ============================================================================

class CredentialResolver:
    """
    Resolves the API key for a provider.

    One resolver is built per run so per-run overrides never leak into
    another run; the secret store cache is shared.

    Example:
        resolver = CredentialResolver(overrides={"gemini": "user-key"})
        key = await resolver.resolve("gemini")
    """

    def __init__(
        self,
        overrides: Mapping[str, str] | None = None,
        store: CachedSecretStore | None = None,
        dotenv_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._overrides = {k: v for k, v in (overrides or {}).items() if v}
        self._store = store
        self._dotenv_path = dotenv_path
        self._environ = environ if environ is not None else os.environ

    async def resolve(self, provider_id: str) -> str | None:
        """Return the key for a provider, or None when none is configured."""
        if provider_id in self._overrides:
            logger.debug("Using per-run key for %s", provider_id)
            return self._overrides[provider_id]

        env_key = env_var_for(provider_id)
        value = self.lookup_env(env_key)
        if value:
            logger.debug(
                "Using %s for %s: %s", env_key, provider_id, hash_key_for_logging(value)
            )
            return value

        secret_name = self.lookup_env(f"SECRET_NAME_{provider_id.upper()}")
        if secret_name:
            value = self.lookup_env(secret_name)
            if value:
                logger.debug("Using %s for %s", secret_name, provider_id)
                return value

        if self._store is not None:
            value = await self._from_store(provider_id, secret_name, env_key)
            if value:
                logger.debug(
                    "Using secret store for %s: %s",
                    provider_id, hash_key_for_logging(value),
                )
                return value

        return None

    def lookup_env(self, name: str) -> str | None:
        """Read a variable from the environment, then from the .env file."""
        value = self._environ.get(name)
        if value:
            return value
        return self._read_from_dotenv(name)

    def base_url_for(self, provider_id: str) -> str | None:
        env_name = PROVIDER_URL_ENV_MAP.get(provider_id)
        return self.lookup_env(env_name) if env_name else None

    def _read_from_dotenv(self, name: str) -> str | None:
        dotenv_path = self._dotenv_path or Path.cwd() / ".env"
        if not dotenv_path.exists():
            return None
        # dotenv_values leaves os.environ untouched
        return dotenv_values(dotenv_path).get(name) or None

    async def _from_store(
        self, provider_id: str, secret_name: str | None, env_key: str
    ) -> str | None:
        name = secret_name or self.lookup_env("SECRET_NAME") or provider_id
        try:
            raw = await self._store.get(name)
        except Exception as e:
            logger.warning(
                "Secret store lookup for %s failed: %s", provider_id, type(e).__name__
            )
            return None
        if not raw:
            return None

        # JSON secrets hold several keys; pick ours by env var name
        try:
            parsed = json.loads(raw)
        except ValueError:
            return raw
        if isinstance(parsed, dict):
            value = parsed.get(env_key)
            return str(value) if value else None
        return raw


async def resolve_credential(
    provider_id: str, resolver: CredentialResolver | None = None
) -> str | None:
    """Resolve a provider key with a default (environment-only) resolver."""
    resolver = resolver or CredentialResolver()
    return await resolver.resolve(provider_id)
