"""Watcher configuration and credential retrieval with TTL caching."""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

from peddler.config import settings
from peddler.errors import ConfigurationError
from peddler.watchers import AppConfig, Watcher, parse_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Parameter values ending with this suffix name a key in the credential bundle
SECRET_REFERENCE_SUFFIX = "-from-secrets"


class Credentials:
    """Opaque key/value bundle of secrets (cookies, webhook URLs, bot tokens)."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values = dict(values or {})

    def get(self, key: str, default: str = "") -> str:
        value = self._values.get(key)
        return str(value) if value is not None else default

    def resolve(self, value: Any) -> str:
        """
        Resolve a channel parameter that may reference a secret.

        ``"slack-webhook-url-from-secrets"`` is looked up as
        ``"slack-webhook-url"``; any other value is returned as-is.
        """
        if value is None:
            return ""
        text = str(value)
        if text.endswith(SECRET_REFERENCE_SUFFIX):
            return self.get(text[: -len(SECRET_REFERENCE_SUFFIX)])
        return text


@dataclass
class CachedValue(Generic[T]):
    """A cached value with an explicit expiry (monotonic seconds)."""

    value: T
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class SettingsProvider(ABC):
    """Source of watcher definitions and credentials."""

    @abstractmethod
    async def get_config(self) -> AppConfig:
        """Return the full watcher configuration."""

    @abstractmethod
    async def get_credentials(self) -> Credentials:
        """Return the credential bundle."""

    async def get_enabled_watchers(self) -> list[Watcher]:
        config = await self.get_config()
        return config.enabled_watchers

    async def get_watcher(self, watcher_id: str) -> Optional[Watcher]:
        config = await self.get_config()
        for watcher in config.watchers:
            if watcher.id == watcher_id:
                return watcher
        return None


class FileSettingsProvider(SettingsProvider):
    """
    Reads watchers and secrets from JSON files.

    Each document is cached in its own CachedValue and re-read once the TTL
    has passed.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        secrets_path: str | Path | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config_path = Path(config_path or settings.watchers_config_path)
        self.secrets_path = Path(secrets_path or settings.secrets_path)
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.config_cache_ttl_seconds
        )
        self._clock = clock
        self._config_cache: Optional[CachedValue[AppConfig]] = None
        self._secrets_cache: Optional[CachedValue[Credentials]] = None

    def invalidate(self) -> None:
        """Drop cached documents so the next read goes to disk."""
        self._config_cache = None
        self._secrets_cache = None

    async def get_config(self) -> AppConfig:
        now = self._clock()
        if self._config_cache and self._config_cache.is_fresh(now):
            return self._config_cache.value

        config = parse_config(self._read_json(self.config_path))
        self._config_cache = CachedValue(config, now + self.ttl_seconds)
        logger.info(
            "Loaded %d watchers (%d enabled) from %s",
            len(config.watchers),
            len(config.enabled_watchers),
            self.config_path,
        )
        return config

    async def get_credentials(self) -> Credentials:
        now = self._clock()
        if self._secrets_cache and self._secrets_cache.is_fresh(now):
            return self._secrets_cache.value

        if not self.secrets_path.exists():
            logger.warning("Secrets file %s not found; using empty credentials", self.secrets_path)
            credentials = Credentials()
        else:
            data = self._read_json(self.secrets_path)
            if not isinstance(data, dict):
                raise ConfigurationError(f"Secrets file {self.secrets_path} must be a JSON object")
            credentials = Credentials(data)

        self._secrets_cache = CachedValue(credentials, now + self.ttl_seconds)
        return credentials

    @staticmethod
    def _read_json(path: Path) -> Any:
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load {path}: {e}") from e


class StaticSettingsProvider(SettingsProvider):
    """Provider over an in-memory configuration (on-demand runs, tests)."""

    def __init__(self, config: AppConfig | dict, credentials: Credentials | Mapping[str, str] | None = None):
        self._config = config if isinstance(config, AppConfig) else parse_config(config)
        if isinstance(credentials, Credentials):
            self._credentials = credentials
        else:
            self._credentials = Credentials(credentials)

    async def get_config(self) -> AppConfig:
        return self._config

    async def get_credentials(self) -> Credentials:
        return self._credentials
