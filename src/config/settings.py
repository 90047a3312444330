"""Settings module for persistent config."""

import os

from src.database.mysql import MySQLConfig
from src.database.postgres import PostgresConfig
from src.domain.errors import ConfigurationError

DEFAULT_CACHE_KEY = "application.persistent.config"
DEFAULT_CACHE_TTL = 3600 * 24

STORAGE_BACKENDS = ("postgres", "mysql", "array")
CACHE_BACKENDS = ("redis", "memory", "none")


def _read_secret(name: str, env_var: str, default: str | None = None) -> str | None:
    """Read value from Docker secret or environment."""
    secret_path = f"/run/secrets/{name}"
    try:
        with open(secret_path) as f:
            return f.read().strip()
    except FileNotFoundError:
        return os.getenv(env_var, default)


def _int_env(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from e


def _float_env(env_var: str, default: float) -> float:
    raw = os.getenv(env_var)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{env_var} must be a number, got {raw!r}") from e


def parse_ttl(raw: str | None) -> int | None:
    """
    Parse cache TTL setting.

    Returns:
        Seconds, or None for "forever" (empty, "0" or "forever")

    Raises:
        ConfigurationError: If value is negative or not a number
    """
    if raw is None:
        return DEFAULT_CACHE_TTL
    text = raw.strip().lower()
    if text in ("", "0", "forever"):
        return None
    try:
        seconds = int(text)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cache TTL: {raw!r}") from e
    if seconds < 0:
        raise ConfigurationError(f"Cache TTL must be positive, got {seconds}")
    return seconds


class CacheConfig:
    """Redis cache configuration."""

    def __init__(self) -> None:
        self.host = os.getenv("CACHE_HOST", "localhost")
        self.port = _int_env("CACHE_PORT", 6379)
        self.db = _int_env("CACHE_DB", 0)
        self.password = _read_secret("cache_password", "CACHE_PASSWORD")
        self.socket_timeout = _float_env("CACHE_SOCKET_TIMEOUT", 2.0)
        self.prefix = os.getenv("CACHE_PREFIX", "")


class PersistentConfigSettings:
    """Persistent config overlay settings."""

    def __init__(self) -> None:
        self.storage = os.getenv("PERSISTENT_CONFIG_STORAGE", "postgres").lower()
        self.table = os.getenv("PERSISTENT_CONFIG_TABLE", "persistent_config")
        self.cache = os.getenv("PERSISTENT_CONFIG_CACHE", "redis").lower()
        self.cache_key = os.getenv("PERSISTENT_CONFIG_CACHE_KEY", DEFAULT_CACHE_KEY)
        self.cache_ttl = parse_ttl(os.getenv("PERSISTENT_CONFIG_CACHE_TTL"))
        self.items_path = os.getenv("PERSISTENT_CONFIG_ITEMS")
        self.defaults_path = os.getenv("PERSISTENT_CONFIG_DEFAULTS")

        if self.storage not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"PERSISTENT_CONFIG_STORAGE must be one of {STORAGE_BACKENDS}, "
                f"got {self.storage!r}"
            )
        if self.cache not in CACHE_BACKENDS:
            raise ConfigurationError(
                f"PERSISTENT_CONFIG_CACHE must be one of {CACHE_BACKENDS}, got {self.cache!r}"
            )


class Settings:
    """Application settings."""

    def __init__(self) -> None:
        # Service info
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "persistent-config")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")
        self.log_level = os.getenv("LOG_LEVEL", "info")

        self.persistent = PersistentConfigSettings()

        # Storage backends
        self.postgres = PostgresConfig(port=_int_env("DB_PORT", 5432))
        self.mysql = MySQLConfig(port=_int_env("MYSQL_PORT", 3306))

        # Redis
        self.cache = CacheConfig()
