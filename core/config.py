"""
Core Module - Engine Configuration.

============================================================
CONFIGURABLE PRICE ENGINE
============================================================

All runtime parameters are configurable:
- Cache backend and TTL policy
- Provider API keys and per-call timeout
- Fan-out bound for reports and series
- Log level

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)
- YAML config file

============================================================
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


CACHE_BACKENDS = ("memory", "sql", "disabled")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


# =============================================================
# PARSING HELPERS
# =============================================================


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"{key} must be a boolean",
        config_key=key,
        actual_value=raw,
    )


def _parse_int(key: str, raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{key} must be an integer",
            config_key=key,
            actual_value=raw,
            cause=e,
        )


def _parse_float(key: str, raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{key} must be a number",
            config_key=key,
            actual_value=raw,
            cause=e,
        )


# =============================================================
# CACHE SETTINGS
# =============================================================


@dataclass
class CacheSettings:
    """Which cache backend to build and how."""
    enabled: bool = True
    backend: str = "memory"
    database_url: Optional[str] = None
    max_entries: int = 10_000

    def validate(self) -> None:
        if self.backend not in CACHE_BACKENDS:
            raise ConfigurationError(
                f"Unknown cache backend '{self.backend}' (expected one of {CACHE_BACKENDS})",
                config_key="cache.backend",
                actual_value=self.backend,
            )
        if self.max_entries < 1:
            raise ConfigurationError(
                "cache.max_entries must be >= 1",
                config_key="cache.max_entries",
                actual_value=self.max_entries,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "backend": self.backend,
            "database_url": "***" if self.database_url else None,
            "max_entries": self.max_entries,
        }


# =============================================================
# TTL POLICY
# =============================================================


@dataclass
class TtlPolicy:
    """
    Cache lifetime per data volatility class (seconds).

    - current:    live aggregator / NFT floor prices
    - dex:        DEX pair prices, which move fastest
    - historical: prices at a past date or instant
    - chart:      NFT floor series
    - slug:       NFT contract -> collection slug lookups
    """
    current: int = 300
    dex: int = 60
    historical: int = 86_400
    chart: int = 21_600
    slug: int = 86_400

    def validate(self) -> None:
        for name, value in self.to_dict().items():
            if value < 0:
                raise ConfigurationError(
                    f"ttl.{name} must be >= 0",
                    config_key=f"ttl.{name}",
                    actual_value=value,
                )

    def to_dict(self) -> Dict[str, int]:
        return {
            "current": self.current,
            "dex": self.dex,
            "historical": self.historical,
            "chart": self.chart,
            "slug": self.slug,
        }


# =============================================================
# PROVIDER SETTINGS
# =============================================================


@dataclass
class ProviderSettings:
    """API keys and per-call timeout for external price providers."""
    coingecko_api_key: Optional[str] = None
    moralis_api_key: Optional[str] = None
    reservoir_api_key: Optional[str] = None
    opensea_api_key: Optional[str] = None
    adapter_timeout_seconds: float = 10.0

    def validate(self) -> None:
        if self.adapter_timeout_seconds <= 0:
            raise ConfigurationError(
                "providers.adapter_timeout_seconds must be > 0",
                config_key="providers.adapter_timeout_seconds",
                actual_value=self.adapter_timeout_seconds,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coingecko_api_key": bool(self.coingecko_api_key),
            "moralis_api_key": bool(self.moralis_api_key),
            "reservoir_api_key": bool(self.reservoir_api_key),
            "opensea_api_key": bool(self.opensea_api_key),
            "adapter_timeout_seconds": self.adapter_timeout_seconds,
        }


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class EngineConfig:
    """
    Main configuration for the price engine.

    Combines all sub-configurations.
    """
    cache: CacheSettings = field(default_factory=CacheSettings)
    ttl: TtlPolicy = field(default_factory=TtlPolicy)
    providers: ProviderSettings = field(default_factory=ProviderSettings)

    # Fan-out bound for reports and NFT series
    max_concurrent_resolutions: int = 5

    # Logging
    log_level: str = "INFO"

    def validate(self) -> "EngineConfig":
        """Raise ConfigurationError on the first invalid value."""
        self.cache.validate()
        self.ttl.validate()
        self.providers.validate()
        if self.max_concurrent_resolutions < 1:
            raise ConfigurationError(
                "max_concurrent_resolutions must be >= 1",
                config_key="max_concurrent_resolutions",
                actual_value=self.max_concurrent_resolutions,
            )
        return self

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "EngineConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - PRICE_CACHE_ENABLED
        - PRICE_CACHE_BACKEND
        - PRICE_CACHE_DATABASE_URL (falls back to DATABASE_URL)
        - PRICE_CACHE_MAX_ENTRIES
        - PRICE_TTL_CURRENT_SECONDS
        - PRICE_TTL_DEX_SECONDS
        - PRICE_TTL_HISTORICAL_SECONDS
        - PRICE_TTL_CHART_SECONDS
        - PRICE_TTL_SLUG_SECONDS
        - COINGECKO_API_KEY / MORALIS_API_KEY / RESERVOIR_API_KEY / OPENSEA_API_KEY
        - PRICE_ADAPTER_TIMEOUT_SECONDS
        - PRICE_MAX_CONCURRENT_RESOLUTIONS
        - LOG_LEVEL
        """
        if dotenv:
            load_dotenv()

        config = cls()

        # Cache
        if os.getenv("PRICE_CACHE_ENABLED"):
            config.cache.enabled = _parse_bool(
                "PRICE_CACHE_ENABLED", os.getenv("PRICE_CACHE_ENABLED")
            )
        if os.getenv("PRICE_CACHE_BACKEND"):
            config.cache.backend = os.getenv("PRICE_CACHE_BACKEND").strip().lower()
        config.cache.database_url = (
            os.getenv("PRICE_CACHE_DATABASE_URL") or os.getenv("DATABASE_URL") or None
        )
        if os.getenv("PRICE_CACHE_MAX_ENTRIES"):
            config.cache.max_entries = _parse_int(
                "PRICE_CACHE_MAX_ENTRIES", os.getenv("PRICE_CACHE_MAX_ENTRIES")
            )

        # TTL policy
        for name in config.ttl.to_dict():
            env_key = f"PRICE_TTL_{name.upper()}_SECONDS"
            if os.getenv(env_key):
                setattr(config.ttl, name, _parse_int(env_key, os.getenv(env_key)))

        # Providers
        config.providers.coingecko_api_key = os.getenv("COINGECKO_API_KEY") or None
        config.providers.moralis_api_key = os.getenv("MORALIS_API_KEY") or None
        config.providers.reservoir_api_key = os.getenv("RESERVOIR_API_KEY") or None
        config.providers.opensea_api_key = os.getenv("OPENSEA_API_KEY") or None
        if os.getenv("PRICE_ADAPTER_TIMEOUT_SECONDS"):
            config.providers.adapter_timeout_seconds = _parse_float(
                "PRICE_ADAPTER_TIMEOUT_SECONDS", os.getenv("PRICE_ADAPTER_TIMEOUT_SECONDS")
            )

        # Concurrency
        if os.getenv("PRICE_MAX_CONCURRENT_RESOLUTIONS"):
            config.max_concurrent_resolutions = _parse_int(
                "PRICE_MAX_CONCURRENT_RESOLUTIONS",
                os.getenv("PRICE_MAX_CONCURRENT_RESOLUTIONS"),
            )

        if os.getenv("LOG_LEVEL"):
            config.log_level = os.getenv("LOG_LEVEL").upper()

        return config.validate()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Unreadable or malformed files fall back to defaults with a
        warning. Readable files with invalid values raise
        ConfigurationError.
        """
        try:
            import yaml
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except Exception as e:
            logger.warning(f"Failed to load YAML config from {path}: {e}")
            return cls()

        config = cls()

        if "cache" in data:
            c = data["cache"] or {}
            config.cache = CacheSettings(
                enabled=bool(c.get("enabled", True)),
                backend=str(c.get("backend", "memory")).lower(),
                database_url=c.get("database_url"),
                max_entries=_parse_int("cache.max_entries", c.get("max_entries", 10_000)),
            )

        if "ttl" in data:
            t = data["ttl"] or {}
            defaults = TtlPolicy()
            config.ttl = TtlPolicy(**{
                name: _parse_int(f"ttl.{name}", t.get(name, getattr(defaults, name)))
                for name in defaults.to_dict()
            })

        if "providers" in data:
            p = data["providers"] or {}
            config.providers = ProviderSettings(
                coingecko_api_key=p.get("coingecko_api_key"),
                moralis_api_key=p.get("moralis_api_key"),
                reservoir_api_key=p.get("reservoir_api_key"),
                opensea_api_key=p.get("opensea_api_key"),
                adapter_timeout_seconds=_parse_float(
                    "providers.adapter_timeout_seconds",
                    p.get("adapter_timeout_seconds", 10.0),
                ),
            )

        if "max_concurrent_resolutions" in data:
            config.max_concurrent_resolutions = _parse_int(
                "max_concurrent_resolutions", data["max_concurrent_resolutions"]
            )
        if "log_level" in data:
            config.log_level = str(data["log_level"]).upper()

        return config.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (secrets masked)."""
        return {
            "cache": self.cache.to_dict(),
            "ttl": self.ttl.to_dict(),
            "providers": self.providers.to_dict(),
            "max_concurrent_resolutions": self.max_concurrent_resolutions,
            "log_level": self.log_level,
        }


# =============================================================
# GLOBAL CONFIG SINGLETON
# =============================================================


_default_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the global engine configuration."""
    global _default_config
    if _default_config is None:
        _default_config = EngineConfig.from_env()
    return _default_config


def set_config(config: Optional[EngineConfig]) -> None:
    """Set (or clear, with None) the global engine configuration."""
    global _default_config
    _default_config = config
