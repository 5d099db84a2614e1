"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- config: Engine configuration (env / YAML)
- exceptions: Engine exception base classes
- logging_config: Log format for entry points
"""

from .clock import ClockFactory, ClockProtocol, MockClock, SystemClock, now_utc
from .config import EngineConfig, get_config, set_config
from .exceptions import CacheBackendError, ConfigurationError, PriceEngineError
from .logging_config import configure_logging


__all__ = [
    "ClockFactory",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "now_utc",
    "EngineConfig",
    "get_config",
    "set_config",
    "CacheBackendError",
    "ConfigurationError",
    "PriceEngineError",
    "configure_logging",
]
