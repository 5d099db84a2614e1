"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the engine-wide exception base classes.

Provider failures never reach this hierarchy's callers: they
are caught inside each adapter and turned into absence. These
classes cover the remaining programming / setup errors.

============================================================
EXCEPTION HIERARCHY
============================================================
PriceEngineError (base)
├── ConfigurationError
└── CacheBackendError

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# BASE EXCEPTION
# ============================================================

class PriceEngineError(Exception):
    """
    Base exception for all engine errors.

    All exceptions carry:
    - context: for debugging
    - cause: the underlying exception, if any
    - timestamp: when the error occurred
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(PriceEngineError):
    """Invalid engine configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)
        self.config_key = config_key


# ============================================================
# CACHE ERRORS
# ============================================================

class CacheBackendError(PriceEngineError):
    """
    Cache backend could not be initialised.

    Only raised while building a backend; the factory catches it
    and falls back to the disabled store.
    """

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if backend:
            context["backend"] = backend
        super().__init__(message, context=context, **kwargs)
        self.backend = backend


__all__ = [
    "PriceEngineError",
    "ConfigurationError",
    "CacheBackendError",
]
