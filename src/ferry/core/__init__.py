"""Ferry core: error hierarchy, structured logging, settings."""

from ferry.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    FerryError,
    PhaseError,
    RecordError,
    SchedulerError,
    StoreConnectionError,
    StoreError,
    ValidationError,
)
from ferry.core.logging import LogContext, configure_logging, get_logger
from ferry.core.settings import FerrySettings, get_settings

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "FerryError",
    "PhaseError",
    "RecordError",
    "SchedulerError",
    "StoreConnectionError",
    "StoreError",
    "ValidationError",
    "LogContext",
    "configure_logging",
    "get_logger",
    "FerrySettings",
    "get_settings",
]
