"""
Structured error types for ferry.

Every failure the engine reports is a FerryError subclass carrying a
category, a retry hint, structured context (operation, phase, store alias,
run id) and the chained underlying exception.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure domain
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry metadata for logging
    - **Error Chaining:** Preserve original exceptions as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                          FerryError                          │
        │         (category, retryable, context, cause)                │
        ├──────────────────────────────────────────────────────────────┤
        │  ValidationError     ConfigError       StoreError            │
        │  (VALIDATION)        (CONFIG)          (STORE)               │
        │                                            │                 │
        │                                    StoreConnectionError      │
        │                                                              │
        │  RecordError         PhaseError        SchedulerError        │
        │  (RECORD)            (PHASE)           (SCHEDULER)           │
        └──────────────────────────────────────────────────────────────┘

Propagation rules:
    - ValidationError is raised synchronously while building a definition
      and aborts the whole scheduled set before any store connects.
    - StoreConnectionError fails one run; exit actions are skipped.
    - RecordError is raised from ``process`` and terminates the owning
      extraction loop, not only the record.
    - PhaseError is returned for a failed init, extract or exit action;
      exit actions still run after init or extract failures.
    - SchedulerError wraps run/close failures of one pipeline; it is logged
      and never cancels sibling pipelines.

Usage:
    from ferry.core.errors import RecordError

    try:
        await load(store, registry, record)
    except Exception as e:
        raise RecordError("load failed", cause=e).with_context(alias="dst")

Tags:
    error-handling, exception-hierarchy, error-context, ferry
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    VALIDATION = "VALIDATION"     # Malformed definition, unknown alias
    CONFIG = "CONFIG"             # Unknown store type, unreadable file
    STORE = "STORE"               # Store client failures
    NETWORK = "NETWORK"           # Store connect failures
    RECORD = "RECORD"             # Transform/load failure for one record
    PHASE = "PHASE"               # Init, extract or exit action failure
    SCHEDULER = "SCHEDULER"       # Pipeline run/close failure inside a pass
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()`` so log lines stay
    compact.

    Examples:
        >>> ctx = ErrorContext(operation="users", phase="load", alias="dst")
        >>> ctx.to_dict()
        {'operation': 'users', 'phase': 'load', 'alias': 'dst'}
    """

    operation: str | None = None
    phase: str | None = None
    alias: str | None = None
    run_id: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "phase", "alias", "run_id", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FerryError(Exception):
    """
    Base exception for all ferry errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.

    Args:
        message: Human readable description
        category: Override of the class default category
        retryable: Override of the class default retry hint
        context: Structured metadata
        cause: Underlying exception, also set as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FerryError:
        """Add context fields, unknown keys land in ``metadata``.

        Returns:
            ``self`` for chaining.
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialise for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DEFINITION ERRORS (never retryable)
# =============================================================================


class ValidationError(FerryError):
    """Malformed operation definition: missing phase, unknown alias, bad action.

    ``errors`` keeps one ``"location: message"`` entry per failing field.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, *, errors: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = self.errors
        return result


class ConfigError(FerryError):
    """Unusable configuration: unknown store type, unreadable definition file."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# RUNTIME ERRORS
# =============================================================================


class StoreError(FerryError):
    """Store client failure outside of connect (query, write, close)."""

    default_category = ErrorCategory.STORE


class StoreConnectionError(StoreError):
    """A store could not be connected; fatal for the run."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class RecordError(FerryError):
    """A transform, load or interval action failed for one record.

    The error terminates the whole extraction loop of its source.
    """

    default_category = ErrorCategory.RECORD


class PhaseError(FerryError):
    """An init, extract or exit action raised.

    Init and extract failures abort the remaining extract work of the run;
    exit actions still run.
    """

    default_category = ErrorCategory.PHASE


class SchedulerError(FerryError):
    """A pipeline's run or close failed inside a scheduler pass."""

    default_category = ErrorCategory.SCHEDULER
    default_retryable = True


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Return the retry hint of a FerryError, False for anything else."""
    if isinstance(error, FerryError):
        return error.retryable
    return False


def categorize_error(error: BaseException) -> ErrorCategory:
    """Best-effort category for arbitrary exceptions."""
    if isinstance(error, FerryError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (ValueError, TypeError, KeyError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FerryError",
    "ValidationError",
    "ConfigError",
    "StoreError",
    "StoreConnectionError",
    "RecordError",
    "PhaseError",
    "SchedulerError",
    "is_retryable",
    "categorize_error",
]
