"""
Structured error types for cronlock.

Every failure the scheduled-lock subsystem can observe is expressed as a
``CronLockError`` subclass carrying a category, a retry hint and structured
context (lock name, holder, task).  Callers log ``to_dict()`` rather than
formatting messages by hand.

Manifesto:
    - **Typed hierarchy:** configuration, storage and task failures are
      different things and are handled at different layers
    - **Explicit retry semantics:** a store outage is transient, a bad cron
      expression is not
    - **Error chaining:** the driver or task exception is always kept as
      ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       CronLockError                          │
        │  (category, retryable, context, cause)                       │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigError          TransientError       StorageError      │
        │  (CONFIG)             (retryable=True)     (STORAGE)         │
        │       │                     │                   │            │
        │  ConfigInvalidError   LockUnavailableError ReleaseFailedError│
        │                                                              │
        │  OrchestrationError                                          │
        │  (ORCHESTRATION)                                             │
        │       │                                                      │
        │  GuardedTaskError                                            │
        └──────────────────────────────────────────────────────────────┘

    Lock contention is deliberately absent: another node holding the lock is
    routine and is reported as a skip outcome, never raised.

Tags:
    error-handling, exception-hierarchy, cronlock, locks, scheduling

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"
    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        lock_name: Name of the lock involved
        holder: Holder identity of the calling instance
        task: Name of the guarded task
        metadata: Additional key-value pairs
    """

    lock_name: str | None = None
    holder: str | None = None
    task: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["lock_name", "holder", "task"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CronLockError(Exception):
    """
    Base exception for all cronlock errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass what is specific to the failure.

    Examples:
        >>> error = CronLockError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(lock_name="nightly").context.lock_name
        'nightly'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CronLockError:
        """
        Add context to this error (fluent API).

        Usage:
            raise LockUnavailableError("store down", cause=exc).with_context(
                lock_name="report", holder="node-a"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(CronLockError):
    """Temporary error; the next scheduler tick is the retry."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class LockUnavailableError(TransientError):
    """The lock store could not be reached during an acquire attempt."""


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CronLockError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ConfigInvalidError(ConfigError):
    """A lock, cron or duration setting is malformed or inconsistent."""

    def __init__(self, key: str, value: Any, message: str | None = None, **kwargs: Any):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}", **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["key"] = self.key
        result["value"] = repr(self.value)
        return result


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(CronLockError):
    """Lock store write error."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class ReleaseFailedError(StorageError):
    """Shortening a held lock failed; it will self-expire at its ceiling."""


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(CronLockError):
    """Scheduler or guarded-run error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class GuardedTaskError(OrchestrationError):
    """The body of a guarded task raised."""


def is_retryable(error: Exception) -> bool:
    """Check whether an error is worth retrying on a later tick."""
    if isinstance(error, CronLockError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CronLockError",
    "TransientError",
    "LockUnavailableError",
    "ConfigError",
    "ConfigInvalidError",
    "StorageError",
    "ReleaseFailedError",
    "OrchestrationError",
    "GuardedTaskError",
    "is_retryable",
]
