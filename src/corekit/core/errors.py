"""
Structured error types for the corekit execution primitives.

Every failure that leaves an executor, a retry wrapper, or an abort
coordinator is surfaced as an ``ExecutorError`` (or a subclass). The error
carries a stable string ``id`` that callers can switch on, the original
``cause`` for root cause analysis, and a category for routing.

Manifesto:
    - **Stable identifiers:** ``UNKNOWN_ASYNC_ERROR``, ``RETRY_ERROR`` and
      ``ABORT_ERROR`` are part of the public contract
    - **Error chaining:** the underlying exception is preserved as ``cause``
      and as ``__cause__``
    - **Message from cause:** an executor error reads like the failure it wraps

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                     ExecutorError                         │
        │               (id, cause, category, retryable)            │
        ├──────────────────────────────────────────────────────────┤
        │  RetryError            AbortError        DuplicateAbortId │
        │  (RETRY_ERROR)         (ABORT_ERROR)     (ValueError too) │
        │  attempts, last_error  abort_id, timeout                  │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> err = ExecutorError("UNKNOWN_ASYNC_ERROR", ValueError("boom"))
    >>> str(err)
    'boom'
    >>> err.id
    'UNKNOWN_ASYNC_ERROR'
    >>> ExecutorError("MY_ID").message
    'MY_ID'

Tags:
    error-handling, exception-hierarchy, executor, retry, abort, corekit

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

EXECUTOR_ASYNC_ERROR = "UNKNOWN_ASYNC_ERROR"
EXECUTOR_SYNC_ERROR = "UNKNOWN_SYNC_ERROR"
RETRY_ERROR_ID = "RETRY_ERROR"
ABORT_ERROR_ID = "ABORT_ERROR"
DUPLICATE_ABORT_ID = "DUPLICATE_ABORT_ID"


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    EXECUTION = "EXECUTION"
    RETRY = "RETRY"
    ABORT = "ABORT"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


class ExecutorError(Exception):
    """Base exception for every failure surfaced by an executor.

    The message is derived from ``cause``: an exception contributes its own
    message, a string is used as-is, and anything else (or an empty message)
    falls back to the error ``id``.

    Attributes:
        id: Stable identifier such as ``UNKNOWN_ASYNC_ERROR``
        cause: The wrapped exception or message, if any
        category: ErrorCategory for routing
        retryable: Whether retrying the operation may succeed
    """

    default_category: ErrorCategory = ErrorCategory.EXECUTION
    default_retryable: bool = False

    def __init__(
        self,
        error_id: str,
        cause: Any = None,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
    ):
        if isinstance(cause, BaseException):
            message = str(cause)
        elif isinstance(cause, str):
            message = cause
        else:
            message = ""

        if not message:
            message = error_id

        super().__init__(message)
        self.id = error_id
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        # A plain string cause is already the message
        self.cause = None if message == cause else cause

        if isinstance(cause, BaseException):
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "id": self.id,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.id!r}, {self.message!r})"


class RetryError(ExecutorError):
    """Raised after every permitted attempt has failed.

    The message reads ``All N attempts failed: <last error message>``.
    """

    default_category = ErrorCategory.RETRY

    def __init__(
        self,
        attempts: int,
        last_error: BaseException | None = None,
        message: str | None = None,
    ):
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(
            RETRY_ERROR_ID,
            message or f"All {attempts} attempts failed: {detail}",
        )
        self.attempts = attempts
        self.last_error = last_error
        if last_error is not None:
            self.__cause__ = last_error

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = self.attempts
        if self.last_error is not None:
            result["last_error"] = str(self.last_error)
        return result


class AbortError(ExecutorError):
    """An operation was cancelled, manually or by its deadline."""

    default_category = ErrorCategory.ABORT

    def __init__(
        self,
        message: str = "The operation was aborted",
        abort_id: str | None = None,
        timeout: float | None = None,
    ):
        super().__init__(ABORT_ERROR_ID, message)
        self.abort_id = abort_id
        self.timeout = timeout

    @property
    def is_timeout(self) -> bool:
        return self.timeout is not None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["abort_id"] = self.abort_id
        if self.timeout is not None:
            result["timeout"] = self.timeout
        return result


class DuplicateAbortIdError(ExecutorError, ValueError):
    """An abort id was registered while a previous registration is still live."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, abort_id: str, pool_name: str):
        super().__init__(
            DUPLICATE_ABORT_ID,
            f'Operation with ID "{abort_id}" is already registered in {pool_name}',
        )
        self.abort_id = abort_id
        self.pool_name = pool_name


def is_abort_error(error: object | None) -> bool:
    """True if ``error`` signifies a cancellation rather than a failure."""
    if error is None:
        return False
    if isinstance(error, AbortError):
        return True
    if isinstance(error, ExecutorError) and error.id == ABORT_ERROR_ID:
        return True
    if isinstance(error, (asyncio.CancelledError, asyncio.TimeoutError, TimeoutError)):
        return True
    return type(error).__name__ == "AbortError"


__all__ = [
    "ABORT_ERROR_ID",
    "DUPLICATE_ABORT_ID",
    "EXECUTOR_ASYNC_ERROR",
    "EXECUTOR_SYNC_ERROR",
    "RETRY_ERROR_ID",
    "AbortError",
    "DuplicateAbortIdError",
    "ErrorCategory",
    "ExecutorError",
    "RetryError",
    "is_abort_error",
]
