"""Corekit Core -- errors, logging and settings shared by the execution layer.

Architecture::

    errors.py     ExecutorError hierarchy (RetryError, AbortError, ...)
    logging.py    structlog configuration + get_logger
    settings.py   CorekitSettings (pydantic-settings, COREKIT_* env vars)
"""

from corekit.core.errors import (
    ABORT_ERROR_ID,
    EXECUTOR_ASYNC_ERROR,
    EXECUTOR_SYNC_ERROR,
    RETRY_ERROR_ID,
    AbortError,
    DuplicateAbortIdError,
    ErrorCategory,
    ExecutorError,
    RetryError,
    is_abort_error,
)
from corekit.core.logging import configure_logging, get_logger
from corekit.core.settings import CorekitSettings, get_settings

__all__ = [
    "ABORT_ERROR_ID",
    "EXECUTOR_ASYNC_ERROR",
    "EXECUTOR_SYNC_ERROR",
    "RETRY_ERROR_ID",
    "AbortError",
    "DuplicateAbortIdError",
    "ErrorCategory",
    "ExecutorError",
    "RetryError",
    "is_abort_error",
    "configure_logging",
    "get_logger",
    "CorekitSettings",
    "get_settings",
]
