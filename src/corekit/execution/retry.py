"""Retry policy engine with fixed, custom and exponential delays.

``RetryManager`` holds a normalized :class:`RetryOptions` and applies it to
callables. Every attempt that fails is offered to ``should_retry``; a veto
re-raises the original error untouched, while running out of attempts raises
:class:`~corekit.core.errors.RetryError`.

``normalize`` resolves the delay policy into a single function of the
zero-based index ``n`` of the attempt that just failed:

.. code-block:: text

    retry_delay is callable      → retry_delay(n)
    use_exponential_backoff      → lambda n: retry_delay * 2 ** n
    otherwise                    → lambda n: retry_delay
    delay <= 0                   → no sleep

All delays are in milliseconds.

Example:
    >>> manager = RetryManager(RetryOptions(max_retries=5, retry_delay=200,
    ...                                     use_exponential_backoff=True))
    >>> fetch = manager.wrap(fetch_remote)
    >>> data = await fetch("/api/users")
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import inspect
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar, Union

from corekit.core.errors import RetryError
from corekit.core.logging import get_logger

if TYPE_CHECKING:
    from corekit.core.settings import CorekitSettings
    from corekit.execution.abort import AbortSignal

logger = get_logger(__name__)

T = TypeVar("T")

SAFE_MAX_RETRIES = 16
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1000

RetryDelay = Union[float, Callable[[int], float]]


def _always_retry(error: BaseException) -> bool:
    return True


def delay_function(retry_delay: RetryDelay, exponential: bool = False) -> Callable[[int], float]:
    """Turn a fixed, exponential or custom delay into ``f(attempt) -> ms``."""
    if callable(retry_delay):
        return retry_delay
    if exponential:
        return lambda attempt: retry_delay * (2**attempt)
    return lambda attempt: retry_delay


@dataclass
class RetryOptions:
    """Retry policy configuration.

    Attributes:
        max_retries: Total attempts including the first one, clamped to [1, 16]
        retry_delay: Milliseconds, or a function of the zero-based attempt index
        use_exponential_backoff: Double a numeric delay after every failure
        should_retry: Predicate; False stops retrying and re-raises the error
        on_failed_attempt: Called with (error, attempt) after every failure
        signal: Abort signal checked before each attempt
        delay: Resolved delay function, set by ``RetryManager.normalize``
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: RetryDelay = DEFAULT_RETRY_DELAY
    use_exponential_backoff: bool = False
    should_retry: Callable[[BaseException], bool] = _always_retry
    on_failed_attempt: Callable[[BaseException, int], Any] | None = None
    signal: AbortSignal | None = None
    delay: Callable[[int], float] | None = field(default=None, repr=False, compare=False)

    def delay_for(self, attempt: int) -> float:
        """Milliseconds to wait after the zero-based ``attempt`` failed."""
        delay = self.delay or delay_function(self.retry_delay, self.use_exponential_backoff)
        return delay(attempt)


def _resume_with(
    pending: Any, fn: Callable[[int], Any], first_attempt: int
) -> Callable[[int], Any]:
    """Attempt function that yields ``pending`` once, then calls ``fn`` again."""

    def attempt_fn(attempt: int) -> Any:
        return pending if attempt == first_attempt else fn(attempt)

    return attempt_fn


# ``delay`` is derived from the other fields and never merged from overrides
_OPTION_FIELDS = frozenset(f.name for f in dataclasses.fields(RetryOptions)) - {"delay"}


def clamp_max_retries(value: int | None) -> int:
    if value is None:
        value = DEFAULT_MAX_RETRIES
    return min(max(1, int(value)), SAFE_MAX_RETRIES)


def merge_options(
    base: RetryOptions, overrides: RetryOptions | Mapping[str, Any] | None = None
) -> RetryOptions:
    """Shallow-merge ``overrides`` over ``base``.

    A mapping overrides only the keys it names (unknown keys and None values
    are ignored); a ``RetryOptions`` instance replaces ``base`` entirely.
    """
    if overrides is None:
        return dataclasses.replace(base)
    if isinstance(overrides, RetryOptions):
        return dataclasses.replace(overrides)
    changes = {
        key: value
        for key, value in overrides.items()
        if key in _OPTION_FIELDS and value is not None
    }
    return dataclasses.replace(base, **changes)


class RetryManager:
    """Applies a retry policy to sync and async callables.

    Per-call options passed to :meth:`wrap` or :meth:`retry` are shallow
    merged over the manager's own defaults for that call only.
    """

    def __init__(self, options: RetryOptions | Mapping[str, Any] | None = None):
        self.options = self.normalize(options)

    @classmethod
    def from_settings(cls, settings: CorekitSettings | None = None) -> RetryManager:
        """Build a manager from ``COREKIT_RETRY_*`` settings."""
        if settings is None:
            from corekit.core.settings import get_settings

            settings = get_settings()
        return cls(
            RetryOptions(
                max_retries=settings.retry_max_retries,
                retry_delay=settings.retry_delay_ms,
                use_exponential_backoff=settings.retry_exponential_backoff,
            )
        )

    @staticmethod
    def normalize(options: RetryOptions | Mapping[str, Any] | None = None) -> RetryOptions:
        """Fill defaults, clamp ``max_retries`` to [1, 16] and resolve the delay."""
        normalized = merge_options(RetryOptions(), options)
        normalized.max_retries = clamp_max_retries(normalized.max_retries)
        if normalized.retry_delay is None:
            normalized.retry_delay = DEFAULT_RETRY_DELAY
        if normalized.should_retry is None:
            normalized.should_retry = _always_retry
        normalized.use_exponential_backoff = bool(normalized.use_exponential_backoff)
        normalized.delay = delay_function(
            normalized.retry_delay, normalized.use_exponential_backoff
        )
        return normalized

    def resolve(self, options: RetryOptions | Mapping[str, Any] | None = None) -> RetryOptions:
        """Effective options for one call."""
        return self.normalize(merge_options(self.options, options))

    def wrap(
        self,
        fn: Callable[..., T],
        options: RetryOptions | Mapping[str, Any] | None = None,
    ) -> Callable[..., T]:
        """Return ``fn`` wrapped with the retry policy.

        Coroutine functions get an async wrapper; plain functions get a
        blocking wrapper that sleeps with ``time.sleep``. When a plain
        callable turns out to return an awaitable (a lambda around a
        coroutine, an async ``__call__``), the blocking wrapper returns a
        coroutine that applies the rest of the policy on the event loop.
        """
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                opts = self.resolve(options)
                return await self._run_async(lambda _attempt: fn(*args, **kwargs), opts)

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            opts = self.resolve(options)
            return self._run_sync(lambda _attempt: fn(*args, **kwargs), opts)

        return sync_wrapper

    async def retry(
        self,
        fn: Callable[[int], Any],
        options: RetryOptions | Mapping[str, Any] | None = None,
    ) -> Any:
        """Run ``fn(attempt)`` under the policy; ``attempt`` is zero-based."""
        return await self._run_async(fn, self.resolve(options))

    async def _run_async(
        self, fn: Callable[[int], Any], opts: RetryOptions, start: int = 0
    ) -> Any:
        last_error: Exception | None = None

        for attempt in range(start, opts.max_retries):
            if opts.signal is not None:
                opts.signal.throw_if_aborted()

            try:
                result = fn(attempt)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as e:
                last_error = e
                if opts.on_failed_attempt is not None:
                    callback_result = opts.on_failed_attempt(e, attempt)
                    if inspect.isawaitable(callback_result):
                        await callback_result
                if not self._accepts_retry(opts, e, attempt):
                    raise
                if attempt + 1 >= opts.max_retries:
                    break

            delay = opts.delay_for(attempt)
            if delay > 0:
                await asyncio.sleep(delay / 1000)

        raise self._exhausted(opts, last_error)

    def _run_sync(self, fn: Callable[[int], Any], opts: RetryOptions) -> Any:
        last_error: Exception | None = None

        for attempt in range(opts.max_retries):
            if opts.signal is not None:
                opts.signal.throw_if_aborted()

            try:
                result = fn(attempt)
                if inspect.isawaitable(result):
                    return self._run_async(_resume_with(result, fn, attempt), opts, attempt)
                return result
            except Exception as e:
                last_error = e
                if opts.on_failed_attempt is not None:
                    opts.on_failed_attempt(e, attempt)
                if not self._accepts_retry(opts, e, attempt):
                    raise
                if attempt + 1 >= opts.max_retries:
                    break

            delay = opts.delay_for(attempt)
            if delay > 0:
                time.sleep(delay / 1000)

        raise self._exhausted(opts, last_error)

    @staticmethod
    def _accepts_retry(opts: RetryOptions, error: Exception, attempt: int) -> bool:
        if not opts.should_retry(error):
            logger.debug("retry.vetoed", attempt=attempt, error=str(error))
            return False

        logger.debug(
            "retry.attempt_failed",
            attempt=attempt,
            max_retries=opts.max_retries,
            error=str(error),
            error_type=type(error).__name__,
        )
        return True

    @staticmethod
    def _exhausted(opts: RetryOptions, last_error: Exception | None) -> RetryError:
        logger.warning(
            "retry.exhausted",
            attempts=opts.max_retries,
            error=str(last_error) if last_error is not None else None,
        )
        return RetryError(opts.max_retries, last_error)
