"""Cancellation tokens and abort coordinators.

``AbortSignal``/``AbortController`` are a small one-shot cancellation token:
the controller aborts, the signal is handed to the work and observed through
``aborted``, ``throw_if_aborted()``, ``await signal.wait()`` or listeners.

``AbortManager`` keeps a table of live registrations keyed by abort id.
``ProxyAbortManager`` extends it with a deadline and an external signal that
both feed the registration's derived signal.

Manifesto:
    - **Terminal paths release everything:** manual abort, timeout, external
      cancellation and cleanup all remove the entry, cancel its timer and
      detach its listener
    - **Only local cancellation is announced:** ``on_aborted`` and
      ``on_aborted_timeout`` never fire when the external signal aborts
    - **Callbacks cannot break bookkeeping:** user callback failures are
      logged and ignored

Architecture:

    .. code-block:: text

        register({abort_id?, abort_timeout?, signal?})
          │
          ├─ AbortManager.register → AbortController (derived signal)
          ├─ abort_timeout > 0     → loop.call_later(timeout) ─┐
          ├─ external signal       → add_listener ─────────────┤
          │                                                     ▼
          │                               first trigger wins: cleanup(),
          │                               abort derived signal, timeout
          │                               fires on_aborted_timeout once
          └─ returns AbortHandle(abort_id, signal)

Example:
    >>> manager = ProxyAbortManager()
    >>> abort_id, signal = manager.register({"abort_timeout": 5000})
    >>> try:
    ...     data = await fetch(url, signal=signal)
    ... finally:
    ...     manager.cleanup(abort_id)

Tags:
    corekit, execution, abort, cancellation, timeout

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
import math
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from corekit.core.errors import AbortError, DuplicateAbortIdError
from corekit.core.logging import get_logger

if TYPE_CHECKING:
    from corekit.core.settings import CorekitSettings

logger = get_logger(__name__)

AbortListener = Callable[[Any], Any]


class AbortSignal:
    """One-shot cancellation token.

    Listeners are called synchronously with the abort reason, once. A listener
    that raises is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._aborted = False
        self._reason: Any = None
        self._listeners: list[AbortListener] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: AbortListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def throw_if_aborted(self) -> None:
        if not self._aborted:
            return
        if isinstance(self._reason, BaseException):
            raise self._reason
        raise AbortError(str(self._reason) if self._reason else "The operation was aborted")

    async def wait(self) -> Any:
        """Wait until the signal aborts and return the reason."""
        if self._aborted:
            return self._reason

        future = asyncio.get_running_loop().create_future()

        def _resolve(reason: Any) -> None:
            if not future.done():
                future.set_result(reason)

        self.add_listener(_resolve)
        try:
            return await future
        finally:
            self.remove_listener(_resolve)

    def _abort(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(reason)
            except Exception as e:
                logger.warning("abort.listener_failed", error=str(e))

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self._aborted})"


class AbortController:
    """Owner side of an :class:`AbortSignal`."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> None:
        self.signal._abort(reason if reason is not None else AbortError())


@dataclass
class AbortConfig:
    """Registration options; plain dicts with the same keys are accepted too.

    Callbacks receive the config they were registered with.
    """

    abort_id: str | None = None
    abort_timeout: float | None = None
    signal: AbortSignal | None = None
    on_aborted: Callable[[Any], Any] | None = None
    on_aborted_timeout: Callable[[Any], Any] | None = None


class AbortHandle(NamedTuple):
    abort_id: str
    signal: AbortSignal


AbortTarget = Any  # abort id string, AbortConfig, mapping or parameters object


def read_config(config: Any, key: str) -> Any:
    if config is None:
        return None
    if isinstance(config, Mapping):
        return config.get(key)
    return getattr(config, key, None)


def write_config(config: Any, key: str, value: Any) -> None:
    if isinstance(config, MutableMapping):
        config[key] = value
    elif config is not None and not isinstance(config, Mapping):
        try:
            setattr(config, key, value)
        except (AttributeError, TypeError):
            pass


def is_valid_timeout(timeout: Any) -> bool:
    """Positive finite number; bools, NaN and non-positive values are not."""
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        return False
    return math.isfinite(timeout) and timeout > 0


@dataclass
class _Registration:
    controller: AbortController
    config: Any
    cleanup_callbacks: list[Callable[[], Any]] = field(default_factory=list)
    released: bool = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        callbacks, self.cleanup_callbacks = self.cleanup_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning("abort.cleanup_failed", error=str(e))


def _invoke_callback(name: str, callback: Any, config: Any, abort_id: str) -> None:
    if not callable(callback):
        return
    try:
        callback(config)
    except Exception as e:
        logger.warning("abort.callback_failed", callback=name, abort_id=abort_id, error=str(e))


class AbortManager:
    """Table of live abortable operations keyed by abort id.

    Ids are caller supplied or generated as ``"<pool_name>-<n>"``; a
    generated id is written back into a mutable config so later
    ``abort(config)``/``cleanup(config)`` calls find the registration.
    """

    def __init__(self, pool_name: str = "AbortManager"):
        self.pool_name = pool_name
        self._counter = 0
        self._registrations: dict[str, _Registration] = {}

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, abort_id: object) -> bool:
        return abort_id in self._registrations

    def generate_abort_id(self, config: Any = None) -> str:
        abort_id = read_config(config, "abort_id")
        if abort_id:
            return abort_id
        self._counter += 1
        return f"{self.pool_name}-{self._counter}"

    def _key_of(self, target: AbortTarget) -> str | None:
        if isinstance(target, str):
            return target
        return read_config(target, "abort_id")

    def register(self, config: Any = None) -> AbortHandle:
        """Register an operation and return its id and derived signal.

        Raises:
            DuplicateAbortIdError: If the id is already live in this manager
        """
        abort_id = self.generate_abort_id(config)
        if abort_id in self._registrations:
            raise DuplicateAbortIdError(abort_id, self.pool_name)

        write_config(config, "abort_id", abort_id)
        controller = AbortController()
        self._registrations[abort_id] = _Registration(controller=controller, config=config)
        return AbortHandle(abort_id, controller.signal)

    def get_signal(self, abort_id: str) -> AbortSignal | None:
        registration = self._registrations.get(abort_id)
        return registration.controller.signal if registration else None

    def cleanup(self, target: AbortTarget) -> None:
        """Release an operation without aborting it; unknown ids are ignored."""
        key = self._key_of(target)
        if key is None:
            return
        registration = self._registrations.pop(key, None)
        if registration is not None:
            registration.release()

    def abort(self, target: AbortTarget) -> bool:
        """Abort a live operation and fire its ``on_aborted`` callback.

        Returns:
            True if a live registration was found
        """
        key = self._key_of(target)
        if key is None:
            return False
        registration = self._registrations.get(key)
        if registration is None:
            return False

        config = registration.config if isinstance(target, str) else target
        self.cleanup(key)
        registration.controller.abort(AbortError("The operation was aborted", key))
        logger.debug("abort.aborted", pool=self.pool_name, abort_id=key)

        _invoke_callback("on_aborted", read_config(config, "on_aborted"), config, key)
        return True

    def abort_all(self) -> None:
        """Abort every live operation; no callbacks are fired."""
        registrations = list(self._registrations.items())
        self._registrations.clear()

        for key, registration in registrations:
            registration.release()
            registration.controller.abort(AbortError("All operations were aborted", key))

        if registrations:
            logger.debug("abort.aborted_all", pool=self.pool_name, count=len(registrations))

    async def auto_cleanup(self, factory: Callable[[AbortHandle], Any], config: Any = None) -> Any:
        """Register, run ``factory(handle)``, and always clean up afterwards."""
        handle = self.register(config if config is not None else {})
        try:
            result = factory(handle)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            self.cleanup(handle.abort_id)


class ProxyAbortManager(AbortManager):
    """Abort manager whose derived signals also honour a deadline and an
    external signal.

    Timers are scheduled on the running event loop, so registrations with a
    timeout must be made from inside a coroutine.

    Example:
        >>> manager = ProxyAbortManager()
        >>> handle = manager.register(AbortConfig(abort_timeout=5000,
        ...                                       signal=request_signal))
    """

    def __init__(
        self,
        pool_name: str = "ProxyAbortManager",
        default_timeout: float | None = None,
    ):
        super().__init__(pool_name)
        self.default_timeout = default_timeout
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @classmethod
    def from_settings(cls, settings: CorekitSettings | None = None) -> ProxyAbortManager:
        """Build a manager from ``COREKIT_ABORT_*`` settings."""
        if settings is None:
            from corekit.core.settings import get_settings

            settings = get_settings()
        return cls(
            pool_name=settings.abort_pool_name,
            default_timeout=settings.abort_default_timeout_ms,
        )

    @property
    def pending_timers(self) -> int:
        """Deadline timers scheduled and not yet fired or cancelled."""
        return len(self._timers)

    def register(self, config: Any = None) -> AbortHandle:
        handle = super().register(config)
        abort_id = handle.abort_id
        registration = self._registrations[abort_id]

        external: AbortSignal | None = read_config(config, "signal")
        timeout = read_config(config, "abort_timeout")
        if timeout is None:
            timeout = self.default_timeout

        if external is not None and external.aborted:
            self.cleanup(abort_id)
            registration.controller.abort(external.reason)
            return handle

        try:
            if is_valid_timeout(timeout):
                self._start_timer(registration, abort_id, timeout)
            if external is not None:
                self._follow_external(registration, abort_id, external)
        except BaseException:
            # No running loop for the deadline: the id must stay free
            self.cleanup(abort_id)
            raise

        logger.debug(
            "abort.registered",
            pool=self.pool_name,
            abort_id=abort_id,
            timeout=timeout if is_valid_timeout(timeout) else None,
            external=external is not None,
        )
        return handle

    def _start_timer(self, registration: _Registration, abort_id: str, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        timer = loop.call_later(timeout / 1000, self._on_timeout, registration, abort_id, timeout)
        self._timers[abort_id] = timer

        def _cancel_timer() -> None:
            timer.cancel()
            if self._timers.get(abort_id) is timer:
                del self._timers[abort_id]

        registration.cleanup_callbacks.append(_cancel_timer)

    def _follow_external(
        self, registration: _Registration, abort_id: str, external: AbortSignal
    ) -> None:
        def _on_external_abort(reason: Any) -> None:
            if registration.released:
                return
            self.cleanup(abort_id)
            registration.controller.abort(reason)

        external.add_listener(_on_external_abort)
        registration.cleanup_callbacks.append(lambda: external.remove_listener(_on_external_abort))

    def _on_timeout(self, registration: _Registration, abort_id: str, timeout: float) -> None:
        if registration.released:
            return

        self.cleanup(abort_id)
        registration.controller.abort(
            AbortError(f"The operation timed out after {timeout}ms", abort_id, timeout)
        )
        logger.info("abort.timeout", pool=self.pool_name, abort_id=abort_id, timeout=timeout)

        config = registration.config
        _invoke_callback(
            "on_aborted_timeout", read_config(config, "on_aborted_timeout"), config, abort_id
        )
