"""Plugin-driven executors: run a unit of work through lifecycle hooks.

An executor owns an ordered plugin registry and wraps every task in the same
lifecycle. Plugins observe and steer the execution through the shared
:class:`~corekit.execution.context.ExecutionContext`.

Architecture:

    .. code-block:: text

        exec(parameters, task)
          │
          ├─ 1. context = ExecutionContext(parameters)
          ├─ 2. on_before   (all plugins, registration order)
          ├─ 3. on_exec     (all plugins; each sees the previous return value)
          │      ├─ no hook ran / nothing returned → await task(context)
          │      ├─ callable returned              → await returned(context)
          │      └─ any other value                → used as the result
          ├─ 4. on_success  (all plugins; may reassign context.return_value)
          │
          ├─ on failure in 2-4:
          │      on_error (all plugins) → replacement error or wrap in
          │      ExecutorError("UNKNOWN_ASYNC_ERROR")
          │
          └─ finally: on_finally (failures ignored), context.reset()

    ``exec`` raises, ``exec_no_error`` returns the ExecutorError instead.

Example:
    >>> executor = AsyncExecutor()
    >>> executor.use(LoggerPlugin())
    >>> result = await executor.exec({"user_id": 1}, fetch_user)

Tags:
    corekit, execution, executor, plugins, lifecycle

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from corekit.core.errors import EXECUTOR_ASYNC_ERROR, EXECUTOR_SYNC_ERROR, ExecutorError
from corekit.core.logging import get_logger
from corekit.execution.context import ExecutionContext, create_context
from corekit.execution.hooks import (
    run_plugins_hook,
    run_plugins_hook_sync,
    run_plugins_hooks,
    run_plugins_hooks_sync,
)
from corekit.execution.plugin import (
    ON_BEFORE,
    ON_ERROR,
    ON_EXEC,
    ON_FINALLY,
    ON_SUCCESS,
    ExecutorPlugin,
    PluginLike,
    plugin_name_of,
)

logger = get_logger(__name__)

R = TypeVar("R")

Task = Callable[[ExecutionContext], Any]


@dataclass
class ExecutorConfig:
    """Stage names used by an executor.

    Attributes:
        before_hooks: Stage name(s) run before the task
        after_hooks: Stage name(s) run after a successful task
        exec_hook: Stage that may intercept or replace the task
        error_hook: Stage run when any earlier stage fails
        finally_hook: Stage run after success or failure
    """

    before_hooks: str | Sequence[str] = ON_BEFORE
    after_hooks: str | Sequence[str] = ON_SUCCESS
    exec_hook: str = ON_EXEC
    error_hook: str = ON_ERROR
    finally_hook: str | Sequence[str] = ON_FINALLY


class BasePluginExecutor:
    """Plugin registry shared by the async and sync executors."""

    def __init__(self, config: ExecutorConfig | None = None):
        self.config = config or ExecutorConfig()
        self._plugins: list[Any] = []

    @property
    def plugins(self) -> list[Any]:
        """Registered plugins in registration order (a copy)."""
        return list(self._plugins)

    def _is_registered(self, plugin: Any) -> bool:
        # Anonymous plugins have no name to collide on
        name = getattr(plugin, "plugin_name", "")
        for existing in self._plugins:
            if existing is plugin:
                return True
            if name and getattr(existing, "plugin_name", "") == name:
                return True
            if isinstance(plugin, ExecutorPlugin) and type(existing) is type(plugin):
                return True
        return False

    def use(self, plugin: PluginLike) -> None:
        """Register a plugin.

        A plugin with ``only_one`` set is skipped (with a warning) when the
        same instance, a plugin with the same name, or another instance of
        the same plugin class is already registered.

        Raises:
            TypeError: If ``plugin`` is None or a class instead of an instance
        """
        if plugin is None or isinstance(plugin, type):
            raise TypeError("Plugin must be an object instance")

        if getattr(plugin, "only_one", False) and self._is_registered(plugin):
            logger.warning(
                "executor.plugin_already_used",
                plugin=plugin_name_of(plugin),
                message=f"Plugin {plugin_name_of(plugin)} is already used, skip adding",
            )
            return

        self._plugins.append(plugin)

    @staticmethod
    def _resolve_task(parameters_or_task: Any, task: Any) -> tuple[Any, Any]:
        if task is None:
            actual_task, parameters = parameters_or_task, None
        else:
            actual_task, parameters = task, parameters_or_task

        if not callable(actual_task):
            raise TypeError("Task must be a callable!")

        return actual_task, parameters


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AsyncExecutor(BasePluginExecutor):
    """Asynchronous executor; tasks and hooks may be sync or async callables.

    Example:
        >>> executor = AsyncExecutor()
        >>> executor.use(RetryPlugin(RetryManager()))
        >>> data = await executor.exec({"max_retries": 3}, load_data)
    """

    async def run_hook(
        self, plugins: Sequence[Any], hook_name: str, context: ExecutionContext, *args: Any
    ) -> Any:
        return await run_plugins_hook(plugins, hook_name, context, *args)

    async def run_hooks(
        self,
        plugins: Sequence[Any],
        hook_names: str | Sequence[str],
        context: ExecutionContext,
        *args: Any,
    ) -> Any:
        return await run_plugins_hooks(plugins, hook_names, context, *args)

    async def exec(self, parameters_or_task: Any, task: Task | None = None) -> Any:
        """Run ``task`` through the full lifecycle and return its result.

        Accepts ``exec(task)`` or ``exec(parameters, task)``.

        Raises:
            TypeError: If the task is not callable
            ExecutorError: When the task or a hook fails and no on_error
                hook raised something else
        """
        actual_task, parameters = self._resolve_task(parameters_or_task, task)
        context = create_context(parameters)
        return await self._run(context, actual_task)

    async def exec_no_error(self, parameters_or_task: Any, task: Task | None = None) -> Any:
        """Like :meth:`exec`, but failures are returned as ExecutorError."""
        try:
            return await self.exec(parameters_or_task, task)
        except ExecutorError as e:
            return e
        except Exception as e:
            return ExecutorError(EXECUTOR_ASYNC_ERROR, e)

    async def _run(self, context: ExecutionContext, task: Task) -> Any:
        try:
            await self._handler(context, task)
            return context.return_value
        except Exception as e:
            raise await self._handle_error(context, e)
        finally:
            await self._handle_finally(context)

    async def _handler(self, context: ExecutionContext, task: Task) -> Any:
        await self.run_hooks(self._plugins, self.config.before_hooks, context)
        await self._run_exec(context, task)
        await self.run_hooks(self._plugins, self.config.after_hooks, context)
        return context.return_value

    async def _run_exec(self, context: ExecutionContext, task: Task) -> Any:
        await self.run_hook(self._plugins, self.config.exec_hook, context, task)

        runtimes = context.hooks_runtimes
        if not runtimes.times or runtimes.return_value is None:
            result = await _resolve(task(context))
        elif callable(runtimes.return_value):
            result = await _resolve(runtimes.return_value(context))
        else:
            result = runtimes.return_value

        context.set_return_value(result)
        return result

    async def _handle_error(self, context: ExecutionContext, error: Exception) -> BaseException:
        context.set_error(error)
        logger.debug("executor.stage_failed", error=str(error), error_type=type(error).__name__)

        await self.run_hook(self._plugins, self.config.error_hook, context)

        replacement = context.hooks_runtimes.return_value
        if replacement:
            context.set_error(replacement)

        if isinstance(context.error, ExecutorError):
            return context.error

        wrapped = ExecutorError(EXECUTOR_ASYNC_ERROR, context.error)
        context.set_error(wrapped)
        return wrapped

    async def _handle_finally(self, context: ExecutionContext) -> None:
        context.runtimes(continue_on_error=True)
        try:
            await self.run_hooks(self._plugins, self.config.finally_hook, context)
        finally:
            context.reset()


class SyncExecutor(BasePluginExecutor):
    """Synchronous executor with the same lifecycle as :class:`AsyncExecutor`.

    Tasks and hooks must be plain callables; an awaitable return is rejected
    with TypeError.
    """

    def run_hook(
        self, plugins: Sequence[Any], hook_name: str, context: ExecutionContext, *args: Any
    ) -> Any:
        return run_plugins_hook_sync(plugins, hook_name, context, *args)

    def run_hooks(
        self,
        plugins: Sequence[Any],
        hook_names: str | Sequence[str],
        context: ExecutionContext,
        *args: Any,
    ) -> Any:
        return run_plugins_hooks_sync(plugins, hook_names, context, *args)

    def exec(self, parameters_or_task: Any, task: Task | None = None) -> Any:
        """Run ``task`` through the full lifecycle and return its result."""
        actual_task, parameters = self._resolve_task(parameters_or_task, task)
        context = create_context(parameters)
        return self._run(context, actual_task)

    def exec_no_error(self, parameters_or_task: Any, task: Task | None = None) -> Any:
        """Like :meth:`exec`, but failures are returned as ExecutorError."""
        try:
            return self.exec(parameters_or_task, task)
        except ExecutorError as e:
            return e
        except Exception as e:
            return ExecutorError(EXECUTOR_SYNC_ERROR, e)

    def _run(self, context: ExecutionContext, task: Task) -> Any:
        try:
            self.run_hooks(self._plugins, self.config.before_hooks, context)
            self._run_exec(context, task)
            self.run_hooks(self._plugins, self.config.after_hooks, context)
            return context.return_value
        except Exception as e:
            raise self._handle_error(context, e)
        finally:
            context.runtimes(continue_on_error=True)
            try:
                self.run_hooks(self._plugins, self.config.finally_hook, context)
            finally:
                context.reset()

    def _run_exec(self, context: ExecutionContext, task: Task) -> Any:
        self.run_hook(self._plugins, self.config.exec_hook, context, task)

        runtimes = context.hooks_runtimes
        if not runtimes.times or runtimes.return_value is None:
            result = _ensure_sync(task(context))
        elif callable(runtimes.return_value):
            result = _ensure_sync(runtimes.return_value(context))
        else:
            result = runtimes.return_value

        context.set_return_value(result)
        return result

    def _handle_error(self, context: ExecutionContext, error: Exception) -> BaseException:
        context.set_error(error)
        logger.debug("executor.stage_failed", error=str(error), error_type=type(error).__name__)

        self.run_hook(self._plugins, self.config.error_hook, context)

        replacement = context.hooks_runtimes.return_value
        if replacement:
            context.set_error(replacement)

        if isinstance(context.error, ExecutorError):
            return context.error

        wrapped = ExecutorError(EXECUTOR_SYNC_ERROR, context.error)
        context.set_error(wrapped)
        return wrapped


def _ensure_sync(result: R | Awaitable[R]) -> R:
    if inspect.isawaitable(result):
        close = getattr(result, "close", None)
        if callable(close):
            close()
        raise TypeError("Task returned an awaitable; use AsyncExecutor for async tasks")
    return result
