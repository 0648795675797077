"""Hook runner: drive one lifecycle stage across an ordered plugin list.

``run_plugins_hook`` is the heart of the executor. For one stage name it walks
the plugins in registration order and, for each one:

1. skips it when the hook method is missing or ``enabled()`` returns False
2. stops when ``hooks_runtimes.break_chain`` has been set
3. bumps ``hooks_runtimes.times`` and records plugin name/index
4. invokes the hook with the context plus any extra arguments
5. stores a non-None return in ``hooks_runtimes.return_value``, stopping
   early when ``return_break_chain`` is set

A hook that raises aborts the stage, unless ``continue_on_error`` is set on
the runtimes (the finally stage uses this).

Both coroutine hooks and plain hooks are accepted by the async runner; the
``*_sync`` runners call hooks directly and never await.

Tags:
    corekit, execution, hooks, plugins, lifecycle
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Sequence
from typing import Any

from corekit.core.logging import get_logger
from corekit.execution.context import ExecutionContext
from corekit.execution.plugin import plugin_name_of

logger = get_logger(__name__)


def run_plugin_hook(plugin: Any, hook_name: str, context: ExecutionContext, *args: Any) -> Any:
    """Call ``plugin.<hook_name>(context, *args)`` if it exists.

    Returns whatever the hook returns, which may be an awaitable.
    """
    hook = getattr(plugin, hook_name, None)
    if not callable(hook):
        return None
    return hook(context, *args)


def normalize_hook_names(hook_names: str | Iterable[str]) -> list[str]:
    if isinstance(hook_names, str):
        return [hook_names]
    return list(hook_names)


def _enter_hook(context: ExecutionContext, plugin: Any, hook_name: str, index: int) -> None:
    context.runtimes(
        plugin_name=plugin_name_of(plugin),
        hook_name=hook_name,
        index=index,
        times=context.hooks_runtimes.times + 1,
    )


def _ignored_failure(context: ExecutionContext, plugin: Any, hook_name: str, error: Exception) -> bool:
    if not context.should_continue_on_error():
        return False
    logger.warning(
        "hooks.hook_failed_ignored",
        plugin=plugin_name_of(plugin),
        hook=hook_name,
        error=str(error),
    )
    return True


async def run_plugins_hook(
    plugins: Sequence[Any],
    hook_name: str,
    context: ExecutionContext,
    *args: Any,
) -> Any:
    """Run one stage asynchronously; return the last non-None hook result."""
    return_value = None
    context.reset_hooks_runtimes(hook_name)

    for index, plugin in enumerate(list(plugins)):
        if context.should_skip_plugin_hook(plugin, hook_name):
            continue

        if context.should_break_chain():
            break

        _enter_hook(context, plugin, hook_name, index)

        try:
            result = run_plugin_hook(plugin, hook_name, context, *args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            if _ignored_failure(context, plugin, hook_name, e):
                continue
            raise

        if result is not None:
            return_value = result
            context.runtime_return_value(result)
            if context.should_break_chain_on_return():
                break

    return return_value


async def run_plugins_hooks(
    plugins: Sequence[Any],
    hook_names: str | Iterable[str],
    context: ExecutionContext,
    *args: Any,
) -> Any:
    """Run several stages in sequence; a break_chain stops the remaining ones."""
    last_return_value = None

    for hook_name in normalize_hook_names(hook_names):
        try:
            result = await run_plugins_hook(plugins, hook_name, context, *args)
        except Exception:
            if context.should_continue_on_error():
                continue
            raise

        if result is not None:
            last_return_value = result

        if context.should_break_chain():
            break

    return last_return_value


def run_plugins_hook_sync(
    plugins: Sequence[Any],
    hook_name: str,
    context: ExecutionContext,
    *args: Any,
) -> Any:
    """Synchronous twin of :func:`run_plugins_hook`."""
    return_value = None
    context.reset_hooks_runtimes(hook_name)

    for index, plugin in enumerate(list(plugins)):
        if context.should_skip_plugin_hook(plugin, hook_name):
            continue

        if context.should_break_chain():
            break

        _enter_hook(context, plugin, hook_name, index)

        try:
            result = run_plugin_hook(plugin, hook_name, context, *args)
        except Exception as e:
            if _ignored_failure(context, plugin, hook_name, e):
                continue
            raise

        if inspect.isawaitable(result):
            # Sync pipeline cannot await; close coroutines so they are not leaked
            close = getattr(result, "close", None)
            if callable(close):
                close()
            raise TypeError(
                f"Hook {hook_name} of plugin {plugin_name_of(plugin)} returned an "
                "awaitable; use AsyncExecutor for async hooks"
            )

        if result is not None:
            return_value = result
            context.runtime_return_value(result)
            if context.should_break_chain_on_return():
                break

    return return_value


def run_plugins_hooks_sync(
    plugins: Sequence[Any],
    hook_names: str | Iterable[str],
    context: ExecutionContext,
    *args: Any,
) -> Any:
    """Synchronous twin of :func:`run_plugins_hooks`."""
    last_return_value = None

    for hook_name in normalize_hook_names(hook_names):
        try:
            result = run_plugins_hook_sync(plugins, hook_name, context, *args)
        except Exception:
            if context.should_continue_on_error():
                continue
            raise

        if result is not None:
            last_return_value = result

        if context.should_break_chain():
            break

    return last_return_value
