"""RetryPlugin: run the task under a :class:`RetryManager` policy."""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any

from corekit.execution.context import ExecutionContext
from corekit.execution.plugin import ExecutorPlugin
from corekit.execution.retry import RetryManager


class RetryPlugin(ExecutorPlugin):
    """Replaces the task with a retrying version in ``on_exec``.

    Retry options found in ``context.parameters`` (``max_retries``,
    ``retry_delay``, ...) override the manager's defaults for that call.
    Exhaustion surfaces as ``RetryError``; a ``should_retry`` veto lets the
    original error through.

    Example:
        >>> executor.use(RetryPlugin(RetryManager({"max_retries": 5})))
        >>> await executor.exec({"retry_delay": 100}, flaky_task)
    """

    only_one = True

    def __init__(self, retry_manager: RetryManager | None = None, plugin_name: str | None = None):
        super().__init__(plugin_name=plugin_name or "RetryPlugin")
        self.retry_manager = retry_manager or RetryManager()

    def on_exec(self, context: ExecutionContext, task: Any) -> Any:
        previous = context.hooks_runtimes.return_value
        target = previous if callable(previous) else task
        options = context.parameters if isinstance(context.parameters, Mapping) else None

        async def attempt(ctx: ExecutionContext) -> Any:
            result = target(ctx)
            if inspect.isawaitable(result):
                result = await result
            return result

        return self.retry_manager.wrap(attempt, options)
