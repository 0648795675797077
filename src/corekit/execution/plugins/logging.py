"""LoggerPlugin: structured log line per lifecycle stage."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from corekit.core.logging import get_logger
from corekit.execution.context import ExecutionContext
from corekit.execution.plugin import ExecutorPlugin


class LoggerPlugin(ExecutorPlugin):
    """Logs ``executor.before``, ``executor.success``, ``executor.error`` and
    ``executor.finally`` events.

    Args:
        level: Log method used for the non-error stages
        include_parameter_keys: Parameter keys copied into the events
            (default: none, parameters may hold secrets or signals)
        include_result: Add ``return_value`` to the success event
    """

    def __init__(
        self,
        level: str = "info",
        include_parameter_keys: Iterable[str] | None = None,
        include_result: bool = False,
        plugin_name: str | None = None,
        logger: Any = None,
    ):
        super().__init__(plugin_name=plugin_name or "LoggerPlugin")
        self.level = level
        self.include_parameter_keys = list(include_parameter_keys or [])
        self.include_result = include_result
        self.logger = logger or get_logger("corekit.executor")

    def _emit(self, event: str, context: ExecutionContext, **fields: Any) -> None:
        params = context.parameters
        if self.include_parameter_keys and hasattr(params, "get"):
            fields["parameters"] = {k: params.get(k) for k in self.include_parameter_keys}
        getattr(self.logger, self.level, self.logger.info)(event, plugin=self.plugin_name, **fields)

    def on_before(self, context: ExecutionContext) -> None:
        self._emit("executor.before", context)

    def on_success(self, context: ExecutionContext) -> None:
        if self.include_result:
            self._emit("executor.success", context, result=context.return_value)
        else:
            self._emit("executor.success", context)

    def on_error(self, context: ExecutionContext) -> None:
        error = context.error
        self.logger.error(
            "executor.error",
            plugin=self.plugin_name,
            error=str(error),
            error_type=type(error).__name__,
        )

    def on_finally(self, context: ExecutionContext) -> None:
        self._emit("executor.finally", context, failed=context.error is not None)
