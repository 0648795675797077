"""AbortPlugin: make every execution cancellable.

``on_before`` registers the call with an abort manager and injects the
derived ``signal`` into ``context.parameters``; the task is expected to
observe it. A second execution with the same ``abort_id`` aborts the first.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from corekit.core.errors import AbortError, ExecutorError, is_abort_error
from corekit.execution.abort import (
    AbortManager,
    ProxyAbortManager,
    read_config,
    write_config,
)
from corekit.execution.context import ExecutionContext
from corekit.execution.plugin import ExecutorPlugin

ConfigExtractor = Callable[[Any], Any]


def _parameters_as_config(parameters: Any) -> Any:
    return parameters


class AbortPlugin(ExecutorPlugin):
    """Registers each execution with an abort manager.

    Args:
        abort_manager: Manager to register with (default: ProxyAbortManager
            named after the plugin)
        timeout: Default ``abort_timeout`` in ms for calls that set none
        get_config: Extracts the abort config from ``context.parameters``
        plugin_name: Plugin name (default: ``AbortPlugin``)
    """

    only_one = True

    def __init__(
        self,
        abort_manager: AbortManager | None = None,
        timeout: float | None = None,
        get_config: ConfigExtractor | None = None,
        plugin_name: str | None = None,
    ):
        super().__init__(plugin_name=plugin_name or "AbortPlugin")
        self.abort_manager = abort_manager or ProxyAbortManager(self.plugin_name)
        self.timeout = timeout
        self.get_config = get_config or _parameters_as_config

    def on_before(self, context: ExecutionContext) -> None:
        config = self.get_config(context.parameters)

        if self.timeout is not None and read_config(config, "abort_timeout") is None:
            write_config(config, "abort_timeout", self.timeout)

        # A new call with a live id supersedes the previous one
        self.abort_manager.abort(config)
        handle = self.abort_manager.register(config)
        write_config(context.parameters, "signal", handle.signal)

    def _release(self, context: ExecutionContext) -> str | None:
        config = self.get_config(context.parameters)
        abort_id = read_config(config, "abort_id")
        # A newer call may have taken over the id after aborting this one
        if abort_id and self.abort_manager.get_signal(abort_id) is read_config(
            context.parameters, "signal"
        ):
            self.abort_manager.cleanup(abort_id)
        return abort_id

    def on_success(self, context: ExecutionContext) -> None:
        if context.parameters is not None:
            self._release(context)

    def on_error(self, context: ExecutionContext) -> ExecutorError | None:
        if context.parameters is None:
            return None

        abort_id = self._release(context)

        error = context.error
        if not is_abort_error(error):
            return None
        if isinstance(error, AbortError):
            return error
        return AbortError(str(error) or "The operation was aborted", abort_id)

    def abort(self, target: Any) -> bool:
        return self.abort_manager.abort(target)

    def abort_all(self) -> None:
        self.abort_manager.abort_all()
