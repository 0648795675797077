"""Plugin capability interface for the executors.

A plugin is any object exposing a subset of the lifecycle hooks below. The
hook runner checks for each method at call time, so plugins do not need to
inherit from anything; ``ExecutorPlugin`` is only a convenience base that
supplies ``plugin_name`` and ``only_one``.

.. code-block:: text

    plugin_name   identifier used for only_one checks and logging
    only_one      reject a second registration of the same instance, name or class
    enabled(stage_name, context) -> bool   optional per-stage gate

    on_before(context)            may mutate context.parameters
    on_exec(context, task)        may return a value or a replacement task
    on_success(context)           may reassign context.return_value
    on_error(context)             may return a replacement ExecutorError
    on_finally(context)           always runs, failures are ignored
"""

from __future__ import annotations

from typing import Any, Protocol

ON_BEFORE = "on_before"
ON_EXEC = "on_exec"
ON_SUCCESS = "on_success"
ON_ERROR = "on_error"
ON_FINALLY = "on_finally"

LIFECYCLE_HOOKS = (ON_BEFORE, ON_EXEC, ON_SUCCESS, ON_ERROR, ON_FINALLY)


class PluginLike(Protocol):
    """Minimum shape the executors accept in ``use()``."""

    plugin_name: str


class ExecutorPlugin:
    """Optional base class for plugins.

    Subclasses define only the hooks they need; an undefined hook means the
    plugin is skipped at that stage.

    Example:
        >>> class Timestamp(ExecutorPlugin):
        ...     plugin_name = "Timestamp"
        ...     def on_before(self, context):
        ...         context.parameters["ts"] = 1
    """

    plugin_name: str = ""
    only_one: bool = False

    def __init__(self, plugin_name: str | None = None, only_one: bool | None = None):
        if plugin_name is not None:
            self.plugin_name = plugin_name
        elif not self.plugin_name:
            self.plugin_name = type(self).__name__
        if only_one is not None:
            self.only_one = only_one

    def __repr__(self) -> str:
        return f"{type(self).__name__}(plugin_name={self.plugin_name!r})"


def plugin_name_of(plugin: Any) -> str:
    return getattr(plugin, "plugin_name", "") or type(plugin).__name__
