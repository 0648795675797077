"""Per-call execution state passed through every plugin hook.

Each ``exec()`` call builds exactly one ``ExecutionContext``. Plugins read and
mutate ``parameters``, observe ``error`` and ``return_value``, and steer the
current stage through ``hooks_runtimes``. Nothing here is module-level state,
so concurrent executions on one executor never see each other's counters.

.. code-block:: text

    ExecutionContext
    ├── .parameters      → caller input (shallow copy, owned by this call)
    ├── .return_value    → result surfaced to onSuccess and the caller
    ├── .error           → failure captured for onError
    └── .hooks_runtimes  → HookRuntimes (per-stage scratch space)
          ├── times              hooks invoked in the current stage
          ├── break_chain        stop the current stage, not an error
          ├── return_break_chain stop at the first non-None return
          ├── continue_on_error  swallow hook failures (finally stage)
          ├── return_value       last non-None hook return in this stage
          └── plugin_name / hook_name / index of the running hook

Tags:
    corekit, execution, context, hooks, runtimes
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

P = TypeVar("P")


def clone_parameters(value: Any) -> Any:
    """Shallow-copy mutable containers so each execution owns its parameters."""
    if value is None:
        return value
    if isinstance(value, (dict, list, set)):
        return copy.copy(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return copy.copy(value)
    return value


@dataclass
class HookRuntimes:
    """Scratch space for the stage currently running."""

    plugin_name: str = ""
    hook_name: str = ""
    index: int | None = None
    times: int = 0
    return_value: Any = None
    break_chain: bool = False
    return_break_chain: bool = False
    continue_on_error: bool = False

    def reset(self, hook_name: str = "") -> None:
        self.plugin_name = ""
        self.hook_name = hook_name
        self.index = None
        self.times = 0
        self.return_value = None
        self.break_chain = False
        self.return_break_chain = False


@dataclass
class ExecutionContext(Generic[P]):
    """Context object available to every hook of one execution."""

    parameters: P = None  # type: ignore[assignment]
    return_value: Any = None
    error: BaseException | None = None
    hooks_runtimes: HookRuntimes = field(default_factory=HookRuntimes)

    def __post_init__(self) -> None:
        self.parameters = clone_parameters(self.parameters)

    def set_parameters(self, parameters: P) -> None:
        self.parameters = clone_parameters(parameters)

    def set_return_value(self, value: Any) -> None:
        self.return_value = value

    def set_error(self, error: BaseException | None) -> None:
        self.error = error

    def break_chain(self) -> None:
        """Stop the current stage after the running hook returns."""
        self.hooks_runtimes.break_chain = True

    def reset_hooks_runtimes(self, hook_name: str = "") -> None:
        self.hooks_runtimes.reset(hook_name)

    def reset(self) -> None:
        """Drop everything accumulated by the execution (parameters are kept)."""
        self.hooks_runtimes.reset()
        self.hooks_runtimes.continue_on_error = False
        self.return_value = None
        self.error = None

    def runtimes(self, **updates: Any) -> None:
        for key, value in updates.items():
            if not hasattr(self.hooks_runtimes, key):
                raise AttributeError(f"HookRuntimes has no field {key!r}")
            setattr(self.hooks_runtimes, key, value)

    def runtime_return_value(self, value: Any) -> None:
        self.hooks_runtimes.return_value = value

    def should_skip_plugin_hook(self, plugin: Any, hook_name: str) -> bool:
        """True when ``plugin`` lacks ``hook_name`` or disables itself for it."""
        if not callable(getattr(plugin, hook_name, None)):
            return True
        enabled = getattr(plugin, "enabled", None)
        return callable(enabled) and enabled(hook_name, self) is False

    def should_break_chain(self) -> bool:
        return bool(self.hooks_runtimes.break_chain)

    def should_break_chain_on_return(self) -> bool:
        return bool(self.hooks_runtimes.return_break_chain)

    def should_continue_on_error(self) -> bool:
        return bool(self.hooks_runtimes.continue_on_error)


def create_context(parameters: Any = None) -> ExecutionContext[Any]:
    """Build a fresh context; ``None`` parameters become an empty dict."""
    return ExecutionContext(parameters={} if parameters is None else parameters)
