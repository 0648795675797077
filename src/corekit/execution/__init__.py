"""Corekit Execution: plugin-driven executors, retry and abort.

WHY
───
Every outbound call needs the same wrapping: mutate parameters, maybe retry,
maybe cancel, report failures in one typed shape. ``corekit.execution``
provides the lifecycle once (``AsyncExecutor``) and lets plugins supply the
behaviour.

ARCHITECTURE
────────────
::

    AsyncExecutor / SyncExecutor
      ├── use(plugin)            ─ ordered registry, only_one dedupe
      ├── exec / exec_no_error   ─ on_before → on_exec → task → on_success
      │                            on_error on failure, on_finally always
      └── ExecutionContext       ─ per-call parameters + HookRuntimes
      │
      ▼
    Resource control
      ├── RetryManager           ─ fixed / custom / exponential delays
      └── ProxyAbortManager      ─ deadline + external signal → derived signal
      │
      ▼
    Plugins
      ├── AbortPlugin
      ├── RetryPlugin
      └── LoggerPlugin

MODULE MAP
──────────
  1. context.py   ─ ExecutionContext, HookRuntimes
  2. plugin.py    ─ ExecutorPlugin, stage names
  3. hooks.py     ─ run_plugins_hook(s) and sync twins
  4. executor.py  ─ AsyncExecutor, SyncExecutor, ExecutorConfig
  5. retry.py     ─ RetryOptions, RetryManager
  6. abort.py     ─ AbortSignal, AbortController, AbortManager, ProxyAbortManager
  7. plugins/     ─ AbortPlugin, RetryPlugin, LoggerPlugin
"""

from corekit.execution.abort import (
    AbortConfig,
    AbortController,
    AbortHandle,
    AbortManager,
    AbortSignal,
    ProxyAbortManager,
)
from corekit.execution.context import ExecutionContext, HookRuntimes, create_context
from corekit.execution.executor import (
    AsyncExecutor,
    BasePluginExecutor,
    ExecutorConfig,
    SyncExecutor,
)
from corekit.execution.hooks import (
    run_plugins_hook,
    run_plugins_hook_sync,
    run_plugins_hooks,
    run_plugins_hooks_sync,
)
from corekit.execution.plugin import (
    LIFECYCLE_HOOKS,
    ON_BEFORE,
    ON_ERROR,
    ON_EXEC,
    ON_FINALLY,
    ON_SUCCESS,
    ExecutorPlugin,
)
from corekit.execution.plugins import AbortPlugin, LoggerPlugin, RetryPlugin
from corekit.execution.retry import RetryManager, RetryOptions

__all__ = [
    # Executors
    "AsyncExecutor",
    "SyncExecutor",
    "BasePluginExecutor",
    "ExecutorConfig",
    # Context
    "ExecutionContext",
    "HookRuntimes",
    "create_context",
    # Plugins
    "ExecutorPlugin",
    "LIFECYCLE_HOOKS",
    "ON_BEFORE",
    "ON_EXEC",
    "ON_SUCCESS",
    "ON_ERROR",
    "ON_FINALLY",
    "AbortPlugin",
    "LoggerPlugin",
    "RetryPlugin",
    # Hook runner
    "run_plugins_hook",
    "run_plugins_hooks",
    "run_plugins_hook_sync",
    "run_plugins_hooks_sync",
    # Retry
    "RetryManager",
    "RetryOptions",
    # Abort
    "AbortConfig",
    "AbortController",
    "AbortHandle",
    "AbortManager",
    "AbortSignal",
    "ProxyAbortManager",
]
