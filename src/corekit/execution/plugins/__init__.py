"""Built-in executor plugins.

    AbortPlugin   register each call with an abort manager, inject ``signal``
    RetryPlugin   run the task under a RetryManager policy
    LoggerPlugin  structured log event per lifecycle stage
"""

from corekit.execution.plugins.abort import AbortPlugin
from corekit.execution.plugins.logging import LoggerPlugin
from corekit.execution.plugins.retry import RetryPlugin

__all__ = ["AbortPlugin", "LoggerPlugin", "RetryPlugin"]
