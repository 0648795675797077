"""
Corekit - plugin-driven execution primitives.

- corekit.core: errors, logging, settings
- corekit.execution: executors, retry manager, abort coordinators, plugins
"""

__version__ = "0.1.0"
