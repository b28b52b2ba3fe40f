# Monitor core utilities

from cti_monitor.core.locks import KeyedLock
from cti_monitor.core.logging import LogFormat, setup_logging

__all__ = [
    "KeyedLock",
    "LogFormat",
    "setup_logging",
]
