"""
Sessions Package

Call session tracking: a concurrent registry keyed by call identifier and
the periodic sweeper that evicts completed calls.
"""

from .models import CallSession, SessionEvent
from .registry import CallSessionRegistry
from .sweeper import RetentionSweeper

__all__ = [
    "CallSession",
    "SessionEvent",
    "CallSessionRegistry",
    "RetentionSweeper",
]
