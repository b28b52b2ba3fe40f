"""HTTP diagnostics surface."""

from .app import create_app
from .routes import get_monitor, router, set_monitor

__all__ = ["create_app", "router", "get_monitor", "set_monitor"]
