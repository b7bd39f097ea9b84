"""Multi-tenant messaging session gateway."""

__version__ = "1.0.0"

from .api import create_app
from .manager import SessionLifecycleManager

__all__ = ["SessionLifecycleManager", "__version__", "create_app"]
