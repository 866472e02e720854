"""
API Layer

- core.py - Transport-independent boundary operations
- models.py - Request body models
- server.py - aiohttp application
"""

from .core import TelemetryCore
from .models import ActionType, FeedingSchedule
from .server import create_app

__all__ = [
    "TelemetryCore",
    "ActionType",
    "FeedingSchedule",
    "create_app",
]
