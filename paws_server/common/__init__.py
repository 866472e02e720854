"""
Common Utilities

Shared modules used across all components:
- config.py - Configuration dataclasses
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Interval scheduler
- timestamp.py - Timestamp helpers
"""

from .config import (
    ServiceConfig,
    ServerSettings,
    StoreSettings,
    RetentionSettings,
    NotificationSettings,
    AnalyticsSettings,
    DetectorSettings,
    LogPolicy,
    SampleMode,
    load_service_config,
    load_config_file,
)
from .exceptions import (
    PawsError,
    InvalidPathError,
    DocumentNotFoundError,
    MalformedJSONError,
    WriteFailureError,
    ValidationError,
    UnsupportedActionError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    log_notification,
    log_transition,
)
from .scheduler import ScheduledLoop

__all__ = [
    # Config
    "ServiceConfig",
    "ServerSettings",
    "StoreSettings",
    "RetentionSettings",
    "NotificationSettings",
    "AnalyticsSettings",
    "DetectorSettings",
    "LogPolicy",
    "SampleMode",
    "load_service_config",
    "load_config_file",
    # Exceptions
    "PawsError",
    "InvalidPathError",
    "DocumentNotFoundError",
    "MalformedJSONError",
    "WriteFailureError",
    "ValidationError",
    "UnsupportedActionError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "log_notification",
    "log_transition",
    # Scheduling
    "ScheduledLoop",
]
