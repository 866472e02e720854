"""
Notification Center

Deduplicated alert log with push-eligibility classification.
"""

from .center import (
    NOTIFICATIONS_DOCUMENT,
    PUSH_ELIGIBLE,
    Notification,
    NotificationCenter,
    NotificationType,
    PushType,
)

__all__ = [
    "NOTIFICATIONS_DOCUMENT",
    "PUSH_ELIGIBLE",
    "Notification",
    "NotificationCenter",
    "NotificationType",
    "PushType",
]
