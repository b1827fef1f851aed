"""Reminder scheduling: the scheduler contract and its notification centers."""

from organizer.services.notifications.center import (
    DELIVERED_HISTORY,
    APSchedulerNotificationCenter,
    InMemoryNotificationCenter,
    NotificationCenter,
    NotificationRequest,
    SchedulingError,
)
from organizer.services.notifications.scheduler import (
    COMPLETE_ACTION,
    DEFAULT_SNOOZE_MINUTES,
    NotificationAction,
    NotificationScheduler,
    snooze_action,
)

__all__ = [
    "DELIVERED_HISTORY",
    "APSchedulerNotificationCenter",
    "InMemoryNotificationCenter",
    "NotificationCenter",
    "NotificationRequest",
    "SchedulingError",
    "COMPLETE_ACTION",
    "DEFAULT_SNOOZE_MINUTES",
    "NotificationAction",
    "NotificationScheduler",
    "snooze_action",
]
