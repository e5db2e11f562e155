"""
StatusChanged event dispatchers.
"""

from sipedes_api.workflow.notifications.dispatcher import LoggingNotificationDispatcher
from sipedes_api.workflow.notifications.dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher", "LoggingNotificationDispatcher"]
