"""
Notification Dispatch

Receives one StatusChanged event per persisted transition. Delivery is best
effort: the engine logs dispatch failures and never rolls a transition back.
"""

from abc import ABC
from abc import abstractmethod

from loguru import logger

from sipedes_api.workflow.models.events import StatusChanged


class NotificationDispatcher(ABC):
    """Sink for StatusChanged events."""

    @abstractmethod
    async def dispatch(self, event: StatusChanged) -> None:
        """Deliver ``event``; may raise, the caller logs and continues."""

    async def close(self) -> None:
        return None


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher: writes each event to the log."""

    async def dispatch(self, event: StatusChanged) -> None:
        logger.info(
            "Permohonan status changed",
            event_id=str(event.event_id),
            tracking_number=event.tracking_number,
            old_status=event.old_status.value,
            new_status=event.new_status.value,
            actor=event.actor,
            requester_id=event.requester_id,
        )
