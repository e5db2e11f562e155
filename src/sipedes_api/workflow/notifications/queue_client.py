"""
Azure Storage Queue Dispatcher for Status Notifications

Publishes StatusChanged events to an Azure Storage Queue where the SMS/email
notifier picks them up. Transient send failures are retried with exponential
backoff; permanent ones fail immediately.
"""

import asyncio
from typing import Optional

from azure.core.exceptions import HttpResponseError
from azure.core.exceptions import ResourceExistsError
from azure.core.exceptions import ServiceRequestError
from azure.core.exceptions import ServiceResponseError
from azure.storage.queue import QueueClient
from loguru import logger

from sipedes_api.workflow.models.events import StatusChanged
from sipedes_api.workflow.notifications.dispatcher import NotificationDispatcher


# Throttling and server-side statuses worth another attempt
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if a send failure is transient and should be retried.

    Retryable: no response or a broken connection (``ServiceRequestError``,
    ``ServiceResponseError``, ``ConnectionError``, ``TimeoutError``) and HTTP
    responses in ``RETRYABLE_STATUS_CODES``.

    Everything else (oversized message, bad credentials, missing queue) is
    permanent.
    """
    if isinstance(error, (ServiceRequestError, ServiceResponseError, ConnectionError, TimeoutError)):
        return True
    if isinstance(error, HttpResponseError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return False


class QueueNotificationDispatcher(NotificationDispatcher):
    """
    Status notification queue client.

    Wraps Azure Storage Queue; the synchronous SDK calls run in a worker thread.
    """

    def __init__(
        self,
        connection_string: str,
        queue_name: str,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        client: Optional[QueueClient] = None,
    ):
        """
        Initialize queue dispatcher.

        Args:
            connection_string: Azure Storage Queue connection string
            queue_name: Queue name (e.g., "permohonan-status")
            max_attempts: Total send attempts for transient failures
            backoff_seconds: Delay before the second attempt; doubles afterwards
            client: Pre-built QueueClient (tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.queue_name = queue_name
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.client = client or QueueClient.from_connection_string(connection_string, queue_name)
        self._initialize_queue()

    def _initialize_queue(self) -> None:
        """Create the queue if it doesn't exist."""
        try:
            self.client.create_queue()
            logger.info(f"Queue '{self.queue_name}' ready")
        except ResourceExistsError:
            logger.debug("Queue exists")
        except Exception as e:
            logger.warning(f"Queue creation message: {e}")

    async def dispatch(self, event: StatusChanged) -> None:
        """
        Send ``event`` to the queue.

        Raises:
            Exception: last error once retries are exhausted, or the first permanent error
        """
        message = event.to_message()
        attempt = 0
        while True:
            attempt += 1
            try:
                await asyncio.to_thread(self.client.send_message, message)
                logger.info(
                    "Enqueued status notification",
                    tracking_number=event.tracking_number,
                    new_status=event.new_status.value,
                    attempt=attempt,
                )
                return
            except Exception as e:
                if not is_retryable_error(e) or attempt >= self.max_attempts:
                    logger.error(
                        f"Failed to enqueue status notification for {event.tracking_number}: {e}",
                        attempt=attempt,
                        retryable=is_retryable_error(e),
                    )
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Status notification send failed with retryable error "
                    f"(attempt {attempt}/{self.max_attempts}), retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)

    async def close(self) -> None:
        await asyncio.to_thread(self.client.close)
