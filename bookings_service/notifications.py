import logging
import os
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor

import httpx

logger = logging.getLogger(__name__)

NOTIFICATIONS_URL = os.getenv("NOTIFICATIONS_URL")


class NotificationDispatcher(ABC):
    """
    Tells the notification system that something happened to a booking.

    Delivery (push, e-mail) is someone else's job; dispatchers only hand
    the event over and never report failure back to the scheduler.
    """

    @abstractmethod
    def __call__(self, booking_id: int, event: str) -> None:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    def __call__(self, booking_id: int, event: str) -> None:
        logger.debug("No notification endpoint configured, dropping %s for booking %s", event, booking_id)


class WebhookNotificationDispatcher(NotificationDispatcher):
    """
    POSTs ``{"booking_id", "event"}`` to a webhook from a background thread.
    """

    def __init__(self, url: str, timeout: float = 5.0, max_workers: int = 2):
        self.url = url
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def __call__(self, booking_id: int, event: str) -> None:
        future = self._executor.submit(self._post, booking_id, event)
        future.add_done_callback(lambda f: self._log_failure(f, booking_id, event))

    def _post(self, booking_id: int, event: str) -> None:
        resp = httpx.post(
            self.url,
            json={"booking_id": booking_id, "event": event},
            timeout=self.timeout,
        )
        resp.raise_for_status()

    @staticmethod
    def _log_failure(future: Future, booking_id: int, event: str) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning("Notification %s for booking %s failed: %s", event, booking_id, exc)


_dispatcher: NotificationDispatcher = (
    WebhookNotificationDispatcher(NOTIFICATIONS_URL)
    if NOTIFICATIONS_URL
    else LoggingNotificationDispatcher()
)


def get_notifier() -> NotificationDispatcher:
    return _dispatcher
