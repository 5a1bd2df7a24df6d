import os
import sys
from datetime import date, datetime, timezone

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Must be set before any service module creates its engine.
os.environ.setdefault(
    "DATABASE_URL", "sqlite:///" + os.path.join(PROJECT_ROOT, "test_smart_meeting.db")
)
os.environ["TESTING"] = "1"
os.environ.pop("REDIS_URL", None)
os.environ.pop("NOTIFICATIONS_URL", None)

import pytest

from bookings_service.clock import Clock


class FixedClock(Clock):
    """Clock frozen at a given instant; tick() moves it forward."""

    def __init__(self, instant: datetime):
        super().__init__("UTC")
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def tick(self, delta) -> None:
        self.instant = self.instant + delta


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def __call__(self, booking_id: int, event: str) -> None:
        self.events.append((booking_id, event))


TODAY = date(2025, 5, 30)


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 5, 30, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()
