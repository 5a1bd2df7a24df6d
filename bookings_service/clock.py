import os
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

# Calendar dates ("today", booking_date) are interpreted in the office timezone.
OFFICE_TIMEZONE = os.getenv("OFFICE_TIMEZONE", "UTC")


class Clock:
    """Source of the current time for timestamps and past-date checks."""

    def __init__(self, tz_name: str = OFFICE_TIMEZONE):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()

    def local_now(self) -> datetime:
        return self.now().astimezone(self.tz)


system_clock = Clock()


def get_clock() -> Clock:
    return system_clock
