# bookings_service/rate_limiter.py
import os
import threading
import time
from typing import Dict, List

from fastapi import Depends, HTTPException, status

from common.auth import get_current_caller
from common.capabilities import Caller

WINDOW_SECONDS = 60
MAX_BOOKINGS_PER_WINDOW = int(os.getenv("MAX_BOOKINGS_PER_WINDOW", "20"))

_caller_request_log: Dict[int, List[float]] = {}
_log_lock = threading.Lock()


def booking_rate_limiter(caller: Caller = Depends(get_current_caller)) -> None:
    """
    Sliding-window limit on booking writes (create/cancel) per caller.

    Disabled when TESTING=1 so test suites can create bookings freely.
    """
    if os.getenv("TESTING") == "1":
        return

    now = time.time()
    window_start = now - WINDOW_SECONDS

    with _log_lock:
        timestamps = [ts for ts in _caller_request_log.get(caller.user_id, []) if ts >= window_start]
        if len(timestamps) >= MAX_BOOKINGS_PER_WINDOW:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many booking operations in a short time",
            )
        timestamps.append(now)
        _caller_request_log[caller.user_id] = timestamps
