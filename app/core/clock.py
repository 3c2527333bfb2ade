from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def get_clock() -> Clock:
    # Overridden in tests to pin "now"
    return utcnow
