from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]

def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive ``DateTime`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
