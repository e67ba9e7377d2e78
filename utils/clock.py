import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    # Naive UTC, matching the DateTime columns in models/
    return datetime.now(timezone.utc).replace(tzinfo=None)


def seconds_until(moment: datetime, now: datetime) -> int:
    """
    Whole seconds from now until moment, rounded up and never below 1.
    """
    return max(math.ceil((moment - now).total_seconds()), 1)
