# =======================================================================================
# keytrack/utils/clock.py - Time Helpers
# =======================================================================================
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
