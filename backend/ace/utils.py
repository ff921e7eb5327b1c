from datetime import datetime, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def ensure_utc(date) -> Optional[datetime]:
    """
    Returns the input as a timezone-aware UTC datetime, or None if it is not a datetime.
    Naive datetimes (as stored by Mongo without tz_aware) are taken to be UTC.
    """
    if not isinstance(date, datetime):
        return None
    if date.tzinfo is None:
        return date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc)


def from_epoch_ms(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.warning(f"Ignoring out-of-range epoch timestamp: {value}")
        return None


def format_time_spent(time_spent_ms: float) -> str:
    """Milliseconds -> "{h}h {m}m" when at least an hour, else "{m}m"."""
    minutes = int(max(time_spent_ms, 0) // (60 * 1000))
    hours = minutes // 60
    remaining_minutes = minutes % 60

    if hours > 0:
        return f"{hours}h {remaining_minutes}m"
    return f"{minutes}m"
