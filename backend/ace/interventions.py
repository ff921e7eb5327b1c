# ace/interventions.py
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from .models import ProductivityInsights, utc_now

logger = logging.getLogger(__name__)

NUDGE_COOLDOWN_MINUTES = 10


class Notification(BaseModel):
    type: str = "warning"  # warning | info | success
    message: str
    action_label: Optional[str] = None
    recommended_activity: Optional[str] = None


Notifier = Callable[[Notification], Awaitable[None]]


async def log_notifier(notification: Notification) -> None:
    logger.info(f"Notification ({notification.type}): {notification.message}")


def build_intervention(insights: ProductivityInsights) -> Optional[Notification]:
    """Only unproductive current activity that needs intervention produces a notification."""
    if not insights.requires_intervention or not insights.current_activity.is_unproductive:
        return None
    return Notification(
        type="warning",
        message=(
            f"Noticed you've been on {insights.current_activity.name} for {insights.time_spent}. "
            f"Consider switching to {insights.recommended_activity}?"
        ),
        action_label="Switch Now",
        recommended_activity=insights.recommended_activity,
    )


class InterventionNotifier:
    """Delivers intervention notifications, at most one per cooldown period."""

    def __init__(self, notifier: Notifier = log_notifier, cooldown_minutes: float = NUDGE_COOLDOWN_MINUTES):
        self.notifier = notifier
        self.cooldown = timedelta(minutes=cooldown_minutes)
        self.last_sent_at: Optional[datetime] = None
        self.sent_count = 0

    def in_cooldown(self, now: datetime) -> bool:
        if self.last_sent_at is None or not self.cooldown:
            return False
        return (now - self.last_sent_at) < self.cooldown

    async def handle(self, insights: ProductivityInsights, now: Optional[datetime] = None) -> Optional[Notification]:
        notification = build_intervention(insights)
        if notification is None:
            return None

        now = now or utc_now()
        if self.in_cooldown(now):
            logger.debug("Intervention suppressed by cooldown")
            return None

        try:
            await self.notifier(notification)
        except Exception as e:
            logger.error(f"Failed to deliver intervention: {e}")
            return None

        self.last_sent_at = now
        self.sent_count += 1
        return notification
