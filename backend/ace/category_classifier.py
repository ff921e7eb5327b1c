from typing import Dict, List, Optional, Tuple

from .models import ActivityCategory, ActivityType

# Checked top to bottom, first match wins. Keyword sets are disjoint.
CATEGORY_RULES: List[Tuple[ActivityType, int, List[str]]] = [
    (ActivityType.DEVELOPMENT, 1, ["github.com", "stackoverflow.com", "localhost"]),
    (ActivityType.LEARNING, 2, ["coursera.org", "udemy.com", "pluralsight.com"]),
    (ActivityType.COMMUNICATION, 3, ["gmail.com", "slack.com", "teams.microsoft.com"]),
    (ActivityType.ENTERTAINMENT, 4, ["youtube.com", "netflix.com", "reddit.com"]),
]

DEFAULT_CATEGORY = (ActivityType.WORK, 1)


def classify(url: Optional[str] = None, title: Optional[str] = None) -> ActivityCategory:
    """
    Map a URL (or, when there is no URL, a window title) to an activity category.
    Unrecognized signals fall back to work/priority 1.
    """
    signal = (url or title or "").lower()

    for activity_type, priority, keywords in CATEGORY_RULES:
        if any(keyword in signal for keyword in keywords):
            return ActivityCategory(type=activity_type, priority=priority)

    activity_type, priority = DEFAULT_CATEGORY
    return ActivityCategory(type=activity_type, priority=priority)


def classify_signal(signal: Dict[str, Optional[str]]) -> ActivityCategory:
    return classify(url=signal.get("url"), title=signal.get("title"))
