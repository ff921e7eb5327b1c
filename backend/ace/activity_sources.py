"""
Raw activity sources polled by the capture tick.
"""

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Optional

from .config import Settings
from .models import RawActivityEvent, utc_now

logger = logging.getLogger(__name__)

SAMPLE_PAGES = [
    ("https://github.com/", "GitHub"),
    ("https://stackoverflow.com/questions", "Stack Overflow"),
    ("https://www.coursera.org/learn", "Coursera"),
    ("https://mail.google.com/mail", "Gmail"),
    ("https://www.youtube.com/", "YouTube"),
    ("https://docs.example.com/", "Project docs"),
]


class ActivitySource(ABC):
    @abstractmethod
    async def poll(self) -> Optional[RawActivityEvent]:
        """Return the next event, or None when nothing new happened this tick."""


class BrowserEventSource(ActivitySource):
    """Buffers tab / history events pushed by the browser extension."""

    def __init__(self, max_buffered: int = 1000):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_buffered)

    def push(self, event: RawActivityEvent) -> bool:
        if not event.url and not event.title:
            logger.debug("Ignoring browser event without url or title")
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.warning("Browser event buffer full, dropping event")
            return False

    def pending(self) -> int:
        return self._queue.qsize()

    async def poll(self) -> Optional[RawActivityEvent]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None


class SyntheticActivitySource(ActivitySource):
    """Mock events for development when no real source is available."""

    def __init__(self, every_n_polls: int = 5):
        self.every_n_polls = max(1, every_n_polls)
        self._pages = itertools.cycle(SAMPLE_PAGES)
        self._polls = 0

    async def poll(self) -> Optional[RawActivityEvent]:
        self._polls += 1
        if (self._polls - 1) % self.every_n_polls:
            return None
        url, title = next(self._pages)
        return RawActivityEvent(url=url, title=title, last_visit_time=utc_now().timestamp() * 1000)


def resolve_source(settings: Settings) -> ActivitySource:
    if settings.activity_source == "browser":
        return BrowserEventSource()
    if settings.activity_source != "synthetic":
        logger.warning(f"Unknown activity source '{settings.activity_source}' - using synthetic activity")
    else:
        logger.warning("Browser activity source disabled - running with synthetic activity")
    return SyntheticActivitySource()
