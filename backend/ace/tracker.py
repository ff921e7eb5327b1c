"""
Activity Tracker

Runs the three timers of the service on the event loop:
- capture (1 s): poll the activity source and record what it returns
- analysis (5 s): analyze the buffered activity and raise interventions
- eviction (hourly): enforce the activity store capacity

Each loop survives its own errors; a slow persistence write only delays the
background task that issued it.
"""

import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from .activity_sources import ActivitySource, SyntheticActivitySource
from .activity_store import ActivityStore
from .interventions import InterventionNotifier
from .models import ProductivityInsights
from .productivity_analyzer import DEFAULT_THRESHOLDS, ProductivityThresholds, analyze, default_insights

logger = logging.getLogger(__name__)


class ActivityTracker:
    def __init__(
        self,
        store: ActivityStore,
        source: Optional[ActivitySource] = None,
        notifier: Optional[InterventionNotifier] = None,
        thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS,
        capture_interval: float = 1.0,
        analysis_interval: float = 5.0,
        eviction_interval: float = 3600.0,
    ):
        if source is None:
            logger.warning("No activity source available - running with synthetic activity")
            source = SyntheticActivitySource()
        self.store = store
        self.source = source
        self.notifier = notifier or InterventionNotifier()
        self.thresholds = thresholds
        self.capture_interval = capture_interval
        self.analysis_interval = analysis_interval
        self.eviction_interval = eviction_interval

        self.latest_insights: ProductivityInsights = default_insights()
        self.running = False
        self._tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._tasks = [
            asyncio.create_task(self._loop(self.capture_interval, self.capture_tick), name="activity-capture"),
            asyncio.create_task(self._loop(self.analysis_interval, self.analysis_tick), name="activity-analysis"),
            asyncio.create_task(self._loop(self.eviction_interval, self.eviction_tick), name="activity-eviction"),
        ]
        logger.info("Activity tracking started")

    async def stop(self) -> None:
        self.running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        await self.store.drain()
        logger.info("Activity tracking stopped")

    async def _loop(self, interval: float, tick) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                await tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in {tick.__name__}: {e}")

    # ------------------------
    # Ticks
    # ------------------------

    async def capture_tick(self) -> None:
        event = await self.source.poll()
        if event is not None:
            await self.store.record(event)

    async def analysis_tick(self) -> ProductivityInsights:
        window = timedelta(minutes=self.thresholds.window_minutes)
        insights = analyze(self.store.recent(window), thresholds=self.thresholds)
        self.latest_insights = insights
        if insights.requires_intervention:
            await self.notifier.handle(insights)
        return insights

    async def eviction_tick(self) -> None:
        self.store.cap_and_evict()
