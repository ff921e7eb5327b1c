# ace/productivity_analyzer.py
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from .config import Settings
from .models import (
    ActivityRecord, CurrentActivity, ProductivityInsights, ProductivityMetrics,
    ProductivityReport, category_weight, utc_now,
)
from .utils import ensure_utc, format_time_spent

MINUTE_MS = 60 * 1000

PRODUCTIVE_WEIGHT = 0.8
UNPRODUCTIVE_WEIGHT = 0.2

# ----------------------------------
# Thresholds (configurable)
# ----------------------------------

class ProductivityThresholds(BaseModel):
    window_minutes: float = 60
    intervention_minutes: float = 15
    distraction_limit: int = 5
    focus_session_minutes: float = 25
    break_after_focus_sessions: int = 4

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProductivityThresholds":
        return cls(
            window_minutes=settings.analysis_window_minutes,
            intervention_minutes=settings.intervention_minutes,
            distraction_limit=settings.distraction_limit,
            focus_session_minutes=settings.focus_session_minutes,
            break_after_focus_sessions=settings.break_after_focus_sessions,
        )


DEFAULT_THRESHOLDS = ProductivityThresholds()

# ----------------------------------
# Helpers
# ----------------------------------

def productivity_weight(activity: ActivityRecord) -> float:
    return category_weight(activity.category.type)


def is_unproductive(activity: ActivityRecord) -> bool:
    return productivity_weight(activity) <= UNPRODUCTIVE_WEIGHT


def recent_activities(activities: Sequence[ActivityRecord], now: Optional[datetime] = None,
                      window_minutes: float = 60) -> List[ActivityRecord]:
    cutoff = (now or utc_now()) - timedelta(minutes=window_minutes)
    return [a for a in activities if ensure_utc(a.timestamp) > cutoff]


def calculate_metrics(activities: Sequence[ActivityRecord],
                      thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS) -> ProductivityMetrics:
    metrics = ProductivityMetrics()
    focus_ms = thresholds.focus_session_minutes * MINUTE_MS

    for activity in activities:
        weight = productivity_weight(activity)
        if weight >= PRODUCTIVE_WEIGHT:
            metrics.productive_time += activity.time_spent
        if weight <= UNPRODUCTIVE_WEIGHT:
            metrics.unproductive_time += activity.time_spent
            metrics.distractions += 1
        if activity.time_spent >= focus_ms:
            metrics.focused_sessions += 1

    return metrics


def should_intervene(current: ActivityRecord, metrics: ProductivityMetrics,
                     thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS) -> bool:
    """Unproductive right now, and either one long stretch or many short distractions."""
    long_stretch = current.time_spent >= thresholds.intervention_minutes * MINUTE_MS
    many_distractions = metrics.distractions >= thresholds.distraction_limit
    return is_unproductive(current) and (long_stretch or many_distractions)


def recommend_for_hour(hour: int) -> str:
    if hour < 12:
        return "planning your day"
    elif hour < 15:
        return "focused work session"
    elif hour < 18:
        return "learning something new"
    return "reviewing today's progress"


def recommend_activity(activities: Sequence[ActivityRecord], metrics: ProductivityMetrics,
                       now: Optional[datetime] = None,
                       thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS) -> str:
    # Been unproductive: go back to the latest productive thing
    if metrics.unproductive_time > metrics.productive_time:
        for activity in reversed(activities):
            if productivity_weight(activity) >= PRODUCTIVE_WEIGHT:
                return activity.application

    if metrics.focused_sessions >= thresholds.break_after_focus_sessions:
        return "taking a short break"

    hour = (now or utc_now()).astimezone().hour
    return recommend_for_hour(hour)


def default_insights() -> ProductivityInsights:
    return ProductivityInsights(
        requires_intervention=False,
        current_activity=CurrentActivity(name="No activity", is_unproductive=False),
        time_spent="0m",
        recommended_activity="starting your day",
    )

# ----------------------------------
# Analysis (Main)
# ----------------------------------

def analyze(activities: Sequence[ActivityRecord], now: Optional[datetime] = None,
            thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS) -> ProductivityInsights:
    """
    Derives insights from the trailing window of activity (newest-last).
    An empty window yields neutral defaults.
    """
    now = now or utc_now()
    recent = recent_activities(activities, now, thresholds.window_minutes)
    if not recent:
        return default_insights()

    metrics = calculate_metrics(recent, thresholds)
    current = recent[-1]

    return ProductivityInsights(
        requires_intervention=should_intervene(current, metrics, thresholds),
        current_activity=CurrentActivity(name=current.application, is_unproductive=is_unproductive(current)),
        time_spent=format_time_spent(current.time_spent),
        recommended_activity=recommend_activity(recent, metrics, now, thresholds),
    )

# ----------------------------------
# Reporting
# ----------------------------------

def build_productivity_report(activities: Sequence[ActivityRecord],
                              thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS,
                              top_n: int = 3) -> ProductivityReport:
    """Summary over whatever activity is passed in (typically the whole store)."""
    productive_by_hour: Dict[int, float] = defaultdict(float)
    unproductive_by_app: Dict[str, List[float]] = defaultdict(list)
    focus_ms = thresholds.focus_session_minutes * MINUTE_MS
    focus_sessions = []

    for activity in activities:
        weight = productivity_weight(activity)
        if weight >= PRODUCTIVE_WEIGHT and activity.time_spent > 0:
            productive_by_hour[ensure_utc(activity.timestamp).astimezone().hour] += activity.time_spent
        if weight <= UNPRODUCTIVE_WEIGHT:
            unproductive_by_app[activity.application].append(activity.time_spent)
        if activity.time_spent >= focus_ms:
            focus_sessions.append(f"{activity.application} ({format_time_spent(activity.time_spent)})")

    top_hours = sorted(productive_by_hour.items(), key=lambda x: x[1], reverse=True)[:top_n]
    top_distractions = sorted(unproductive_by_app.items(), key=lambda x: sum(x[1]), reverse=True)[:top_n]

    metrics = calculate_metrics(activities, thresholds)
    recommendations = []
    if metrics.unproductive_time > metrics.productive_time:
        recommendations.append("Cut back on entertainment sites during working hours.")
    if metrics.distractions >= thresholds.distraction_limit:
        recommendations.append("Batch short breaks instead of switching to distractions often.")
    if metrics.focused_sessions >= thresholds.break_after_focus_sessions:
        recommendations.append("Schedule regular breaks between long focus sessions.")
    elif metrics.focused_sessions == 0 and activities:
        recommendations.append(f"Try a {int(thresholds.focus_session_minutes)}-minute focus session.")

    return ProductivityReport(
        most_productive_hours=[f"{hour:02d}:00" for hour, _ in top_hours],
        distraction_patterns=[
            f"{app} ({len(spans)} visits, {format_time_spent(sum(spans))})" for app, spans in top_distractions
        ],
        focus_sessions=focus_sessions,
        recommendations=recommendations,
    )

# ----------------------------------
# Debugging Helper (Optional)
# ----------------------------------

def explain_productivity_analysis(activities: Sequence[ActivityRecord], now: Optional[datetime] = None,
                                  thresholds: ProductivityThresholds = DEFAULT_THRESHOLDS) -> Dict:
    """
    Returns the metric breakdown behind the intervention decision.
    """
    now = now or utc_now()
    recent = recent_activities(activities, now, thresholds.window_minutes)
    metrics = calculate_metrics(recent, thresholds)
    current = recent[-1] if recent else None

    detail = {
        "window_size": len(recent),
        "metrics": metrics.model_dump(),
        "current_activity": current.application if current else None,
        "current_is_unproductive": is_unproductive(current) if current else False,
        "long_unproductive_stretch": bool(current) and current.time_spent >= thresholds.intervention_minutes * MINUTE_MS,
        "distraction_limit_reached": metrics.distractions >= thresholds.distraction_limit,
    }
    detail["requires_intervention"] = should_intervene(current, metrics, thresholds) if current else False
    return detail
