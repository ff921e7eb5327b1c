import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActivityType(str, Enum):
    DEVELOPMENT = "development"
    LEARNING = "learning"
    COMMUNICATION = "communication"
    ENTERTAINMENT = "entertainment"
    WORK = "work"


# Productivity multiplier per activity type
CATEGORY_WEIGHTS = {
    ActivityType.WORK: 1.0,
    ActivityType.DEVELOPMENT: 1.0,
    ActivityType.LEARNING: 0.8,
    ActivityType.COMMUNICATION: 0.6,
    ActivityType.ENTERTAINMENT: 0.2,
}


def category_weight(activity_type, default: float = 0.0) -> float:
    try:
        return CATEGORY_WEIGHTS[ActivityType(activity_type)]
    except ValueError:
        return default


def utc_now() -> datetime:
    # millisecond precision, matching what BSON stores
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


# ------------------------
# Activity tracking
# ------------------------

class ActivityCategory(BaseModel):
    type: ActivityType
    priority: int


class RawActivityEvent(BaseModel):
    """A browser history / tab event as delivered by the extension."""
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    title: Optional[str] = None
    last_visit_time: Optional[float] = Field(default=None, alias="lastVisitTime")  # epoch ms
    typed_count: int = Field(default=0, alias="typedCount")
    visit_count: int = Field(default=1, alias="visitCount")


class ActivityRecord(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime
    application: str
    url: Optional[str] = None
    time_spent: float = 0.0  # milliseconds
    category: ActivityCategory
    productivity_score: float = 0.0


# ------------------------
# Memory
# ------------------------

class MemoryEntry(BaseModel):
    timestamp: datetime
    content: str
    importance: float = Field(ge=0.0, le=1.0)
    emotional_valence: float = Field(ge=-1.0, le=1.0)
    key_concepts: List[str] = []
    activity_type: Optional[ActivityType] = None
    productivity_score: Optional[float] = None


class SessionContext(BaseModel):
    time_of_day: str
    day_of_week: str


class Session(BaseModel):
    id: str
    user_id: str
    start_time: datetime
    context: SessionContext


class UserProfile(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    created_at: datetime


# ------------------------
# Productivity analysis
# ------------------------

class ProductivityMetrics(BaseModel):
    productive_time: float = 0.0
    unproductive_time: float = 0.0
    focused_sessions: int = 0
    distractions: int = 0


class CurrentActivity(BaseModel):
    name: str
    is_unproductive: bool


class ProductivityInsights(BaseModel):
    requires_intervention: bool
    current_activity: CurrentActivity
    time_spent: str
    recommended_activity: str


class ProductivityReport(BaseModel):
    most_productive_hours: List[str] = []
    distraction_patterns: List[str] = []
    focus_sessions: List[str] = []
    recommendations: List[str] = []
