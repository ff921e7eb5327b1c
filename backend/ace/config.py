"""
Configuration loaded from environment variables (and an optional .env file).
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    mongo_uri: str = "mongodb://localhost:27017/"
    mongo_db: str = "ace"
    log_level: str = "INFO"
    default_user_id: str = "default-user"

    # Activity tracking
    activity_capacity: int = 1000
    capture_interval_seconds: float = 1.0
    analysis_interval_seconds: float = 5.0
    eviction_interval_seconds: float = 3600.0
    activity_source: str = "browser"  # browser | synthetic
    tracking_enabled: bool = True

    # Memory
    working_memory_capacity: int = 7
    context_limit: int = 5
    session_create_max_attempts: int = 5

    # Productivity analysis
    analysis_window_minutes: float = 60
    intervention_minutes: float = 15
    distraction_limit: int = 5
    focus_session_minutes: float = 25
    break_after_focus_sessions: int = 4
    intervention_cooldown_minutes: float = 10


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    return Settings(
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017/"),
        mongo_db=os.getenv("MONGO_DB", "ace"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        default_user_id=os.getenv("DEFAULT_USER_ID", "default-user"),
        activity_capacity=int(os.getenv("ACTIVITY_CAPACITY", "1000")),
        capture_interval_seconds=float(os.getenv("CAPTURE_INTERVAL_SECONDS", "1")),
        analysis_interval_seconds=float(os.getenv("ANALYSIS_INTERVAL_SECONDS", "5")),
        eviction_interval_seconds=float(os.getenv("EVICTION_INTERVAL_SECONDS", "3600")),
        activity_source=os.getenv("ACTIVITY_SOURCE", "browser"),
        tracking_enabled=_env_bool("TRACKING_ENABLED", True),
        working_memory_capacity=int(os.getenv("WORKING_MEMORY_CAPACITY", "7")),
        context_limit=int(os.getenv("CONTEXT_LIMIT", "5")),
        session_create_max_attempts=int(os.getenv("SESSION_CREATE_MAX_ATTEMPTS", "5")),
        analysis_window_minutes=float(os.getenv("ANALYSIS_WINDOW_MINUTES", "60")),
        intervention_minutes=float(os.getenv("INTERVENTION_MINUTES", "15")),
        distraction_limit=int(os.getenv("DISTRACTION_LIMIT", "5")),
        focus_session_minutes=float(os.getenv("FOCUS_SESSION_MINUTES", "25")),
        break_after_focus_sessions=int(os.getenv("BREAK_AFTER_FOCUS_SESSIONS", "4")),
        intervention_cooldown_minutes=float(os.getenv("INTERVENTION_COOLDOWN_MINUTES", "10")),
    )


# Process-wide default settings
settings = load_settings()
