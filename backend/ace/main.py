import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .activity_sources import BrowserEventSource, resolve_source
from .activity_store import ActivityStore
from .assistant_context import build_system_instruction, format_context
from .config import Settings, settings as default_settings
from .interventions import InterventionNotifier, Notifier, log_notifier
from .logging_config import setup_logging
from .memory import DEFAULT_REINFORCEMENT, MemoryStore
from .models import RawActivityEvent
from .productivity_analyzer import (
    ProductivityThresholds, analyze, build_productivity_report, explain_productivity_analysis,
)
from .sessions import SessionCreationError, SessionManager, SessionRegistry
from .storage import MongoStorage
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)


class UserCreate(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str


class SessionCreate(BaseModel):
    user_id: str
    session_id: Optional[str] = None


class MemoryCreate(BaseModel):
    fragments: List[Union[str, Dict[str, Any]]]
    importance: float = 1.0


class Reinforcement(BaseModel):
    timestamp: datetime
    boost: float = DEFAULT_REINFORCEMENT


class Services:
    """Everything a request handler needs, built once per app."""

    def __init__(self, settings: Settings, storage, notifier: Notifier):
        self.settings = settings
        self.storage = storage
        self.thresholds = ProductivityThresholds.from_settings(settings)
        self.registry = SessionRegistry(settings.working_memory_capacity)
        self.sessions = SessionManager(storage, self.registry, max_attempts=settings.session_create_max_attempts)
        self.memory = MemoryStore(storage, self.registry)
        self.activities = ActivityStore(settings.default_user_id, storage, settings.activity_capacity)
        self.source = resolve_source(settings)
        self.tracker = ActivityTracker(
            self.activities,
            source=self.source,
            notifier=InterventionNotifier(notifier, settings.intervention_cooldown_minutes),
            thresholds=self.thresholds,
            capture_interval=settings.capture_interval_seconds,
            analysis_interval=settings.analysis_interval_seconds,
            eviction_interval=settings.eviction_interval_seconds,
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(settings: Optional[Settings] = None, storage=None, notifier: Notifier = log_notifier) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings)
    services = Services(settings, storage or MongoStorage(settings), notifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await services.activities.hydrate()
        if settings.tracking_enabled:
            await services.tracker.start()
        yield
        if services.tracker.running:
            await services.tracker.stop()
        else:
            await services.activities.drain()

    app = FastAPI(title="Ace", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    # ------------------------
    # Users & Sessions
    # ------------------------

    @app.post("/users")
    async def initialize_user(body: UserCreate, svc: Services = Depends(get_services)):
        profile = await svc.sessions.initialize_user(body.user_id, body.email, body.first_name, body.last_name)
        return {"user": profile.model_dump(mode="json")}

    @app.post("/sessions")
    async def create_session(body: SessionCreate, svc: Services = Depends(get_services)):
        try:
            session_id = await svc.sessions.create_session(body.user_id, body.session_id)
        except SessionCreationError as e:
            logger.error(f"Session creation failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return {"session_id": session_id}

    # ------------------------
    # Memory
    # ------------------------

    @app.post("/sessions/{session_id}/memories")
    async def add_memories(session_id: str, body: MemoryCreate, svc: Services = Depends(get_services)):
        memories = await svc.memory.add_memories(session_id, body.fragments, body.importance)
        return {"memories": [m.model_dump(mode="json") for m in memories]}

    @app.get("/sessions/{session_id}/context")
    async def get_context(session_id: str, limit: Optional[int] = Query(default=None, ge=0),
                          svc: Services = Depends(get_services)):
        limit = svc.settings.context_limit if limit is None else limit
        memories = await svc.memory.get_relevant_context(session_id, limit)
        return {
            "memories": [m.model_dump(mode="json") for m in memories],
            "context": format_context(memories),
            "instruction": build_system_instruction(memories, svc.tracker.latest_insights),
        }

    @app.post("/sessions/{session_id}/reinforce")
    async def reinforce(session_id: str, body: Reinforcement, svc: Services = Depends(get_services)):
        strength = svc.memory.reinforce(session_id, body.timestamp, body.boost)
        return {"strength": strength}

    # ------------------------
    # Activity
    # ------------------------

    @app.post("/activities/events", status_code=202)
    async def track_event(event: RawActivityEvent, svc: Services = Depends(get_services)):
        if svc.tracker.running and isinstance(svc.source, BrowserEventSource):
            return {"queued": svc.source.push(event)}
        record = await svc.activities.record(event)
        return {"queued": False, "activity": record.model_dump(mode="json")}

    @app.get("/activities")
    async def list_activities(window_minutes: Optional[float] = Query(default=None, gt=0),
                              svc: Services = Depends(get_services)):
        if window_minutes is None:
            records = svc.activities.all()
        else:
            records = svc.activities.recent(timedelta(minutes=window_minutes))
        return {"activities": [r.model_dump(mode="json") for r in records]}

    @app.delete("/activities")
    async def clear_activities(svc: Services = Depends(get_services)):
        await svc.activities.clear()
        return {"message": "All activities cleared"}

    @app.get("/insights")
    async def get_insights(explain: bool = False, svc: Services = Depends(get_services)):
        records = svc.activities.all()
        insights = analyze(records, thresholds=svc.thresholds)
        response = {"insights": insights.model_dump()}
        if explain:
            response["explanation"] = explain_productivity_analysis(records, thresholds=svc.thresholds)
        return response

    @app.get("/report")
    async def get_report(svc: Services = Depends(get_services)):
        report = build_productivity_report(svc.activities.all(), svc.thresholds)
        return {"report": report.model_dump()}

    @app.get("/health")
    async def health(svc: Services = Depends(get_services)):
        storage_ok = await svc.storage.ping()
        return {"status": "ok" if storage_ok else "degraded", "storage": storage_ok}

    return app


app = create_app()
